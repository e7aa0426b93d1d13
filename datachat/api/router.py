from fastapi import APIRouter
from datachat.api.endpoints import (
    auth,
    chat,
    conversations,
    data_sources,
    files,
    usage,
    users,
)

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(data_sources.router)
api_router.include_router(files.router)
api_router.include_router(conversations.router)
api_router.include_router(chat.router)
api_router.include_router(usage.router)
