import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from datachat.core import models, schemas
from datachat.core.chat import pipeline
from datachat.core.chat.adapters import DataSourceAdapter, get_adapter
from datachat.core.chat.errors import ModelGatewayError, NotFound, QuotaExceeded
from datachat.core.chat.gateway import ModelGateway, get_gateway
from datachat.core.database import get_db
from datachat.core.security import get_current_user

router = APIRouter(prefix="/chat", tags=["Chat"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]
gateway_dep = Annotated[ModelGateway, Depends(get_gateway)]
adapter_dep = Annotated[DataSourceAdapter, Depends(get_adapter)]


@router.post("", response_model=schemas.ChatResponse)
async def send_message(
    request: schemas.ChatRequest,
    current_user: user_dep,
    db: db_dep,
    gateway: gateway_dep,
    adapter: adapter_dep,
):
    """
    Ask a question in a conversation.
    The reply comes back sanitized, with any extracted result attached.
    """
    try:
        return await pipeline.process_message(
            db,
            current_user,
            request.conversation_id,
            request.message,
            gateway=gateway,
            adapter=adapter,
            execute_query=request.execute_query,
        )
    except QuotaExceeded as error:
        raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(error))
    except NotFound as error:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(error))
    except ModelGatewayError:
        raise HTTPException(
            status.HTTP_502_BAD_GATEWAY,
            "An error occurred while processing your message",
        )
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to process chat message: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An error occurred while processing your message",
        )
