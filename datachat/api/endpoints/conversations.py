import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from datachat.core import models, schemas
from datachat.core.chat.titles import DEFAULT_TITLE
from datachat.core.database import get_db
from datachat.core.security import get_current_user

router = APIRouter(prefix="/conversations", tags=["Conversations"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]


@router.post(
    "",
    response_model=schemas.ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    payload: schemas.ConversationCreate, current_user: user_dep, db: db_dep
):
    # The bound source has to belong to the caller
    if payload.data_source_id is not None:
        source = await db.get(models.DataSource, payload.data_source_id)
        if source is None or source.owner_id != current_user.id:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Data source not found")

    if payload.file_document_id is not None:
        document = await db.get(models.FileDocument, payload.file_document_id)
        if document is None or document.owner_id != current_user.id:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "File not found")

    try:
        conversation = models.Conversation(
            title=payload.title or DEFAULT_TITLE,
            data_source_id=payload.data_source_id,
            file_document_id=payload.file_document_id,
            owner_id=current_user.id,
        )
        db.add(conversation)
        await db.commit()
        await db.refresh(conversation)
        return conversation
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to create conversation: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create conversation"
        )


@router.get("", response_model=List[schemas.ConversationResponse])
async def list_conversations(current_user: user_dep, db: db_dep):
    query = (
        select(models.Conversation)
        .where(models.Conversation.owner_id == current_user.id)
        .order_by(desc(models.Conversation.updated_at), desc(models.Conversation.id))
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{conversation_id}", response_model=schemas.ConversationDetailResponse)
async def get_conversation(conversation_id: int, current_user: user_dep, db: db_dep):
    query = (
        select(models.Conversation)
        .options(selectinload(models.Conversation.messages))
        .where(models.Conversation.id == conversation_id)
    )
    result = await db.execute(query)
    conversation = result.scalar_one_or_none()

    if conversation is None or conversation.owner_id != current_user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found")

    return conversation


@router.delete("/{conversation_id}", status_code=status.HTTP_200_OK)
async def delete_conversation(
    conversation_id: int, current_user: user_dep, db: db_dep
):
    conversation = await db.get(models.Conversation, conversation_id)
    if conversation is None or conversation.owner_id != current_user.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found")

    try:
        await db.delete(conversation)
        await db.commit()
        return {"message": f"Deleted conversation {conversation_id}"}
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to delete conversation {conversation_id}: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete conversation"
        )
