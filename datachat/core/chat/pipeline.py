import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from datachat.core import models
from datachat.core.chat import context, dispatch, extract, ledger, prompts, titles
from datachat.core.chat.adapters import DataSourceAdapter, schema_for
from datachat.core.chat.errors import ModelGatewayError, NotFound
from datachat.core.chat.gateway import ModelGateway
from datachat.core.chat.prompts import ChatMode
from datachat.core.chat.sanitize import sanitize


# -----------------------------------------------------------------------------
# CHAT PIPELINE - Orchestration
# Purpose: take one user message through quota -> context -> prompt -> model ->
# extraction -> execution -> sanitizing, then store both turns and the usage entry
# -----------------------------------------------------------------------------


# Configure logging for pipeline
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class BoundSource:
    """Read-only snapshot of what the conversation is attached to."""

    mode: ChatMode
    data_source: Optional[models.DataSource] = None
    file_document: Optional[models.FileDocument] = None
    schema_text: Optional[str] = None
    sample_data: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def data_source_id(self) -> Optional[int]:
        return self.data_source.id if self.data_source is not None else None


async def load_conversation(
    db: AsyncSession, user_id: int, conversation_id: int
) -> models.Conversation:
    query = (
        select(models.Conversation)
        .options(selectinload(models.Conversation.messages))
        .where(models.Conversation.id == conversation_id)
    )
    result = await db.execute(query)
    conversation = result.scalar_one_or_none()

    if conversation is None or conversation.owner_id != user_id:
        raise NotFound("Conversation not found")
    return conversation


async def resolve_source(
    db: AsyncSession,
    user_id: int,
    conversation: models.Conversation,
    adapter: DataSourceAdapter,
) -> BoundSource:
    """
    Work out the conversation mode and gather schema / file data for the prompt.
    A bound source that is gone or owned by someone else rejects the message.
    """
    if conversation.data_source_id is not None:
        data_source = await db.get(models.DataSource, conversation.data_source_id)
        if data_source is None or data_source.owner_id != user_id:
            raise NotFound("Data source not found")

        schema_text = await schema_for(db, data_source, adapter)
        return BoundSource(
            mode=ChatMode.QUERY, data_source=data_source, schema_text=schema_text
        )

    if conversation.file_document_id is not None:
        document = await db.get(models.FileDocument, conversation.file_document_id)
        if document is None or document.owner_id != user_id:
            raise NotFound("File not found")

        return BoundSource(
            mode=ChatMode.TABULAR,
            file_document=document,
            schema_text=document.schema_info,
            sample_data=document.parsed_content,
            file_name=document.original_filename,
        )

    return BoundSource(mode=ChatMode.QUERY)


async def extract_result(
    raw_text: str,
    source: BoundSource,
    adapter: DataSourceAdapter,
    execute_query: bool = True,
) -> Dict[str, Any]:
    """
    Turn the model reply into (sql_query, query_result).

    Query mode runs the extracted statements; tabular mode reads json tables.
    When neither finds anything, an echoed [DATA_CONTEXT] marker is used.
    """
    sql_query = None
    query_result = None

    if source.mode == ChatMode.QUERY and source.data_source is not None and execute_query:
        statements = extract.extract_statements(raw_text)

        if statements:
            sql_query = dispatch.join_statements(statements)
            try:
                query_result = await dispatch.execute(adapter, source.data_source, statements)
            except Exception as error:
                logger.warning(f"Query failed on data source {source.data_source_id}: {error}")
                query_result = dispatch.error_entry(error, sql_query)
        else:
            query_result = extract.parse_context_marker(raw_text)

    elif source.mode == ChatMode.TABULAR:
        query_result = extract.extract_tables(raw_text)
        if query_result is None:
            query_result = extract.parse_context_marker(raw_text)

    return {"sql_query": sql_query, "query_result": query_result}


async def process_message(
    db: AsyncSession,
    user: models.User,
    conversation_id: int,
    message: str,
    gateway: ModelGateway,
    adapter: DataSourceAdapter,
    execute_query: bool = True,
) -> Dict[str, Any]:
    """
    Run one inbound message through the whole pipeline.

    Raises:
        QuotaExceeded: the cycle's allowance is used up (nothing stored)
        NotFound: conversation or bound source missing / not owned
        ModelGatewayError: the model call failed (nothing stored)

    Returns:
        dict with user_message, assistant_message, query_result, tokens_used
    """
    started = time.perf_counter()

    ledger.check_and_consume(user)

    conversation = await load_conversation(db, user.id, conversation_id)
    source = await resolve_source(db, user.id, conversation, adapter)

    history = context.assemble(conversation.messages)
    instructions = prompts.build(
        source.mode, source.schema_text, source.sample_data, source.file_name
    )

    logger.info(
        f"[User {user.id}] conversation {conversation.id}: {source.mode.value} mode, "
        f"{len(history)} prior turns"
    )

    try:
        raw_text, tokens_used = await gateway.generate(message, history, instructions)
    except Exception as error:
        await db.rollback()
        logger.error(f"[User {user.id}] model call failed: {error}")
        if isinstance(error, ModelGatewayError):
            raise
        raise ModelGatewayError("Failed to get response from AI service") from error

    extracted = await extract_result(raw_text, source, adapter, execute_query)

    if titles.needs_title(conversation.title, len(conversation.messages)):
        conversation.title = titles.generate_title(message)

    user_turn = models.Message(role="user", content=message)
    assistant_turn = models.Message(
        role="assistant",
        content=sanitize(raw_text),
        sql_query=extracted["sql_query"],
        query_result=extracted["query_result"],
        tokens_used=tokens_used or 0,
    )
    conversation.messages.append(user_turn)
    conversation.messages.append(assistant_turn)

    ledger.consume(user)

    db.add(
        models.UsageLog(
            owner_id=user.id,
            data_source_id=source.data_source_id,
            query_type="SQL" if extracted["sql_query"] else "Chat",
            tokens_used=tokens_used or 0,
            execution_time_ms=int((time.perf_counter() - started) * 1000),
        )
    )
    db.add(conversation)
    db.add(user)
    await db.commit()
    await db.refresh(user_turn)
    await db.refresh(assistant_turn)

    logger.info(
        f"[User {user.id}] conversation {conversation.id}: "
        f"{'statement' if extracted['sql_query'] else 'plain chat'}, {tokens_used} tokens"
    )

    return {
        "user_message": user_turn,
        "assistant_message": assistant_turn,
        "query_result": extracted["query_result"],
        "tokens_used": tokens_used or 0,
    }
