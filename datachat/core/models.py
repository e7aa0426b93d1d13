from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Boolean,
    TIMESTAMP,
    Text,
    JSON,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from datachat.core.config import settings
from datachat.core.database import Base
from datachat.core.chat.ledger import first_cycle_reset


# =========================
# User
# =========================
class User(Base):
    __tablename__ = "users_table"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="user")

    # Quota for the current billing cycle
    queries_used = Column(Integer, nullable=False, default=0)
    queries_allowed = Column(
        Integer, nullable=False, default=lambda: settings.DEFAULT_QUERY_LIMIT
    )
    billing_cycle_reset = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=first_cycle_reset,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    data_sources = relationship(
        "DataSource",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    files = relationship(
        "FileDocument",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    conversations = relationship(
        "Conversation",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# =========================
# DataSource (live database connection)
# =========================
class DataSource(Base):
    """
    A live database a conversation can be bound to:
    - postgresql / mysql / sqlserver / sqlite
    """

    __tablename__ = "data_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    database_type = Column(String, nullable=False)

    host = Column(String, nullable=True)
    port = Column(Integer, nullable=True)
    database_name = Column(String, nullable=False)
    username = Column(String, nullable=True)
    password = Column(String, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    last_tested_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # Lazily filled on first use, see chat.adapters.schema_for
    schema_cache = Column(Text, nullable=True)

    owner_id = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    owner = relationship("User", back_populates="data_sources")


# =========================
# FileDocument (uploaded tabular file)
# =========================
class FileDocument(Base):
    __tablename__ = "file_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)

    original_filename = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)

    # JSON array of row objects, as a string
    parsed_content = Column(Text, nullable=True)
    schema_info = Column(Text, nullable=True)
    row_count = Column(Integer, nullable=True)

    status = Column(String, nullable=False, default="completed")
    error_message = Column(Text, nullable=True)

    owner_id = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    owner = relationship("User", back_populates="files")


# =========================
# Conversation
# =========================
class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String, nullable=False, default="New Chat")

    owner_id = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # At most one of these is set; neither means an unbound chat
    data_source_id = Column(
        Integer,
        ForeignKey("data_sources.id", ondelete="SET NULL"),
        nullable=True,
    )
    file_document_id = Column(
        Integer,
        ForeignKey("file_documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    owner = relationship("User", back_populates="conversations")
    data_source = relationship("DataSource")
    file_document = relationship("FileDocument")

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="[Message.created_at, Message.id]",
    )


# =========================
# Message (one turn)
# =========================
class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)

    conversation_id = Column(
        Integer,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(String, nullable=False)  # user / assistant
    content = Column(Text, nullable=False, default="")

    # Assistant turns only
    sql_query = Column(Text, nullable=True)
    query_result = Column(JSON, nullable=True)
    tokens_used = Column(Integer, nullable=False, default=0)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    conversation = relationship("Conversation", back_populates="messages")


# =========================
# UsageLog (one entry per processed message)
# =========================
class UsageLog(Base):
    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data_source_id = Column(
        Integer,
        ForeignKey("data_sources.id", ondelete="SET NULL"),
        nullable=True,
    )

    query_type = Column(String, nullable=False)  # SQL / Chat
    tokens_used = Column(Integer, nullable=False, default=0)
    execution_time_ms = Column(Integer, nullable=False, default=0)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    data_source = relationship("DataSource")
