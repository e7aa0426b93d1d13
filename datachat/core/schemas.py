from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, EmailStr, model_validator

from datachat.core.chat.adapters import DatabaseType
from datachat.core.config import settings


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# =========================
# USER
# =========================
class UserBase(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.USER


class CreateUser(UserBase):
    password: str = Field(min_length=8)
    model_config = ConfigDict(from_attributes=True)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(UserBase):
    id: int
    queries_used: int
    queries_allowed: int
    billing_cycle_reset: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =========================
# DATA SOURCE
# =========================
class DataSourceBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    database_type: DatabaseType
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    database_name: str = Field(min_length=1)
    username: Optional[str] = None


class DataSourceCreate(DataSourceBase):
    password: Optional[str] = None


class DataSourceUpdate(BaseModel):
    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    database_name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None


class DataSourceResponse(DataSourceBase):
    id: int
    is_active: bool
    last_tested_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SchemaResponse(BaseModel):
    data_source_id: int
    schema_text: str


class ConnectionTestResponse(BaseModel):
    data_source_id: int
    success: bool


# =========================
# FILE
# =========================
class FileDocumentResponse(BaseModel):
    id: int
    original_filename: str
    file_type: str
    size_bytes: int
    schema_info: Optional[str] = None
    row_count: Optional[int] = None
    status: str
    error_message: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileSchemaResponse(BaseModel):
    file_id: int
    file_name: str
    file_type: str
    columns: List[str]
    total_rows: int
    sample_data: Optional[str] = None


class FileContentResponse(BaseModel):
    file_id: int
    file_name: str
    columns: List[str]
    rows: List[Dict[str, Any]]
    total_rows: int
    page: int
    page_size: int


# =========================
# CONVERSATION / MESSAGE
# =========================
class MessageResponse(BaseModel):
    id: int
    role: MessageRole
    content: str
    sql_query: Optional[str] = None
    query_result: Optional[Dict[str, Any]] = None
    tokens_used: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    data_source_id: Optional[int] = None
    file_document_id: Optional[int] = None

    @model_validator(mode="after")
    def one_source_at_most(self):
        if self.data_source_id is not None and self.file_document_id is not None:
            raise ValueError("Bind either a data source or a file, not both")
        return self


class ConversationResponse(BaseModel):
    id: int
    title: str
    data_source_id: Optional[int] = None
    file_document_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationDetailResponse(ConversationResponse):
    messages: List[MessageResponse] = []


# =========================
# CHAT
# =========================
class ChatRequest(BaseModel):
    conversation_id: int
    message: str = Field(min_length=1, max_length=settings.MAX_MESSAGE_LENGTH)
    execute_query: bool = True


class ChatResponse(BaseModel):
    user_message: MessageResponse
    assistant_message: MessageResponse
    query_result: Optional[Dict[str, Any]] = None
    tokens_used: int = 0


# =========================
# USAGE
# =========================
class UsageResponse(BaseModel):
    queries_used: int
    queries_allowed: int
    percentage_used: float
    days_until_reset: int
    billing_cycle_start: datetime
    billing_cycle_end: datetime


class UsageLogResponse(BaseModel):
    id: int
    query_type: str
    tokens_used: int
    execution_time_ms: int
    data_source_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
