import json
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from datachat.core.security import create_access_token, hash_password
from datachat.main import app
from datachat.core import models
from datachat.core.chat.adapters import get_adapter
from datachat.core.chat.gateway import get_gateway
from datachat.core.database import Base, get_db

# Force to use a separate db for tests; in-memory SQLite unless told otherwise
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class FakeGateway:
    """Stands in for the model service; records every call."""

    def __init__(self, reply="", tokens=42, error=None):
        self.reply = reply
        self.tokens = tokens
        self.error = error
        self.calls = []

    async def generate(self, user_message, history, instructions):
        self.calls.append(
            {"message": user_message, "history": list(history), "instructions": instructions}
        )
        if self.error is not None:
            raise self.error
        return self.reply, self.tokens


class FakeAdapter:
    """Stands in for a user's database."""

    def __init__(self, schema="-- Table: orders\nCREATE TABLE orders (\n    id INTEGER NOT NULL\n);"):
        self.schema = schema
        self.schema_calls = 0
        self.executed = []
        self.results = {}
        self.failures = {}

    async def get_schema(self, source):
        self.schema_calls += 1
        return self.schema

    async def execute(self, source, statement):
        self.executed.append(statement)
        if statement in self.failures:
            raise RuntimeError(self.failures[statement])
        return self.results.get(
            statement, {"columns": ["n"], "rows": [{"n": 1}], "rowCount": 1}
        )

    async def test_connection(self, source):
        return True


# Fresh database per test
@pytest_asyncio.fixture(scope="function")
async def test_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine  # Tests happen here
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine):
    TestingSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def gateway():
    return FakeGateway(reply="Hello! Ask me anything about your data.")


@pytest_asyncio.fixture(scope="function")
async def adapter():
    return FakeAdapter()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, gateway, adapter):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_adapter] = lambda: adapter

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(db_session: AsyncSession, role="user", **fields):
    # Unique email for each user to avoid duplicates
    user = models.User(
        email=f"{role}_{uuid.uuid4().hex[:8]}@gmail.com",
        password=hash_password("password123"),
        role=role,
        queries_used=fields.pop("queries_used", 0),
        queries_allowed=fields.pop("queries_allowed", 100),
        billing_cycle_reset=fields.pop(
            "billing_cycle_reset", datetime.now(timezone.utc) + timedelta(days=30)
        ),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# User
@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession):
    return await make_user(db_session)


# Admin
@pytest_asyncio.fixture(scope="function")
async def test_admin(db_session: AsyncSession):
    return await make_user(db_session, role="admin")


# Someone else, for ownership checks
@pytest_asyncio.fixture(scope="function")
async def other_user(db_session: AsyncSession):
    return await make_user(db_session)


# Token for user
@pytest_asyncio.fixture(scope="function")
async def auth_headers_user(test_user):
    token = create_access_token({"user_id": test_user.id})
    return {"Authorization": f"Bearer {token}"}


# Token for admin
@pytest_asyncio.fixture(scope="function")
async def auth_headers_admin(test_admin):
    token = create_access_token({"user_id": test_admin.id})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def test_source(db_session: AsyncSession, test_user):
    source = models.DataSource(
        name="Shop DB",
        database_type="postgresql",
        host="db.internal",
        port=5432,
        database_name="shop",
        username="reader",
        password="secret",
        owner_id=test_user.id,
    )
    db_session.add(source)
    await db_session.commit()
    await db_session.refresh(source)
    return source


@pytest_asyncio.fixture(scope="function")
async def test_file(db_session: AsyncSession, test_user):
    rows = [{"month": "2025-01", "revenue": 100}, {"month": "2025-02", "revenue": 140}]
    document = models.FileDocument(
        original_filename="revenue.csv",
        file_type="csv",
        size_bytes=64,
        parsed_content=json.dumps(rows),
        schema_info="Columns: month, revenue\nRows: 2",
        row_count=2,
        status="completed",
        owner_id=test_user.id,
    )
    db_session.add(document)
    await db_session.commit()
    await db_session.refresh(document)
    return document


@pytest_asyncio.fixture(scope="function")
async def db_conversation(db_session: AsyncSession, test_user, test_source):
    conversation = models.Conversation(
        title="New Chat", owner_id=test_user.id, data_source_id=test_source.id
    )
    db_session.add(conversation)
    await db_session.commit()
    await db_session.refresh(conversation)
    return conversation


@pytest_asyncio.fixture(scope="function")
async def file_conversation(db_session: AsyncSession, test_user, test_file):
    conversation = models.Conversation(
        title="New Chat", owner_id=test_user.id, file_document_id=test_file.id
    )
    db_session.add(conversation)
    await db_session.commit()
    await db_session.refresh(conversation)
    return conversation
