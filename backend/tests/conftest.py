from __future__ import annotations

import os
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tenantgate.core.menu_catalog import seed_menu_catalog
from tenantgate.db.session import get_db
from tenantgate.models.subscription import SubscriptionPlan
from tenantgate.services.email import EmailMessage, get_email_sender

# Ensure Base + models are registered before create_all
from tenantgate.db.base import Base
import tenantgate.models  # noqa: F401


# ---------------------------------------------------------
# Database config
# ---------------------------------------------------------
@pytest.fixture()
def database_url_async(tmp_path) -> str:
    """
    Fresh SQLite file per test. TEST_DATABASE_URL_ASYNC points the suite at
    another (empty) database instead.
    """
    return os.getenv("TEST_DATABASE_URL_ASYNC") or f"sqlite+aiosqlite:///{tmp_path / 'tenantgate_test.db'}"


# ---------------------------------------------------------
# Engine + schema lifecycle
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(database_url_async: str):
    engine = create_async_engine(database_url_async, future=True, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # static reference data every flow relies on
    async with async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)() as session:
        await seed_menu_catalog(session)
        session.add(
            SubscriptionPlan(
                name="Free Trial",
                duration_days=30,
                price=Decimal("0.00"),
                is_trial=True,
                is_active=True,
            )
        )
        await session.commit()

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


# ---------------------------------------------------------
# DB session for setup, assertions and direct core calls
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# Email outbox
# ---------------------------------------------------------
class Outbox:
    def __init__(self) -> None:
        self.messages: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.messages.append(message)

    def last(self, kind=None) -> EmailMessage:
        matching = [m for m in self.messages if kind is None or m.kind == kind]
        assert matching, f"no email of kind {kind} was sent"
        return matching[-1]

    def token_of(self, kind=None) -> str:
        link = self.last(kind).link
        assert link
        return link.rstrip("/").rsplit("/", 1)[-1]


@pytest.fixture()
def outbox() -> Outbox:
    return Outbox()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker, outbox):
    from tenantgate.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_email_sender] = lambda: outbox
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac
