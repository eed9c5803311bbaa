import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

# Settings are read at import time, so the environment must be ready first.
# Security: test-only secret.
TEST_SESSION_SECRET = "test-session-secret-that-is-at-least-32-characters"  # nosec B105
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./passwordless-unused.db")
os.environ.setdefault("SESSION_SECRET", TEST_SESSION_SECRET)
os.environ.setdefault("ENVIRONMENT", "development")
os.environ["RESEND_API_KEY"] = ""

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import select, update  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from passwordless.auth.codes import CodeService  # noqa: E402
from passwordless.auth.identity import IdentityDirectory  # noqa: E402
from passwordless.auth.magic_link import MagicLinkService  # noqa: E402
from passwordless.auth.session import SessionService  # noqa: E402
from passwordless.core.clock import utc_now  # noqa: E402
from passwordless.core.config import AuthPolicy  # noqa: E402
from passwordless.core.email import get_mailer  # noqa: E402
from passwordless.db import get_session  # noqa: E402
from passwordless.models import Base, Identity, MagicLink, VerificationCode  # noqa: E402

TEST_BASE_URL = "https://app.example.com"


class FakeMailer:
    """Records every send; set `fail` to simulate a delivery outage."""

    def __init__(self):
        self.fail = False
        self.fail_welcome = False
        self.codes: List[Tuple[str, str]] = []
        self.links: List[Tuple[str, str]] = []
        self.welcomes: List[Tuple[str, str]] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def send_verification_code(self, email: str, code: str) -> bool:
        if self.fail:
            return False
        self.codes.append((email, code))
        return True

    async def send_magic_link(self, email: str, link: str, expires_in_minutes: int = 15) -> bool:
        if self.fail:
            return False
        self.links.append((email, link))
        return True

    async def send_welcome_email(self, email: str, name: str) -> bool:
        if self.fail or self.fail_welcome:
            return False
        self.welcomes.append((email, name))
        return True

    @property
    def last_code(self) -> Optional[str]:
        return self.codes[-1][1] if self.codes else None

    @property
    def last_link(self) -> Optional[str]:
        return self.links[-1][1] if self.links else None


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """File-backed SQLite so separate sessions really use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def policy() -> AuthPolicy:
    return AuthPolicy()


@pytest.fixture
def code_service(policy, mailer) -> CodeService:
    return CodeService(policy, mailer)


@pytest.fixture
def link_service(policy, mailer) -> MagicLinkService:
    return MagicLinkService(policy, mailer, TEST_BASE_URL)


@pytest.fixture
def session_service(policy, mailer) -> SessionService:
    return SessionService(policy, TEST_SESSION_SECRET, mailer)


@pytest_asyncio.fixture
async def existing_identity(db_session) -> Identity:
    return await IdentityDirectory.create(
        db_session, email="known@example.com", name="Known User"
    )


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, mailer) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, the test database and the fake mailer."""
    from passwordless.main import app

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_mailer] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Helpers for moving stored rows through time


async def age_codes(db: AsyncSession, email: str, by: timedelta) -> None:
    """Shift creation and expiry of every code for `email` into the past."""
    rows = (
        await db.execute(select(VerificationCode).where(VerificationCode.email == email))
    ).scalars().all()
    for row in rows:
        row.created_at = row.created_at - by
        row.expires_at = row.expires_at - by
    await db.commit()


async def set_code_expiry(db: AsyncSession, email: str, expires_at: datetime) -> None:
    await db.execute(
        update(VerificationCode)
        .where(VerificationCode.email == email)
        .values(expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def set_link_times(
    db: AsyncSession,
    email: str,
    created_at: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
) -> None:
    values = {}
    if created_at is not None:
        values["created_at"] = created_at
    if expires_at is not None:
        values["expires_at"] = expires_at
    await db.execute(
        update(MagicLink)
        .where(MagicLink.email == email)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


def seconds_from_now(seconds: float) -> datetime:
    return utc_now() + timedelta(seconds=seconds)



async def stored_codes(session_factory: async_sessionmaker, email: str) -> List[VerificationCode]:
    """Read codes through a fresh session so bulk updates are visible."""
    async with session_factory() as db:
        stmt = (
            select(VerificationCode)
            .where(VerificationCode.email == email)
            .order_by(VerificationCode.created_at)
        )
        return list((await db.execute(stmt)).scalars().all())


async def stored_links(session_factory: async_sessionmaker, email: str) -> List[MagicLink]:
    async with session_factory() as db:
        stmt = select(MagicLink).where(MagicLink.email == email).order_by(MagicLink.created_at)
        return list((await db.execute(stmt)).scalars().all())
