import asyncio
import socket
from collections.abc import AsyncGenerator, Iterator
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from magic_link.core.config import settings
from magic_link.core.replay_guard import InMemoryReplayGuard
from magic_link.core.tokens import TokenCodec
from magic_link.models import Base
from magic_link.services.mail_templates import MailMessage

# Security: Test-only secrets. Production uses real secrets from env.
TEST_LINK_SECRET = "test-link-secret-that-is-at-least-32-characters"  # nosec B105  # gitleaks:allow
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Fixed "now" for clock-injected tests (2023-11-14T22:13:20Z)
TEST_NOW = 1_700_000_000

ACTIVE_USER_ID = 42
ACTIVE_USER_EMAIL = "alice@example.com"
BLOCKED_USER_ID = 43
BLOCKED_USER_EMAIL = "blocked@example.com"
ADMIN_EMAIL = "admin@example.com"

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)


# =============================================================================
# Fakes
# =============================================================================


@dataclass
class FakeAccount:
    """In-memory stand-in for a User row."""

    id: int
    email: str
    display_name: str
    is_active: bool = True


class FakeAccountLookup:
    """AccountLookup over a fixed list of accounts.

    Records every email lookup so tests can assert the lookup ran.
    """

    def __init__(
        self, accounts: list[FakeAccount], admin_email: str | None = None
    ) -> None:
        self._accounts = accounts
        self._admin_email = admin_email
        self.email_lookups: list[str] = []

    async def get_active_by_id(self, user_id: int) -> FakeAccount | None:
        for account in self._accounts:
            if account.id == user_id and account.is_active:
                return account
        return None

    async def get_active_by_email(self, email: str) -> FakeAccount | None:
        self.email_lookups.append(email)
        for account in self._accounts:
            if account.email == email and account.is_active:
                return account
        return None

    async def get_admin_email(self) -> str | None:
        return self._admin_email


@dataclass
class RecordingTransport:
    """MailTransport that records messages instead of sending them.

    Attributes:
        name: Transport name reported in logs.
        result: Value send() returns.
        error: Exception send() raises instead, if set.
        delay: Seconds to sleep before answering.
    """

    name: str = "recording"
    result: bool = True
    error: Exception | None = None
    delay: float = 0.0
    sent: list[MailMessage] = field(default_factory=list)

    async def send(self, message: MailMessage) -> bool:
        self.sent.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FixedClock:
    """Settable Unix-seconds clock."""

    def __init__(self, now: int = TEST_NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SecretStr(TEST_LINK_SECRET))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def active_account() -> FakeAccount:
    return FakeAccount(
        id=ACTIVE_USER_ID, email=ACTIVE_USER_EMAIL, display_name="Alice"
    )


@pytest.fixture
def blocked_account() -> FakeAccount:
    return FakeAccount(
        id=BLOCKED_USER_ID,
        email=BLOCKED_USER_EMAIL,
        display_name="Mallory",
        is_active=False,
    )


@pytest.fixture
def accounts(active_account, blocked_account) -> FakeAccountLookup:
    return FakeAccountLookup([active_account, blocked_account], admin_email=ADMIN_EMAIL)


@pytest.fixture
def primary_transport() -> RecordingTransport:
    return RecordingTransport(name="primary")


@pytest.fixture
def fallback_transport() -> RecordingTransport:
    return RecordingTransport(name="fallback")


@pytest.fixture
def replay_guard() -> InMemoryReplayGuard:
    return InMemoryReplayGuard()


@pytest.fixture
def configured_settings() -> Iterator[None]:
    """Configure secrets and URLs for API tests, restoring them afterwards."""
    original = {
        "link_signing_secret": settings.link_signing_secret,
        "auth_secret": settings.auth_secret,
        "backend_url": settings.backend_url,
        "neutral_validation": settings.neutral_validation,
        "site_name": settings.site_name,
        "site_mail": settings.site_mail,
    }
    settings.link_signing_secret = SecretStr(TEST_LINK_SECRET)
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.backend_url = "http://test"
    settings.neutral_validation = True
    settings.site_name = "Example Site"
    settings.site_mail = ""

    yield

    for name, value in original.items():
        setattr(settings, name, value)


@pytest_asyncio.fixture
async def client(
    configured_settings,  # noqa: ARG001 - secrets must be set first
    accounts: FakeAccountLookup,
    replay_guard: InMemoryReplayGuard,
    primary_transport: RecordingTransport,
    fallback_transport: RecordingTransport,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client with every external collaborator faked.

    Sets up:
    - Account lookup over FakeAccountLookup (no database)
    - A fresh in-memory replay guard per test
    - Recording primary and fallback mail transports

    Yields:
        AsyncClient bound to the application over ASGI.
    """
    from magic_link.api.deps import (
        get_account_lookup,
        get_fallback_transport,
        get_primary_transport,
        get_replay_guard,
    )
    from magic_link.main import app

    app.dependency_overrides[get_account_lookup] = lambda: accounts
    app.dependency_overrides[get_replay_guard] = lambda: replay_guard
    app.dependency_overrides[get_primary_transport] = lambda: primary_transport
    app.dependency_overrides[get_fallback_transport] = lambda: fallback_transport

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.
    """
    from magic_link.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


# =============================================================================
# Database Fixtures (repository tests only)
# =============================================================================


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections on port 5432."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with a fresh schema.

    Skips test if PostgreSQL is not available.
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with db_session_factory() as session:
        yield session
        await session.rollback()
