import os
import tempfile

# Configure the process before anything imports tokenward.config
_test_tmp_dir = tempfile.mkdtemp(prefix="tokenward_test_")
os.environ["DATABASE_URL_ASYNC"] = f"sqlite+aiosqlite:///{_test_tmp_dir}/app.db"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-do-not-use-in-production"
os.environ["TOKEN_CLEANUP_INTERVAL_MINUTES"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from tokenward.config.config import Settings  # noqa: E402
from tokenward.core.tokens import TokenCodec  # noqa: E402
from tokenward.db.session import build_engine, initialize_database  # noqa: E402
from tokenward.models.auth import User  # noqa: E402
from tokenward.services.account_store import AccountStore  # noqa: E402
from tokenward.services.auth import AuthenticationService  # noqa: E402
from tokenward.services.token_store import (  # noqa: E402
    BlacklistStore,
    RefreshTokenStore,
)

PASSWORD = "Sup3r-Secret!"


@pytest.fixture
def settings(tmp_path):
    """Settings bound to a per-test SQLite database."""
    return Settings(
        DATABASE_URL_ASYNC=f"sqlite+aiosqlite:///{tmp_path}/auth.db",
        SECRET_KEY="Test-Secret-Key_for-Automation-Only-987654321!",
        ACCESS_TOKEN_EXPIRE_MINUTES=15,
        REFRESH_TOKEN_EXPIRE_DAYS=7,
        TOKEN_ISSUER="tokenward-tests",
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings.DATABASE_URL_ASYNC)
    await initialize_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def accounts(sessions):
    return AccountStore(session_factory=sessions)


@pytest.fixture
def deactivate(sessions):
    """Flip an account to inactive the way an operator would."""

    async def _deactivate(user_id):
        async with sessions() as db:
            await db.execute(update(User).where(User.id == user_id).values(is_active=False))
            await db.commit()

    return _deactivate


@pytest.fixture
def refresh_store(sessions):
    return RefreshTokenStore(session_factory=sessions)


@pytest.fixture
def blacklist_store(sessions):
    return BlacklistStore(session_factory=sessions)


@pytest.fixture
def codec(settings):
    return TokenCodec.from_settings(settings)


@pytest.fixture
def auth_service(accounts, refresh_store, blacklist_store, codec, settings):
    return AuthenticationService(
        accounts=accounts,
        refresh_tokens=refresh_store,
        blacklist=blacklist_store,
        codec=codec,
        settings=settings,
    )


@pytest.fixture
async def registered(auth_service):
    """A freshly registered, active account and its first token pair."""
    return await auth_service.register(
        email="alice@example.com",
        username="alice",
        password=PASSWORD,
        first_name="Alice",
        last_name="Liddell",
    )
