"""Shared fixtures: test settings, a throwaway SQLite database and a frozen clock."""

import os
from datetime import datetime, timedelta, timezone

# Settings are read once on first import of ``config``
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["GEOIP_ENABLED"] = "false"
os.environ["METRICS_PUSH_INTERVAL"] = "0"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"
for name in ("GRAFANA_HOST", "GRAFANA_API_KEY", "GRAFANA_INSTANCE_ID"):
    os.environ.pop(name, None)

import pytest  # noqa: E402

from infrastructure.database import (  # noqa: E402
    close_database, create_tables, get_session_context, init_database
)
from users.application import UserCreateRequest, UserService  # noqa: E402
from users.infrastructure import SQLAlchemyUserRepository  # noqa: E402

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
async def database(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}")
    await create_tables()
    yield
    await close_database()


@pytest.fixture
async def session(database):
    async with get_session_context() as session:
        yield session


@pytest.fixture
def create_user(database):
    """Factory storing a user in its own committed transaction."""

    async def factory(name: str, email: str, role: str = "customer", password: str = "secret123"):
        async with get_session_context() as session:
            service = UserService(SQLAlchemyUserRepository(session))
            return await service.create_user(
                UserCreateRequest(name=name, email=email, password=password, role=role)
            )

    return factory
