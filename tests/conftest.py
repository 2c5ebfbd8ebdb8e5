"""Shared fixtures.

Tests run against in-memory SQLite (aiosqlite) and fakeredis. SSH is
replaced by ``FakeSessionFactory``, which records every command.
"""

from collections.abc import AsyncGenerator
import json
import os

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stackhand.broadcast import EventBroadcaster
from stackhand.config import Settings
from stackhand.models import Base, Server
from stackhand.redis import RedisStreamClient
from stackhand.remote import Credential, RemoteResult
from stackhand.store import RecordStore

# Settings are read when stackhand.api.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CALLBACK_SIGNING_KEY", "test-signing-key-0123456789")

SIGNING_KEY = "test-signing-key-0123456789"


class RecordingPublisher:
    """EventPublisher that keeps every (channel, payload) pair."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def publish(self, channel: str, payload: dict) -> None:
        self.events.append((channel, payload))

    @property
    def channels(self) -> list[str]:
        return [channel for channel, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


class FakeRemoteSession:
    def __init__(self, factory: "FakeSessionFactory", host: str, credential: Credential):
        self.factory = factory
        self.host = host
        self.credential = credential

    async def run(self, command: str, timeout: float) -> RemoteResult:
        self.factory.commands.append((self.credential.username, command))
        for needle, error in self.factory.errors.items():
            if needle in command:
                raise error
        for needle, stdout in self.factory.responses.items():
            if needle in command:
                return RemoteResult(exit_code=0, stdout=stdout, stderr="")
        if command == "whoami":
            return RemoteResult(exit_code=0, stdout=f"{self.credential.username}\n", stderr="")
        if self.factory.fail_on and self.factory.fail_on in command:
            return RemoteResult(exit_code=1, stdout="", stderr=self.factory.failure_stderr)
        return RemoteResult(exit_code=0, stdout="", stderr="")

    async def run_checked(self, command: str, timeout: float) -> RemoteResult:
        result = await self.run(command, timeout)
        return result.check(command)

    async def run_all(self, commands: list[str], timeout: float) -> list[RemoteResult]:
        return [await self.run_checked(command, timeout) for command in commands]


class FakeSessionFactory:
    """Stands in for ``default_session_factory``.

    ``fail_on``: substring of a command that exits 1 with ``failure_stderr``.
    ``responses``: substring -> stdout.
    ``errors``: substring -> exception raised instead of running.
    ``whoami`` answers with the session's username unless overridden.
    """

    def __init__(self):
        self.commands: list[tuple[str, str]] = []
        self.fail_on: str | None = None
        self.failure_stderr = "E: Unable to locate package"
        self.responses: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}
        self.hosts: list[tuple[str, int]] = []

    def __call__(self, host: str, port: int, credential: Credential) -> FakeRemoteSession:
        self.hosts.append((host, port))
        return FakeRemoteSession(self, host, credential)

    @property
    def command_lines(self) -> list[str]:
        return [command for _, command in self.commands]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/0",
        callback_signing_key=SIGNING_KEY,
        public_url="https://panel.example.test",
        ssh_key_path="/keys/id_ed25519",
    )


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def queue(redis_client) -> RedisStreamClient:
    return RedisStreamClient(client=redis_client)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def broadcaster(publisher) -> EventBroadcaster:
    return EventBroadcaster(publisher)


@pytest.fixture
def store(db_session, broadcaster) -> RecordStore:
    return RecordStore(db_session, broadcaster)


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest_asyncio.fixture
async def server(db_session) -> Server:
    server = Server(
        user_id=1,
        vanity_name="web-1",
        public_ip="203.0.113.10",
        ssh_port=22,
    )
    db_session.add(server)
    await db_session.commit()
    await db_session.refresh(server)
    return server


@pytest.fixture
def read_stream(queue: RedisStreamClient):
    """Decoded payloads currently on a stream."""

    async def _read(stream: str) -> list[dict]:
        entries = await queue.redis.xrange(stream)
        return [json.loads(fields["data"]) for _, fields in entries]

    return _read
