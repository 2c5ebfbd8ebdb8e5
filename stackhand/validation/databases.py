"""Category exclusivity and port allocation for database engines.

A server runs at most one SQL engine and at most one cache/queue service
at a time. Failed records never hold a slot, so a failed MySQL install
does not stop the caller from trying MariaDB.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackhand.errors import ResourceNotFound, ValidationFailed
from stackhand.lifecycle.status import OCCUPYING
from stackhand.models import DatabaseEngine, Server, ServerDatabase

SQL = "sql"
CACHE = "cache"

ENGINE_CATEGORIES = {
    DatabaseEngine.MYSQL: SQL,
    DatabaseEngine.MARIADB: SQL,
    DatabaseEngine.POSTGRESQL: SQL,
    DatabaseEngine.REDIS: CACHE,
}

CATEGORY_LABELS = {
    SQL: "database",
    CACHE: "cache/queue service",
}

DEFAULT_PORTS = {
    DatabaseEngine.MYSQL: 3306,
    DatabaseEngine.MARIADB: 3306,
    DatabaseEngine.POSTGRESQL: 5432,
    DatabaseEngine.REDIS: 6379,
}

SUPPORTED_VERSIONS = {
    DatabaseEngine.MYSQL: ("8.0",),
    DatabaseEngine.MARIADB: ("11.4", "10.11"),
    DatabaseEngine.POSTGRESQL: ("16",),
    DatabaseEngine.REDIS: ("7.2", "7.0", "6.2"),
}

OCCUPYING_VALUES = [status.value for status in OCCUPYING]

MAX_PORT = 65535


def category_for(engine: str | DatabaseEngine) -> str:
    return ENGINE_CATEGORIES[DatabaseEngine(engine)]


def engines_in(category: str) -> list[str]:
    return [engine.value for engine, cat in ENGINE_CATEGORIES.items() if cat == category]


def default_version(engine: str | DatabaseEngine) -> str:
    return SUPPORTED_VERSIONS[DatabaseEngine(engine)][0]


async def lock_server(db: AsyncSession, server_id: int) -> Server:
    """Load the server row with ``FOR UPDATE`` so concurrent installs queue up behind it."""
    result = await db.execute(select(Server).where(Server.id == server_id).with_for_update())
    server = result.scalar_one_or_none()
    if server is None:
        raise ResourceNotFound("server", server_id)
    return server


async def can_install(
    db: AsyncSession, server_id: int, category: str, exclude_id: int | None = None
) -> bool:
    """True when no record of ``category`` holds the server's slot."""
    query = (
        select(ServerDatabase.id)
        .where(ServerDatabase.server_id == server_id)
        .where(ServerDatabase.engine.in_(engines_in(category)))
        .where(ServerDatabase.status.in_(OCCUPYING_VALUES))
    )
    if exclude_id is not None:
        query = query.where(ServerDatabase.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.first() is None


async def ensure_can_install(
    db: AsyncSession, server_id: int, engine: str, exclude_id: int | None = None
) -> None:
    category = category_for(engine)
    if not await can_install(db, server_id, category, exclude_id):
        label = CATEGORY_LABELS[category]
        raise ValidationFailed.single(
            "engine",
            f"This server already has a {label} installed. "
            f"Please uninstall the existing {label} before installing a new one.",
        )


async def used_ports(db: AsyncSession, server_id: int, exclude_id: int | None = None) -> set[int]:
    query = (
        select(ServerDatabase.port)
        .where(ServerDatabase.server_id == server_id)
        .where(ServerDatabase.status.in_(OCCUPYING_VALUES))
    )
    if exclude_id is not None:
        query = query.where(ServerDatabase.id != exclude_id)
    result = await db.execute(query)
    return set(result.scalars().all())


async def ensure_port_free(
    db: AsyncSession, server_id: int, port: int, exclude_id: int | None = None
) -> None:
    if port in await used_ports(db, server_id, exclude_id):
        raise ValidationFailed.single("port", f"Port {port} is already in use on this server.")


async def next_available_port(db: AsyncSession, server_id: int, engine: str) -> int:
    """The engine's default port, or the first free port above it."""
    taken = await used_ports(db, server_id)
    port = DEFAULT_PORTS[DatabaseEngine(engine)]
    while port in taken:
        port += 1
    if port > MAX_PORT:
        raise ValidationFailed.single("port", "No free port is available on this server.")
    return port
