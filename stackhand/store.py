"""Persistence helper that pairs every committed change with its notification."""

from typing import Any, TypeVar

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from stackhand.broadcast import EventBroadcaster
from stackhand.models import (
    Server,
    ServerDatabase,
    ServerDatabaseSchema,
    ServerDatabaseUser,
    ServerEvent,
    ServerFirewall,
    ServerFirewallRule,
    ServerMetric,
    ServerReverseProxy,
    ServerRuntime,
    ServerScheduledTask,
    ServerSite,
    ServerSupervisorTask,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Child tables of a server, children before parents
SERVER_CHILDREN: tuple[type, ...] = (
    ServerEvent,
    ServerMetric,
    ServerSite,
    ServerDatabaseUser,
    ServerDatabaseSchema,
    ServerDatabase,
    ServerRuntime,
    ServerFirewallRule,
    ServerFirewall,
    ServerSupervisorTask,
    ServerScheduledTask,
    ServerReverseProxy,
)


class RecordStore:
    """Writes records and notifies the broadcaster exactly once per commit."""

    def __init__(self, session: AsyncSession, broadcaster: EventBroadcaster):
        self.session = session
        self.broadcaster = broadcaster

    async def add(self, record: T) -> T:
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        await self.broadcaster.notify_created(record)
        return record

    async def update(self, record: Any, **fields: Any) -> set[str]:
        """Apply ``fields`` and commit. Returns the names of fields that actually changed.

        Nothing is written (and nobody is notified) when every value is unchanged.
        """
        changed = {name for name, value in fields.items() if getattr(record, name) != value}
        if not changed:
            return changed

        for name in changed:
            setattr(record, name, fields[name])
        await self.session.commit()
        await self.broadcaster.notify_if_changed(record, changed)
        return changed

    async def delete(self, record: Any) -> None:
        await self.session.delete(record)
        await self.session.commit()
        await self.broadcaster.notify_deleted(record)

    async def purge(self, server_id: int, models: tuple[type, ...]) -> dict[str, int]:
        """Bulk delete rows of ``models`` owned by a server without committing.

        Returns deleted row counts keyed by table name.
        """
        counts = {}
        for model in models:
            result = await self.session.execute(delete(model).where(model.server_id == server_id))
            counts[model.__tablename__] = result.rowcount
        return counts

    async def reset_server(
        self, server: Server, models: tuple[type, ...], **fields: Any
    ) -> dict[str, int]:
        """Purge ``models`` and apply ``fields`` to the server in one commit, then notify once."""
        counts = await self.purge(server.id, models)
        for name, value in fields.items():
            setattr(server, name, value)
        await self.session.commit()
        await self.broadcaster.notify_server(server.id)
        return counts

    async def delete_server(self, server: Server) -> None:
        """Delete a server together with everything it owns."""
        counts = await self.purge(server.id, SERVER_CHILDREN)
        await self.session.delete(server)
        await self.session.commit()
        logger.info("server_deleted", server_id=server.id, children=counts)
        await self.broadcaster.notify_server(server.id)
