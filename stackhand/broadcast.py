"""Change notifications for dashboards and other subscribers.

Notifications only carry the id of the server or site that changed.
Subscribers fetch current state themselves.
"""

import json
from typing import Any, Protocol

import redis.asyncio as redis
import structlog

from stackhand.models import Server, ServerSite

logger = structlog.get_logger(__name__)

SERVER_UPDATED = "server.updated"
SITE_UPDATED = "site.updated"
PROVISIONING_UPDATED = "server.provisioning.updated"

SERVER_FIELDS = frozenset(
    {
        "vanity_name",
        "public_ip",
        "private_ip",
        "connection",
        "provision_status",
        "provision",
        "os_name",
        "os_version",
        "os_codename",
    }
)

SITE_FIELDS = frozenset(
    {
        "domain",
        "status",
        "is_default",
        "default_site_status",
        "health",
        "git_status",
        "ssl_enabled",
        "auto_deploy_enabled",
        "last_deployed_at",
    }
)

# Fields of server-owned records (databases, runtimes, rules, tasks, ...)
RESOURCE_FIELDS = frozenset(
    {
        "status",
        "error_log",
        "name",
        "version",
        "port",
        "is_cli_default",
        "is_site_default",
        "is_enabled",
        "rule_type",
        "from_ip_address",
        "command",
        "frequency",
        "cron_expression",
        "installed_at",
        "uninstalled_at",
    }
)


def server_channels(server_id: int) -> list[str]:
    return [f"servers.{server_id}", "servers"]


def site_channels(site_id: int) -> list[str]:
    return [f"sites.{site_id}", "sites"]


def provisioning_channel(server_id: int) -> str:
    return f"servers.{server_id}.provisioning"


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class RedisEventPublisher:
    """Publishes notifications on Redis pub/sub channels."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        await self.client.publish(channel, json.dumps(payload))


class EventBroadcaster:
    """Decides whether a persisted change is worth a notification and sends it."""

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher

    @staticmethod
    def watched_fields(entity: Any) -> frozenset[str]:
        if isinstance(entity, Server):
            return SERVER_FIELDS
        if isinstance(entity, ServerSite):
            return SITE_FIELDS
        return RESOURCE_FIELDS

    async def notify_if_changed(self, entity: Any, changed_fields: set[str]) -> bool:
        """Notify once if any allow-listed field changed. Returns whether it did."""
        relevant = changed_fields & self.watched_fields(entity)
        if not relevant:
            return False

        if isinstance(entity, Server):
            await self.notify_server(entity.id)
        elif isinstance(entity, ServerSite):
            await self.notify_site(entity.id)
        else:
            await self.notify_server(entity.server_id)
        return True

    async def notify_created(self, entity: Any) -> None:
        await self._notify_owner(entity)

    async def notify_deleted(self, entity: Any) -> None:
        await self._notify_owner(entity)

    async def _notify_owner(self, entity: Any) -> None:
        if isinstance(entity, Server):
            await self.notify_server(entity.id)
            return
        await self.notify_server(entity.server_id)
        if isinstance(entity, ServerSite):
            await self.notify_site(entity.id)

    async def notify_server(self, server_id: int) -> None:
        payload = {"event": SERVER_UPDATED, "server_id": server_id}
        for channel in server_channels(server_id):
            await self.publisher.publish(channel, payload)
        logger.debug("server_update_broadcast", server_id=server_id)

    async def notify_site(self, site_id: int) -> None:
        payload = {"event": SITE_UPDATED, "site_id": site_id}
        for channel in site_channels(site_id):
            await self.publisher.publish(channel, payload)
        logger.debug("site_update_broadcast", site_id=site_id)

    async def notify_provisioning(self, server_id: int) -> None:
        payload = {"event": PROVISIONING_UPDATED, "server_id": server_id}
        await self.publisher.publish(provisioning_channel(server_id), payload)
