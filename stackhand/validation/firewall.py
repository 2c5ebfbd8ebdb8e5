"""Firewall rule validation."""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stackhand.errors import ValidationFailed
from stackhand.models import ServerFirewallRule

PORT_PATTERN = re.compile(r"^\d{1,5}(-\d{1,5})?$")
MIN_PORT = 1
MAX_PORT = 65535


def port_error(value: str) -> str | None:
    """Return why ``value`` is not a port or ``start-end`` range, or None if it is."""
    if not PORT_PATTERN.match(value):
        return "The port must be a valid port number (1-65535) or range (e.g., 3000-3005)."
    if "-" in value:
        start, end = (int(part) for part in value.split("-"))
        if start >= end:
            return "Port range start must be less than end."
        if start < MIN_PORT or end > MAX_PORT:
            return "Port numbers must be between 1 and 65535."
        return None
    if not MIN_PORT <= int(value) <= MAX_PORT:
        return "Port number must be between 1 and 65535."
    return None


async def ensure_rule_port_unique(db: AsyncSession, firewall_id: int, port: str | None) -> None:
    if not port:
        return
    result = await db.execute(
        select(ServerFirewallRule.id)
        .where(ServerFirewallRule.firewall_id == firewall_id)
        .where(ServerFirewallRule.port == port)
        .limit(1)
    )
    if result.first() is not None:
        raise ValidationFailed.single(
            "port", "A firewall rule for this port already exists on this server."
        )
