"""Firewall and firewall rules."""

from enum import Enum
from typing import ClassVar

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class FirewallRuleType(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class ServerFirewall(Base):
    """The (single) ufw firewall of a server."""

    __tablename__ = "server_firewalls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), unique=True
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class ServerFirewallRule(ResourceMixin, Base):
    __tablename__ = "server_firewall_rules"

    resource_kind: ClassVar[str] = "firewall-rule"

    firewall_id: Mapped[int] = mapped_column(
        ForeignKey("server_firewalls.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    # "80" or "8000-8100"
    port: Mapped[str | None] = mapped_column(String(11))
    from_ip_address: Mapped[str | None] = mapped_column(String(45))
    rule_type: Mapped[str] = mapped_column(String(8), default=FirewallRuleType.ALLOW.value)
