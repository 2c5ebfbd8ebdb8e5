"""Database models."""

from .base import Base, ResourceMixin
from .database import DatabaseEngine, ServerDatabase, ServerDatabaseSchema, ServerDatabaseUser
from .event import ServerEvent
from .firewall import FirewallRuleType, ServerFirewall, ServerFirewallRule
from .metric import ServerMetric
from .reverse_proxy import ServerReverseProxy
from .runtime import RuntimeLanguage, ServerRuntime
from .scheduler import ScheduleFrequency, ServerScheduledTask
from .server import ConnectionStatus, ProvisionStatus, Server
from .site import ServerSite
from .supervisor import ServerSupervisorTask

__all__ = [
    "Base",
    "ResourceMixin",
    "Server",
    "ConnectionStatus",
    "ProvisionStatus",
    "ServerDatabase",
    "ServerDatabaseSchema",
    "ServerDatabaseUser",
    "DatabaseEngine",
    "ServerRuntime",
    "RuntimeLanguage",
    "ServerFirewall",
    "ServerFirewallRule",
    "FirewallRuleType",
    "ServerSupervisorTask",
    "ServerScheduledTask",
    "ScheduleFrequency",
    "ServerReverseProxy",
    "ServerSite",
    "ServerEvent",
    "ServerMetric",
]
