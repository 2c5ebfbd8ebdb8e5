"""Routers package."""

from . import (
    databases,
    firewall,
    health,
    metrics,
    provisioning,
    runtimes,
    scheduler,
    servers,
    supervisor,
)

__all__ = [
    "databases",
    "firewall",
    "health",
    "metrics",
    "provisioning",
    "runtimes",
    "scheduler",
    "servers",
    "supervisor",
]
