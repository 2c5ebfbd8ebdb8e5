"""Server model."""

from enum import Enum
import secrets

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ConnectionStatus(str, Enum):
    """Reachability of the server over SSH."""

    PENDING = "pending"
    CONNECTED = "connected"
    FAILED = "failed"


class ProvisionStatus(str, Enum):
    """Aggregate bootstrap status."""

    PENDING = "pending"
    INSTALLING = "installing"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_monitoring_token() -> str:
    return secrets.token_hex(32)


class Server(Base):
    """A machine under management.

    ``provision`` maps step numbers (stored as strings, JSON keys) to the
    label last reported for that step.
    """

    __tablename__ = "servers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    vanity_name: Mapped[str] = mapped_column(String(255))
    public_ip: Mapped[str] = mapped_column(String(45))
    private_ip: Mapped[str | None] = mapped_column(String(45))
    ssh_port: Mapped[int] = mapped_column(Integer, default=22)

    connection: Mapped[str] = mapped_column(String(32), default=ConnectionStatus.PENDING.value)
    provision_status: Mapped[str] = mapped_column(
        String(32), default=ProvisionStatus.PENDING.value
    )
    provision: Mapped[dict] = mapped_column(JSON, default=dict)

    os_name: Mapped[str | None] = mapped_column(String(100))
    os_version: Mapped[str | None] = mapped_column(String(50))
    os_codename: Mapped[str | None] = mapped_column(String(50))

    monitoring_token: Mapped[str] = mapped_column(
        String(64), default=generate_monitoring_token
    )

    def step_status(self, step: int) -> str | None:
        return (self.provision or {}).get(str(step))
