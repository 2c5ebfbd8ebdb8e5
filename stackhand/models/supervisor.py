"""Supervised (long-running) processes."""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class ServerSupervisorTask(ResourceMixin, Base):
    __tablename__ = "server_supervisor_tasks"

    resource_kind: ClassVar[str] = "supervisor-task"

    name: Mapped[str] = mapped_column(String(255))
    command: Mapped[str] = mapped_column(Text)
    working_directory: Mapped[str] = mapped_column(String(255), default="/home/stackhand")
    processes: Mapped[int] = mapped_column(Integer, default=1)
    user: Mapped[str] = mapped_column(String(64), default="stackhand")
    auto_restart: Mapped[bool] = mapped_column(Boolean, default=True)
    autorestart_unexpected: Mapped[bool] = mapped_column(Boolean, default=False)
    stdout_logfile: Mapped[str | None] = mapped_column(String(255))
    stderr_logfile: Mapped[str | None] = mapped_column(String(255))
    installed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    uninstalled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
