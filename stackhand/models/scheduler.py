"""Scheduled (cron) tasks."""

from enum import Enum
from typing import ClassVar

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class ScheduleFrequency(str, Enum):
    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ServerScheduledTask(ResourceMixin, Base):
    __tablename__ = "server_scheduled_tasks"

    resource_kind: ClassVar[str] = "scheduled-task"

    name: Mapped[str] = mapped_column(String(255))
    command: Mapped[str] = mapped_column(Text)
    frequency: Mapped[str] = mapped_column(String(16), default=ScheduleFrequency.DAILY.value)
    cron_expression: Mapped[str | None] = mapped_column(String(255))
    timeout: Mapped[int] = mapped_column(Integer, default=300)
    send_notifications: Mapped[bool] = mapped_column(Boolean, default=False)
