"""Reverse proxy (web server) in front of the sites."""

from typing import ClassVar

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class ServerReverseProxy(ResourceMixin, Base):
    __tablename__ = "server_reverse_proxies"

    resource_kind: ClassVar[str] = "reverse-proxy"

    type: Mapped[str] = mapped_column(String(16), default="nginx")
    version: Mapped[str] = mapped_column(String(16), default="latest")
    worker_processes: Mapped[int] = mapped_column(Integer, default=0)
