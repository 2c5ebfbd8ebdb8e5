"""Language runtime versions."""

from enum import Enum
from typing import ClassVar

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class RuntimeLanguage(str, Enum):
    PHP = "php"
    NODE = "node"


class ServerRuntime(ResourceMixin, Base):
    """One installed runtime version.

    At most one PHP version per server is the CLI default and at most one
    is the default for new sites. Neither can be removed while flagged.
    """

    __tablename__ = "server_runtimes"

    resource_kind: ClassVar[str] = "runtime"

    language: Mapped[str] = mapped_column(String(16), default=RuntimeLanguage.PHP.value)
    version: Mapped[str] = mapped_column(String(16))
    is_cli_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_site_default: Mapped[bool] = mapped_column(Boolean, default=False)
