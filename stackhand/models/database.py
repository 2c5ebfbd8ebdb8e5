"""Database engines, schemas and database users installed on a server."""

from enum import Enum
from typing import ClassVar

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ResourceMixin


class DatabaseEngine(str, Enum):
    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRESQL = "postgresql"
    REDIS = "redis"


class ServerDatabase(ResourceMixin, Base):
    """A database engine (or cache service) running on a server."""

    __tablename__ = "server_databases"

    resource_kind: ClassVar[str] = "database"

    name: Mapped[str | None] = mapped_column(String(64))
    engine: Mapped[str] = mapped_column(String(32))
    version: Mapped[str] = mapped_column(String(16))
    port: Mapped[int] = mapped_column(Integer)
    root_password: Mapped[str | None] = mapped_column(String(128))


class ServerDatabaseSchema(ResourceMixin, Base):
    """A schema (logical database) inside an installed engine."""

    __tablename__ = "server_database_schemas"

    resource_kind: ClassVar[str] = "database-schema"

    database_id: Mapped[int] = mapped_column(
        ForeignKey("server_databases.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(64))
    character_set: Mapped[str] = mapped_column(String(32), default="utf8mb4")
    collation: Mapped[str] = mapped_column(String(64), default="utf8mb4_unicode_ci")


class ServerDatabaseUser(ResourceMixin, Base):
    """A login on an installed engine."""

    __tablename__ = "server_database_users"

    resource_kind: ClassVar[str] = "database-user"

    database_id: Mapped[int] = mapped_column(
        ForeignKey("server_databases.id", ondelete="CASCADE"), index=True
    )
    username: Mapped[str] = mapped_column(String(32))
    password: Mapped[str] = mapped_column(String(128))
    host: Mapped[str] = mapped_column(String(255), default="%")
    privileges: Mapped[str] = mapped_column(String(16), default="all")
