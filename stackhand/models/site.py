"""Sites hosted on a server."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ServerSite(Base):
    __tablename__ = "server_sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), index=True
    )
    domain: Mapped[str] = mapped_column(String(255))
    document_root: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32), default="pending")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    default_site_status: Mapped[str | None] = mapped_column(String(32))
    health: Mapped[str | None] = mapped_column(String(32))
    git_status: Mapped[str | None] = mapped_column(String(32))
    ssl_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_deploy_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    last_deployed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # Database the site's application connects to
    database_id: Mapped[int | None] = mapped_column(
        ForeignKey("server_databases.id", ondelete="SET NULL")
    )
