from __future__ import annotations

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.cms.models import Base


class SiteSettings(Base):
    """Singleton row: `active=True` is the primary key, so at most one row exists."""

    __tablename__ = "site_settings"

    active: Mapped[bool] = mapped_column(Boolean, primary_key=True, default=True)

    site_name: Mapped[str] = mapped_column(String(100), nullable=False)
    image_directory_path: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    smtp_server: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    smtp_username: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    smtp_password: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    smtp_port: Mapped[str] = mapped_column(String(16), nullable=False, default="")
