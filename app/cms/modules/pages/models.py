from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, event, text
from sqlalchemy.orm import Mapped, mapped_column

from app.cms.models import Base, utcnow


class Page(Base):
    __tablename__ = "pages"
    __table_args__ = (
        Index(
            "uq_pages_title_live",
            "title",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_pages_updated_at", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    published_revision_id: Mapped[int | None] = mapped_column(
        # pages <-> content_revisions is a cycle; this side is added after both tables exist.
        ForeignKey("content_revisions.id", ondelete="SET NULL", use_alter=True, name="fk_pages_published_revision"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    # Last content edit; set by create and save_draft only, not by publish.
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ContentRevision(Base):
    __tablename__ = "content_revisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    page_id: Mapped[int] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True)

    rendered_html: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rendered_css: Mapped[str] = mapped_column(Text, nullable=False, default="")
    editor_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


@event.listens_for(ContentRevision, "before_update")
def _prevent_revision_update(mapper, connection, target):
    raise RuntimeError("Content revisions are immutable")
