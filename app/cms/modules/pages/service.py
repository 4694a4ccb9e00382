"""
Page revision store.

- A page and its first revision are inserted in one SAVEPOINT
- Revisions are insert-only; the highest id for a page is its current draft
- Publishing only moves Page.published_revision_id
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.cms.constants import MAX_ROW_ID, PAGES_PER_PAGE
from app.cms.db import is_unique_violation
from app.cms.errors import InvalidArgument, NotFound, StorageError, ValidationError, storage_errors
from app.cms.models import utcnow
from app.cms.modules.pages.models import ContentRevision, Page

logger = logging.getLogger(__name__)


def normalize_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    if len(title) > 255:
        raise ValidationError("Title must be at most 255 characters.")
    return title


def _ensure_new(revision: ContentRevision) -> None:
    if revision.id is not None:
        raise InvalidArgument("Revisions are immutable; save a new draft instead.")


def get_live_page(s: Session, page_id: int) -> Page | None:
    if not 1 <= page_id <= MAX_ROW_ID:
        return None
    with storage_errors("page lookup"):
        page = s.get(Page, page_id)
    if page is None or page.is_deleted:
        return None
    return page


def create_page(s: Session, title: str, initial_revision: ContentRevision) -> tuple[int | None, bool]:
    """
    Returns (page_id, False), or (None, True) when a live page already has
    this title. Nothing is left behind on a duplicate.
    """
    title = normalize_title(title)
    _ensure_new(initial_revision)

    with storage_errors("page create"):
        try:
            with s.begin_nested():
                now = utcnow()
                page = Page(title=title, created_at=now, updated_at=now)
                s.add(page)
                s.flush()
                initial_revision.page_id = page.id
                s.add(initial_revision)
                s.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                logger.info("Duplicate page title rejected: %s", title)
                return None, True
            raise StorageError("page create failed") from e
    return page.id, False


def get_page_with_current_draft(s: Session, page_id: int) -> tuple[Page | None, ContentRevision | None]:
    page = get_live_page(s, page_id)
    if page is None:
        return None, None
    with storage_errors("draft lookup"):
        draft = s.scalars(
            select(ContentRevision)
            .where(ContentRevision.page_id == page.id)
            .order_by(ContentRevision.id.desc())
            .limit(1)
        ).first()
    return page, draft


def save_draft(s: Session, revision: ContentRevision) -> ContentRevision:
    _ensure_new(revision)
    page = get_live_page(s, revision.page_id) if revision.page_id else None
    if page is None:
        raise NotFound("Page not found.")

    with storage_errors("draft save"):
        s.add(revision)
        page.updated_at = utcnow()
        s.flush()
    return revision


def publish_draft(s: Session, revision_id: int) -> Page:
    if not 1 <= revision_id <= MAX_ROW_ID:
        raise NotFound("Draft not found.")
    with storage_errors("draft lookup"):
        revision = s.get(ContentRevision, revision_id)
    if revision is None:
        raise NotFound("Draft not found.")
    page = get_live_page(s, revision.page_id)
    if page is None:
        raise NotFound("Draft not found.")

    with storage_errors("publish"):
        page.published_revision_id = revision.id
        s.flush()
    return page


def list_recently_edited(
    s: Session, page_number: int, page_size: int = PAGES_PER_PAGE
) -> tuple[list[Page], int]:
    if page_number < 0 or page_size < 1:
        raise ValidationError("Invalid page.")
    live = Page.deleted_at.is_(None)
    with storage_errors("page list"):
        total = s.scalar(select(func.count()).select_from(Page).where(live)) or 0
        pages = list(
            s.scalars(
                select(Page)
                .where(live)
                .order_by(Page.updated_at.desc(), Page.id.desc())
                .offset(page_number * page_size)
                .limit(page_size)
            ).all()
        )
    return pages, int(total)


def soft_delete_page(s: Session, page_id: int) -> Page:
    page = get_live_page(s, page_id)
    if page is None:
        raise NotFound("Page not found.")
    with storage_errors("page delete"):
        page.deleted_at = utcnow()
        s.flush()
    return page
