from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cms.errors import NotFound, ValidationError, storage_errors
from app.cms.modules.site_settings.models import SiteSettings
from app.cms.storage import LocalStorage, MediaStorageError, probe_storage

logger = logging.getLogger(__name__)


def get_settings(s: Session) -> SiteSettings | None:
    with storage_errors("settings lookup"):
        return s.scalars(select(SiteSettings).where(SiteSettings.active.is_(True))).one_or_none()


def site_exists(s: Session) -> bool:
    return get_settings(s) is not None


def create_settings(s: Session, *, site_name: str) -> SiteSettings:
    site_name = (site_name or "").strip()
    if not site_name:
        raise ValidationError("Site name is required.")
    if len(site_name) > 100:
        raise ValidationError("Site name must be at most 100 characters.")
    with storage_errors("settings create"):
        row = SiteSettings(active=True, site_name=site_name)
        s.add(row)
        s.flush()
    return row


def normalize_directory(path: str | None) -> str:
    raw = (path or "").strip()
    trimmed = raw.rstrip("/\\")
    # Keep a bare root ("/") rather than collapsing it to empty.
    return trimmed or raw[:1]


def check_image_directory(path: str) -> None:
    """Raises ValidationError unless `path` is an existing directory we can write, read and delete in."""
    if not path:
        raise ValidationError("Image directory path is required.")
    root = Path(path)
    if not root.is_dir():
        raise ValidationError("Image directory does not exist.")
    try:
        probe_storage(LocalStorage(root=root))
    except MediaStorageError as e:
        logger.info("Image directory check failed for %s: %s", path, e)
        raise ValidationError("Image directory is not writable.") from e


def update_general(s: Session, *, site_name: str, image_directory_path: str) -> SiteSettings:
    row = get_settings(s)
    if row is None:
        raise NotFound("Site has not been set up.")
    site_name = (site_name or "").strip()
    if not site_name:
        raise ValidationError("Site name is required.")
    if len(site_name) > 100:
        raise ValidationError("Site name must be at most 100 characters.")
    directory = normalize_directory(image_directory_path)
    if len(directory) > 255:
        raise ValidationError("Image directory path must be at most 255 characters.")
    check_image_directory(directory)

    with storage_errors("settings update"):
        row.site_name = site_name
        row.image_directory_path = directory
        s.flush()
    return row


def update_smtp(
    s: Session,
    *,
    smtp_server: str,
    smtp_username: str,
    smtp_password: str,
    smtp_port: str,
) -> SiteSettings:
    row = get_settings(s)
    if row is None:
        raise NotFound("Site has not been set up.")
    port = str(smtp_port or "").strip()
    if port and (not port.isdigit() or not 0 < int(port) < 65536):
        raise ValidationError("SMTP port must be a number between 1 and 65535.")

    with storage_errors("settings update"):
        row.smtp_server = (smtp_server or "").strip()
        row.smtp_username = (smtp_username or "").strip()
        # Empty keeps the stored password; the list endpoint never returns it.
        if smtp_password:
            row.smtp_password = smtp_password
        row.smtp_port = port
        s.flush()
    return row


def settings_to_dict(row: SiteSettings) -> dict:
    return {
        "siteName": row.site_name,
        "imageDirectoryPath": row.image_directory_path,
        "smtpServer": row.smtp_server,
        "smtpUsername": row.smtp_username,
        "smtpPort": row.smtp_port,
        "smtpPasswordSet": bool(row.smtp_password),
    }
