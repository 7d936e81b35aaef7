"""Scheduled maintenance: sweep expired sessions and soft-deleted avatar blobs."""

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from orgsite.repositories.sessions import SessionRepository
from orgsite.schemas.maintenance import AvatarCleanupResult
from orgsite.services.auth import sweep_expired_sessions
from orgsite.services.avatars import AvatarService
from orgsite.services.blob_store import BlobStore

if TYPE_CHECKING:
    from orgsite.core.config import Settings

logger = logging.getLogger(__name__)


def run_session_cleanup(
    session: Session,
    settings: "Settings",
    now: datetime | None = None,
) -> int:
    """
    Delete sessions whose expires_at is before now. Returns the number deleted.

    Idempotent and safe alongside live refresh traffic: rotation pushes expires_at
    forward in a single UPDATE, so a rotated row is never swept.
    """
    if not settings.SESSION_CLEANUP_ENABLED:
        logger.info("Session cleanup is disabled (SESSION_CLEANUP_ENABLED=false); skipping.")
        return 0

    cutoff = now or datetime.now(UTC)
    return sweep_expired_sessions(SessionRepository(session), cutoff).deleted_count


def run_avatar_cleanup(
    session: Session,
    settings: "Settings",
    blob_store: BlobStore,
) -> AvatarCleanupResult:
    """Delete blobs and rows of soft-deleted avatars."""
    return AvatarService(session, blob_store, settings).cleanup_deleted_avatars()
