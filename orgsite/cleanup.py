"""
CLI entrypoint for the maintenance job. Run from cron, e.g.:

  python -m orgsite.cleanup

Or daily at 03:00: 0 3 * * * cd /path/to/orgsite && .venv/bin/python -m orgsite.cleanup
"""

import logging
import sys

from orgsite.core.config import get_settings
from orgsite.core.database import SessionLocal
from orgsite.core.logging import configure_logging
from orgsite.services.blob_store import LocalBlobStore
from orgsite.services.cleanup import run_avatar_cleanup, run_session_cleanup

logger = logging.getLogger(__name__)


def main() -> int:
    """Sweep expired sessions, then blobs of deleted avatars."""
    settings = get_settings()
    configure_logging(settings)
    db = SessionLocal()
    try:
        sessions_deleted = run_session_cleanup(db, settings)
        avatars = run_avatar_cleanup(db, settings, LocalBlobStore.from_settings(settings))
        logger.info(
            "Cleanup completed: sessions_deleted=%s, avatars_deleted=%s, avatars_failed=%s",
            sessions_deleted,
            avatars.deleted,
            avatars.failed,
        )
        return 0
    except Exception as e:
        logger.exception("Cleanup job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
