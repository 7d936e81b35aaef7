"""User avatars: Gravatar generation, custom uploads, soft delete, and the deleted-avatar sweep."""

import hashlib
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
from sqlalchemy.orm import Session

from orgsite.models import Avatar, AvatarState, User
from orgsite.schemas.maintenance import AvatarCleanupResult
from orgsite.services.blob_store import BlobStore, PathTraversalError, StoredBlob
from orgsite.services.errors import BlobStoreError, InvalidUpload, NotFound

if TYPE_CHECKING:
    from orgsite.core.config import Settings

logger = logging.getLogger(__name__)

AVATAR_FOLDER = "avatars"

# Accepted upload types -> file extension.
ALLOWED_IMAGE_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def _new_key(extension: str) -> str:
    return f"{AVATAR_FOLDER}/{uuid.uuid4().hex}{extension}"


class AvatarService:
    """
    Owns avatar blobs and their metadata rows.

    Replacing or removing an avatar never deletes the blob inline: the old row is
    flipped to DELETED and cleanup_deleted_avatars removes blobs later.
    """

    def __init__(
        self,
        db: Session,
        blob_store: BlobStore,
        settings: "Settings",
        http_client: httpx.Client | None = None,
    ) -> None:
        self.db = db
        self.blob_store = blob_store
        self.settings = settings
        self.http_client = http_client

    def gravatar_url(self, seed: str) -> str:
        """Gravatar URL for a seed (normally the username / email)."""
        digest = hashlib.md5(seed.strip().lower().encode("utf-8")).hexdigest()
        return self.settings.GRAVATAR_URL_TEMPLATE.format(hash=digest)

    def _download(self, url: str) -> tuple[bytes, str]:
        timeout = self.settings.AVATAR_REQUEST_TIMEOUT_SEC
        try:
            if self.http_client is not None:
                resp = self.http_client.get(url, timeout=timeout, follow_redirects=True)
            else:
                with httpx.Client(timeout=timeout) as client:
                    resp = client.get(url, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Failed to download avatar from {url}") from e
        content_type = resp.headers.get("content-type", "image/png").split(";")[0].strip()
        return resp.content, content_type or "image/png"

    def generate(self, seed: str) -> StoredBlob:
        """Download a generated Gravatar image for the seed and store it."""
        data, content_type = self._download(self.gravatar_url(seed))
        extension = ALLOWED_IMAGE_TYPES.get(content_type, ".png")
        blob = self.blob_store.put(_new_key(extension), data, content_type)
        logger.info("Avatar generated", extra={"key": blob.key})
        return blob

    def upload(self, data: bytes, content_type: str) -> StoredBlob:
        """Validate and store a user-supplied image."""
        extension = ALLOWED_IMAGE_TYPES.get(content_type)
        if extension is None:
            raise InvalidUpload(
                f"Avatar must be one of: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
            )
        if not data:
            raise InvalidUpload("Avatar file is empty")
        if len(data) > self.settings.AVATAR_MAX_BYTES:
            raise InvalidUpload(
                f"Avatar must not exceed {self.settings.AVATAR_MAX_BYTES // (1024 * 1024)} MB"
            )
        return self.blob_store.put(_new_key(extension), data, content_type)

    def discard(self, blob: StoredBlob) -> None:
        """Delete a blob that never got a metadata row (rollback path)."""
        try:
            self.blob_store.delete(blob.key)
        except BlobStoreError:
            logger.warning("Failed to discard orphan avatar blob", extra={"key": blob.key})

    def _retire_active(self, user_id: int, now: datetime) -> int:
        return (
            self.db.query(Avatar)
            .filter(Avatar.user_id == user_id, Avatar.state == AvatarState.ACTIVE.value)
            .update(
                {
                    Avatar.state: AvatarState.DELETED.value,
                    Avatar.user_id: None,
                    Avatar.deleted_at: now,
                },
                synchronize_session=False,
            )
        )

    def replace(self, user_id: int, blob: StoredBlob) -> User:
        """
        Make blob the user's avatar. The previous avatar is soft-deleted in the same
        transaction; on failure the new blob is discarded.
        """
        try:
            user = self.db.query(User).filter(User.id == user_id).first()
            if user is None:
                raise NotFound("User not found")
            self._retire_active(user_id, datetime.now(UTC))
            self.db.add(
                Avatar(
                    user_id=user_id,
                    key=blob.key,
                    url=blob.url,
                    state=AvatarState.ACTIVE.value,
                )
            )
            user.image = blob.url
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.discard(blob)
            raise
        self.db.refresh(user)
        return user

    def regenerate(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")
        return self.replace(user_id, self.generate(user.username))

    def remove(self, user_id: int) -> None:
        """Soft-delete the user's current avatar and clear User.image."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")
        try:
            retired = self._retire_active(user_id, datetime.now(UTC))
            user.image = None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Avatar removed", extra={"user_id": user_id, "avatars_retired": retired})

    def cleanup_deleted_avatars(self) -> AvatarCleanupResult:
        """
        Delete blobs of DELETED avatar rows, then the rows themselves.
        Rows whose blob could not be deleted stay for the next run. Idempotent.
        """
        rows = (
            self.db.query(Avatar.id, Avatar.key)
            .filter(Avatar.state == AvatarState.DELETED.value)
            .all()
        )
        removed_ids: list[int] = []
        failed = 0
        for avatar_id, key in rows:
            try:
                self.blob_store.delete(key)
            except (BlobStoreError, PathTraversalError) as e:
                failed += 1
                logger.warning(
                    "Failed to delete avatar blob",
                    extra={"avatar_id": avatar_id, "key": key, "reason": str(e)},
                )
                continue
            removed_ids.append(avatar_id)

        if removed_ids:
            try:
                self.db.query(Avatar).filter(
                    Avatar.id.in_(removed_ids),
                    Avatar.state == AvatarState.DELETED.value,
                ).delete(synchronize_session=False)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        result = AvatarCleanupResult(total=len(rows), deleted=len(removed_ids), failed=failed)
        if result.total > 0:
            logger.info(
                "Avatar cleanup run: total=%s, deleted=%s, failed=%s",
                result.total,
                result.deleted,
                result.failed,
            )
        return result
