"""Object storage for uploaded blobs (avatars): interface plus a local filesystem backend."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from orgsite.services.errors import BlobStoreError

if TYPE_CHECKING:
    from orgsite.core.config import Settings

logger = logging.getLogger(__name__)


class PathTraversalError(ValueError):
    """Raised when a blob key escapes the storage root."""


@dataclass(frozen=True)
class StoredBlob:
    """Location of a blob after a successful put."""

    key: str
    url: str


class BlobStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> StoredBlob: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def public_url(self, key: str) -> str: ...


def safe_join(base: Path, relative: str) -> Path:
    """Join ``relative`` to ``base``; the result must resolve inside ``base``."""
    base_resolved = base.resolve()
    rel_path = Path(relative)
    if rel_path.is_absolute():
        raise PathTraversalError("absolute paths not allowed")
    candidate = (base_resolved / rel_path).resolve()
    if candidate == base_resolved or base_resolved in candidate.parents:
        return candidate
    raise PathTraversalError("path traversal detected")


class LocalBlobStore:
    """
    Stores blobs as files under a root directory and serves them from a public
    base URL (e.g. a static files mount or a reverse proxy).
    """

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "LocalBlobStore":
        return cls(settings.BLOB_STORAGE_DIR, settings.BLOB_PUBLIC_BASE_URL)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    def put(self, key: str, data: bytes, content_type: str) -> StoredBlob:
        path = safe_join(self.root, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise BlobStoreError(f"Failed to store blob {key}") from e
        logger.debug("Stored blob", extra={"key": key, "content_type": content_type, "size": len(data)})
        return StoredBlob(key=key, url=self.public_url(key))

    def delete(self, key: str) -> None:
        """Delete a blob. Deleting a missing blob is not an error."""
        path = safe_join(self.root, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {key}") from e

    def exists(self, key: str) -> bool:
        return safe_join(self.root, key).is_file()
