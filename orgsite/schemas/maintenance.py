"""Results of the scheduled cleanup jobs."""

from pydantic import BaseModel


class SessionCleanupResult(BaseModel):
    deleted_count: int = 0


class AvatarCleanupResult(BaseModel):
    total: int = 0
    deleted: int = 0
    failed: int = 0
