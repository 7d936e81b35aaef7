"""ORM model for avatar blob metadata (soft-deleted, swept later)."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from orgsite.models.base import Base


class AvatarState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class Avatar(Base):
    """
    One uploaded avatar blob.

    Replacing or removing an avatar only flips state to DELETED and drops the user
    back-reference; the blob itself is removed by the periodic avatar sweep.
    """

    __tablename__ = "avatars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    key = Column(String(1024), nullable=False)
    url = Column(String(2048), nullable=False)
    state = Column(String(16), nullable=False, default=AvatarState.ACTIVE.value, index=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)
