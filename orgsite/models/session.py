"""ORM model for refresh-token sessions (one row per issued refresh token)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from orgsite.models.base import Base


class AuthSession(Base):
    """
    Server-side record of a refresh token.

    refresh_token_hash is the SHA-256 digest of the token; the plaintext is never stored.
    expires_at is authoritative: a row past it does not authenticate even if the sweep
    has not removed it yet.
    """

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    refresh_token_hash = Column(String(64), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    device_info = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user = relationship("User", back_populates="sessions")
