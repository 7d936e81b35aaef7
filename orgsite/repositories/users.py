"""Credential store: user lookup and persistence."""

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy.orm import Session

from orgsite.models import AuthSession, Avatar, AvatarState, Role, User
from orgsite.services.blob_store import StoredBlob

logger = logging.getLogger(__name__)

# Columns an update patch may touch.
UPDATABLE_FIELDS = frozenset({"name", "username", "password_hash", "role", "image"})


class CredentialStore(Protocol):
    def find_by_username(self, username: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def create(
        self,
        username: str,
        name: str,
        password_hash: str,
        role: Role = Role.USER,
        avatar: StoredBlob | None = None,
    ) -> User: ...

    def update(self, user_id: int, patch: dict[str, Any]) -> User | None: ...

    def delete(self, user_id: int) -> bool: ...

    def list_page(self, page: int, per_page: int) -> tuple[list[User], int]: ...


class UserRepository:
    """SQLAlchemy-backed CredentialStore. Each mutation is one transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_username(self, username: str) -> User | None:
        return self.db.query(User).filter(User.username == username).first()

    def find_by_id(self, user_id: int) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def create(
        self,
        username: str,
        name: str,
        password_hash: str,
        role: Role = Role.USER,
        avatar: StoredBlob | None = None,
    ) -> User:
        """Insert the user and, when given, its active avatar record in a single commit."""
        user = User(
            username=username,
            name=name,
            password_hash=password_hash,
            role=Role(role).value,
            image=avatar.url if avatar else None,
        )
        try:
            self.db.add(user)
            self.db.flush()
            if avatar is not None:
                self.db.add(
                    Avatar(
                        user_id=user.id,
                        key=avatar.key,
                        url=avatar.url,
                        state=AvatarState.ACTIVE.value,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        return user

    def update(self, user_id: int, patch: dict[str, Any]) -> User | None:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        user = self.find_by_id(user_id)
        if user is None:
            return None
        for field, value in patch.items():
            if field == "role" and value is not None:
                value = Role(value).value
            setattr(user, field, value)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(user)
        return user

    def delete(self, user_id: int) -> bool:
        """
        Delete a user together with their sessions; their avatars become DELETED
        orphans for the avatar sweep. Returns False if the user does not exist.
        """
        user = self.find_by_id(user_id)
        if user is None:
            return False
        try:
            self.db.query(Avatar).filter(Avatar.user_id == user_id).update(
                {
                    Avatar.state: AvatarState.DELETED.value,
                    Avatar.user_id: None,
                    Avatar.deleted_at: datetime.now(UTC),
                },
                synchronize_session=False,
            )
            sessions_deleted = (
                self.db.query(AuthSession)
                .filter(AuthSession.user_id == user_id)
                .delete(synchronize_session=False)
            )
            self.db.query(User).filter(User.id == user_id).delete(
                synchronize_session=False
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "User deleted",
            extra={"user_id": user_id, "sessions_deleted": sessions_deleted},
        )
        return True

    def list_page(self, page: int, per_page: int) -> tuple[list[User], int]:
        total = self.db.query(User).count()
        users = (
            self.db.query(User)
            .order_by(User.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return users, total
