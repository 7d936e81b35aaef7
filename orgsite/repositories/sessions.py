"""Session store: persistence of hashed refresh-token sessions."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session

from orgsite.models import AuthSession


class SessionStore(Protocol):
    def create_session(
        self,
        user_id: int,
        token_hash: str,
        expires_at: datetime,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> AuthSession: ...

    def find_session(self, user_id: int, token_hash: str) -> AuthSession | None: ...

    def update_session(
        self,
        session_id: int,
        token_hash: str,
        expires_at: datetime,
        expected_hash: str | None = None,
    ) -> bool: ...

    def delete_session(self, session_id: int) -> int: ...

    def delete_all_for_user(self, user_id: int) -> int: ...

    def delete_expired(self, now: datetime) -> int: ...

    def list_for_user(self, user_id: int) -> list[AuthSession]: ...


class SessionRepository:
    """
    SQLAlchemy-backed SessionStore.

    Every mutation is a single statement followed by a commit, so concurrent
    requests never observe a half-applied rotation.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def create_session(
        self,
        user_id: int,
        token_hash: str,
        expires_at: datetime,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> AuthSession:
        row = AuthSession(
            user_id=user_id,
            refresh_token_hash=token_hash,
            expires_at=expires_at,
            device_info=device_info,
            ip_address=ip_address,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        return row

    def find_session(self, user_id: int, token_hash: str) -> AuthSession | None:
        """
        Keyed lookup by owner and token digest. Expired rows are returned too so
        the caller can tell them apart and delete them.
        """
        return (
            self.db.query(AuthSession)
            .filter(
                AuthSession.user_id == user_id,
                AuthSession.refresh_token_hash == token_hash,
            )
            .first()
        )

    def update_session(
        self,
        session_id: int,
        token_hash: str,
        expires_at: datetime,
        expected_hash: str | None = None,
    ) -> bool:
        """
        Rotate a session in place. With expected_hash this is a compare-and-swap:
        the row only changes if it still holds the hash the caller read.
        Returns True when a row was updated.
        """
        query = self.db.query(AuthSession).filter(AuthSession.id == session_id)
        if expected_hash is not None:
            query = query.filter(AuthSession.refresh_token_hash == expected_hash)
        updated = query.update(
            {
                AuthSession.refresh_token_hash: token_hash,
                AuthSession.expires_at: expires_at,
            },
            synchronize_session=False,
        )
        self._commit()
        return updated > 0

    def delete_session(self, session_id: int) -> int:
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.id == session_id)
            .delete(synchronize_session=False)
        )
        self._commit()
        return deleted

    def delete_all_for_user(self, user_id: int) -> int:
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self._commit()
        return deleted

    def delete_expired(self, now: datetime) -> int:
        deleted = (
            self.db.query(AuthSession)
            .filter(AuthSession.expires_at < now)
            .delete(synchronize_session=False)
        )
        self._commit()
        return deleted

    def list_for_user(self, user_id: int) -> list[AuthSession]:
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.user_id == user_id)
            .order_by(AuthSession.created_at.desc(), AuthSession.id.desc())
            .all()
        )
