"""
Authentication core: credentials, token pairs, and refresh-token session lifecycle.

Sessions are matched by (user id, SHA-256 of the presented refresh token). Every
successful refresh rotates the stored digest, so a refresh token is accepted once.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import jwt
from sqlalchemy.exc import IntegrityError

from orgsite.core.security import (
    TokenSigner,
    dummy_password_hash,
    hash_password,
    hash_token,
    subject_to_user_id,
    verify_password,
)
from orgsite.models import AuthSession, Role
from orgsite.repositories.sessions import SessionStore
from orgsite.repositories.users import CredentialStore
from orgsite.schemas.auth import LogoutResult, PublicUser, SessionInfo, TokenPair
from orgsite.schemas.maintenance import SessionCleanupResult
from orgsite.services.avatars import AvatarService
from orgsite.services.blob_store import StoredBlob
from orgsite.services.errors import (
    BlobStoreError,
    InvalidCredentials,
    SessionExpired,
    Unauthorized,
    UsernameTaken,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def sweep_expired_sessions(sessions: SessionStore, now: datetime) -> SessionCleanupResult:
    """Bulk-delete sessions whose expires_at is before now. Idempotent."""
    deleted = sessions.delete_expired(now)
    if deleted > 0:
        logger.info(
            "Session cleanup run: cutoff=%s, sessions_deleted=%s",
            now.isoformat(),
            deleted,
        )
    return SessionCleanupResult(deleted_count=deleted)


def _as_utc(value: datetime) -> datetime:
    # Some backends (SQLite) hand back naive datetimes for tz-aware columns; all stored times are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class AuthService:
    """
    Sign-up, sign-in, refresh, and logout over injected stores.

    Holds no per-request state; everything lives in the credential and session stores.
    """

    def __init__(
        self,
        users: CredentialStore,
        sessions: SessionStore,
        signer: TokenSigner,
        bcrypt_rounds: int = 10,
        avatars: AvatarService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.signer = signer
        self.bcrypt_rounds = bcrypt_rounds
        self.avatars = avatars
        self.clock = clock

    # -- credentials -------------------------------------------------------

    def verify_credentials(self, username: str, password: str) -> PublicUser:
        """Return the public view of the user, or raise InvalidCredentials."""
        user = self.users.find_by_username(username)
        if user is None:
            # Same bcrypt cost as a real check so response timing does not reveal existence.
            verify_password(password, dummy_password_hash(self.bcrypt_rounds))
            logger.info("Sign-in rejected: unknown username")
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.info("Sign-in rejected: password mismatch", extra={"user_id": user.id})
            raise InvalidCredentials()
        return PublicUser.model_validate(user)

    def _generate_avatar(self, username: str) -> StoredBlob | None:
        if self.avatars is None:
            return None
        try:
            return self.avatars.generate(username)
        except BlobStoreError as e:
            logger.warning("Avatar generation failed; continuing without avatar: %s", e.message)
            return None

    def sign_up(
        self,
        name: str,
        username: str,
        password: str,
        role: Role = Role.USER,
    ) -> PublicUser:
        """
        Create a user. Raises UsernameTaken if the username exists, either on the
        pre-check or on the store's unique constraint.
        """
        if self.users.find_by_username(username) is not None:
            raise UsernameTaken()

        password_hash = hash_password(password, self.bcrypt_rounds)
        avatar = self._generate_avatar(username)
        try:
            user = self.users.create(
                username=username,
                name=name,
                password_hash=password_hash,
                role=role,
                avatar=avatar,
            )
        except IntegrityError as e:
            if avatar is not None:
                self.avatars.discard(avatar)
            raise UsernameTaken() from e
        except Exception:
            if avatar is not None:
                self.avatars.discard(avatar)
            raise
        logger.info("User signed up", extra={"user_id": user.id, "role": user.role})
        return PublicUser.model_validate(user)

    # -- tokens ------------------------------------------------------------

    def issue_token_pair(
        self,
        user_id: int,
        username: str,
        role: str,
        now: datetime | None = None,
    ) -> TokenPair:
        return self.signer.issue_pair(user_id, username, role, now=now or self.clock())

    def sign_in(
        self,
        user: PublicUser,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> TokenPair:
        """
        Mint a pair for an already verified user and open a session for it.
        Only the digest of the refresh token is persisted.
        """
        now = self.clock()
        pair = self.issue_token_pair(user.id, user.username, user.role, now=now)
        session = self.sessions.create_session(
            user_id=user.id,
            token_hash=hash_token(pair.refresh_token),
            expires_at=self.signer.refresh_expires_at(now),
            device_info=device_info,
            ip_address=ip_address,
        )
        logger.info(
            "User signed in",
            extra={"user_id": user.id, "session_id": session.id, "device": device_info},
        )
        return pair

    def _find_session(self, user_id: int, refresh_token: str) -> AuthSession | None:
        return self.sessions.find_session(user_id, hash_token(refresh_token))

    def refresh(self, refresh_token: str, claimed_user_id: int | None = None) -> TokenPair:
        """
        Exchange a refresh token for a new pair and rotate its session.

        Every failure raises Unauthorized (or SessionExpired, which renders the
        same); the specific stage is only logged.
        """
        try:
            claims = self.signer.decode_refresh(refresh_token)
            token_user_id = subject_to_user_id(claims)
        except (jwt.PyJWTError, ValueError, TypeError):
            logger.info("Refresh rejected: invalid or expired refresh token")
            raise Unauthorized()

        if claimed_user_id is not None and claimed_user_id != token_user_id:
            logger.warning(
                "Refresh rejected: claimed user does not match token subject",
                extra={"user_id": claimed_user_id},
            )
            raise Unauthorized()

        session = self._find_session(token_user_id, refresh_token)
        if session is None or session.user_id != token_user_id:
            # Also the path a replayed, already-rotated token takes.
            logger.warning("Refresh rejected: no matching session", extra={"user_id": token_user_id})
            raise Unauthorized()

        # Deleting commits and expires the row; read what is needed afterwards first.
        session_id = session.id
        stored_hash = session.refresh_token_hash
        expires_at = _as_utc(session.expires_at)

        now = self.clock()
        if expires_at < now:
            self.sessions.delete_session(session_id)
            logger.info(
                "Refresh rejected: session expired",
                extra={"user_id": token_user_id, "session_id": session_id},
            )
            raise SessionExpired()

        user = self.users.find_by_id(token_user_id)
        if user is None:
            self.sessions.delete_session(session_id)
            logger.warning("Refresh rejected: user no longer exists", extra={"user_id": token_user_id})
            raise Unauthorized()

        pair = self.issue_token_pair(user.id, user.username, user.role, now=now)
        rotated = self.sessions.update_session(
            session_id,
            token_hash=hash_token(pair.refresh_token),
            expires_at=self.signer.refresh_expires_at(now),
            expected_hash=stored_hash,
        )
        if not rotated:
            # A concurrent refresh with the same token rotated the row first.
            logger.warning(
                "Refresh rejected: session rotated concurrently",
                extra={"user_id": token_user_id, "session_id": session_id},
            )
            raise Unauthorized()
        logger.debug("Session rotated", extra={"user_id": user.id, "session_id": session_id})
        return pair

    # -- logout ------------------------------------------------------------

    def logout(self, user_id: int, refresh_token: str) -> LogoutResult:
        """Delete the session behind refresh_token. Already logged out is success."""
        session = self._find_session(user_id, refresh_token)
        deleted = 0
        if session is not None and session.user_id == user_id:
            deleted = self.sessions.delete_session(session.id)
        logger.info("User logged out", extra={"user_id": user_id, "sessions_deleted": deleted})
        return LogoutResult(sessions_deleted=deleted)

    def logout_with_token(self, refresh_token: str) -> LogoutResult:
        """
        Logout when only the raw refresh token is at hand (cookie/body transport).
        The signature must verify but an expired token may still close its session;
        an unusable token simply deletes nothing.
        """
        try:
            claims = self.signer.decode_refresh(refresh_token, verify_exp=False)
            user_id = subject_to_user_id(claims)
        except (jwt.PyJWTError, ValueError, TypeError):
            logger.info("Logout with unusable refresh token; nothing to delete")
            return LogoutResult(sessions_deleted=0)
        return self.logout(user_id, refresh_token)

    def logout_all(self, user_id: int) -> LogoutResult:
        """Delete every session of the user (sign out of all devices)."""
        deleted = self.sessions.delete_all_for_user(user_id)
        logger.info(
            "User logged out from all devices",
            extra={"user_id": user_id, "sessions_deleted": deleted},
        )
        return LogoutResult(sessions_deleted=deleted)

    def list_sessions(self, user_id: int) -> list[SessionInfo]:
        return [SessionInfo.model_validate(s) for s in self.sessions.list_for_user(user_id)]

    # -- maintenance -------------------------------------------------------

    def cleanup_expired_sessions(self, now: datetime | None = None) -> SessionCleanupResult:
        """Bulk-delete sessions whose expires_at is in the past. Idempotent."""
        return sweep_expired_sessions(self.sessions, now or self.clock())
