"""Password hashing, refresh-token hashing, and JWT issuance/verification."""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

from orgsite.schemas.auth import TokenPair

if TYPE_CHECKING:
    from orgsite.core.config import Settings

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

# bcrypt only looks at the first 72 bytes of input.
_BCRYPT_MAX_BYTES = 72


def hash_password(plain_password: str, rounds: int) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    pw_bytes = plain_password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=8)
def dummy_password_hash(rounds: int) -> str:
    """A throwaway hash so unknown usernames cost the same bcrypt work as real ones."""
    return hash_password(uuid.uuid4().hex, rounds)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a refresh token; the only form a token is stored in."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenSigner:
    """
    Issues and verifies access/refresh JWTs.

    Each token class has its own secret and lifetime so that holding one kind of
    token never lets a caller forge the other.
    """

    access_secret: str
    refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh signing secrets must differ")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TokenSigner":
        return cls(
            access_secret=settings.JWT_ACCESS_SECRET.get_secret_value(),
            refresh_secret=settings.JWT_REFRESH_SECRET.get_secret_value(),
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
            algorithm=settings.JWT_ALGORITHM,
        )

    def _encode(self, claims: dict[str, Any], secret: str, ttl: timedelta, now: datetime) -> str:
        payload = {
            **claims,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_pair(
        self,
        user_id: int,
        username: str,
        role: str,
        now: datetime | None = None,
    ) -> TokenPair:
        """Sign a fresh access/refresh pair for the user."""
        now = now or datetime.now(UTC)
        access_token = self._encode(
            {"sub": str(user_id), "username": username, "role": role, "type": TOKEN_TYPE_ACCESS},
            self.access_secret,
            self.access_ttl,
            now,
        )
        refresh_token = self._encode(
            {"sub": str(user_id), "username": username, "type": TOKEN_TYPE_REFRESH},
            self.refresh_secret,
            self.refresh_ttl,
            now,
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def _decode(
        self,
        token: str,
        secret: str,
        expected_type: str,
        verify_exp: bool = True,
    ) -> dict[str, Any]:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[self.algorithm],
            options={"require": ["sub", "exp", "iat"], "verify_exp": verify_exp},
        )
        if payload.get("type") != expected_type:
            raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
        return payload

    def decode_access(self, token: str) -> dict[str, Any]:
        """
        Decode and validate an access JWT; return its claims.
        Raises jwt.PyJWTError on invalid, expired, or wrong-type tokens.
        """
        return self._decode(token, self.access_secret, TOKEN_TYPE_ACCESS)

    def decode_refresh(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        """
        Decode and validate a refresh JWT; return its claims.
        Raises jwt.PyJWTError on invalid, expired (unless verify_exp is False),
        or wrong-type tokens. The signature is always checked.
        """
        return self._decode(token, self.refresh_secret, TOKEN_TYPE_REFRESH, verify_exp)

    def refresh_expires_at(self, now: datetime) -> datetime:
        return now + self.refresh_ttl


def subject_to_user_id(payload: dict[str, Any]) -> int:
    """Parse the integer user id out of a token's sub claim; ValueError if malformed."""
    sub = payload.get("sub")
    if sub is None:
        raise ValueError("Token has no subject")
    return int(sub)
