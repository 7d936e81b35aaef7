"""Service-layer error taxonomy; the API maps these onto HTTP responses."""


class ServiceError(Exception):
    """Base class for errors a client may see. message is safe to return verbatim."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(ServiceError):
    """Unknown username or wrong password; the two are never told apart."""

    status_code = 401
    default_message = "Invalid username or password"


class UsernameTaken(ServiceError):
    status_code = 409
    default_message = "Username already exists"


class Unauthorized(ServiceError):
    """Missing, invalid, expired, or mismatched token or session."""

    status_code = 401
    default_message = "Access Denied"


class SessionExpired(Unauthorized):
    """The session row exists but is past expires_at. Surfaces exactly like Unauthorized."""


class NotFound(ServiceError):
    status_code = 404
    default_message = "Record not found"


class InvalidUpload(ServiceError):
    status_code = 422
    default_message = "Invalid upload"


class BlobStoreError(ServiceError):
    """Object storage could not complete a put or delete."""

    status_code = 502
    default_message = "Storage backend error"
