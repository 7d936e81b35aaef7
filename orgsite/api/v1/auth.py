"""Auth routes, token transport (cookies / bearer / body), and auth dependencies."""

import logging
from typing import Annotated

import jwt
from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from orgsite.core.config import Settings, get_settings
from orgsite.core.database import get_db
from orgsite.core.security import TokenSigner, subject_to_user_id
from orgsite.models import Role
from orgsite.repositories import SessionRepository, UserRepository
from orgsite.schemas.auth import (
    CurrentUser,
    PublicUser,
    RefreshRequest,
    SessionInfo,
    SignInRequest,
    SignUpRequest,
    TokenPair,
)
from orgsite.schemas.envelope import ApiResponse, created, success
from orgsite.services.auth import AuthService
from orgsite.services.avatars import AvatarService
from orgsite.services.blob_store import BlobStore, LocalBlobStore
from orgsite.services.errors import Unauthorized

logger = logging.getLogger(__name__)
router = APIRouter()
security = HTTPBearer(auto_error=False)

UNKNOWN_DEVICE = "Unknown device"


# -- dependencies -----------------------------------------------------------


def get_token_signer() -> TokenSigner:
    return TokenSigner.from_settings(get_settings())


def get_blob_store() -> BlobStore:
    return LocalBlobStore.from_settings(get_settings())


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    signer: Annotated[TokenSigner, Depends(get_token_signer)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> AuthService:
    settings = get_settings()
    avatars = (
        AvatarService(db, blob_store, settings) if settings.AVATAR_GENERATION_ENABLED else None
    )
    return AuthService(
        users=UserRepository(db),
        sessions=SessionRepository(db),
        signer=signer,
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
        avatars=avatars,
    )


def extract_access_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
) -> str | None:
    """Access token from the cookie first, then from the Authorization header."""
    token = request.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)
    if token:
        return token
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return None


def extract_refresh_token(
    request: Request,
    body: RefreshRequest | None,
    settings: Settings,
) -> str | None:
    """Refresh token from the cookie first, then from the request body."""
    token = request.cookies.get(settings.REFRESH_TOKEN_COOKIE_NAME)
    if token:
        return token
    if body is not None and body.refresh_token:
        return body.refresh_token
    return None


def set_auth_cookies(response: Response, pair: TokenPair, settings: Settings) -> None:
    """Place both tokens in httpOnly, SameSite=strict cookies that live as long as the tokens."""
    for name, value, ttl in (
        (settings.ACCESS_TOKEN_COOKIE_NAME, pair.access_token, settings.access_token_ttl),
        (settings.REFRESH_TOKEN_COOKIE_NAME, pair.refresh_token, settings.refresh_token_ttl),
    ):
        response.set_cookie(
            key=name,
            value=value,
            max_age=int(ttl.total_seconds()),
            httponly=True,
            secure=settings.cookie_secure,
            samesite="strict",
            path="/",
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    for name in (settings.ACCESS_TOKEN_COOKIE_NAME, settings.REFRESH_TOKEN_COOKIE_NAME):
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="strict",
        )


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    signer: Annotated[TokenSigner, Depends(get_token_signer)],
) -> CurrentUser:
    """Dependency: require a valid access token and return the current user. Raises 401 otherwise."""
    token = extract_access_token(request, credentials, get_settings())
    if token is None:
        raise Unauthorized("Not authenticated")
    try:
        payload = signer.decode_access(token)
        user_id = subject_to_user_id(payload)
    except (jwt.PyJWTError, ValueError, TypeError) as e:
        logger.debug("Access token rejected: %s", type(e).__name__)
        raise Unauthorized()
    user = UserRepository(db).find_by_id(user_id)
    if user is None:
        raise Unauthorized()
    return CurrentUser(id=user.id, username=user.username, role=user.role)


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with role ADMIN. Raises 403 for non-admin."""
    if current_user.role != Role.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


# -- routes -----------------------------------------------------------------


@router.post("/signup", response_model=ApiResponse[PublicUser], status_code=201)
def sign_up(
    body: SignUpRequest,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[PublicUser]:
    """Create a user account (admin only)."""
    user = service.sign_up(name=body.name, username=body.username, password=body.password)
    return created(user, "User created successfully")


@router.post("/signin", response_model=ApiResponse[TokenPair])
def sign_in(
    body: SignInRequest,
    request: Request,
    response: Response,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[TokenPair]:
    """
    Authenticate with username and password. Tokens are returned in the body and
    set as httpOnly cookies; the access token also works as a Bearer token.
    """
    user = service.verify_credentials(body.username, body.password)
    device_info = request.headers.get("user-agent") or UNKNOWN_DEVICE
    ip_address = request.client.host if request.client else None
    pair = service.sign_in(user, device_info=device_info, ip_address=ip_address)
    set_auth_cookies(response, pair, get_settings())
    return success(pair, "Signed in successfully")


@router.post("/refresh", response_model=ApiResponse[TokenPair])
def refresh_tokens(
    request: Request,
    response: Response,
    service: Annotated[AuthService, Depends(get_auth_service)],
    body: Annotated[RefreshRequest | None, Body()] = None,
) -> ApiResponse[TokenPair]:
    """Rotate the refresh token; the presented one stops working immediately."""
    settings = get_settings()
    token = extract_refresh_token(request, body, settings)
    if token is None:
        raise Unauthorized()
    pair = service.refresh(token)
    set_auth_cookies(response, pair, settings)
    return success(pair, "Tokens refreshed successfully")


@router.post("/signout", response_model=ApiResponse[None])
def sign_out(
    request: Request,
    response: Response,
    service: Annotated[AuthService, Depends(get_auth_service)],
    body: Annotated[RefreshRequest | None, Body()] = None,
) -> ApiResponse[None]:
    """End the current session. Always succeeds and clears the auth cookies."""
    settings = get_settings()
    token = extract_refresh_token(request, body, settings)
    if token is not None:
        service.logout_with_token(token)
    clear_auth_cookies(response, settings)
    return success(None, "Logged out successfully")


@router.post("/logout-all", response_model=ApiResponse[None])
def logout_all(
    response: Response,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[None]:
    """End every session of the current user (sign out of all devices)."""
    result = service.logout_all(current_user.id)
    if result.clear_cookies:
        clear_auth_cookies(response, get_settings())
    return success(None, "Logged out from all devices successfully")


@router.get("/session", response_model=ApiResponse[CurrentUser])
def get_session(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ApiResponse[CurrentUser]:
    """Return the authenticated principal."""
    return success(current_user)


@router.get("/sessions", response_model=ApiResponse[list[SessionInfo]])
def list_sessions(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ApiResponse[list[SessionInfo]]:
    """List the devices the current user is signed in on."""
    return success(service.list_sessions(current_user.id))
