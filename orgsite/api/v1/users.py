"""User management (admin) and own-avatar endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from orgsite.api.v1.auth import get_blob_store, get_current_user, require_admin
from orgsite.core.config import get_settings
from orgsite.core.database import get_db
from orgsite.repositories import UserRepository
from orgsite.schemas.auth import CurrentUser, PublicUser
from orgsite.schemas.envelope import ApiResponse, no_content, paginated, success
from orgsite.schemas.user import UpdateUserRequest
from orgsite.services.avatars import AvatarService
from orgsite.services.blob_store import BlobStore
from orgsite.services.users import UserService

router = APIRouter()

MAX_PER_PAGE = 100


def get_user_service(db: Annotated[Session, Depends(get_db)]) -> UserService:
    return UserService(UserRepository(db), bcrypt_rounds=get_settings().BCRYPT_ROUNDS)


def get_avatar_service(
    db: Annotated[Session, Depends(get_db)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> AvatarService:
    return AvatarService(db, blob_store, get_settings())


@router.get("", response_model=ApiResponse[list[PublicUser]])
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    service: Annotated[UserService, Depends(get_user_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=MAX_PER_PAGE)] = 20,
) -> ApiResponse[list[PublicUser]]:
    """Paginated list of users (public fields only)."""
    users, total = service.list_users(page, per_page)
    return paginated(users, page=page, per_page=per_page, total=total)


@router.patch("", response_model=ApiResponse[PublicUser])
def update_user(
    body: UpdateUserRequest,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> ApiResponse[PublicUser]:
    """Edit another user's name, username, password or role."""
    return success(service.update_user(body), "User updated successfully")


@router.delete("/{user_id}", response_model=ApiResponse[None])
def delete_user(
    user_id: int,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> ApiResponse[None]:
    """Delete a user. Their sessions are removed and their avatar is queued for cleanup."""
    service.delete_user(user_id)
    return no_content("User deleted successfully")


@router.put("/me/avatar", response_model=ApiResponse[PublicUser])
def replace_my_avatar(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    avatars: Annotated[AvatarService, Depends(get_avatar_service)],
    file: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[PublicUser]:
    """
    Replace the current user's avatar with an uploaded image, or regenerate it
    from Gravatar when no file is sent. The old avatar is soft-deleted.
    """
    if file is None:
        user = avatars.regenerate(current_user.id)
    else:
        data = file.file.read()
        content_type = (file.content_type or "").split(";")[0].strip().lower()
        blob = avatars.upload(data, content_type)
        user = avatars.replace(current_user.id, blob)
    return success(PublicUser.model_validate(user), "Avatar updated successfully")


@router.delete("/me/avatar", response_model=ApiResponse[None])
def remove_my_avatar(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    avatars: Annotated[AvatarService, Depends(get_avatar_service)],
) -> ApiResponse[None]:
    avatars.remove(current_user.id)
    return no_content("Avatar removed successfully")
