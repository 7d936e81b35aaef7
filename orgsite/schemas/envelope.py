"""Uniform response envelope: {statusCode, message, data[, pagination]}."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class PaginationMeta(BaseModel):
    page: int
    per_page: int = Field(alias="perPage")
    total: int
    total_pages: int = Field(alias="totalPages")

    class Config:
        populate_by_name = True


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope wrapped around every JSON response body."""

    status_code: int = Field(default=200, alias="statusCode")
    message: str = "Success"
    data: DataT | None = None
    pagination: PaginationMeta | None = None

    class Config:
        populate_by_name = True


def build_pagination_meta(page: int, per_page: int, total: int) -> PaginationMeta:
    return PaginationMeta(
        page=page,
        per_page=per_page,
        total=total,
        total_pages=math.ceil(total / per_page) if per_page > 0 else 0,
    )


def success(data: DataT = None, message: str = "Success") -> ApiResponse[DataT]:
    return ApiResponse(status_code=200, message=message, data=data)


def created(data: DataT = None, message: str = "Created successfully") -> ApiResponse[DataT]:
    return ApiResponse(status_code=201, message=message, data=data)


def no_content(message: str = "No content") -> ApiResponse[None]:
    return ApiResponse(status_code=204, message=message)


def paginated(
    data: DataT,
    page: int,
    per_page: int,
    total: int,
    message: str = "Success",
) -> ApiResponse[DataT]:
    return ApiResponse(
        status_code=200,
        message=message,
        data=data,
        pagination=build_pagination_meta(page, per_page, total),
    )
