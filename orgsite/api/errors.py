"""Map service, storage, and HTTP errors onto the response envelope."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

from orgsite.services.errors import ServiceError

logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    message: str,
    data: object = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = {"statusCode": status_code, "message": message, "data": jsonable_encoder(data)}
    if status_code == 401:
        headers = {"WWW-Authenticate": "Bearer", **(headers or {})}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so every error body has the same envelope shape."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "Request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
                "error": type(exc).__name__,
            },
        )
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning(
            "Constraint violation",
            extra={"path": request.url.path, "method": request.method},
        )
        return error_response(409, "Unique constraint failed")

    @app.exception_handler(NoResultFound)
    async def handle_no_result(request: Request, exc: NoResultFound) -> JSONResponse:
        return error_response(404, "Record not found")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(422, "Invalid data provided", data=exc.errors())
