from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging

from classroom.core.exceptions import ClassroomError, InternalError, ValidationError

logger = logging.getLogger(__name__)


def _render(exc: ClassroomError) -> JSONResponse:
    content = {"error": exc.code, "detail": exc.message}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


async def classroom_exception_handler(request: Request, exc: ClassroomError):
    """Render a service error with its stable code and message"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message} - Path: {request.url.path}")
    else:
        logger.info(f"{exc.code}: {exc.message} - Path: {request.url.path}")
    return _render(exc)


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Backing store failures surface as InternalError"""
    logger.exception(f"Database error on {request.method} {request.url.path}: {exc}")
    return _render(InternalError("Internal storage error"))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters share the ValidationFailed shape"""
    logger.info(f"Request validation failed - Path: {request.url.path}")
    return _render(ValidationError("Request validation failed", details=jsonable_encoder(exc.errors())))
