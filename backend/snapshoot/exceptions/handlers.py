"""
FastAPI exception handlers mapping messaging errors to HTTP responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from snapshoot.exceptions.base import MessagingError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("ValidationError for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.info("NotFoundError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    # exc.__cause__ carries the driver error; only the generic message goes out
    logger.error("StorageError for %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    logger.warning("MessagingError for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(MessagingError, messaging_error_handler)
