"""Exception handlers rendering failures as the error envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookstore.utils.response import error

INVALID_REQUEST = 'Invalid request data'
INTERNAL_ERROR = 'Internal server error'


def setup_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        # unmatched routes come from the router with Starlette's stock detail
        if exc.status_code == 404 and message == 'Not Found':
            message = 'Endpoint not found'
        response = error(message, exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return error(INVALID_REQUEST, 400)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(
            f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}"
        )
        return error(INTERNAL_ERROR, 500)
