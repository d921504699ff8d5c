import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from bullionapi import containers
from bullionapi.config import settings
from bullionapi.core.exception_handlers import (
    handle_base_api_exception,
    handle_unexpected_error,
    handle_validation_error,
)
from bullionapi.core.exceptions import BaseAPIException
from bullionapi.core.logging_middleware import LoggingMiddleware
from bullionapi.logging_config import setup_logging
from bullionapi.routers import payment_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.container = containers.Container()  # type: ignore

    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    app.include_router(payment_router.router, prefix=settings.API_V1_STR)
    return app


app = create_app()
