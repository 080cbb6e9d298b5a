"""Reference FastAPI backend for the assessment sync engine.

Serves the questionnaire listing, questions-and-answers and answer upsert
operations over in-memory state, plus test-support routes. Used by the test
suite and for local development against a real HTTP surface.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from assessment_sync.http.problem import (
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from assessment_sync.logging_setup import configure_logging
from assessment_sync.routes import api_router
from assessment_sync.routes.test_support import router as test_support_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Assessment reference backend")
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(api_router, prefix=API_PREFIX)
    # Test-support router has no prefix
    app.include_router(test_support_router)

    @app.get("/health", include_in_schema=False)
    def health() -> dict:
        return {"status": "ok"}

    logger.info("app_created prefix=%s", API_PREFIX)
    return app


__all__ = ["create_app", "API_PREFIX"]


# Intentionally do not instantiate the app at import time to prevent side effects.
