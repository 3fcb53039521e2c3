from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sfinsight.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from sfinsight.apps.api.openapi import install_openapi
from sfinsight.apps.api.response import REQUEST_ID_HEADER
from sfinsight.apps.api.routes.analysis import router as analysis_router
from sfinsight.apps.api.routes.auth import router as auth_router
from sfinsight.apps.api.routes.data_dictionary import router as data_dictionary_router
from sfinsight.apps.api.routes.filter_templates import router as filter_templates_router
from sfinsight.apps.api.routes.health import router as health_router
from sfinsight.apps.api.routes.issues import router as issues_router
from sfinsight.apps.api.routes.metadata import router as metadata_router
from sfinsight.apps.api.routes.orgs import router as orgs_router
from sfinsight.apps.api.routes.queries import router as queries_router
from sfinsight.core.config import get_settings
from sfinsight.core.errors import SfInsightError
from sfinsight.core.logging import configure_logging


API_PREFIX = "/api"
PUBLIC_PATHS = {f"{API_PREFIX}/health", f"{API_PREFIX}/register", f"{API_PREFIX}/login"}

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="sfinsight API", version="0.1.0")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start) * 1000.0,
            request_id,
        )
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SfInsightError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for router in (
        health_router,
        auth_router,
        orgs_router,
        metadata_router,
        queries_router,
        analysis_router,
        issues_router,
        filter_templates_router,
        data_dictionary_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    install_openapi(app, public_paths=PUBLIC_PATHS)
    logger.info("app_created demo_mode=%s auth_enabled=%s", settings.demo_mode, settings.auth_enabled)
    return app


app = create_app()
