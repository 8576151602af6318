"""
HRFlow - FastAPI application wiring.

1. /docs and /openapi.json at root level (no API prefix)
2. Middleware order: CORS -> RequestId
3. init_db() only at startup
4. Orchestrators built once per app and handed out through dependencies
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from hrflow.core.config import settings
from hrflow.core.exceptions import AppException
from hrflow.core.logging import request_id_var, setup_logging
from hrflow.database import SessionLocal, init_db
from hrflow.routers.api_router import api_router
from hrflow.services.appraisal_service import AppraisalService
from hrflow.services.leave_service import LeaveService
from hrflow.services.notification import InAppNotifier, Notifier
from hrflow.services.onboarding_service import OnboardingService

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagates X-Request-ID into the logging context and back to the client."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(settings.request_id_header) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[settings.request_id_header] = request_id
        return response


def create_app(
    session_factory: Callable[[], Session] = SessionLocal,
    notifier: Optional[Notifier] = None,
    initialize_db: bool = True,
) -> FastAPI:
    notifier = notifier or InAppNotifier(session_factory)

    # ========================================================================
    # LIFESPAN MANAGEMENT
    # ========================================================================
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})")
        if initialize_db:
            try:
                init_db()
                logger.info("Database initialized successfully")
            except SQLAlchemyError as e:
                logger.error(f"Database initialization failed: {e}")
                raise
        yield
        logger.info("Gracefully shutting down...")

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="HR back-office workflow engine: appraisal cycles, onboarding workflows and leave management",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.session_factory = session_factory
    app.state.notifier = notifier
    app.state.appraisal_service = AppraisalService(session_factory, notifier)
    app.state.onboarding_service = OnboardingService(session_factory, notifier)
    app.state.leave_service = LeaveService(session_factory, notifier)

    # ========================================================================
    # MIDDLEWARE STACK (last added runs first)
    # ========================================================================
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.request_id_header],
    )

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors (422) with structured format."""
        errors = []
        for error in exc.errors():
            field = error["loc"][-1] if len(error["loc"]) > 0 else "unknown"
            errors.append({"field": str(field), "msg": error["msg"]})

        logger.warning(f"Validation Error: {errors}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"success": False, "errors": errors}
        )

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle domain exceptions raised outside the service boundary."""
        logger.warning(f"AppException: {exc.message}", extra={"code": exc.error_code})
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "errors": [{"msg": exc.message, "code": exc.error_code}]
            }
        )

    @app.exception_handler(StarletteHTTPException)
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "errors": [{"msg": exc.detail if isinstance(exc.detail, str) else "Request failed"}]
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Fallback handler for unhandled server errors."""
        logger.exception("Unhandled server error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "errors": [{"msg": "An unexpected server error occurred."}]
            }
        )

    # ========================================================================
    # ROUTERS (API prefix applied only to routers, not to docs)
    # ========================================================================
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health", tags=["Health"])
    def health_check():
        """Liveness probe for load balancers and orchestrators."""
        return {
            "status": "up",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.version,
            "environment": settings.environment,
        }

    @app.get("/readiness", tags=["Health"])
    def readiness_check():
        """Readiness probe - verifies database connectivity."""
        try:
            with app.state.session_factory() as session:
                session.execute(text("SELECT 1"))
            return {
                "status": "ready",
                "components": {"database": "connected"},
            }
        except SQLAlchemyError as e:
            logger.error(f"Readiness check failed: {e}")
            raise HTTPException(status_code=503, detail="Service not ready")

    return app


app = create_app()
