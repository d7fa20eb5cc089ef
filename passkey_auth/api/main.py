"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware and
lifecycle management.

Run with uvicorn's factory mode:
    uvicorn passkey_auth.api.main:create_app --factory
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from passkey_auth.api.routes import api_router
from passkey_auth.api.utils import error_response, get_correlation_id, set_correlation_id
from passkey_auth.challenges import InMemoryChallengeLedger
from passkey_auth.dal import InMemoryCredentialRepository, SQLCredentialRepository
from passkey_auth.exceptions import (
    AuthenticationRejected,
    ChallengeExpiredOrMissing,
    CredentialNotFound,
    PasskeyAuthError,
    RegistrationRejected,
    UnsupportedOperation,
    UserNotFound,
    UsernameTaken,
)
from passkey_auth.orchestrator import CeremonyOrchestrator
from passkey_auth.settings import Settings, get_settings
from passkey_auth.storage import build_engine, build_session_factory, close_db, init_db
from passkey_auth.verifier import PyWebAuthnVerifier

logger = structlog.get_logger()

_STATUS_BY_ERROR: list[tuple[type[PasskeyAuthError], int]] = [
    (ChallengeExpiredOrMissing, 400),
    (RegistrationRejected, 400),
    (AuthenticationRejected, 401),
    (UserNotFound, 404),
    (CredentialNotFound, 404),
    (UsernameTaken, 409),
    (UnsupportedOperation, 501),
]


def build_orchestrator(settings: Settings) -> tuple[CeremonyOrchestrator, AsyncEngine | None]:
    """Wire the orchestrator for ``settings.storage_backend``.

    Returns:
        The orchestrator and the database engine (None for the memory backend)
    """
    engine = None
    if settings.storage_backend == "database":
        engine = build_engine(settings)
        repository = SQLCredentialRepository(build_session_factory(engine))
    else:
        repository = InMemoryCredentialRepository()

    orchestrator = CeremonyOrchestrator(
        settings=settings,
        repository=repository,
        ledger=InMemoryChallengeLedger(default_ttl_ms=settings.challenge_ttl_ms),
        verifier=PyWebAuthnVerifier(),
    )
    return orchestrator, engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: verify database connectivity (database backend only)
    - Shutdown: drop pending challenges, close database connections
    """
    settings: Settings = app.state.settings
    engine: AsyncEngine | None = app.state.engine

    if engine is not None and settings.environment != "testing":
        await init_db(engine)

    yield

    ledger = app.state.orchestrator.ledger
    if isinstance(ledger, InMemoryChallengeLedger):
        ledger.clear()
    if engine is not None:
        await close_db(engine)


def create_app(
    settings: Settings | None = None,
    orchestrator: CeremonyOrchestrator | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)
        orchestrator: Optional pre-wired orchestrator (tests, embedding apps)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    engine = None
    if orchestrator is None:
        orchestrator, engine = build_orchestrator(settings)

    app = FastAPI(
        title="Passkey Auth",
        description="WebAuthn passkey registration and authentication",
        version="0.1.0",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
    )

    # Security headers (outermost = runs on every response)
    app.middleware("http")(_security_headers_middleware)

    # Correlation ID (must be before routes)
    app.middleware("http")(_correlation_middleware)

    app.include_router(api_router, prefix="/api/v1")

    _register_exception_handlers(app, settings)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Get allowed CORS origins.

    Priority:
    1. Explicit ALLOWED_ORIGINS env var (comma-separated)
    2. "*" in development/testing, otherwise the WebAuthn origin only
    """
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]

    if settings.environment in ("development", "testing"):
        return ["*"]
    return [settings.webauthn_origin]


async def _security_headers_middleware(request: Request, call_next):
    """Middleware to add security-related HTTP headers."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

    # Ceremony options carry single-use challenges
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


async def _correlation_middleware(request: Request, call_next):
    """Middleware to generate and propagate correlation IDs.

    Reuses an incoming X-Correlation-ID header when present.
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    set_correlation_id(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register custom exception handlers.

    Args:
        app: FastAPI application
        settings: Application settings (controls message sanitizing)
    """

    @app.exception_handler(PasskeyAuthError)
    async def passkey_error_handler(request: Request, exc: PasskeyAuthError) -> JSONResponse:
        """Map application errors to status codes with correlation ID."""
        status_code = 500
        for error_class, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_class):
                status_code = code
                break

        correlation_id = get_correlation_id() or exc.correlation_id
        logger.warning(
            "Passkey error",
            error_type=exc.code,
            status_code=status_code,
            correlation_id=correlation_id,
        )

        if status_code >= 500 and not settings.debug:
            message = f"An error occurred. Correlation ID: {correlation_id}"
        else:
            message = str(exc)
        return error_response(status_code, message, exc.code, correlation_id=correlation_id)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent format."""
        return error_response(exc.status_code, str(exc.detail), "http_error")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Missing or malformed request fields are a 400, not a 422."""
        fields = sorted(
            {
                ".".join(str(part) for part in err["loc"][1:])
                for err in exc.errors()
                if len(err["loc"]) > 1
            }
        )
        message = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Invalid request"
        return error_response(400, message, "validation_error")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception(
            "Unhandled exception",
            correlation_id=correlation_id,
            exc_info=exc,
        )

        detail = str(exc) if settings.debug else "Internal server error"
        return error_response(500, detail, "internal_error", correlation_id=correlation_id)
