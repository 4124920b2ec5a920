"""
FastAPI Application Factory.

Creates and configures the FastAPI application with the secrets API,
provider webhook receivers, middleware, and core endpoints.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from engage_core.providers import ConfigurationProvider, get_configuration_provider
from engage_core.security.encryption import DecryptionError

_logger = logging.getLogger(__name__)


def _resolve_allowed_origins(config: ConfigurationProvider) -> list[str]:
    """Build the CORS origin list from BASE_URL, adding localhost in debug."""
    base_url = config.get("server.base_url", "")
    is_debug = config.get("app.debug", False)

    allowed_origins: list[str] = []

    if base_url:
        allowed_origins.append(base_url)

    # In debug mode, also allow localhost for development
    if is_debug:
        allowed_origins.extend([
            "http://localhost:8000",
            "http://127.0.0.1:8000",
            "https://localhost:8000",
        ])

    # Security: Never fallback to ["*"]
    if not allowed_origins:
        _logger.error(
            "CRITICAL: BASE_URL not configured and not in debug mode. "
            "CORS will reject all cross-origin requests. "
            "Please set BASE_URL environment variable."
        )

    return allowed_origins


def create_base_app(
    config: ConfigurationProvider | None = None,
    title: str = "Engage Vault API",
    description: str = "Tenant secret vault and provider webhook receivers",
    version: str = "1.0.0",
) -> FastAPI:
    """
    Create and configure the base FastAPI application.

    Args:
        config: Configuration provider. Defaults to the global one.
        title: API title for OpenAPI documentation.
        description: API description for OpenAPI documentation.
        version: API version string.

    Returns:
        Configured FastAPI application instance.
    """
    config = config or get_configuration_provider()
    app = FastAPI(title=title, description=description, version=version)
    app.state.config = config

    allowed_origins = _resolve_allowed_origins(config)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    if allowed_origins:
        _logger.info(f"CORS configured with {len(allowed_origins)} origin(s): {allowed_origins}")
    else:
        _logger.warning("CORS configured with no allowed origins (all cross-origin requests will be blocked)")

    # Add security headers middleware
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Secret metadata must not be cached by intermediaries
        response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.exception_handler(DecryptionError)
    async def decryption_error_handler(request: Request, exc: DecryptionError) -> JSONResponse:
        # Never echo exception detail: it must not hint at which region failed
        _logger.error(f"Decryption failure while handling {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Secret could not be read"},
        )

    _register_core_routes(app)

    return app


def _register_core_routes(app: FastAPI) -> None:
    """Register the secrets and webhook routers plus the health check."""
    from engage_core.api.secrets import router as secrets_router
    from engage_core.api.webhooks import router as webhooks_router

    app.include_router(secrets_router)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "Engage Vault"}
