"""
Application factory: routers, exception handlers and the root/health endpoints.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .config.database import get_database_manager, lifespan
from .config.settings import get_settings
from .errors import StorefrontError
from .routes import announcements, orders, payments, realtime
from .schemas.common import ErrorResponse, HealthCheckResponse, RootResponse
from .utils.serializers import utcnow

logger = logging.getLogger(__name__)


def _error_body(message: str, details=None) -> dict:
    body = ErrorResponse(message=message, details=details or None).model_dump()
    if body["details"] is None:
        del body["details"]
    return body


def _field_name(loc) -> str:
    # Drop the leading "body"/"query"/"path" marker
    parts = [str(part) for part in loc[1:]] or [str(part) for part in loc]
    return ".".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure in the {success, message, data} envelope."""
    settings = get_settings()

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = {}
        for error in exc.errors():
            message = error.get("msg", "Invalid value")
            errors[_field_name(error.get("loc", ()))] = message.removeprefix("Value error, ")
        summary = "; ".join(f"{field}: {message}" for field, message in errors.items())
        return JSONResponse(status_code=400, content=_error_body(f"Validation error: {summary}", errors))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
        details = {"error": str(exc)} if settings.debug else None
        return JSONResponse(status_code=500, content=_error_body("Internal server error", details))


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    app.include_router(orders.router, prefix=settings.api_prefix)
    app.include_router(payments.router, prefix=settings.api_prefix)
    app.include_router(announcements.router, prefix=settings.api_prefix)
    app.include_router(realtime.router)

    @app.get("/", response_model=RootResponse, tags=["Root"])
    async def root():
        """Root endpoint - Always accessible"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "status": "running",
            "timestamp": utcnow().isoformat(),
        }

    @app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint - Always accessible"""
        manager = get_database_manager()
        try:
            if manager.is_connected():
                await manager.get_database().command("ping")
                db_status = "connected"
            else:
                db_status = "disconnected"
        except Exception as e:
            db_status = f"error: {str(e)}"

        return {
            "status": "healthy",
            "database": db_status,
            "timestamp": utcnow().isoformat(),
            "version": settings.app_version,
        }

    return app


app = create_app()
