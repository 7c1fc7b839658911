from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError, RequestRejectedError, ValidationFailedError
from .modules import Modules, build_modules
from .routers import health as health_router
from .routers import todos as todos_router
from .routers import users as users_router
from .settings import Settings, get_settings
from .utils import error_envelope, validation_messages

logger = logging.getLogger(__name__)

OPENAPI_URL = "/swagger.json"
SWAGGER_UI_URL = "/swagger-ui"

openapi_tags = [
    {"name": "health", "description": "Service health and database connectivity probes."},
    {"name": "user", "description": "Registration, login and user lookup."},
    {"name": "todo", "description": "CRUD operations for Todo items. Requires a session token."},
]


# PUBLIC_INTERFACE
def configure_logging(settings: Settings) -> None:
    """Configure root logging once per process."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _render(exc: AppError) -> JSONResponse:
    message = exc.render_message()
    logger.error(message)
    return JSONResponse(status_code=exc.status_code, content=error_envelope(message))


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Return the error envelope for any controller error.

    Response format:
        {"result": false, "message": "...", "data": null}
    """
    return _render(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map body/query validation failures to a single joined message with HTTP 400."""
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        detail = "; ".join(str(err.get("ctx", {}).get("error", err.get("msg"))) for err in errors)
        return _render(RequestRejectedError(f"Failed to parse the request body as JSON: {detail}"))
    return _render(ValidationFailedError(validation_messages(errors)))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _render(AppError("abnormal uri"))
    return JSONResponse(status_code=exc.status_code, content=error_envelope(str(exc.detail)), headers=exc.headers)


def _install_timeout(app: FastAPI, timeout_seconds: float) -> None:
    @app.middleware("http")
    async def request_timeout(request: Request, call_next: Any) -> Any:
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"{request.method} {request.url.path} timed out after {timeout_seconds}s")
            return _render(AppError("time out."))


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, modules: Optional[Modules] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; read from the environment when omitted.
        modules: Pre-built dependency graph; built from ``settings`` when omitted.

    Returns:
        A FastAPI app whose ``state.modules`` holds the dependency graph.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    modules = modules or build_modules(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting todo backend (backend={settings.persistence_backend}, debug={settings.debug})")
        logger.info(f"CORS origins: {settings.allowed_origins}")
        modules.database.open()
        if settings.persistence_backend == "postgres" and settings.database_init_schema:
            from .db import init_schema

            init_schema(modules.database)  # type: ignore[arg-type]
        yield
        logger.info("Shutting down todo backend")
        modules.database.close()

    app = FastAPI(
        title="Todo Backend",
        description="Todo and user REST API with JWT session authentication.",
        version="1.0.0",
        openapi_tags=openapi_tags,
        openapi_url=OPENAPI_URL,
        docs_url=SWAGGER_UI_URL,
        redoc_url=None,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.modules = modules

    # Configure CORS based on settings (ALLOWED_ORIGIN), with '*' fallback
    allow_all = (settings.allowed_origins == ["*"]) or (len(settings.allowed_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.allowed_origins,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Authorization", "Accept", "Content-Type"],
        expose_headers=["Authorization"],
    )
    _install_timeout(app, settings.request_timeout_seconds)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Include routers
    app.include_router(health_router.router)
    app.include_router(users_router.auth_router)
    app.include_router(users_router.user_router)
    app.include_router(todos_router.router)
    return app


# PUBLIC_INTERFACE
def run() -> None:
    """Serve the application with uvicorn on HOST:PORT."""
    import uvicorn

    settings = app.state.modules.settings
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


app = create_app()
