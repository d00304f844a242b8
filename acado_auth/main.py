"""
Acado Auth - FastAPI Application
Session and credential-recovery service for the admissions platform.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from acado_auth.config import settings
from acado_auth.core.exceptions import AcadoAuthException
from acado_auth.database import init_db
from acado_auth.api import auth
from acado_auth.schemas.common import HealthResponse

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    await init_db()
    yield
    # Shutdown


def register_exception_handlers(app: FastAPI) -> None:
    """Render domain errors as {"detail", "code"} with their status code."""

    @app.exception_handler(AcadoAuthException)
    async def handle_auth_exception(request: Request, exc: AcadoAuthException):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")

        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
            headers=headers,
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Acado Auth API",
        description="Sessions, refresh token rotation and password recovery",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS Configuration (cookies need explicit origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(auth.router)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check."""
        return HealthResponse()

    return app


app = create_app()
