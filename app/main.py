"""
Application entry point.

Run locally:
    uvicorn app.main:app --reload --port 8000

API docs available at:
    http://localhost:8000/docs   (Swagger UI)
    http://localhost:8000/redoc  (ReDoc)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.dependencies import get_dispatcher
from app.core.exceptions import AppException, StoreError
from app.core.rate_limiter import limiter
from app.routers import auth, friends, register, users

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The dispatcher worker must live on the server's event loop
    dispatcher = get_dispatcher()
    dispatcher.start()
    logger.info(f"{settings.app_name} started (store backend: {settings.store_backend})")
    yield
    await dispatcher.stop()


async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": exc.kind, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Unhandled store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"kind": "store_error", "detail": "Storage backend unavailable"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Social Core API",
        description=(
            "Account lifecycle and follow graph backend: OAuth provisioning, "
            "OTP-gated registration and password reset, JWT sessions, follow requests."
        ),
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Errors ────────────────────────────────────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    # ── CORS ──────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(register.register_router, prefix="/auth/register", tags=["Registration"])
    app.include_router(register.forgot_router, prefix="/auth/forgot-password", tags=["Forgot Password"])
    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(friends.router, prefix="/api/friends", tags=["Friends"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])

    # ── Health Check ──────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health_check():
        return {"status": "ok", "version": APP_VERSION}

    return app


app = create_app()
