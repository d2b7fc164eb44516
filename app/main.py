import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from app.config import settings
from app.database import check_db_connection
from app.services.key_rotation import KeyRotationScheduler
from app.services.key_service import SigningKeyStore
from app.services.token_service import TokenManager
from app.utils.exceptions import AppException, CredentialException
from app.middleware.error_handler import (
    app_exception_handler,
    credential_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)

from app.api import jwks
from app.api.v1 import admin
from app.api.v1 import auth

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    ok = check_db_connection()
    logger.info("✅ DB connected" if ok else "❌ DB connection FAILED")

    # KeyGenerationError propagates: the process must not start without a key
    app.state.key_store.initialize(settings.RSA_PUBLIC_KEY, settings.RSA_PRIVATE_KEY)

    scheduler: KeyRotationScheduler | None = app.state.key_rotation_scheduler
    if scheduler is not None:
        await scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    logger.info("Shutdown complete")


def create_app(
    key_store: SigningKeyStore | None = None,
    rotation_enabled: bool | None = None,
) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Session token issuance, rotation and signing-key management",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ─── Token Core ───────────────────────────────────────────────────────────
    key_store = key_store or SigningKeyStore()
    if rotation_enabled is None:
        rotation_enabled = settings.KEY_ROTATION_ENABLED

    app.state.key_store = key_store
    app.state.token_manager = TokenManager(key_store)
    app.state.key_rotation_scheduler = (
        KeyRotationScheduler(key_store, settings.KEY_ROTATION_INTERVAL_SECONDS)
        if rotation_enabled else None
    )

    # ─── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Exception Handlers ───────────────────────────────────────────────────
    app.add_exception_handler(CredentialException, credential_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ─── Routers ──────────────────────────────────────────────────────────────
    PREFIX = "/api/v1"
    app.include_router(jwks.router,  tags=["Keys"])
    app.include_router(auth.router,  prefix=PREFIX, tags=["Auth"])
    app.include_router(admin.router, prefix=PREFIX, tags=["Admin"])

    # ─── Health ───────────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "app": settings.APP_NAME, "version": "1.0.0"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT,
                reload=settings.is_development)
