import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.config import settings
from shared.config.database import AsyncSessionLocal, Base, engine
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import get_token_vault, limiter, rate_limit_exceeded_handler
from shared.time_utils import to_utc_z, utcnow

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.sheets_service import models as sheets_models  # noqa: F401

from services.cron_service.router import router as cron_router
from services.order_service.router import public_router as public_order_router
from services.order_service.router import router as order_router
from services.sheets_service.dispatcher import SyncDispatcher
from services.sheets_service.google_auth import GoogleAuthClient
from services.sheets_service.google_sheets import GoogleSheetsClient
from services.sheets_service.oauth_state import build_oauth_state_store, purge_expired_states_periodically
from services.sheets_service.router import public_router as public_sheets_router
from services.sheets_service.router import router as sheets_router
from services.sheets_service.sync import SheetsSyncService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fails fast on a missing or malformed ENCRYPTION_KEY
    vault = get_token_vault()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    state_store = build_oauth_state_store()
    auth_client = GoogleAuthClient.from_settings(state_store)
    sheets_client = GoogleSheetsClient.from_settings()
    sync_service = SheetsSyncService(auth_client, sheets_client, vault)
    dispatcher = SyncDispatcher(AsyncSessionLocal, sync_service)

    app.state.oauth_state_store = state_store
    app.state.google_auth_client = auth_client
    app.state.google_sheets_client = sheets_client
    app.state.sheets_sync_service = sync_service
    app.state.sync_dispatcher = dispatcher

    dispatcher.start()
    purge_task = asyncio.create_task(purge_expired_states_periodically(state_store))
    logger.info("app_started", service=settings.SERVICE_NAME, version=settings.SERVICE_VERSION)

    yield

    purge_task.cancel()
    try:
        await purge_task
    except asyncio.CancelledError:
        pass
    await dispatcher.stop()
    await state_store.close()
    await engine.dispose()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Livey API", version=settings.SERVICE_VERSION, lifespan=lifespan)

    # --- OBSERVABILITY BOOTSTRAP ---
    setup_observability(app, settings.SERVICE_NAME)

    # --- SECURITY SETUP ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.include_router(public_order_router)
    app.include_router(order_router)
    app.include_router(public_sheets_router)
    app.include_router(sheets_router)
    app.include_router(cron_router)

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {
            "status": "ok",
            "timestamp": to_utc_z(utcnow()),
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
        }

    return app


app = create_app()
