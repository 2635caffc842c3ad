"""
Storefront - Main Application
Order, payment and catalog API for the storefront and its Discord bot.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.routes import catalog, internal, orders, payments, reviews, settings as settings_routes
from storefront.core.config import Settings, load_settings
from storefront.core.database import DocumentStore
from storefront.core.errors import install_error_handlers
from storefront.core.security import SecurityHeadersMiddleware
from storefront.services.mail_queue import Mailer
from storefront.services.notifications import BotBridge, StaffLogger
from storefront.services.payments import PaymentGateways

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> FastAPI:
    """
    Build the application with its collaborators.

    Tests pass their own store and an httpx client on a MockTransport; in
    production both are built from settings.
    """
    settings = settings or load_settings()
    store = store or DocumentStore.from_url(settings.DATABASE_URL)

    # ============================================================
    # LIFESPAN
    # ============================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
        await store.init()
        logger.info("✅ Document store initialized")
        yield
        await store.close()
        logger.info("🛑 Shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.store = store
    app.state.gateways = PaymentGateways(store, settings, http_client)
    app.state.bot = BotBridge(settings.BOT_WEBHOOK_URL, http_client, settings.HTTP_TIMEOUT)
    app.state.staff_log = StaffLogger(
        settings.DISCORD_BOT_TOKEN,
        settings.STAFF_LOG_CHANNEL_ID,
        http_client,
        settings.HTTP_TIMEOUT
    )
    app.state.mailer = Mailer(settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    install_error_handlers(app)

    # ============================================================
    # ROUTES
    # ============================================================

    app.include_router(orders.router)
    app.include_router(catalog.router)
    app.include_router(reviews.router)
    app.include_router(settings_routes.router)
    app.include_router(internal.router)
    # Catch-all /api/{gateway}/... paths go last
    app.include_router(payments.router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": settings.APP_NAME}

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    app_settings = load_settings()
    uvicorn.run(
        create_app(app_settings),
        host="0.0.0.0",
        port=8000,
        log_level="debug" if app_settings.DEBUG else "info"
    )
