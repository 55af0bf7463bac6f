"""REST API for the instant sale marketplace.

This module provides HTTP endpoints for:
- Receiving payment processor webhooks
- Checkout, the success page and one-time downloads
- Creator uploads and public sale pages
- Payout onboarding for sellers
- Administrative payout retries
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .dependencies import Services, build_services

logger = logging.getLogger(__name__)

def _mount_previews(app: FastAPI, directory: str) -> None:
    """Serve watermarked previews under /previews."""
    app.mount("/previews", StaticFiles(directory=directory, check_dir=False), name="previews")

def create_app(services: Optional[Services] = None, run_sweeper: Optional[bool] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Prebuilt services. When omitted, the database is initialized
            on startup and production services are built from the settings.
        run_sweeper: Whether to run the ledger sweep in the background,
            defaults to True only for production services.

    Returns:
        FastAPI app
    """
    if run_sweeper is None:
        run_sweeper = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        from database import init_db, get_pool, close as db_close
        from workers.ledger_sweep import run_worker

        owns_db = app.state.services is None
        if owns_db:
            from config import get_settings
            settings = get_settings()
            logger.info("Initializing database...")
            await init_db(settings['db_url'])
            app.state.services = build_services(await get_pool(), settings)
            _mount_previews(app, settings['previews_dir'])

        sweep_task = None
        if run_sweeper:
            interval = app.state.services.settings.get('sweep_interval_sec', 3600)
            sweep_task = asyncio.create_task(run_worker(app.state.services, interval))

        yield

        logger.info("Shutting down API...")
        if sweep_task:
            sweep_task.cancel()
            try:
                await sweep_task
            except asyncio.CancelledError:
                pass
        if owns_db:
            await db_close()

    app = FastAPI(
        title="Instant Sale API",
        description="Sell a single image through a link, with one-time downloads and seller payouts",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .webhooks import router as webhooks_router
    from .downloads import router as downloads_router
    from .checkout import router as checkout_router
    from .items import router as items_router
    from .connect import router as connect_router
    from .admin import router as admin_router
    from .legal import router as legal_router

    app.include_router(webhooks_router)
    app.include_router(downloads_router)
    app.include_router(checkout_router)
    app.include_router(items_router)
    app.include_router(connect_router)
    app.include_router(admin_router)
    app.include_router(legal_router)

    if services:
        _mount_previews(app, services.settings.get('previews_dir', 'previews'))

    @app.get("/")
    async def root():
        return {
            "name": "Instant Sale API",
            "version": "1.0.0",
            "status": "running"
        }

    return app

app = create_app()
