"""Service wiring shared by the routers."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from config import SettlementConfig
from connect import StatusSynchronizer, OnboardingManager
from downloads import DownloadTokenIssuer, DownloadService
from items import ItemManager
from items.upload import ItemUploader
from ledger import PayoutLedger, PayoutDrain
from payments import StripeGateway
from settlement import SettlementOrchestrator, CheckoutManager
from storage import ObjectStore
from users import UserManager
from webhooks import ProcessedEventStore, WebhookGate

logger = logging.getLogger(__name__)

class Services:
    """Components used by the API, built once per application."""

    def __init__(
        self,
        settings: Dict[str, Any],
        config: SettlementConfig,
        gateway,
        items,
        users,
        tokens,
        ledger,
        events,
        store: Optional[ObjectStore] = None
    ):
        self.settings = settings
        self.config = config
        self.gateway = gateway
        self.items = items
        self.users = users
        self.tokens = tokens
        self.ledger = ledger
        self.events = events
        self.store = store

        self.synchronizer = StatusSynchronizer(users, gateway)
        self.drain = PayoutDrain(ledger, users, gateway, self.synchronizer)
        self.onboarding = OnboardingManager(users, gateway, self.synchronizer, self.drain, config)
        self.orchestrator = SettlementOrchestrator(
            items, users, tokens, ledger, gateway, self.synchronizer, config
        )
        self.webhook_gate = WebhookGate(gateway, events, self.orchestrator)
        self.checkout = CheckoutManager(users, gateway, config)
        self.downloads = DownloadService(tokens, items, store, config.signed_url_ttl_seconds)
        self.uploader = ItemUploader(
            items,
            store,
            uploads_dir=settings.get('uploads_dir', 'uploads'),
            previews_dir=settings.get('previews_dir', 'previews'),
            currency=config.currency
        )

def build_services(pool, settings: Dict[str, Any]) -> Services:
    """Build the production services on a database pool.

    Args:
        pool: asyncpg pool
        settings: Validated settings

    Returns:
        Services
    """
    config = SettlementConfig.from_settings(settings)
    gateway = StripeGateway(settings['stripe_secret_key'], settings['stripe_webhook_secret'])
    if not gateway.configured:
        logger.warning("stripe_secret_key is not set, checkout and settlement are disabled")

    store = None
    if settings.get('s3_bucket'):
        store = ObjectStore(
            settings['s3_bucket'],
            region=settings.get('s3_region'),
            endpoint_url=settings.get('s3_endpoint_url')
        )
    else:
        logger.info(f"No s3_bucket configured, originals are stored under {settings.get('uploads_dir')}")

    return Services(
        settings=settings,
        config=config,
        gateway=gateway,
        items=ItemManager(pool, min_price=config.min_price),
        users=UserManager(pool),
        tokens=DownloadTokenIssuer(pool, ttl_minutes=config.download_token_ttl_minutes),
        ledger=PayoutLedger(pool, horizon_days=config.pending_transfer_horizon_days),
        events=ProcessedEventStore(pool, retention_days=config.processed_event_retention_days),
        store=store
    )

def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
