"""Webhook ingestion: signature verification and at-most-once processing.

An event is processed only after its id has been recorded. Recording uses
the primary key of processed_events, so concurrent deliveries of the same
event cannot both pass the gate.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, NamedTuple, Optional

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError
from payments import SignatureVerificationError

logger = logging.getLogger(__name__)

class WebhookError(Exception):
    """Base exception for webhook ingestion."""
    pass

class WebhookNotConfiguredError(WebhookError):
    """Raised when the processor or webhook secret is not configured."""
    pass

class WebhookSignatureError(WebhookError):
    """Raised when the payload signature does not verify."""
    pass

class InsertResult(NamedTuple):
    inserted: bool

class ProcessedEventStore:
    """Records ids of events that have been accepted for processing."""

    def __init__(self, pool=None, retention_days: int = 30):
        """Initialize store.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            retention_days: Days an event id is remembered
        """
        self.pool = pool
        self.retention_days = retention_days

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def try_insert(self, event_id: str, event_type: str) -> InsertResult:
        """Record an event id unless it was seen before.

        Returns:
            InsertResult(inserted=False) for a duplicate

        Raises:
            DatabaseError: If the insert fails
        """
        await self.ensure_pool()
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.retention_days)
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO processed_events (event_id, event_type, expires_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (event_id) DO NOTHING
                    RETURNING event_id
                    ''',
                    event_id,
                    event_type,
                    expires_at
                )
        except PostgresError as e:
            logger.error(f"Database error recording event {event_id}: {e}")
            raise DatabaseError(f"Failed to record event: {e}")
        return InsertResult(inserted=row is not None)

    async def forget(self, event_id: str) -> None:
        """Release an event record so a redelivery is processed again."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('DELETE FROM processed_events WHERE event_id = $1', event_id)
        except PostgresError as e:
            logger.error(f"Could not release event {event_id}, redelivery will be treated as duplicate: {e}")
            return
        logger.info(f"Released event {event_id} for redelivery")

    async def purge_expired(self) -> int:
        """Delete event records past retention.

        Returns:
            Number of deleted records
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            result = await conn.execute('DELETE FROM processed_events WHERE expires_at <= now()')
        count = int(result.split()[-1])
        if count:
            logger.info(f"Purged {count} processed events past retention")
        return count

class WebhookGate:
    """Verifies, deduplicates and dispatches processor webhooks."""

    def __init__(self, gateway, events: ProcessedEventStore, orchestrator):
        self.gateway = gateway
        self.events = events
        self.orchestrator = orchestrator

    async def ingest(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Ingest one webhook delivery.

        Args:
            payload: Raw request body
            signature: Signature header value

        Returns:
            {'received': True} or {'received': True, 'duplicate': True}

        Raises:
            WebhookNotConfiguredError: If webhooks cannot be verified
            WebhookSignatureError: If the signature is invalid
            DatabaseError: If processing failed before its effects were stored
        """
        if not self.gateway.webhook_configured:
            raise WebhookNotConfiguredError("Webhook not configured")

        try:
            event = self.gateway.verify_event(payload, signature)
        except SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(str(e))

        event_id = event['id']
        event_type = event['type']

        result = await self.events.try_insert(event_id, event_type)
        if not result.inserted:
            logger.info(f"Duplicate delivery of event {event_id} ({event_type})")
            return {'received': True, 'duplicate': True}

        try:
            await self.orchestrator.handle_event(event)
        except (DatabaseError, PostgresError):
            logger.exception(f"Database failure handling event {event_id} ({event_type})")
            await self.events.forget(event_id)
            raise
        except Exception:
            logger.exception(f"Unexpected error handling event {event_id} ({event_type})")

        return {'received': True}

__all__ = [
    'WebhookGate',
    'ProcessedEventStore',
    'InsertResult',
    'WebhookError',
    'WebhookNotConfiguredError',
    'WebhookSignatureError',
]
