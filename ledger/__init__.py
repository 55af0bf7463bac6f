"""Payout ledger for seller earnings that could not be transferred at settlement.

A pending transfer records money owed to a seller, keyed by the payment
intent it came from. Rows are created and updated only through enqueue,
so there is never more than one record of the same debt.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError

logger = logging.getLogger(__name__)

class TransferStatus(str, Enum):
    """Lifecycle of a pending transfer."""
    QUEUED = 'queued'
    TRANSFERRED = 'transferred'
    EXPIRED = 'expired'

class ReasonCode(str, Enum):
    """Why a seller amount was queued instead of transferred."""
    SELLER_NO_STRIPE_ACCOUNT = 'seller_no_stripe_account'
    AMOUNT_NON_POSITIVE = 'amount_non_positive'
    PAYOUTS_DISABLED = 'payouts_disabled'
    TRANSFER_EXCEPTION = 'transfer_exception'
    PAYMENT_INTENT_UNAVAILABLE = 'payment_intent_unavailable'

class RetryOutcome(str, Enum):
    """Per-row result of an administrative drain."""
    TRANSFERRED = 'transferred'
    SKIP_NO_ACCOUNT = 'skip_no_account'
    SKIP_PAYOUTS_DISABLED = 'skip_payouts_disabled'
    DESTINATION_CHARGE = 'destination_charge'
    ERROR = 'error'

TRANSITIONS = {
    TransferStatus.QUEUED: {TransferStatus.QUEUED, TransferStatus.TRANSFERRED, TransferStatus.EXPIRED},
    TransferStatus.TRANSFERRED: set(),
    TransferStatus.EXPIRED: set(),
}

class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass

class InvalidTransitionError(LedgerError):
    """Raised on a status change the lifecycle does not allow."""
    pass

def transition(current: TransferStatus, target: TransferStatus) -> TransferStatus:
    """Validate a status change.

    Raises:
        InvalidTransitionError: If target is not reachable from current
    """
    if target not in TRANSITIONS[TransferStatus(current)]:
        raise InvalidTransitionError(f"Cannot move pending transfer from {current.value} to {target.value}")
    return target

class PayoutLedger:
    """Durable queue of seller amounts awaiting transfer."""

    def __init__(self, pool=None, horizon_days: int = 180):
        """Initialize ledger.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            horizon_days: Days a queued row stays retryable
        """
        self.pool = pool
        self.horizon_days = horizon_days

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def enqueue(
        self,
        seller_id: UUID,
        item_id: UUID,
        amount: int,
        currency: str,
        payment_intent_id: str,
        transfer_group: str,
        reason: ReasonCode
    ) -> Optional[Dict[str, Any]]:
        """Record or refresh the amount owed for a payment intent.

        A replay of the same payment intent updates the queued row in place.
        Rows that already reached a terminal status are left untouched.

        Args:
            seller_id: Seller owed the amount
            item_id: Item that was sold
            amount: Seller amount in the smallest currency unit
            currency: Currency code
            payment_intent_id: Source payment intent
            transfer_group: Correlation token for the eventual transfer
            reason: Why the transfer did not happen

        Returns:
            The queued row, or None if the row is terminal

        Raises:
            DatabaseError: If the write fails
        """
        await self.ensure_pool()
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.horizon_days)
        reason = ReasonCode(reason)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO pending_transfers (
                        seller_id, item_id, amount, currency,
                        payment_intent_id, transfer_group, reason, expires_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    ON CONFLICT (payment_intent_id) DO UPDATE
                    SET amount = EXCLUDED.amount,
                        currency = EXCLUDED.currency,
                        transfer_group = EXCLUDED.transfer_group,
                        reason = EXCLUDED.reason,
                        updated_at = now()
                    WHERE pending_transfers.status = 'queued'
                    RETURNING *
                    ''',
                    seller_id,
                    item_id,
                    amount,
                    currency,
                    payment_intent_id,
                    transfer_group,
                    reason.value,
                    expires_at
                )
        except PostgresError as e:
            logger.error(
                f"Failed to queue transfer of {amount} {currency} to seller {seller_id} "
                f"(payment intent {payment_intent_id}, item {item_id}): {e}"
            )
            raise DatabaseError(f"Failed to enqueue pending transfer: {e}")

        if row:
            logger.info(
                f"Queued {amount} {currency} for seller {seller_id} "
                f"(payment intent {payment_intent_id}, reason {reason.value})"
            )
            return dict(row)
        logger.warning(f"Pending transfer for {payment_intent_id} is no longer queued, not reopened")
        return None

    async def resolve(self, payment_intent_id: str) -> bool:
        """Remove the queued row of a payment intent once its transfer succeeded.

        Returns:
            True if a row was removed

        Raises:
            DatabaseError: If the delete fails
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    '''
                    DELETE FROM pending_transfers
                    WHERE payment_intent_id = $1
                    AND status = 'queued'
                    ''',
                    payment_intent_id
                )
        except PostgresError as e:
            logger.error(f"Failed to resolve pending transfer for {payment_intent_id}: {e}")
            raise DatabaseError(f"Failed to resolve pending transfer: {e}")

        removed = result != 'DELETE 0'
        if removed:
            logger.info(f"Resolved pending transfer for {payment_intent_id}")
        return removed

    async def record_failure(self, payment_intent_id: str, error: str) -> None:
        """Keep a row queued after a failed retry, noting the error."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    '''
                    UPDATE pending_transfers
                    SET attempts = attempts + 1,
                        last_error = $2,
                        updated_at = now()
                    WHERE payment_intent_id = $1
                    AND status = 'queued'
                    ''',
                    payment_intent_id,
                    error[:500]
                )
        except PostgresError as e:
            logger.error(f"Failed to record retry failure for {payment_intent_id}: {e}")
            raise DatabaseError(f"Failed to record retry failure: {e}")

    async def get(self, payment_intent_id: str) -> Optional[Dict[str, Any]]:
        """Get the pending transfer of a payment intent."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    'SELECT * FROM pending_transfers WHERE payment_intent_id = $1',
                    payment_intent_id
                )
                return dict(row) if row else None
        except PostgresError as e:
            raise DatabaseError(f"Failed to get pending transfer: {e}")

    async def list_queued(self, seller_id: Optional[UUID] = None) -> List[Dict[str, Any]]:
        """List retryable rows, oldest first.

        Args:
            seller_id: Optional seller filter

        Returns:
            Queued rows that have not passed their expiry
        """
        await self.ensure_pool()
        query = '''
            SELECT * FROM pending_transfers
            WHERE status = 'queued'
            AND expires_at > now()
        '''
        params = []
        if seller_id:
            query += ' AND seller_id = $1'
            params.append(seller_id)
        query += ' ORDER BY created_at'

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
                return [dict(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Failed to list pending transfers: {e}")
            raise DatabaseError(f"Failed to list pending transfers: {e}")

    async def expire_overdue(self) -> int:
        """Move queued rows past their horizon to expired.

        Returns:
            Number of expired rows
        """
        transition(TransferStatus.QUEUED, TransferStatus.EXPIRED)
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                '''
                UPDATE pending_transfers
                SET status = 'expired',
                    updated_at = now()
                WHERE status = 'queued'
                AND expires_at <= now()
                '''
            )
        count = int(result.split()[-1])
        if count:
            logger.warning(f"Expired {count} pending transfers past their horizon")
        return count

from .drain import PayoutDrain  # noqa: E402

__all__ = [
    'PayoutLedger',
    'PayoutDrain',
    'TransferStatus',
    'ReasonCode',
    'RetryOutcome',
    'transition',
    'LedgerError',
    'InvalidTransitionError',
]
