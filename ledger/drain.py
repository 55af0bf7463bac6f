"""Retrying queued payouts, per seller on onboarding return or across the whole queue."""

import logging
from typing import Any, Dict, List, Optional

from asyncpg.exceptions import PostgresError

from database import DatabaseError
from payments import PaymentError, transfer_idempotency_key
from . import PayoutLedger, ReasonCode, RetryOutcome

logger = logging.getLogger(__name__)

class PayoutDrain:
    """Retries pending transfers against the payment processor."""

    def __init__(self, ledger: PayoutLedger, users, gateway, synchronizer):
        """Initialize drain.

        Args:
            ledger: Payout ledger holding the queued rows
            users: User manager used to look up sellers
            gateway: Payment processor gateway
            synchronizer: Status synchronizer deciding payout eligibility
        """
        self.ledger = ledger
        self.users = users
        self.gateway = gateway
        self.synchronizer = synchronizer

    async def drain_for_seller(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Retry every queued row of one seller, in order.

        Called after the seller returns from onboarding. A failed row is
        recorded and the drain moves on to the next one.

        Args:
            user: Seller row

        Returns:
            One outcome entry per row
        """
        rows = await self.ledger.list_queued(seller_id=user['id'])
        if not rows:
            return []

        logger.info(f"Draining {len(rows)} pending transfers for seller {user['id']}")
        status = await self.synchronizer.sync(user)
        results = []
        for row in rows:
            outcome = await self._retry_isolated(row, user, status.payouts_enabled)
            results.append(self._entry(row, outcome))
        return results

    async def drain_all(self) -> List[Dict[str, Any]]:
        """Retry the whole queue.

        Returns:
            One outcome entry per row
        """
        rows = await self.ledger.list_queued()
        logger.info(f"Administrative drain over {len(rows)} pending transfers")

        sellers = {}
        results = []
        for row in rows:
            try:
                user, enabled = await self._seller(sellers, row['seller_id'])
            except Exception:
                logger.exception(f"Could not load seller {row['seller_id']} for {row['payment_intent_id']}")
                results.append(self._entry(row, RetryOutcome.ERROR))
                continue
            outcome = await self._retry_isolated(row, user, enabled)
            results.append(self._entry(row, outcome))

        transferred = sum(1 for r in results if r['outcome'] == RetryOutcome.TRANSFERRED.value)
        logger.info(f"Administrative drain finished: {transferred}/{len(results)} transferred")
        return results

    async def _seller(self, sellers: Dict[Any, tuple], seller_id) -> tuple:
        if seller_id not in sellers:
            user = await self.users.get_user(seller_id)
            enabled = False
            if user and user.get('payout_account_id'):
                enabled = (await self.synchronizer.sync(user)).payouts_enabled
            sellers[seller_id] = (user, enabled)
        return sellers[seller_id]

    async def _retry_isolated(self, row: Dict[str, Any], user: Optional[Dict[str, Any]], payouts_enabled: bool) -> RetryOutcome:
        """Retry one row; any failure is reported as that row's outcome."""
        try:
            return await self._retry(row, user, payouts_enabled)
        except Exception:
            logger.exception(f"Retry of pending transfer {row['payment_intent_id']} failed")
            return RetryOutcome.ERROR

    async def _retry(self, row: Dict[str, Any], user: Optional[Dict[str, Any]], payouts_enabled: bool) -> RetryOutcome:
        payment_intent_id = row['payment_intent_id']

        if row['reason'] == ReasonCode.PAYMENT_INTENT_UNAVAILABLE.value:
            try:
                intent = await self.gateway.retrieve_payment_intent(payment_intent_id)
            except PaymentError as e:
                await self.ledger.record_failure(payment_intent_id, str(e))
                return RetryOutcome.ERROR
            if intent.get('transfer_data'):
                # Funds were routed by the charge itself
                await self.ledger.resolve(payment_intent_id)
                return RetryOutcome.DESTINATION_CHARGE

        if not user or not user.get('payout_account_id'):
            return RetryOutcome.SKIP_NO_ACCOUNT

        if row['amount'] <= 0:
            await self.ledger.record_failure(payment_intent_id, 'amount_non_positive')
            return RetryOutcome.ERROR

        if not payouts_enabled:
            return RetryOutcome.SKIP_PAYOUTS_DISABLED

        try:
            transfer = await self.gateway.create_transfer(
                amount=row['amount'],
                currency=row['currency'],
                destination=user['payout_account_id'],
                transfer_group=row['transfer_group'],
                metadata={
                    'itemId': str(row['item_id']),
                    'sellerId': str(row['seller_id']),
                    'paymentIntentId': payment_intent_id,
                },
                idempotency_key=transfer_idempotency_key(payment_intent_id)
            )
        except Exception as e:
            logger.error(
                f"Retry of {row['amount']} {row['currency']} to seller {row['seller_id']} failed "
                f"(payment intent {payment_intent_id}, item {row['item_id']}): {e}"
            )
            await self.ledger.record_failure(payment_intent_id, str(e))
            return RetryOutcome.ERROR

        logger.info(f"Transferred {row['amount']} {row['currency']} to seller {row['seller_id']} ({transfer.get('id')})")
        try:
            await self.ledger.resolve(payment_intent_id)
        except (DatabaseError, PostgresError) as e:
            # The next drain replays the transfer under the same idempotency key
            logger.error(f"Transfer for {payment_intent_id} succeeded but its pending row was not resolved: {e}")
        return RetryOutcome.TRANSFERRED

    @staticmethod
    def _entry(row: Dict[str, Any], outcome: RetryOutcome) -> Dict[str, Any]:
        return {
            'payment_intent_id': row['payment_intent_id'],
            'seller_id': str(row['seller_id']),
            'amount': row['amount'],
            'outcome': outcome.value,
        }
