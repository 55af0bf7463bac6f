"""Settlement of paid checkout sessions.

For every paid session the buyer gets a download token and the seller's
share is either already routed by a destination charge, transferred from
the platform balance, or recorded in the payout ledger. The token is
issued before any payout work, so buyer delivery never depends on the
payout outcome.
"""

import logging
from typing import Any, Dict, NamedTuple, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError

from config import SettlementConfig
from database import DatabaseError
from ledger import PayoutLedger, ReasonCode
from payments import PaymentError, transfer_idempotency_key
from .fees import FeeSplit, split_fee, transfer_group_for

logger = logging.getLogger(__name__)

SETTLING_EVENTS = {
    'checkout.session.completed',
    'checkout.session.async_payment_succeeded',
}
FAILED_PAYMENT_EVENT = 'checkout.session.async_payment_failed'

class Routing:
    """How a seller's share ended up."""
    DESTINATION_CHARGE = 'destination_charge'
    TRANSFERRED = 'transferred'
    QUEUED = 'queued'
    NO_SELLER = 'no_seller'
    NOT_SETTLED = 'not_settled'

class SettlementResult(NamedTuple):
    """Outcome of settling one checkout session."""
    session_id: Optional[str]
    routing: str
    token: Optional[str] = None
    reason: Optional[str] = None
    fee: Optional[int] = None
    seller_amount: Optional[int] = None

class PayoutResult(NamedTuple):
    routing: str
    reason: Optional[str] = None
    split: Optional[FeeSplit] = None

class SettlementOrchestrator:
    """Turns processor events into download tokens and seller payouts."""

    def __init__(
        self,
        items,
        users,
        tokens,
        ledger: PayoutLedger,
        gateway,
        synchronizer,
        config: SettlementConfig
    ):
        """Initialize orchestrator.

        Args:
            items: Item manager
            users: User manager
            tokens: Download token issuer
            ledger: Payout ledger
            gateway: Payment processor gateway
            synchronizer: Status synchronizer
            config: Settlement config
        """
        self.items = items
        self.users = users
        self.tokens = tokens
        self.ledger = ledger
        self.gateway = gateway
        self.synchronizer = synchronizer
        self.config = config

    async def handle_event(self, event: Dict[str, Any]) -> Optional[SettlementResult]:
        """Dispatch a verified event.

        Returns:
            SettlementResult for settling events, None otherwise
        """
        event_type = event.get('type')
        session = (event.get('data') or {}).get('object') or {}

        if event_type in SETTLING_EVENTS:
            return await self.settle_session(session)
        if event_type == FAILED_PAYMENT_EVENT:
            logger.warning(f"Async payment failed for checkout session {session.get('id')}")
            return None

        logger.debug(f"Ignoring event {event.get('id')} of type {event_type}")
        return None

    async def settle_session(self, session: Dict[str, Any]) -> SettlementResult:
        """Settle a checkout session.

        Nothing happens unless the session is paid and names an item.

        Raises:
            DatabaseError: If the token or ledger write fails
        """
        session_id = session.get('id')
        item_id = (session.get('metadata') or {}).get('itemId')

        if session.get('payment_status') != 'paid' or not item_id:
            logger.info(f"Checkout session {session_id} not settled (payment_status={session.get('payment_status')}, itemId={item_id})")
            return SettlementResult(session_id=session_id, routing=Routing.NOT_SETTLED)

        item = await self._load_item(item_id)
        if not item:
            logger.warning(f"Checkout session {session_id} names unknown item {item_id}")
            return SettlementResult(session_id=session_id, routing=Routing.NOT_SETTLED)

        token = await self.ensure_download_token(item, session_id)

        payment_intent_id = session.get('payment_intent')
        if not payment_intent_id:
            logger.error(f"Checkout session {session_id} for item {item['id']} has no payment intent, payout not settled")
            return SettlementResult(session_id=session_id, routing=Routing.NOT_SETTLED, token=token['token'])

        payout = await self.settle_payout(item, payment_intent_id)
        return SettlementResult(
            session_id=session_id,
            routing=payout.routing,
            token=token['token'],
            reason=payout.reason,
            fee=payout.split.fee if payout.split else None,
            seller_amount=payout.split.seller_amount if payout.split else None,
        )

    async def ensure_download_token(self, item: Dict[str, Any], session_id: str) -> Dict[str, Any]:
        """Issue the session's download token, or return the one already issued."""
        return await self.tokens.issue(item['id'], session_id, self.config.download_token_ttl_minutes)

    async def settle_payout(self, item: Dict[str, Any], payment_intent_id: str) -> PayoutResult:
        """Route the seller's share of a paid payment intent.

        Args:
            item: Sold item
            payment_intent_id: Payment intent of the session

        Returns:
            PayoutResult with routing, reason and split

        Raises:
            DatabaseError: If the ledger write fails
        """
        intent = None
        try:
            intent = await self.gateway.retrieve_payment_intent(payment_intent_id)
        except PaymentError as e:
            logger.error(f"Could not retrieve payment intent {payment_intent_id} for item {item['id']}: {e}")

        if intent and intent.get('transfer_data'):
            logger.info(f"Payment intent {payment_intent_id} was a destination charge, no transfer needed")
            return PayoutResult(routing=Routing.DESTINATION_CHARGE)

        seller = None
        if item.get('owner_user_id'):
            seller = await self.users.get_user(item['owner_user_id'])
        if not seller:
            logger.warning(f"Item {item['id']} has no seller, nothing to pay out for {payment_intent_id}")
            return PayoutResult(routing=Routing.NO_SELLER)

        split = split_fee(item['price'], self.config.platform_fee_percent)
        transfer_group = (intent or {}).get('transfer_group') or transfer_group_for(item['id'])

        async def queue(reason: ReasonCode) -> PayoutResult:
            await self.ledger.enqueue(
                seller_id=seller['id'],
                item_id=item['id'],
                amount=split.seller_amount,
                currency=item['currency'],
                payment_intent_id=payment_intent_id,
                transfer_group=transfer_group,
                reason=reason
            )
            return PayoutResult(routing=Routing.QUEUED, reason=reason.value, split=split)

        if intent is None:
            return await queue(ReasonCode.PAYMENT_INTENT_UNAVAILABLE)
        if not seller.get('payout_account_id'):
            return await queue(ReasonCode.SELLER_NO_STRIPE_ACCOUNT)
        if split.seller_amount <= 0:
            return await queue(ReasonCode.AMOUNT_NON_POSITIVE)

        status = await self.synchronizer.sync(seller)
        if not status.payouts_enabled:
            return await queue(ReasonCode.PAYOUTS_DISABLED)

        try:
            transfer = await self.gateway.create_transfer(
                amount=split.seller_amount,
                currency=item['currency'],
                destination=seller['payout_account_id'],
                transfer_group=transfer_group,
                metadata={
                    'itemId': str(item['id']),
                    'sellerId': str(seller['id']),
                    'paymentIntentId': payment_intent_id,
                },
                idempotency_key=transfer_idempotency_key(payment_intent_id)
            )
        except Exception as e:
            logger.error(
                f"Transfer of {split.seller_amount} {item['currency']} to seller {seller['id']} failed "
                f"(payment intent {payment_intent_id}, item {item['id']}): {e}"
            )
            return await queue(ReasonCode.TRANSFER_EXCEPTION)

        logger.info(
            f"Transferred {split.seller_amount} {item['currency']} to seller {seller['id']} "
            f"({transfer.get('id')}, payment intent {payment_intent_id}, fee {split.fee})"
        )
        try:
            await self.ledger.resolve(payment_intent_id)
        except (DatabaseError, PostgresError) as e:
            # The transfer stands; a leftover row replays under the same idempotency key
            logger.error(f"Transfer for {payment_intent_id} succeeded but its pending row was not resolved: {e}")
        return PayoutResult(routing=Routing.TRANSFERRED, split=split)

    async def _load_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.items.get_item(UUID(str(item_id)))
        except ValueError:
            return None

from .checkout import CheckoutManager, CheckoutError, LegalProfileIncompleteError  # noqa: E402

__all__ = [
    'SettlementOrchestrator',
    'SettlementResult',
    'PayoutResult',
    'Routing',
    'CheckoutManager',
    'CheckoutError',
    'LegalProfileIncompleteError',
    'FeeSplit',
    'split_fee',
    'transfer_group_for',
]
