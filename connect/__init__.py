"""Connected payout accounts: onboarding and status synchronization.

The payment processor is the source of truth for whether a seller can
receive payouts; the flag stored on the user is only a cache that the
synchronizer corrects whenever it disagrees.
"""

import logging
from typing import Any, Dict, List, NamedTuple, Optional

from config import SettlementConfig
from payments import PaymentError, PaymentsNotConfiguredError
from users import UserManager

logger = logging.getLogger(__name__)

class ConnectError(Exception):
    """Base exception for connected account operations."""
    pass

class NoConnectedAccountError(ConnectError):
    """Raised when the seller has not created a connected account yet."""
    pass

class ConnectStatus(NamedTuple):
    """Payout capability of a seller."""
    has_account: bool
    payouts_enabled: bool

class StatusSynchronizer:
    """Reconciles the cached payouts flag with the payment processor."""

    def __init__(self, users: UserManager, gateway):
        self.users = users
        self.gateway = gateway

    async def sync(self, user: Optional[Dict[str, Any]]) -> ConnectStatus:
        """Get the seller's payout status, correcting the cache on mismatch.

        When the processor cannot be reached the cached flag is returned.

        Args:
            user: Seller row, may be None

        Returns:
            ConnectStatus
        """
        if not user or not user.get('payout_account_id'):
            return ConnectStatus(has_account=False, payouts_enabled=False)

        cached = bool(user.get('payouts_enabled'))
        try:
            account = await self.gateway.retrieve_account(user['payout_account_id'])
        except PaymentError as e:
            logger.warning(f"Could not retrieve account {user['payout_account_id']} of user {user['id']}, using cached status: {e}")
            return ConnectStatus(has_account=True, payouts_enabled=cached)

        enabled = bool(account.get('payouts_enabled'))
        if enabled != cached:
            await self.users.set_payouts_enabled(user['id'], enabled)
            user['payouts_enabled'] = enabled
            logger.info(f"Payouts for user {user['id']} changed to {enabled}")
        return ConnectStatus(has_account=True, payouts_enabled=enabled)

class OnboardingManager:
    """Creates connected accounts and hosted onboarding links."""

    def __init__(self, users: UserManager, gateway, synchronizer: StatusSynchronizer, drain, config: SettlementConfig):
        """Initialize onboarding.

        Args:
            users: User manager storing account ids
            gateway: Payment processor gateway
            synchronizer: Status synchronizer
            drain: Payout drain run when a seller returns with payouts enabled
            config: Settlement config (country, base URL)
        """
        self.users = users
        self.gateway = gateway
        self.synchronizer = synchronizer
        self.drain = drain
        self.config = config

    async def ensure_account(self, user: Dict[str, Any]) -> str:
        """Return a usable connected account id for the seller.

        An account id that the processor no longer recognizes (for example
        after switching between test and live keys) is replaced.

        Raises:
            PaymentError: If the account cannot be created
        """
        account_id = user.get('payout_account_id')
        if account_id:
            try:
                await self.gateway.retrieve_account(account_id)
                return account_id
            except PaymentsNotConfiguredError:
                raise
            except PaymentError as e:
                logger.warning(f"Stale payout account {account_id} for user {user['id']}, recreating: {e}")

        account = await self.gateway.create_account(user.get('email'), self.config.connect_country)
        await self.users.set_payout_account(user['id'], account['id'])
        user['payout_account_id'] = account['id']
        user['payouts_enabled'] = False
        return account['id']

    async def create_onboarding_link(self, user: Dict[str, Any]) -> str:
        """Create the hosted onboarding URL for the seller.

        Returns:
            URL to redirect the seller to
        """
        account_id = await self.ensure_account(user)
        link = await self.gateway.create_account_link(
            account_id,
            refresh_url=f"{self.config.base_url}/connect/refresh",
            return_url=f"{self.config.base_url}/connect/return"
        )
        logger.info(f"Created onboarding link for user {user['id']} ({account_id})")
        return link['url']

    async def complete_onboarding(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Handle the seller's return from onboarding.

        Synchronizes the payout status, then retries the seller's queued
        transfers when payouts are enabled.

        Raises:
            NoConnectedAccountError: If the seller has no connected account
        """
        if not user.get('payout_account_id'):
            raise NoConnectedAccountError("No connected account found")

        status = await self.synchronizer.sync(user)
        drained: List[Dict[str, Any]] = []
        if status.payouts_enabled:
            drained = await self.drain.drain_for_seller(user)
        return {
            'has_account': status.has_account,
            'payouts_enabled': status.payouts_enabled,
            'drained': drained,
        }

__all__ = [
    'StatusSynchronizer',
    'OnboardingManager',
    'ConnectStatus',
    'ConnectError',
    'NoConnectedAccountError',
]
