"""Payments module wrapping the Stripe API.

Every call to Stripe goes through StripeGateway, which runs the blocking
Stripe client in a worker thread and converts Stripe errors into
PaymentError so that nothing above this module depends on the stripe package.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import stripe

logger = logging.getLogger(__name__)

class PaymentError(Exception):
    """Base exception for payment processor errors"""
    def __init__(self, message: str, code: Optional[str] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"Stripe Error [{code}] in {method}: {message}" if code else message)

class PaymentsNotConfiguredError(PaymentError):
    """Raised when no Stripe secret key is configured"""
    pass

class SignatureVerificationError(PaymentError):
    """Raised when a webhook payload does not match its signature header"""
    pass

def _plain(obj: Any) -> Dict[str, Any]:
    """Convert a StripeObject into plain dictionaries.

    StripeObject renders itself as JSON, which keeps nested objects intact.
    """
    return json.loads(str(obj))

class StripeGateway:
    """Stripe client used by checkout, settlement and onboarding."""

    def __init__(self, api_key: str = '', webhook_secret: str = ''):
        """Initialize gateway.

        Args:
            api_key: Stripe secret key; an empty key leaves the gateway unconfigured
            webhook_secret: Signing secret of the webhook endpoint
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    @property
    def configured(self) -> bool:
        """Whether API calls can be made."""
        return bool(self.api_key)

    @property
    def webhook_configured(self) -> bool:
        """Whether inbound webhooks can be verified."""
        return bool(self.api_key and self.webhook_secret)

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify a webhook payload and parse its event envelope.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the Stripe-Signature header

        Returns:
            The event as a dictionary with id, type and data.object

        Raises:
            SignatureVerificationError: If the signature is missing or invalid
        """
        if not signature:
            raise SignatureVerificationError("No signatures found matching the expected signature for payload")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode('utf-8'),
                signature,
                self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            raise SignatureVerificationError(str(e), method='verify_event')

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise SignatureVerificationError(f"Invalid payload: {e}", method='verify_event')

        if not isinstance(event, dict) or 'id' not in event or 'type' not in event:
            raise SignatureVerificationError("Invalid payload: not an event envelope", method='verify_event')
        return event

    async def _call(self, method: str, func, *args, **kwargs) -> Dict[str, Any]:
        """Run a Stripe API call off the event loop.

        Args:
            method: Name used in logs and errors
            func: Stripe resource method
            *args: Positional arguments for the call
            **kwargs: Keyword arguments for the call

        Returns:
            Response as plain dictionaries

        Raises:
            PaymentsNotConfiguredError: If no API key is set
            PaymentError: If Stripe returns an error or cannot be reached
        """
        if not self.configured:
            raise PaymentsNotConfiguredError("Stripe is not configured (stripe_secret_key)", method=method)

        try:
            result = await asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            message = e.user_message or str(e)
            logger.debug(f"Stripe call {method} failed: {message}")
            raise PaymentError(message, code=e.code, method=method) from e
        return _plain(result)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        """Retrieve a payment intent, including its transfer_data."""
        return await self._call('retrieve_payment_intent', stripe.PaymentIntent.retrieve, payment_intent_id)

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """Retrieve a checkout session."""
        return await self._call('retrieve_checkout_session', stripe.checkout.Session.retrieve, session_id)

    async def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create a hosted checkout session from prepared parameters."""
        return await self._call('create_checkout_session', stripe.checkout.Session.create, **params)

    async def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        """Retrieve a connected account."""
        return await self._call('retrieve_account', stripe.Account.retrieve, account_id)

    async def create_account(self, email: Optional[str], country: str) -> Dict[str, Any]:
        """Create an Express connected account able to receive transfers."""
        return await self._call(
            'create_account',
            stripe.Account.create,
            type='express',
            country=country,
            email=email,
            capabilities={
                'transfers': {'requested': True},
                'card_payments': {'requested': True},
            }
        )

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> Dict[str, Any]:
        """Create a hosted onboarding link for a connected account."""
        return await self._call(
            'create_account_link',
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type='account_onboarding'
        )

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: str,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """Transfer funds from the platform balance to a connected account.

        Args:
            amount: Amount in the smallest currency unit
            currency: Currency code
            destination: Connected account id
            transfer_group: Correlation token shared with the payment intent
            metadata: Optional metadata for reconciliation
            idempotency_key: Key under which Stripe replays the first result

        Returns:
            The created transfer
        """
        options = {'idempotency_key': idempotency_key} if idempotency_key else {}
        return await self._call(
            'create_transfer',
            stripe.Transfer.create,
            amount=amount,
            currency=currency,
            destination=destination,
            transfer_group=transfer_group,
            metadata=metadata or {},
            **options
        )

def transfer_idempotency_key(payment_intent_id: str) -> str:
    """Idempotency key shared by every transfer attempt for one payment intent."""
    return f"transfer_{payment_intent_id}"

__all__ = [
    'StripeGateway',
    'transfer_idempotency_key',
    'PaymentError',
    'PaymentsNotConfiguredError',
    'SignatureVerificationError',
]
