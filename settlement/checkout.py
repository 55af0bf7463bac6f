"""Hosted checkout session creation."""

import logging
from typing import Any, Dict

from config import SettlementConfig
from payments import PaymentError
from users import LegalProfile
from .fees import split_fee, transfer_group_for

logger = logging.getLogger(__name__)

class CheckoutError(Exception):
    """Raised when a checkout session cannot be offered."""
    pass

class LegalProfileIncompleteError(CheckoutError):
    """Raised when a business seller has not published their legal profile."""
    pass

class CheckoutManager:
    """Builds hosted checkout sessions for single items."""

    def __init__(self, users, gateway, config: SettlementConfig):
        self.users = users
        self.gateway = gateway
        self.config = config

    async def create_session(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Create a checkout session for one unit of an item.

        When Connect is enabled and the seller's account can accept charges,
        the session uses a destination charge that routes the seller's share
        directly and keeps the platform fee as an application fee. Otherwise
        the platform receives the funds and settlement transfers later.

        Args:
            item: Item to sell

        Returns:
            Dict with session_id and url

        Raises:
            LegalProfileIncompleteError: If a business seller's profile is incomplete
            PaymentError: If the processor rejects the session
        """
        seller = None
        if item.get('owner_user_id'):
            seller = await self.users.get_user(item['owner_user_id'])

        if seller:
            profile = LegalProfile(**(seller.get('legal') or {}))
            if not profile.is_complete:
                raise LegalProfileIncompleteError("Seller has not completed the required business disclosure")

        destination = None
        if self.config.use_connect and seller and seller.get('payout_account_id'):
            try:
                account = await self.gateway.retrieve_account(seller['payout_account_id'])
                if account.get('charges_enabled'):
                    destination = seller['payout_account_id']
            except PaymentError as e:
                logger.warning(f"Could not retrieve account of seller {seller['id']}, using platform charge: {e}")

        base_url = self.config.base_url
        metadata = {
            'itemId': str(item['id']),
            'slug': item['slug'],
            'sellerId': str(seller['id']) if seller else '',
        }
        payment_intent_data = {
            'transfer_group': transfer_group_for(item['id']),
            'metadata': metadata,
        }
        if destination:
            payment_intent_data.update({
                'application_fee_amount': split_fee(item['price'], self.config.platform_fee_percent).fee,
                'transfer_data': {'destination': destination},
                'on_behalf_of': destination,
            })

        image = item.get('checkout_preview_path') or item['preview_path']
        params = {
            'mode': 'payment',
            'payment_method_types': ['card'],
            'line_items': [{
                'price_data': {
                    'currency': item['currency'],
                    'unit_amount': item['price'],
                    'tax_behavior': 'inclusive',
                    'product_data': {
                        'name': item['title'],
                        'images': [image if image.startswith('http') else f"{base_url}{image}"],
                    },
                },
                'quantity': 1,
            }],
            'success_url': f"{base_url}/success?session_id={{CHECKOUT_SESSION_ID}}&slug={item['slug']}",
            'cancel_url': f"{base_url}/s/{item['slug']}",
            'metadata': metadata,
            'billing_address_collection': 'required',
            'automatic_tax': {'enabled': True},
            'customer_creation': 'always',
            'payment_intent_data': payment_intent_data,
        }

        session = await self.gateway.create_checkout_session(params)
        logger.info(
            f"Created checkout session {session['id']} for item {item['id']} "
            f"({'destination charge' if destination else 'platform charge'})"
        )
        return {'session_id': session['id'], 'url': session.get('url')}
