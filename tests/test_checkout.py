"""Tests for checkout session creation."""

import pytest

from settlement import LegalProfileIncompleteError

@pytest.mark.asyncio
async def test_platform_charge(services, items, seller, gateway):
    """Test the session parameters of a platform charge."""
    item = items.add(owner_user_id=seller['id'], price=1000, slug='abc')

    result = await services.checkout.create_session(item)

    assert result['session_id'] == 'cs_test_1'
    params = gateway.checkout_params[0]
    assert params['line_items'][0]['price_data']['unit_amount'] == 1000
    assert params['metadata'] == {'itemId': str(item['id']), 'slug': 'abc', 'sellerId': str(seller['id'])}
    assert params['payment_intent_data']['transfer_group'] == f"item_{item['id']}"
    assert 'transfer_data' not in params['payment_intent_data']
    assert params['success_url'] == 'https://sale.example.com/success?session_id={CHECKOUT_SESSION_ID}&slug=abc'
    assert params['line_items'][0]['price_data']['product_data']['images'] == [
        'https://sale.example.com/previews/sunset-checkout.jpg'
    ]

@pytest.mark.asyncio
async def test_destination_charge_when_seller_can_charge(services, config, items, seller, gateway):
    """Test that Connect sellers with charges enabled get a destination charge."""
    services.checkout.config = config.model_copy(update={'use_connect': True})
    gateway.accounts['acct_seller']['charges_enabled'] = True
    item = items.add(owner_user_id=seller['id'], price=1000)

    await services.checkout.create_session(item)

    data = gateway.checkout_params[0]['payment_intent_data']
    assert data['application_fee_amount'] == 200
    assert data['transfer_data'] == {'destination': 'acct_seller'}
    assert data['on_behalf_of'] == 'acct_seller'
    assert gateway.checkout_params[0]['payment_method_types'] == ['card']

@pytest.mark.asyncio
async def test_incomplete_business_profile_is_refused(services, items, users, gateway):
    """Test that business sellers must publish their disclosure first."""
    user = users.add(legal={'seller_type': 'business', 'name': 'Studio', 'published': False})
    item = items.add(owner_user_id=user['id'])

    with pytest.raises(LegalProfileIncompleteError):
        await services.checkout.create_session(item)
    assert gateway.checkout_params == []
