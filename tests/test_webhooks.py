"""Tests for webhook ingestion."""

import uuid
from unittest.mock import AsyncMock

import pytest
from asyncpg.exceptions import PostgresError

from conftest import mock_pool
from database import DatabaseError
from webhooks import (
    WebhookGate, ProcessedEventStore, WebhookNotConfiguredError, WebhookSignatureError
)

def completed_event(session, event_id='evt_1'):
    return {'id': event_id, 'type': 'checkout.session.completed', 'data': {'object': session}}

@pytest.fixture
def gate(services):
    return services.webhook_gate

@pytest.mark.asyncio
async def test_not_configured(gate, gateway, events):
    """Test that an unconfigured gate rejects everything."""
    gateway.webhook_configured = False
    with pytest.raises(WebhookNotConfiguredError):
        await gate.ingest(b'{}', 'sig')
    assert events.ids == {}

@pytest.mark.asyncio
async def test_bad_signature_mutates_nothing(gate, events, tokens):
    """Test that a bad signature is rejected before any state changes."""
    with pytest.raises(WebhookSignatureError) as exc:
        await gate.ingest(b'{}', 'forged')
    assert 'No signatures found' in str(exc.value)
    assert events.ids == {}
    assert tokens.rows == {}

@pytest.mark.asyncio
async def test_duplicate_delivery_processed_once(gate, gateway, items, seller, tokens, make_session):
    """Test that a redelivered event is acknowledged as duplicate and not reprocessed."""
    item = items.add(owner_user_id=seller['id'])
    gateway.intents['pi_1'] = {'id': 'pi_1', 'transfer_data': None}
    gateway.events['sig'] = completed_event(make_session(item))

    first = await gate.ingest(b'payload', 'sig')
    second = await gate.ingest(b'payload', 'sig')

    assert first == {'received': True}
    assert second == {'received': True, 'duplicate': True}
    assert len(gateway.transfers) == 1
    assert len(tokens.rows) == 1

@pytest.mark.asyncio
async def test_unhandled_type_is_recorded(gate, gateway, events):
    """Test that other event types are acknowledged and recorded."""
    gateway.events['sig'] = {'id': 'evt_9', 'type': 'customer.created', 'data': {'object': {}}}

    assert await gate.ingest(b'payload', 'sig') == {'received': True}
    assert events.ids == {'evt_9': 'customer.created'}

@pytest.mark.asyncio
async def test_database_failure_releases_event(gate, gateway, events, items, users, ledger, make_session):
    """Test that a failed ledger write lets the provider redeliver the event."""
    user = users.add()
    item = items.add(owner_user_id=user['id'])
    gateway.intents['pi_1'] = {'id': 'pi_1', 'transfer_data': None}
    gateway.events['sig'] = completed_event(make_session(item))
    ledger.enqueue_error = DatabaseError("connection lost")

    with pytest.raises(DatabaseError):
        await gate.ingest(b'payload', 'sig')
    assert events.ids == {}

    ledger.enqueue_error = None
    assert await gate.ingest(b'payload', 'sig') == {'received': True}
    assert ledger.rows['pi_1']['reason'] == 'seller_no_stripe_account'

@pytest.mark.asyncio
async def test_unexpected_error_is_acknowledged(services, gateway, events):
    """Test that unexpected handler errors keep the response success-shaped."""
    services.orchestrator.handle_event = AsyncMock(side_effect=KeyError('metadata'))
    gate = WebhookGate(gateway, events, services.orchestrator)
    gateway.events['sig'] = {'id': 'evt_1', 'type': 'checkout.session.completed', 'data': {'object': {}}}

    assert await gate.ingest(b'payload', 'sig') == {'received': True}
    assert 'evt_1' in events.ids

@pytest.mark.asyncio
async def test_processed_event_store_insert():
    """Test dedup through the primary key insert."""
    conn = AsyncMock()
    conn.fetchrow.side_effect = [{'event_id': 'evt_1'}, None]
    store = ProcessedEventStore(mock_pool(conn), retention_days=30)

    assert (await store.try_insert('evt_1', 'checkout.session.completed')).inserted is True
    assert (await store.try_insert('evt_1', 'checkout.session.completed')).inserted is False
    assert 'ON CONFLICT (event_id) DO NOTHING' in conn.fetchrow.call_args.args[0]

@pytest.mark.asyncio
async def test_processed_event_store_database_error():
    """Test that insert failures are raised as DatabaseError."""
    conn = AsyncMock()
    conn.fetchrow.side_effect = PostgresError("connection lost")
    store = ProcessedEventStore(mock_pool(conn))

    with pytest.raises(DatabaseError):
        await store.try_insert('evt_1', 'checkout.session.completed')

@pytest.mark.asyncio
async def test_failed_resolve_after_transfer_keeps_event(gate, gateway, events, items, seller, ledger, make_session):
    """Test that a paid transfer is never repeated when its ledger cleanup fails."""
    item = items.add(owner_user_id=seller['id'])
    gateway.intents['pi_1'] = {'id': 'pi_1', 'transfer_data': None}
    gateway.events['sig'] = completed_event(make_session(item))
    ledger.resolve = AsyncMock(side_effect=[DatabaseError("connection lost"), True])

    first = await gate.ingest(b'payload', 'sig')
    second = await gate.ingest(b'payload', 'sig')

    assert first == {'received': True}
    assert second == {'received': True, 'duplicate': True}
    assert 'evt_1' in events.ids
    assert [t['amount'] for t in gateway.transfers] == [800]
