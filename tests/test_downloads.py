"""Tests for download tokens and delivery."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import mock_pool
from downloads import (
    DownloadTokenIssuer, DownloadService, TokenState, token_state, consume,
    TokenNotFoundError, TokenUsedError, TokenExpiredError, AssetMissingError
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

def token_row(state='unused', expires_in=timedelta(minutes=120), **fields):
    row = {
        'token': 'tok',
        'item_id': uuid.uuid4(),
        'session_id': 'cs_1',
        'state': state,
        'expires_at': NOW + expires_in,
        'used_at': None,
    }
    row.update(fields)
    return row

def test_token_state():
    """Test the derived token state."""
    assert token_state(token_row(), NOW) is TokenState.UNUSED
    assert token_state(token_row('used'), NOW) is TokenState.USED
    assert token_state(token_row(expires_in=timedelta(0)), NOW) is TokenState.EXPIRED

def test_expired_wins_over_used():
    """Test that an expired token reports expired whether or not it was used."""
    assert token_state(token_row('used', expires_in=-timedelta(seconds=1)), NOW) is TokenState.EXPIRED

def test_consume_transitions():
    """Test that only unused tokens can be consumed."""
    assert consume(TokenState.UNUSED) is TokenState.USED
    with pytest.raises(TokenUsedError):
        consume(TokenState.USED)
    with pytest.raises(TokenExpiredError):
        consume(TokenState.EXPIRED)

@pytest.mark.asyncio
async def test_issue_creates_token():
    """Test issuing a new token for a session."""
    conn = AsyncMock()
    conn.fetchrow.return_value = token_row()
    issuer = DownloadTokenIssuer(mock_pool(conn), ttl_minutes=120)

    result = await issuer.issue(uuid.uuid4(), 'cs_1')

    assert result['created'] is True
    query, token, _, session_id, expires_at = conn.fetchrow.call_args.args
    assert 'ON CONFLICT (session_id) DO NOTHING' in query
    assert len(token) >= 32
    assert session_id == 'cs_1'
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=119) < remaining <= timedelta(minutes=120)

@pytest.mark.asyncio
async def test_issue_returns_existing_token():
    """Test that a repeated session gets the token already issued."""
    conn = AsyncMock()
    existing = token_row(token='first')
    conn.fetchrow.side_effect = [None, existing]
    issuer = DownloadTokenIssuer(mock_pool(conn))

    result = await issuer.issue(uuid.uuid4(), 'cs_1')

    assert result['created'] is False
    assert result['token'] == 'first'

@pytest.mark.asyncio
async def test_redeem_success():
    """Test that the conditional update consumes the token."""
    conn = AsyncMock()
    conn.fetchrow.return_value = token_row('used')
    issuer = DownloadTokenIssuer(mock_pool(conn))

    row = await issuer.redeem('tok')

    assert row['state'] == 'used'
    query = conn.fetchrow.call_args.args[0]
    assert "state = 'unused'" in query
    assert 'expires_at > now()' in query

@pytest.mark.asyncio
@pytest.mark.parametrize("current,error", [
    (None, TokenNotFoundError),
    (token_row('used', expires_in=timedelta(days=3650)), TokenUsedError),
    (token_row('unused', expires_in=-timedelta(days=3650)), TokenExpiredError),
    (token_row('used', expires_in=-timedelta(days=3650)), TokenExpiredError),
])
async def test_redeem_failures(current, error):
    """Test the classification of failed redemptions."""
    conn = AsyncMock()
    conn.fetchrow.side_effect = [None, current]
    issuer = DownloadTokenIssuer(mock_pool(conn))

    with pytest.raises(error):
        await issuer.redeem('tok')

@pytest.mark.asyncio
async def test_redeem_lost_race_reports_used():
    """Test that losing a concurrent redemption reports already used."""
    conn = AsyncMock()
    conn.fetchrow.side_effect = [None, token_row('unused', expires_in=timedelta(days=3650))]
    issuer = DownloadTokenIssuer(mock_pool(conn))

    with pytest.raises(TokenUsedError):
        await issuer.redeem('tok')

@pytest.mark.asyncio
async def test_grant_signed_url(items, tokens):
    """Test that object store items are delivered as short-lived signed URLs."""
    item = items.add(title='Sunset', s3_key='originals/123-abc.jpg')
    token = await tokens.issue(item['id'], 'cs_1')
    store = MagicMock()
    store.signed_url.return_value = 'https://bucket.test/originals/123-abc.jpg?sig'
    service = DownloadService(tokens, items, store, signed_url_ttl=60)

    grant = await service.grant(token['token'])

    assert grant.url.startswith('https://bucket.test/')
    assert grant.expires_in == 60
    store.signed_url.assert_called_once_with('originals/123-abc.jpg', expires_in=60, filename='Sunset.jpg')

    with pytest.raises(TokenUsedError):
        await service.grant(token['token'])

@pytest.mark.asyncio
async def test_grant_local_file(items, tokens, tmp_path):
    """Test that legacy items are delivered from local disk."""
    original = tmp_path / 'legacy.png'
    original.write_bytes(b'png')
    item = items.add(s3_key=None, file_path=str(original))
    token = await tokens.issue(item['id'], 'cs_1')

    grant = await DownloadService(tokens, items, None).grant(token['token'])

    assert grant.file_path == original.resolve()
    assert grant.url is None

@pytest.mark.asyncio
async def test_grant_missing_file(items, tokens, tmp_path):
    """Test that a vanished original is reported as missing."""
    item = items.add(s3_key=None, file_path=str(tmp_path / 'gone.png'))
    token = await tokens.issue(item['id'], 'cs_1')

    with pytest.raises(AssetMissingError):
        await DownloadService(tokens, items, None).grant(token['token'])

@pytest.mark.asyncio
async def test_grant_unknown_token(items, tokens):
    """Test that unknown tokens are not found."""
    with pytest.raises(TokenNotFoundError):
        await DownloadService(tokens, items, None).grant('nope')

@pytest.mark.asyncio
async def test_failed_delivery_keeps_token_usable(items, tokens, tmp_path):
    """Test that a token survives a delivery failure and works once the file is back."""
    original = tmp_path / 'late.png'
    item = items.add(s3_key=None, file_path=str(original))
    token = await tokens.issue(item['id'], 'cs_1')
    service = DownloadService(tokens, items, None)

    with pytest.raises(AssetMissingError):
        await service.grant(token['token'])
    assert tokens.rows[token['token']]['state'] == 'unused'

    original.write_bytes(b'png')
    grant = await service.grant(token['token'])

    assert grant.file_path == original.resolve()
    assert tokens.rows[token['token']]['state'] == 'used'

@pytest.mark.asyncio
async def test_missing_object_store_keeps_token_usable(items, tokens):
    """Test that an unconfigured object store does not consume the token."""
    item = items.add(s3_key='originals/123-abc.jpg')
    token = await tokens.issue(item['id'], 'cs_1')

    with pytest.raises(AssetMissingError):
        await DownloadService(tokens, items, None).grant(token['token'])
    assert tokens.rows[token['token']]['state'] == 'unused'

@pytest.mark.asyncio
async def test_grant_rejects_expired_token_before_lookup(items, tokens):
    """Test that an expired token fails without touching the item."""
    item = items.add()
    token = await tokens.issue(item['id'], 'cs_1')
    tokens.rows[token['token']]['expires_at'] = datetime.now(timezone.utc) - timedelta(seconds=1)
    items.get_item = AsyncMock()

    with pytest.raises(TokenExpiredError):
        await DownloadService(tokens, items, MagicMock()).grant(token['token'])
    items.get_item.assert_not_called()

@pytest.mark.asyncio
async def test_get_does_not_consume():
    """Test that looking a token up is a plain select."""
    conn = AsyncMock()
    conn.fetchrow.return_value = token_row()
    issuer = DownloadTokenIssuer(mock_pool(conn))

    row = await issuer.get('tok')

    assert row['state'] == 'unused'
    query = conn.fetchrow.call_args.args[0]
    assert query.startswith('SELECT')
    conn.execute.assert_not_called()
