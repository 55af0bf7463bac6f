"""Shared fixtures: in-memory stand-ins for the database-backed managers and Stripe."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import DEFAULTS, SettlementConfig, validate_settings
from downloads import TokenState, consume, token_state, TokenNotFoundError
from ledger import ReasonCode
from payments import PaymentError, SignatureVerificationError
from users import LegalProfile
from webhooks import InsertResult

def mock_pool(conn):
    """Pool whose acquire() yields the given connection."""
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return pool

class FakeItems:
    def __init__(self):
        self.rows: Dict[uuid.UUID, Dict[str, Any]] = {}

    def add(self, **fields) -> Dict[str, Any]:
        item = {
            'id': uuid.uuid4(),
            'slug': f"slug{len(self.rows)}",
            'title': 'Sunset',
            'price': 1000,
            'currency': 'jpy',
            'file_path': None,
            's3_key': 'originals/sunset.jpg',
            'preview_path': '/previews/sunset-preview.jpg',
            'checkout_preview_path': '/previews/sunset-checkout.jpg',
            'mime_type': 'image/jpeg',
            'creator_name': 'Aki',
            'owner_user_id': None,
            'license_preset': 'standard',
            'license_notes': '',
            'ai_generated': False,
            'ai_model_name': '',
        }
        item.update(fields)
        self.rows[item['id']] = item
        return item

    def validate(self, title, price, file_path, s3_key, license_preset):
        from items import ItemManager
        ItemManager(pool=object()).validate(title, price, file_path, s3_key, license_preset)

    async def create_item(self, **fields):
        return self.add(**fields)

    async def get_item(self, item_id):
        return self.rows.get(item_id)

    async def get_item_by_slug(self, slug):
        return next((i for i in self.rows.values() if i['slug'] == slug), None)

    async def repair_preview_path(self, item_id, preview_path):
        from items import ItemNotFoundError
        if item_id not in self.rows:
            raise ItemNotFoundError(f"Item {item_id} not found")
        self.rows[item_id]['preview_path'] = preview_path
        return self.rows[item_id]

class FakeUsers:
    def __init__(self):
        self.rows: Dict[uuid.UUID, Dict[str, Any]] = {}

    def add(self, **fields) -> Dict[str, Any]:
        user = {
            'id': uuid.uuid4(),
            'oauth_provider': 'google',
            'oauth_subject': str(uuid.uuid4()),
            'email': 'seller@example.com',
            'name': 'Seller',
            'avatar': '',
            'payout_account_id': None,
            'payouts_enabled': False,
            'legal': None,
        }
        user.update(fields)
        self.rows[user['id']] = user
        return user

    async def get_user(self, user_id):
        user = self.rows.get(user_id)
        return dict(user) if user else None

    async def upsert_oauth_user(self, provider, subject, email=None, name='', avatar=''):
        for user in self.rows.values():
            if user['oauth_provider'] == provider and user['oauth_subject'] == subject:
                user['email'] = email or user['email']
                return dict(user)
        return dict(self.add(oauth_provider=provider, oauth_subject=subject, email=email, name=name, avatar=avatar))

    async def set_payout_account(self, user_id, account_id):
        self.rows[user_id]['payout_account_id'] = account_id
        self.rows[user_id]['payouts_enabled'] = False

    async def set_payouts_enabled(self, user_id, enabled):
        self.rows[user_id]['payouts_enabled'] = enabled

    async def update_legal_profile(self, user_id, profile: LegalProfile):
        from users import UserNotFoundError
        if user_id not in self.rows:
            raise UserNotFoundError(f"User {user_id} not found")
        clean = profile.sanitized()
        self.rows[user_id]['legal'] = clean.model_dump()
        return clean

class FakeTokens:
    def __init__(self, ttl_minutes: int = 120):
        self.ttl_minutes = ttl_minutes
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def issue(self, item_id, session_id, ttl_minutes=None):
        for row in self.rows.values():
            if row['session_id'] == session_id:
                return {**row, 'created': False}
        row = {
            'token': uuid.uuid4().hex,
            'item_id': item_id,
            'session_id': session_id,
            'state': 'unused',
            'expires_at': datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes or self.ttl_minutes),
            'used_at': None,
        }
        self.rows[row['token']] = row
        return {**row, 'created': True}

    async def get(self, token):
        row = self.rows.get(token)
        return dict(row) if row else None

    async def find_by_session(self, session_id):
        return next((r for r in self.rows.values() if r['session_id'] == session_id), None)

    async def redeem(self, token):
        row = self.rows.get(token)
        if not row:
            raise TokenNotFoundError("Download link is invalid")
        row['state'] = consume(token_state(row)).value
        row['used_at'] = datetime.now(timezone.utc)
        return dict(row)

    async def purge_expired(self):
        now = datetime.now(timezone.utc)
        expired = [t for t, r in self.rows.items() if token_state(r, now) is TokenState.EXPIRED]
        for token in expired:
            del self.rows[token]
        return len(expired)

class FakeLedger:
    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.enqueue_error: Optional[Exception] = None

    async def enqueue(self, seller_id, item_id, amount, currency, payment_intent_id, transfer_group, reason):
        if self.enqueue_error:
            raise self.enqueue_error
        existing = self.rows.get(payment_intent_id)
        if existing and existing['status'] != 'queued':
            return None
        row = existing or {
            'payment_intent_id': payment_intent_id,
            'status': 'queued',
            'attempts': 0,
            'last_error': None,
            'created_at': datetime.now(timezone.utc),
            'expires_at': datetime.now(timezone.utc) + timedelta(days=180),
        }
        row.update(
            seller_id=seller_id,
            item_id=item_id,
            amount=amount,
            currency=currency,
            transfer_group=transfer_group,
            reason=ReasonCode(reason).value,
        )
        self.rows[payment_intent_id] = row
        return dict(row)

    async def resolve(self, payment_intent_id):
        row = self.rows.get(payment_intent_id)
        if row and row['status'] == 'queued':
            del self.rows[payment_intent_id]
            return True
        return False

    async def record_failure(self, payment_intent_id, error):
        row = self.rows.get(payment_intent_id)
        if row and row['status'] == 'queued':
            row['attempts'] += 1
            row['last_error'] = error

    async def get(self, payment_intent_id):
        return self.rows.get(payment_intent_id)

    async def list_queued(self, seller_id=None):
        now = datetime.now(timezone.utc)
        return [
            dict(r) for r in self.rows.values()
            if r['status'] == 'queued' and r['expires_at'] > now
            and (seller_id is None or r['seller_id'] == seller_id)
        ]

    async def expire_overdue(self):
        now = datetime.now(timezone.utc)
        count = 0
        for row in self.rows.values():
            if row['status'] == 'queued' and row['expires_at'] <= now:
                row['status'] = 'expired'
                count += 1
        return count

class FakeEvents:
    def __init__(self):
        self.ids: Dict[str, str] = {}

    async def try_insert(self, event_id, event_type):
        if event_id in self.ids:
            return InsertResult(inserted=False)
        self.ids[event_id] = event_type
        return InsertResult(inserted=True)

    async def forget(self, event_id):
        self.ids.pop(event_id, None)

    async def purge_expired(self):
        return 0

class FakeGateway:
    """Records calls and answers from configurable state."""

    def __init__(self):
        self.configured = True
        self.webhook_configured = True
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.transfers: List[Dict[str, Any]] = []
        self.transfer_keys: Dict[str, Dict[str, Any]] = {}
        self.checkout_params: List[Dict[str, Any]] = []
        self.transfer_error: Optional[Exception] = None
        self.account_error: Optional[Exception] = None
        self.events: Dict[str, Dict[str, Any]] = {}

    def verify_event(self, payload, signature):
        if signature not in self.events:
            raise SignatureVerificationError("No signatures found matching the expected signature for payload")
        return self.events[signature]

    async def retrieve_payment_intent(self, payment_intent_id):
        if payment_intent_id not in self.intents:
            raise PaymentError("No such payment_intent", code='resource_missing', method='retrieve_payment_intent')
        return self.intents[payment_intent_id]

    async def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentError("No such checkout.session", code='resource_missing', method='retrieve_checkout_session')
        return self.sessions[session_id]

    async def create_checkout_session(self, params):
        self.checkout_params.append(params)
        return {'id': f"cs_test_{len(self.checkout_params)}", 'url': 'https://checkout.stripe.test/pay'}

    async def retrieve_account(self, account_id):
        if self.account_error:
            raise self.account_error
        if account_id not in self.accounts:
            raise PaymentError("No such account", code='resource_missing', method='retrieve_account')
        return self.accounts[account_id]

    async def create_account(self, email, country):
        account_id = f"acct_{len(self.accounts) + 1}"
        self.accounts[account_id] = {'id': account_id, 'payouts_enabled': False, 'charges_enabled': False, 'country': country}
        return self.accounts[account_id]

    async def create_account_link(self, account_id, refresh_url, return_url):
        return {'url': f"https://connect.stripe.test/{account_id}?return={return_url}"}

    async def create_transfer(self, amount, currency, destination, transfer_group, metadata=None, idempotency_key=None):
        if self.transfer_error:
            raise self.transfer_error
        if idempotency_key and idempotency_key in self.transfer_keys:
            return self.transfer_keys[idempotency_key]
        transfer = {
            'id': f"tr_{len(self.transfers) + 1}",
            'amount': amount,
            'currency': currency,
            'destination': destination,
            'transfer_group': transfer_group,
            'metadata': metadata or {},
        }
        self.transfers.append(transfer)
        if idempotency_key:
            self.transfer_keys[idempotency_key] = transfer
        return transfer

@pytest.fixture
def settings():
    return validate_settings(dict(
        DEFAULTS,
        platform_fee_percent='20',
        admin_token='admin-secret',
        session_secret='session-secret',
        base_url='https://sale.example.com/',
    ))

@pytest.fixture
def config(settings):
    return SettlementConfig.from_settings(settings)

@pytest.fixture
def items():
    return FakeItems()

@pytest.fixture
def users():
    return FakeUsers()

@pytest.fixture
def tokens():
    return FakeTokens()

@pytest.fixture
def ledger():
    return FakeLedger()

@pytest.fixture
def events():
    return FakeEvents()

@pytest.fixture
def gateway():
    return FakeGateway()

@pytest.fixture
def services(settings, config, gateway, items, users, tokens, ledger, events):
    from api.dependencies import Services
    return Services(
        settings=settings,
        config=config,
        gateway=gateway,
        items=items,
        users=users,
        tokens=tokens,
        ledger=ledger,
        events=events,
        store=None
    )

@pytest.fixture
def seller(users, gateway):
    """Seller with an onboarded account that can receive payouts."""
    gateway.accounts['acct_seller'] = {'id': 'acct_seller', 'payouts_enabled': True, 'charges_enabled': False}
    return users.add(payout_account_id='acct_seller', payouts_enabled=True)

def paid_session(item, session_id='cs_test_1', payment_intent='pi_1', **fields):
    session = {
        'id': session_id,
        'object': 'checkout.session',
        'payment_status': 'paid',
        'payment_intent': payment_intent,
        'metadata': {'itemId': str(item['id']), 'slug': item['slug']},
    }
    session.update(fields)
    return session

@pytest.fixture
def make_session():
    return paid_session
