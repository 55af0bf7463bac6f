"""Users module for creator accounts.

A user is created on first OAuth login and keyed by the identity provider's
subject. Payout fields (connected account id and the cached payouts-enabled
flag) are written only through single-row updates.
"""
import json
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError
from pydantic import BaseModel

from database import get_pool, DatabaseError

logger = logging.getLogger(__name__)

class UserError(Exception):
    """Base exception for user operations."""
    pass

class UserNotFoundError(UserError):
    """Raised when a user does not exist."""
    pass

class LegalProfile(BaseModel):
    """Seller disclosure profile shown on sale pages of business sellers."""
    seller_type: str = 'individual'
    name: str = ''
    responsible: str = ''
    address: str = ''
    phone: str = ''
    email: str = ''
    website: str = ''
    invoice_reg_no: str = ''
    published: bool = False

    def sanitized(self) -> 'LegalProfile':
        """Normalize the profile for storage.

        Individuals never carry a responsible person or invoice number.
        """
        is_business = self.seller_type == 'business'
        return LegalProfile(
            seller_type='business' if is_business else 'individual',
            name=self.name.strip(),
            responsible=self.responsible.strip() if is_business else '',
            address=self.address.strip(),
            phone=self.phone.strip(),
            email=self.email.strip(),
            website=self.website.strip(),
            invoice_reg_no=self.invoice_reg_no.strip() if is_business else '',
            published=self.published,
        )

    @property
    def is_complete(self) -> bool:
        """Whether a business seller has published the required fields."""
        if self.seller_type != 'business':
            return True
        return bool(self.published and self.name and self.address and self.email)

def public_legal_profile(user: Optional[Dict[str, Any]]) -> Optional[LegalProfile]:
    """The seller's disclosure profile, if they chose to publish one with a name."""
    if not user or not user.get('legal'):
        return None
    profile = LegalProfile(**user['legal']).sanitized()
    if not profile.published or not profile.name:
        return None
    return profile

def _row_to_user(row) -> Dict[str, Any]:
    """Convert a users row, decoding the JSONB legal profile."""
    user = dict(row)
    legal = user.get('legal')
    if isinstance(legal, str):
        user['legal'] = json.loads(legal)
    return user

class UserManager:
    """Manager class for user accounts and payout fields."""

    def __init__(self, pool=None):
        """Initialize the user manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def upsert_oauth_user(
        self,
        provider: str,
        subject: str,
        email: Optional[str] = None,
        name: str = '',
        avatar: str = ''
    ) -> Dict[str, Any]:
        """Create the user on first login, refresh profile fields afterwards.

        Args:
            provider: Identity provider name (e.g. 'google')
            subject: Provider's stable user id
            email: Email reported by the provider
            name: Display name
            avatar: Avatar URL

        Returns:
            The user row
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO users (oauth_provider, oauth_subject, email, name, avatar)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (oauth_provider, oauth_subject) DO UPDATE
                    SET email = COALESCE(EXCLUDED.email, users.email),
                        name = CASE WHEN EXCLUDED.name <> '' THEN EXCLUDED.name ELSE users.name END,
                        avatar = CASE WHEN EXCLUDED.avatar <> '' THEN EXCLUDED.avatar ELSE users.avatar END,
                        updated_at = now()
                    RETURNING *
                    ''',
                    provider,
                    subject,
                    email,
                    name or '',
                    avatar or ''
                )
                return _row_to_user(row)
        except PostgresError as e:
            logger.error(f"Database error upserting user {provider}:{subject}: {e}")
            raise DatabaseError(f"Failed to upsert user: {e}")

    async def get_user(self, user_id: UUID) -> Optional[Dict[str, Any]]:
        """Get a user by id.

        Args:
            user_id: User UUID

        Returns:
            The user row or None if not found
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM users WHERE id = $1', user_id)
            return _row_to_user(row) if row else None

    async def set_payout_account(self, user_id: UUID, account_id: str) -> None:
        """Store the connected payout account id.

        A new account starts with payouts disabled until the processor says otherwise.
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            await conn.execute(
                '''
                UPDATE users
                SET payout_account_id = $2,
                    payouts_enabled = false,
                    updated_at = now()
                WHERE id = $1
                ''',
                user_id,
                account_id
            )
        logger.info(f"Stored payout account {account_id} for user {user_id}")

    async def set_payouts_enabled(self, user_id: UUID, enabled: bool) -> None:
        """Persist the payouts-enabled flag reported by the processor."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            await conn.execute(
                '''
                UPDATE users
                SET payouts_enabled = $2,
                    updated_at = now()
                WHERE id = $1
                ''',
                user_id,
                enabled
            )

    async def update_legal_profile(self, user_id: UUID, profile: LegalProfile) -> LegalProfile:
        """Save the seller's legal profile.

        Args:
            user_id: User UUID
            profile: Submitted profile

        Returns:
            The sanitized profile that was stored

        Raises:
            UserNotFoundError: If the user does not exist
        """
        await self.ensure_pool()
        clean = profile.sanitized()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                '''
                UPDATE users
                SET legal = $2::jsonb,
                    updated_at = now()
                WHERE id = $1
                ''',
                user_id,
                clean.model_dump_json()
            )
        if result == 'UPDATE 0':
            raise UserNotFoundError(f"User {user_id} not found")
        return clean

__all__ = ['UserManager', 'UserError', 'UserNotFoundError', 'LegalProfile', 'public_legal_profile']
