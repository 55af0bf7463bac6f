"""Items module for managing purchasable listings.

This module provides functionality for:
- Creating items with validated price and license metadata
- Looking items up by id or public slug
- Administrative preview path repair

An item's original asset is located by exactly one of a local file path
(legacy uploads) or an object store key. Neither is ever exposed to clients.
"""

import logging
import secrets
import string
from typing import Any, Dict, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError

logger = logging.getLogger(__name__)

LICENSE_PRESETS = {'personal', 'standard', 'commercial-lite', 'exclusive'}

SLUG_ALPHABET = string.ascii_letters + string.digits + '_-'
SLUG_LENGTH = 10

# Fields safe to show on public sale pages
PUBLIC_FIELDS = (
    'slug',
    'title',
    'price',
    'currency',
    'preview_path',
    'creator_name',
    'license_preset',
    'license_notes',
    'ai_generated',
    'ai_model_name',
)

class ItemError(Exception):
    """Base exception for item operations."""
    pass

class ItemNotFoundError(ItemError):
    """Raised when an item is not found."""
    pass

class InvalidPriceError(ItemError):
    """Raised when a price is below the platform minimum."""
    pass

class InvalidLocatorError(ItemError):
    """Raised when an item does not have exactly one original locator."""
    pass

def new_slug() -> str:
    """Generate a random public identifier for a sale page."""
    return ''.join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))

def public_view(item: Dict[str, Any]) -> Dict[str, Any]:
    """Strip storage locators and owner ids from an item."""
    return {field: item.get(field) for field in PUBLIC_FIELDS}

class ItemManager:
    """Manager class for handling item operations."""

    def __init__(self, pool=None, min_price: int = 1):
        """Initialize the item manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            min_price: Platform minimum price in the smallest currency unit
        """
        self.pool = pool
        self.min_price = min_price

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    def validate(
        self,
        title: str,
        price: int,
        file_path: Optional[str],
        s3_key: Optional[str],
        license_preset: str
    ) -> None:
        """Validate item fields before insert.

        Raises:
            ItemError: If the title is empty or the license preset unknown
            InvalidPriceError: If the price is below the minimum
            InvalidLocatorError: If not exactly one original locator is set
        """
        if not title or not title.strip():
            raise ItemError("Title is required")
        if not isinstance(price, int) or isinstance(price, bool) or price < self.min_price:
            raise InvalidPriceError(f"Price must be an integer of at least {self.min_price}")
        if bool(file_path) == bool(s3_key):
            raise InvalidLocatorError("Exactly one of file_path and s3_key must be set")
        if license_preset not in LICENSE_PRESETS:
            raise ItemError(f"Unknown license preset: {license_preset}")

    async def create_item(
        self,
        title: str,
        price: int,
        currency: str,
        preview_path: str,
        mime_type: str,
        s3_key: Optional[str] = None,
        file_path: Optional[str] = None,
        checkout_preview_path: Optional[str] = None,
        owner_user_id: Optional[UUID] = None,
        creator_name: str = '',
        license_preset: str = 'standard',
        license_notes: str = '',
        ai_generated: bool = False,
        ai_model_name: str = '',
        slug: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a new item.

        Args:
            title: Listing title
            price: Price in the smallest currency unit
            currency: Currency code
            preview_path: Public path or URL of the watermarked preview
            mime_type: MIME type of the original
            s3_key: Object store key of the original
            file_path: Local path of the original (legacy)
            checkout_preview_path: Letter-boxed preview for the checkout page
            owner_user_id: Seller, None for legacy anonymous uploads
            creator_name: Credit shown on the sale page
            license_preset: One of LICENSE_PRESETS
            license_notes: Free-form license notes
            ai_generated: Whether the image was AI generated
            ai_model_name: Model used when AI generated
            slug: Public identifier, generated when not given

        Returns:
            Dict containing the created item

        Raises:
            ItemError: If validation or the insert fails
        """
        self.validate(title, price, file_path, s3_key, license_preset)
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                item = await conn.fetchrow(
                    '''
                    INSERT INTO items (
                        slug, title, price, currency, file_path, s3_key,
                        preview_path, checkout_preview_path, mime_type,
                        creator_name, owner_user_id, license_preset,
                        license_notes, ai_generated, ai_model_name
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15
                    )
                    RETURNING *
                    ''',
                    slug or new_slug(),
                    title.strip(),
                    price,
                    currency.lower(),
                    file_path,
                    s3_key,
                    preview_path,
                    checkout_preview_path,
                    mime_type,
                    creator_name,
                    owner_user_id,
                    license_preset,
                    license_notes,
                    ai_generated,
                    ai_model_name
                )
                logger.info(f"Created item {item['id']} ({item['slug']}) owned by {owner_user_id}")
                return dict(item)

        except PostgresError as e:
            logger.error(f"Database error creating item: {e}")
            raise DatabaseError(f"Failed to create item: {e}")

    async def get_item(self, item_id: UUID) -> Optional[Dict[str, Any]]:
        """Get an item by id.

        Args:
            item_id: Item UUID

        Returns:
            Dict containing item details or None if not found
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM items WHERE id = $1', item_id)
            return dict(row) if row else None

    async def get_item_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Get an item by its public slug."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM items WHERE slug = $1', slug)
            return dict(row) if row else None

    async def repair_preview_path(self, item_id: UUID, preview_path: str) -> Dict[str, Any]:
        """Point an item at a regenerated preview.

        The only mutation allowed after creation.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE items
                SET preview_path = $2,
                    updated_at = now()
                WHERE id = $1
                RETURNING *
                ''',
                item_id,
                preview_path
            )
        if not row:
            raise ItemNotFoundError(f"Item {item_id} not found")
        logger.info(f"Repaired preview path of item {item_id}: {preview_path}")
        return dict(row)

__all__ = [
    'ItemManager',
    'ItemError',
    'ItemNotFoundError',
    'InvalidPriceError',
    'InvalidLocatorError',
    'LICENSE_PRESETS',
    'new_slug',
    'public_view',
]
