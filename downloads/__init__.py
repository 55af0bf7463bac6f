"""Download token issuing and redemption.

A download token is a one-time capability minted for a paid checkout
session. At most one token exists per session (unique session_id), and a
token is consumed by its first successful redemption, whichever delivery
path serves the file.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional
from uuid import UUID

from asyncpg.exceptions import PostgresError

from database import get_pool, DatabaseError
from storage import ObjectStore, resolve_local_file

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24  # 32 url-safe characters

class TokenState(str, Enum):
    """Lifecycle of a download token."""
    UNUSED = 'unused'
    USED = 'used'
    EXPIRED = 'expired'

class DownloadError(Exception):
    """Base class for redemption failures."""
    code = 'error'

class TokenNotFoundError(DownloadError):
    """Raised when the token does not exist."""
    code = 'not_found'

class TokenUsedError(DownloadError):
    """Raised when the token was already redeemed."""
    code = 'already_used'

class TokenExpiredError(DownloadError):
    """Raised when the token is past its expiry."""
    code = 'expired'

class AssetMissingError(DownloadError):
    """Raised when the purchased item or its file no longer exists."""
    code = 'asset_missing'

def token_state(row: Dict[str, Any], now: Optional[datetime] = None) -> TokenState:
    """Derive the effective state of a stored token.

    Expiry wins over the stored state, so an expired token is reported as
    expired whether or not it was used.
    """
    now = now or datetime.now(timezone.utc)
    if row['expires_at'] <= now:
        return TokenState.EXPIRED
    return TokenState(row['state'])

def consume(state: TokenState) -> TokenState:
    """Transition a token to used.

    Raises:
        TokenExpiredError: If the token is expired
        TokenUsedError: If the token was already used
    """
    if state is TokenState.EXPIRED:
        raise TokenExpiredError("Download link has expired")
    if state is TokenState.USED:
        raise TokenUsedError("Download link has already been used")
    return TokenState.USED

class DownloadTokenIssuer:
    """Issues and redeems download tokens."""

    def __init__(self, pool=None, ttl_minutes: int = 120):
        """Initialize issuer.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            ttl_minutes: Default token lifetime
        """
        self.pool = pool
        self.ttl_minutes = ttl_minutes

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def issue(
        self,
        item_id: UUID,
        session_id: str,
        ttl_minutes: Optional[int] = None
    ) -> Dict[str, Any]:
        """Mint a token for a paid session, or return the session's existing one.

        Args:
            item_id: Purchased item
            session_id: Checkout session id
            ttl_minutes: Optional lifetime override

        Returns:
            The token row; 'created' tells whether this call minted it
        """
        await self.ensure_pool()
        ttl = ttl_minutes or self.ttl_minutes
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO download_tokens (token, item_id, session_id, expires_at)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (session_id) DO NOTHING
                    RETURNING *
                    ''',
                    secrets.token_urlsafe(TOKEN_BYTES),
                    item_id,
                    session_id,
                    expires_at
                )
                if row:
                    logger.info(f"Issued download token for session {session_id} (item {item_id}, ttl {ttl} min)")
                    return {**dict(row), 'created': True}

                existing = await conn.fetchrow(
                    'SELECT * FROM download_tokens WHERE session_id = $1',
                    session_id
                )
                logger.debug(f"Download token for session {session_id} already exists")
                return {**dict(existing), 'created': False}

        except PostgresError as e:
            logger.error(f"Database error issuing token for session {session_id}: {e}")
            raise DatabaseError(f"Failed to issue download token: {e}")

    async def find_by_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get the token issued for a checkout session."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM download_tokens WHERE session_id = $1',
                session_id
            )
            return dict(row) if row else None

    async def get(self, token: str) -> Optional[Dict[str, Any]]:
        """Get a token row without consuming it."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    'SELECT * FROM download_tokens WHERE token = $1',
                    token
                )
                return dict(row) if row else None
        except PostgresError as e:
            raise DatabaseError(f"Failed to get download token: {e}")

    async def redeem(self, token: str) -> Dict[str, Any]:
        """Consume a token.

        The conditional update is the single point where a token becomes
        used, so two concurrent redemptions cannot both succeed.

        Args:
            token: Token string from the download link

        Returns:
            The consumed token row

        Raises:
            TokenNotFoundError: Unknown token
            TokenExpiredError: Token past its expiry
            TokenUsedError: Token already redeemed
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE download_tokens
                SET state = 'used',
                    used_at = now()
                WHERE token = $1
                AND state = 'unused'
                AND expires_at > now()
                RETURNING *
                ''',
                token
            )
            if row:
                return dict(row)

            current = await conn.fetchrow(
                'SELECT * FROM download_tokens WHERE token = $1',
                token
            )

        if not current:
            raise TokenNotFoundError("Download link is invalid")
        consume(token_state(dict(current)))
        # Lost a race against a concurrent redemption
        raise TokenUsedError("Download link has already been used")

    async def purge_expired(self) -> int:
        """Delete tokens past their expiry.

        Returns:
            Number of deleted tokens
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            result = await conn.execute('DELETE FROM download_tokens WHERE expires_at <= now()')
        count = int(result.split()[-1])
        if count:
            logger.info(f"Purged {count} expired download tokens")
        return count

class DownloadGrant(NamedTuple):
    """What the buyer receives for a redeemed token."""
    item: Dict[str, Any]
    url: Optional[str] = None          # signed object store URL
    file_path: Optional[Path] = None   # legacy local original
    expires_in: Optional[int] = None

class DownloadService:
    """Redeems tokens and resolves the asset to deliver."""

    def __init__(self, tokens: DownloadTokenIssuer, items, store: Optional[ObjectStore], signed_url_ttl: int = 60):
        self.tokens = tokens
        self.items = items
        self.store = store
        self.signed_url_ttl = signed_url_ttl

    async def grant(self, token: str) -> DownloadGrant:
        """Redeem a token and build the grant.

        The asset is resolved before the token is consumed, so a delivery
        failure leaves the token usable.

        Raises:
            DownloadError: If the token cannot be redeemed
            AssetMissingError: If the item or its original is gone
        """
        current = await self.tokens.get(token)
        if not current:
            raise TokenNotFoundError("Download link is invalid")
        consume(token_state(current))

        item = await self.items.get_item(current['item_id'])
        if not item:
            raise AssetMissingError("Purchased item was not found")
        grant = self._resolve(item)

        await self.tokens.redeem(token)
        return grant

    def _resolve(self, item: Dict[str, Any]) -> DownloadGrant:
        if item.get('s3_key'):
            if not self.store:
                logger.error(f"Item {item['id']} is stored in the object store but none is configured")
                raise AssetMissingError("File is not available")
            url = self.store.signed_url(
                item['s3_key'],
                expires_in=self.signed_url_ttl,
                filename=_download_name(item)
            )
            return DownloadGrant(item=item, url=url, expires_in=self.signed_url_ttl)

        path = resolve_local_file(item.get('file_path') or '')
        if not path:
            logger.error(f"Original of item {item['id']} is missing on disk")
            raise AssetMissingError("File does not exist")
        return DownloadGrant(item=item, file_path=path)

def _download_name(item: Dict[str, Any]) -> str:
    suffix = Path(item.get('s3_key') or item.get('file_path') or '').suffix
    return f"{item['title']}{suffix}"

__all__ = [
    'DownloadTokenIssuer',
    'DownloadService',
    'DownloadGrant',
    'TokenState',
    'token_state',
    'consume',
    'DownloadError',
    'TokenNotFoundError',
    'TokenUsedError',
    'TokenExpiredError',
    'AssetMissingError',
]
