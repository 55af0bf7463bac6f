"""Authentication for sellers and administrators.

This module provides:
1. Signed session tokens for sellers who completed an OAuth login
2. A FastAPI dependency resolving the current seller
3. A FastAPI dependency guarding administrative endpoints
"""

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

logger = logging.getLogger(__name__)

SESSION_EXPIRY_DAYS = 30
JWT_ALGORITHM = "HS256"

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a session token has expired."""
    pass

class InvalidSessionError(AuthError):
    """Raised when a session token cannot be verified."""
    pass

def create_session_token(user_id: UUID, secret: str, expiry_days: int = SESSION_EXPIRY_DAYS) -> str:
    """Create a signed session token for a user.

    Args:
        user_id: Authenticated user
        secret: Signing secret (session_secret)
        expiry_days: Token lifetime

    Returns:
        Encoded JWT

    Raises:
        AuthError: If no secret is configured
    """
    if not secret:
        raise AuthError("Session secret is not configured")
    now = datetime.now(timezone.utc)
    claims = {
        'sub': str(user_id),
        'iat': int(now.timestamp()),
        'exp': int((now + timedelta(days=expiry_days)).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)

def verify_session_token(token: str, secret: str) -> UUID:
    """Verify a session token.

    Returns:
        The user id carried by the token

    Raises:
        SessionExpiredError: If the token has expired
        InvalidSessionError: If the token is malformed or badly signed
    """
    if not secret:
        raise InvalidSessionError("Session secret is not configured")
    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise SessionExpiredError("Session has expired")
    except JWTError as e:
        raise InvalidSessionError(f"Invalid session: {e}")

    try:
        return UUID(claims['sub'])
    except (KeyError, ValueError):
        raise InvalidSessionError("Invalid session subject")

async def complete_oauth_login(profile: Dict[str, Any], users, secret: str) -> Dict[str, Any]:
    """Finish a login from a verified identity provider profile.

    The user is created on first login.

    Args:
        profile: Verified profile with provider, subject, and optionally email, name, avatar
        users: User manager
        secret: Session signing secret

    Returns:
        Dict with the user and a session token
    """
    if not profile.get('provider') or not profile.get('subject'):
        raise AuthError("Identity profile is missing provider or subject")

    user = await users.upsert_oauth_user(
        provider=profile['provider'],
        subject=str(profile['subject']),
        email=profile.get('email'),
        name=profile.get('name') or '',
        avatar=profile.get('avatar') or ''
    )
    logger.info(f"User {user['id']} logged in via {profile['provider']}")
    return {'user': user, 'token': create_session_token(user['id'], secret)}

auth_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated seller.

    Returns:
        The user row

    Raises:
        HTTPException: If authentication fails
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    services = request.app.state.services
    try:
        user_id = verify_session_token(credentials.credentials, services.settings['session_secret'])
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

    user = await services.users.get_user(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists"
        )
    return user

async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> None:
    """FastAPI dependency guarding administrative endpoints.

    Raises:
        HTTPException: 403 unless the bearer equals the configured admin token
    """
    expected = request.app.state.services.settings.get('admin_token') or ''
    supplied = credentials.credentials if credentials else ''
    if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
        logger.warning(f"Rejected admin request to {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="forbidden"
        )

__all__ = [
    'create_session_token',
    'verify_session_token',
    'complete_oauth_login',
    'get_current_user',
    'require_admin',
    'AuthError',
    'SessionExpiredError',
    'InvalidSessionError',
]
