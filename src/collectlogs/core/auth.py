"""
Authentication for the admin endpoints and the cron trigger.
"""

import secrets
from typing import Optional

import structlog
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import get_settings
from .exceptions import AuthenticationError
from .settings_store import get_settings_store

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _mask(value: str) -> str:
    return value[:8] + "..." if len(value) >= 8 else "invalid"


async def authenticate_admin_token(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Authenticate the bearer token against the configured admin token.

    An empty admin token in configuration disables the admin endpoints.
    """
    if not token or not token.credentials:
        raise AuthenticationError("Missing authentication token")

    token_value = token.credentials.strip()
    admin_token = get_settings().security.admin_token

    if not admin_token or not secrets.compare_digest(token_value, admin_token):
        logger.warning("Admin authentication failed", token=_mask(token_value))
        raise AuthenticationError("Invalid authentication token")

    logger.debug("Admin token authenticated", token=_mask(token_value))
    return token_value


def authenticate_cron_secret(secret: str = Query(default="", description="Cron secret")) -> str:
    """Check the `secret` query parameter against the stored cron secret."""
    expected = get_settings_store().get_cron_secret()

    if not secret or not secrets.compare_digest(secret, expected):
        logger.warning("Cron authentication failed", secret=_mask(secret))
        raise AuthenticationError("Invalid cron secret")

    return secret
