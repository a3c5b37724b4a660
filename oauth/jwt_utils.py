"""JWT utilities for OAuth access and refresh tokens.

Tokens are signed with PyJWT so that a forged or tampered token is rejected
before any store lookup. The store record is still required for a token to
be accepted, which is what lets a refresh grant revoke the old pair.
"""

import logging
import os
import secrets
from pathlib import Path
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def get_or_create_secret(secret: Optional[str], secret_file: Path) -> str:
    """Return the configured JWT secret, or one persisted in secret_file.

    The secret file is created (mode 0600) on first use so that tokens stay
    valid across restarts when no JWT_SECRET is configured.
    """
    if secret:
        logger.info("[JWT] Using JWT_SECRET from environment")
        return secret

    if secret_file.exists():
        try:
            stored = secret_file.read_text().strip()
            if stored:
                logger.info("[JWT] Loaded JWT secret from file")
                return stored
        except IOError as e:
            logger.warning(f"[JWT] Could not read JWT secret file: {e}")

    generated = secrets.token_urlsafe(64)
    try:
        secret_file.parent.mkdir(parents=True, exist_ok=True)
        secret_file.write_text(generated)
        os.chmod(secret_file, 0o600)
        logger.info("[JWT] Generated and saved new JWT secret")
    except IOError as e:
        logger.warning(f"[JWT] Could not save JWT secret to file: {e}")

    return generated


def _encode(
    token_type: str,
    secret: str,
    username: str,
    client_id: str,
    scope: str,
    issued_at: int,
    expires_at: int,
) -> str:
    payload = {
        "sub": username,
        "client_id": client_id,
        "scope": scope,
        "iat": issued_at,
        "exp": expires_at,
        "jti": secrets.token_urlsafe(16),
        "type": token_type,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(secret: str, username: str, client_id: str, scope: str,
                        issued_at: int, expires_at: int) -> str:
    """Create a signed access token.

    Args:
        secret: HMAC signing secret
        username: The user the token is bound to
        client_id: The OAuth client
        scope: The granted scope
        issued_at: Issue time (epoch seconds)
        expires_at: Expiry time (epoch seconds)

    Returns:
        A signed JWT string
    """
    return _encode("access", secret, username, client_id, scope, issued_at, expires_at)


def create_refresh_token(secret: str, username: str, client_id: str, scope: str,
                         issued_at: int, expires_at: int) -> str:
    """Create a signed refresh token. Arguments as for create_access_token."""
    return _encode("refresh", secret, username, client_id, scope, issued_at, expires_at)


def _verify(token: str, secret: str, token_type: str) -> Optional[dict]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug(f"[JWT] {token_type.capitalize()} token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid {token_type} token: {e}")
        return None

    if payload.get("type") != token_type:
        logger.debug(f"[JWT] Token is not a {token_type} token")
        return None

    return payload


def verify_access_token(token: str, secret: str) -> Optional[dict]:
    """Verify and decode an access token.

    Returns:
        The decoded payload (sub, client_id, scope, iat, exp, jti, type) if
        valid, None otherwise.
    """
    return _verify(token, secret, "access")


def verify_refresh_token(token: str, secret: str) -> Optional[dict]:
    """Verify and decode a refresh token, None if invalid."""
    return _verify(token, secret, "refresh")