"""
Session verification.

The hosted identity provider issues a JWT per signed-in user, sent either as a
bearer token or in the session cookie. The `sub` claim is the user id.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status

from app.models.config import AuthConfig
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()

_auth_config: Optional[AuthConfig] = None
_jwks_client: Optional[jwt.PyJWKClient] = None


def get_auth_config() -> AuthConfig:
    global _auth_config
    if _auth_config is None:
        _auth_config = AuthConfig.from_loader(get_config())
    return _auth_config


def _signing_key(token: str, config: AuthConfig):
    global _jwks_client
    if config.jwks_url:
        if _jwks_client is None:
            _jwks_client = jwt.PyJWKClient(config.jwks_url)
        return _jwks_client.get_signing_key_from_jwt(token).key
    return config.secret


def create_session_token(user_id: str, config: Optional[AuthConfig] = None) -> str:
    """Issue a session token signed with the shared secret (development and tests)"""
    config = config or get_auth_config()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(hours=config.token_expiry_hours),
    }
    if config.issuer:
        payload["iss"] = config.issuer
    return jwt.encode(payload, config.secret, algorithm="HS256")


def decode_session_token(token: str, config: Optional[AuthConfig] = None) -> str:
    """
    Verify a session token and return its user id.

    Raises:
        HTTPException: 401 if the token is invalid, expired or has no subject
    """
    config = config or get_auth_config()
    try:
        payload = jwt.decode(
            token,
            _signing_key(token, config),
            algorithms=[config.algorithm],
            issuer=config.issuer,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected session token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        ) from e
    return str(payload["sub"])


def _extract_token(request: Request, cookie_name: str) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(cookie_name)


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the signed-in user's id, or 401"""
    config = get_auth_config()
    token = _extract_token(request, config.cookie_name)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if config.jwks_url:
        # A JWKS cache miss fetches keys over blocking urllib
        return await asyncio.to_thread(decode_session_token, token, config)
    return decode_session_token(token, config)
