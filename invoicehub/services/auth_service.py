from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from invoicehub.config import settings
from invoicehub.exceptions import ConfigurationError

logger = structlog.get_logger()

# ---------- key loading ----------

_private_key: Optional[str] = None
_public_key: Optional[str] = None


def _read_key(path: Optional[str], label: str) -> str:
    if not path:
        raise ConfigurationError(f"JWT {label} key path is not configured")
    try:
        with open(path, "r") as f:
            return f.read()
    except OSError as e:
        raise ConfigurationError(f"Cannot read JWT {label} key at {path}: {e}") from e


def _shared_secret() -> str:
    if not settings.JWT_SECRET:
        raise ConfigurationError(f"JWT_SECRET is required for {settings.JWT_ALGORITHM}")
    return settings.JWT_SECRET


def _signing_key() -> str:
    global _private_key
    if settings.uses_shared_secret:
        return _shared_secret()
    if _private_key is None:
        _private_key = _read_key(settings.JWT_PRIVATE_KEY_PATH, "private")
    return _private_key


def _verification_key() -> str:
    global _public_key
    if settings.uses_shared_secret:
        return _shared_secret()
    if _public_key is None:
        _public_key = _read_key(settings.JWT_PUBLIC_KEY_PATH, "public")
    return _public_key


# ---------- token generation ----------

def create_access_token(
    user_id: str,
    org_id: Optional[str],
    email: Optional[str] = None,
    org_role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Mint an access token in the identity provider's claim layout. Used by
    scripts and tests; production tokens come from the provider itself.
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "type": "access",
    }
    if org_id:
        claims["org_id"] = str(org_id)
    if email:
        claims["email"] = email
    if org_role:
        claims["org_role"] = org_role
    if settings.JWT_AUDIENCE:
        claims["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(claims, _signing_key(), algorithm=settings.JWT_ALGORITHM)


# ---------- token verification ----------

def decode_token(token: str) -> dict:
    """Decode and verify a JWT token. Raises JWTError on failure."""
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    return jwt.decode(
        token,
        _verification_key(),
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        options=options,
    )


def verify_access_token(token: str) -> dict:
    """Verify an access token and return its claims."""
    payload = decode_token(token)
    if payload.get("type", "access") != "access":
        raise JWTError("Not an access token")
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload
