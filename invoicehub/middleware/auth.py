from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
import structlog

from invoicehub.database import is_valid_org_id
from invoicehub.services.auth_service import verify_access_token

logger = structlog.get_logger()

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: verify the bearer token and return the caller's identity."""
    token = credentials.credentials
    try:
        payload = verify_access_token(token)
    except JWTError as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "AUTH_TOKEN_INVALID",
                    "message": "Invalid or expired token",
                }
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    org_id = payload.get("org_id")
    if not org_id or not is_valid_org_id(org_id):
        logger.warning("auth_org_missing", user_id=payload["sub"])
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "ORG_CONTEXT_REQUIRED",
                    "message": "Select an organization to continue",
                }
            },
        )

    structlog.contextvars.bind_contextvars(org_id=org_id, user_id=payload["sub"])
    return {
        "user_id": payload["sub"],
        "org_id": org_id,
        "email": payload.get("email"),
        "org_role": payload.get("org_role"),
    }
