import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import verify_jwt_token
from .shared.exceptions import AuthError, ForbiddenError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header yields 401 rather than FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from a bearer JWT issued by the auth service"""

    if not credentials:
        logger.warning("❌ No credentials provided")
        raise AuthError(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )

    token = credentials.credentials

    # Basic token format validation before processing
    token_parts = token.split(".")
    if len(token_parts) != 3:
        logger.warning(
            f"⚠️ Malformed token received: {len(token_parts)} parts, token length: {len(token)}"
        )
        raise AuthError("Invalid token format. Expected a valid JWT token.")

    payload = verify_jwt_token(token)
    if not payload:
        raise AuthError("Invalid or expired token")

    user_id = payload.get("sub")
    if user_id is None:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise AuthError("Invalid token claims")

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except (TypeError, ValueError):
        raise AuthError("Invalid token claims") from None

    if not user:
        logger.warning(f"⚠️ Token for unknown user {user_id}")
        raise AuthError("User not found")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


def require_role(*roles: str):
    """
    Dependency factory restricting an endpoint to the given user roles.

    Usage:
        @router.get("/admin-only")
        async def handler(user: User = Depends(require_role("admin"))):
            ...
    """

    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning(f"⚠️ User {user.id} ({user.role}) denied; requires {roles}")
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return role_checker
