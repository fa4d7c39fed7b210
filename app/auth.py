import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session

from .config import INTERNAL_API_KEY, JWT_ALGORITHM, SECRET_KEY
from .database import get_db
from .models import User
from .webhook_security import constant_time_compare

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT. Tokens are normally issued by the auth service;
    this is used by internal tooling and tests.
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def _user_from_token(token: str, db: Session) -> User:
    payload = verify_access_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub") or payload.get("userId")
    try:
        user_id = int(user_id)
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"⚠️ Token for unknown user {user_id}")
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user"""
    user = _user_from_token(credentials.credentials, db)
    logger.debug(f"✅ User authenticated: {user.id} ({user.type})")
    return user


def _require_type(user: User, user_type: str) -> User:
    if user.type != user_type:
        logger.warning(f"⚠️ User {user.id} ({user.type}) attempted a {user_type}-only action")
        raise HTTPException(status_code=403, detail=f"{user_type.capitalize()} access required")
    return user


async def require_cleaner(user: User = Depends(get_current_user)) -> User:
    return _require_type(user, "cleaner")


async def require_homeowner(user: User = Depends(get_current_user)) -> User:
    return _require_type(user, "homeowner")


async def require_owner(user: User = Depends(get_current_user)) -> User:
    return _require_type(user, "owner")


async def require_internal_or_owner(
    x_internal_api_key: Optional[str] = Header(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Batch endpoints accept either the internal API key (cron runners) or an
    owner's bearer token. Returns the owner, or None for internal callers.
    """
    if x_internal_api_key and INTERNAL_API_KEY and constant_time_compare(x_internal_api_key, INTERNAL_API_KEY):
        return None
    if credentials:
        return _require_type(_user_from_token(credentials.credentials, db), "owner")
    raise HTTPException(status_code=401, detail="Not authenticated")
