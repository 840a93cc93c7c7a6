"""JWT verification and role dependencies.

Tokens come from the external identity provider. We only verify them and
turn the claims into an explicit Actor that every service call receives.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from app.config import settings

ROLES = ("buyer", "farmer", "admin")

security = HTTPBearer()


@dataclass(frozen=True)
class Actor:
    id: int
    role: str


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for(user_id: int, role: str) -> str:
    """Issue a token the way the identity provider would (tests, local tooling)."""
    return create_access_token({"sub": str(user_id), "role": role})


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    payload = decode_token(credentials.credentials)
    role = payload.get("role")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return Actor(id=user_id, role=role)


def require_roles(*roles: str):
    """Dependency factory: 403 unless the caller holds one of `roles`."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail=f"Requires role: {' or '.join(roles)}")
        return actor

    return dependency


require_purchaser = require_roles("buyer", "farmer")
require_seller_or_admin = require_roles("farmer", "admin")
require_farmer = require_roles("farmer")
