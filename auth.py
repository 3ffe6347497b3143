"""Password hashing, token signing and the bearer-token dependencies."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from dependencies import get_settings_dep
from schemas import UserRole
from settings import Settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class TokenUser:
    """Identity carried by a verified bearer token."""

    user_id: str
    email: Optional[str]
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_token(user: Dict[str, Any], settings: Settings) -> str:
    payload = {
        "sub": str(user["id"]),
        "email": user.get("email"),
        "role": user.get("role", UserRole.USER.value),
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(payload, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> TokenUser:
    """Verify signature and expiry; raises JWTError on any failure."""
    payload = jwt.decode(token, settings.jwt_secret.get_secret_value(), algorithms=[settings.jwt_algorithm])
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token has no subject")
    try:
        role = UserRole(payload.get("role", UserRole.USER.value))
    except ValueError as exc:
        raise JWTError("Token has an unknown role") from exc
    return TokenUser(user_id=str(user_id), email=payload.get("email"), role=role)


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings_dep),
) -> TokenUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = authorization[len("Bearer "):].strip()
    try:
        return decode_token(token, settings)
    except JWTError:
        raise HTTPException(status_code=401, detail="Not authenticated")


def require_admin(user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if not user.is_admin:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
