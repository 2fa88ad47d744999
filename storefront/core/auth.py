from datetime import datetime, timedelta, timezone
from typing import Tuple

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from pydantic import BaseModel

from storefront.core.config import settings

security = HTTPBearer(auto_error=False)

class Identity(BaseModel):
    id: int
    role: str = 'customer'

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

def create_access_token(user_id: int, role: str) -> Tuple[str, datetime]:
    exp = datetime.now(timezone.utc) + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': str(user_id), 'role': role, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    try:
        return Identity(id=int(payload.get("sub")), role=payload.get("role") or "customer")
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject")

def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return identity
