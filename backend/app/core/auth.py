import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import ALGORITHM, SECRET_KEY, SYNC_API_KEY, SYNC_RATE_LIMIT_PER_MINUTE
from app.core.rate_limit import FixedWindowRateLimiter, client_ip

bearer_scheme = HTTPBearer(auto_error=False)
sync_rate_limiter = FixedWindowRateLimiter(max_requests=SYNC_RATE_LIMIT_PER_MINUTE, window_seconds=60)

SYNC_USER_ID = "sync-api"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str = ""
    name: str = ""
    role: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


SYNC_USER = CurrentUser(id=SYNC_USER_ID, name="API de sincronizacao", role="service")


class SyncRequestRejected(Exception):
    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def user_from_claims(payload: dict) -> Optional[CurrentUser]:
    user_id = payload.get("sub")
    if not user_id:
        return None
    metadata = payload.get("user_metadata") or {}
    return CurrentUser(
        id=str(user_id),
        email=str(payload.get("email") or ""),
        name=str(payload.get("name") or metadata.get("full_name") or ""),
        role=str(payload.get("role") or ""),
    )


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciais inválidas",
        headers={"WWW-Authenticate": "Bearer"}
    )
    if credentials is None or not SECRET_KEY:
        raise credentials_exception
    try:
        payload = jwt.decode(
            credentials.credentials,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError:
        raise credentials_exception

    user = user_from_claims(payload)
    if user is None:
        raise credentials_exception
    return user


def require_sync_api_key(request: Request) -> CurrentUser:
    if not sync_rate_limiter.allow(client_ip(request)):
        raise SyncRequestRejected(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded. Try again later.")

    provided = str(request.headers.get("x-api-key") or "")
    if not SYNC_API_KEY or not hmac.compare_digest(provided, SYNC_API_KEY):
        raise SyncRequestRejected(status.HTTP_401_UNAUTHORIZED, "Unauthorized - Invalid API Key")
    return SYNC_USER
