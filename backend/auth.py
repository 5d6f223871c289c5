# auth.py — Session auth for HexTask
# Features:
# - Password sign-in/sign-up delegated to the hosted auth service
# - Access tokens verified locally (SUPABASE_JWT_SECRET) or remotely
# - Auth identities mapped onto rows in the users table by email
# - Auth-state change subscription (SIGNED_IN / SIGNED_OUT / TOKEN_REFRESHED)

import os
import logging
from typing import Optional, Dict, Any, List, Callable, Awaitable

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr

from database import DataService, BackendError, get_data_service
from models import User

logger = logging.getLogger("hextask.auth")

# ============================================================
# CONFIGURATION
# ============================================================

JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")
ALGORITHM = "HS256"
AUDIENCE = "authenticated"
SESSION_COOKIE = "hextask_session"

security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class SignIn(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class SessionResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user: Optional[User] = None


class CurrentUser(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    is_ai: bool = False
    auth_id: Optional[str] = None
    access_token: str


# ============================================================
# AUTH STATE EVENTS
# ============================================================

AuthListener = Callable[[str, Optional[Dict[str, Any]]], Awaitable[None]]


class AuthEvents:
    """In-process fan-out of auth state changes"""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"

    def __init__(self):
        self._listeners: List[AuthListener] = []

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    async def emit(self, event: str, session: Optional[Dict[str, Any]] = None) -> None:
        logger.info(f"Auth state change: {event}")
        for callback in list(self._listeners):
            await callback(event, session)


auth_events = AuthEvents()


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Token checks and user lookup on top of the hosted auth service"""

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE)
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    async def resolve_identity(token: str, data: DataService) -> Dict[str, Any]:
        """Return the auth identity (sub, email) behind an access token"""
        if JWT_SECRET:
            claims = AuthService.verify_token(token)
            return {"id": claims.get("sub"), "email": claims.get("email")}
        auth_user = await data.get_auth_user(token)
        if not auth_user:
            raise HTTPException(status_code=401, detail="Invalid or expired session")
        return {"id": auth_user.get("id"), "email": auth_user.get("email")}

    @staticmethod
    async def find_app_user(email: Optional[str], data: DataService, access_token: Optional[str] = None) -> Optional[User]:
        """Find the users-table row matching an auth email"""
        if not email:
            return None
        row = await data.select_one("users", {"email": email}, access_token=access_token)
        return User.model_validate(row) if row else None

    @staticmethod
    async def build_session(session: Dict[str, Any], data: DataService) -> SessionResponse:
        access_token = session.get("access_token")
        if not access_token:
            raise HTTPException(status_code=401, detail="No session returned")
        email = (session.get("user") or {}).get("email")
        user = await AuthService.find_app_user(email, data, access_token)
        return SessionResponse(
            access_token=access_token,
            refresh_token=session.get("refresh_token"),
            expires_in=session.get("expires_in"),
            user=user,
        )


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    data: DataService = Depends(get_data_service),
) -> Optional[CurrentUser]:
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        return await authenticate_token(token, data)
    except HTTPException:
        return None
    except BackendError as e:
        logger.warning(f"Session lookup failed, treating visitor as signed out: {e}")
        return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    data: DataService = Depends(get_data_service),
) -> CurrentUser:
    token = _extract_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await authenticate_token(token, data)


async def authenticate_token(token: str, data: DataService) -> CurrentUser:
    identity = await AuthService.resolve_identity(token, data)
    try:
        user = await AuthService.find_app_user(identity.get("email"), data, token)
    except BackendError as e:
        logger.error(f"User lookup failed: {e}")
        raise HTTPException(status_code=503, detail="Failed to load users")
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return CurrentUser(
        id=user.id,
        name=user.name,
        email=user.email,
        is_ai=user.is_ai,
        auth_id=identity.get("id"),
        access_token=token,
    )
