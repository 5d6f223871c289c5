# routers/auth.py — Sign-in, sign-up, refresh and sign-out
from fastapi import APIRouter, Depends, HTTPException, Response

from auth import (
    AuthService, SignIn, RefreshRequest, SessionResponse, CurrentUser,
    SESSION_COOKIE, auth_events, get_current_user,
)
from database import DataService, BackendError, get_data_service

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _set_session_cookie(response: Response, session: SessionResponse) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        samesite="lax",
    )


@router.post("/login", response_model=SessionResponse)
async def login(
    credentials: SignIn,
    response: Response,
    data: DataService = Depends(get_data_service),
):
    """Authenticate and receive a session"""
    try:
        raw = await data.sign_in(credentials.email, credentials.password)
    except BackendError as e:
        if e.status_code and 400 <= e.status_code < 500:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        raise
    session = await AuthService.build_session(raw, data)
    _set_session_cookie(response, session)
    await auth_events.emit(auth_events.SIGNED_IN, {"email": credentials.email})
    return session


@router.post("/register")
async def register(
    credentials: SignIn,
    data: DataService = Depends(get_data_service),
):
    """Create an auth account. The matching users row is seeded separately."""
    try:
        raw = await data.sign_up(credentials.email, credentials.password)
    except BackendError as e:
        if e.status_code and 400 <= e.status_code < 500:
            raise HTTPException(status_code=400, detail=e.message)
        raise
    if raw.get("access_token"):
        return await AuthService.build_session(raw, data)
    return {"status": "confirmation_required", "email": credentials.email}


@router.post("/refresh", response_model=SessionResponse)
async def refresh_token(
    refresh_req: RefreshRequest,
    response: Response,
    data: DataService = Depends(get_data_service),
):
    """Exchange a refresh token for a new session"""
    try:
        raw = await data.refresh_session(refresh_req.refresh_token)
    except BackendError as e:
        if e.status_code and 400 <= e.status_code < 500:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        raise
    session = await AuthService.build_session(raw, data)
    _set_session_cookie(response, session)
    await auth_events.emit(auth_events.TOKEN_REFRESHED)
    return session


@router.post("/logout")
async def logout(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    """Sign out and drop the session cookie"""
    await data.sign_out(user.access_token)
    response.delete_cookie(SESSION_COOKIE)
    await auth_events.emit(auth_events.SIGNED_OUT, {"user_id": user.id})
    return {"status": "logged_out", "message": "Session terminated"}


@router.get("/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    return user.model_dump(exclude={"access_token"})
