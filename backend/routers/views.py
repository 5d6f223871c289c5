# routers/views.py — Auth-gated entry routes (task board, document center)
# Unauthenticated visitors are sent to /login; signed-in visitors get the
# view model the page is built from.
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from auth import get_optional_user, CurrentUser
from board_state import BoardState, get_board
from models import STATUS_LABELS

router = APIRouter(tags=["Views"])

LOGIN_PATH = "/login"


@router.get("/")
async def task_board(
    user: Optional[CurrentUser] = Depends(get_optional_user),
    board: BoardState = Depends(get_board),
):
    if user is None:
        return RedirectResponse(LOGIN_PATH, status_code=307)
    await board.ensure_loaded(user.access_token)
    return {
        "view": "tasks",
        "user": user.model_dump(exclude={"access_token"}),
        "columns": {status.value: label for status, label in STATUS_LABELS.items()},
        "tasks": "/api/v1/tasks",
        "board": "/api/v1/board",
        "error": board.error,
    }


@router.get("/documents")
async def document_center(user: Optional[CurrentUser] = Depends(get_optional_user)):
    if user is None:
        return RedirectResponse(LOGIN_PATH, status_code=307)
    return {
        "view": "documents",
        "user": user.model_dump(exclude={"access_token"}),
        "documents": "/api/v1/documents",
    }


@router.get(LOGIN_PATH)
async def login_page():
    return {
        "view": "login",
        "sign_in": "/api/v1/auth/login",
        "fields": ["email", "password"],
    }
