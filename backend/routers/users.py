# routers/users.py — Read-only user directory (the two seeded users)
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from auth import get_current_user, CurrentUser
from database import DataService, get_data_service
from models import User

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("", response_model=List[User])
async def list_users(
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    rows = await data.select("users", order=[("created_at", True)], access_token=user.access_token)
    return [User.model_validate(r) for r in rows]


@router.get("/{user_id}", response_model=User)
async def get_user(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    row = await data.select_one("users", {"id": user_id}, access_token=user.access_token)
    if not row:
        raise HTTPException(status_code=404, detail="User not found")
    return User.model_validate(row)
