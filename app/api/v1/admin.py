from typing import List

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from app.deps import require_admin, get_db
from app.schemas import ActivityRead, GrantUploadReq, UserRead
from app.core.errors import NotFoundError
from app import crud
from app.services import identity

router = APIRouter()


@router.get("/activity", response_model=List[ActivityRead])
async def activity_log(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin)
):
    return await crud.list_activity(db, limit=limit)


# --- Admin user management ---


@router.get("/users", response_model=List[UserRead])
async def list_users(db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    return await crud.list_users(db)


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    user = await crud.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.post("/users/{user_id}/grant-upload", response_model=UserRead)
async def grant_upload(
    user_id: int,
    payload: GrantUploadReq,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    return await identity.grant_upload(db, admin, user_id, payload.can_upload)
