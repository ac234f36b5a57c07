from fastapi import APIRouter, Depends

from app.deps import get_current_user
from app.schemas import UserRead

router = APIRouter()


@router.get("/me", response_model=UserRead)
async def me(current=Depends(get_current_user)):
    return current
