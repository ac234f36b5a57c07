from fastapi import Depends, Header, Query
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.security import ACCESS_TOKEN_TYPE, decode_token
from app.db.session import get_session
from app.crud import get_user_by_id, is_token_revoked
from app.permissions import can_create_project
from app.utils.storage import LocalStorage, get_storage as _default_storage
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional

# OAuth2 scheme (password flow)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


async def get_db():
    async for s in get_session():
        yield s


def get_storage() -> LocalStorage:
    return _default_storage()


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)):
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        payload = decode_token(token)
    except JWTError:
        raise AuthenticationError("Invalid token")

    subject = payload.get("sub")
    if payload.get("typ") != ACCESS_TOKEN_TYPE or not subject or not str(subject).isdigit():
        raise AuthenticationError("Invalid token")

    # check revoked tokens
    if await is_token_revoked(db, payload.get("jti")):
        raise AuthenticationError("Token revoked")

    user = await get_user_by_id(db, int(subject))
    if not user or not user.is_active:
        raise AuthenticationError("Invalid token")

    return user


async def require_admin(user=Depends(get_current_user)):
    if not user.is_admin:
        raise AuthorizationError("Admin rights required")
    return user


async def require_upload_permission(user=Depends(get_current_user)):
    if not can_create_project(user):
        raise AuthorizationError("Upload rights required. Ask an administrator.")
    return user


class ShareCredentials:
    """Password or share proof token presented on protected share actions."""

    def __init__(
        self,
        x_share_password: Optional[str] = Header(default=None),
        x_share_token: Optional[str] = Header(default=None),
        token: Optional[str] = Query(default=None),
    ):
        self.password = x_share_password
        self.token = x_share_token or token
