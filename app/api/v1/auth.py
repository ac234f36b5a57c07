from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlmodel.ext.asyncio.session import AsyncSession
from datetime import datetime

from app.deps import get_current_user, get_db, oauth2_scheme
from app.crud import any_admin_exists, revoke_token
from app.core.errors import AuthenticationError
from app.core.security import decode_token
from app.schemas import Token, UserCreate, UserRead
from app.services import identity

router = APIRouter()


@router.post("/register", response_model=Token, status_code=201)
async def register(u: UserCreate, db: AsyncSession = Depends(get_db)):
    user, token, message = await identity.register_user(
        db, username=u.username, email=u.email, password=u.password
    )
    return Token(access_token=token, user=UserRead.model_validate(user), message=message)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(),
                db: AsyncSession = Depends(get_db)):
    # form "username" accepts a username or an email address
    user, token = await identity.login(db, identifier=form_data.username, password=form_data.password)
    return Token(access_token=token, user=UserRead.model_validate(user))


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme),
                 current=Depends(get_current_user),
                 db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(token)
    except JWTError:
        raise AuthenticationError("Invalid token")

    expires_at = datetime.utcfromtimestamp(payload["exp"])
    await revoke_token(db, payload["jti"], expires_at)

    return {"ok": True, "message": "Logged out"}


@router.get("/has-admin")
async def has_admin(db: AsyncSession = Depends(get_db)):
    return {"has_admin": await any_admin_exists(db)}
