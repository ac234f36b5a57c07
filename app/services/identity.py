"""
Registration, login and upload grants.

The first account ever registered becomes the bootstrap admin (admin and
upload rights). Every later account starts without either; only
``can_upload`` can be changed afterwards, and only by an admin.
"""
import logging
from typing import Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from app import crud
from app.core.errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models import User

logger = logging.getLogger("projectdrop.identity")

INVALID_CREDENTIALS = "Invalid credentials"


async def register_user(db: AsyncSession, *, username: str, email: str, password: str) -> Tuple[User, str, str]:
    """Create an account and return ``(user, access_token, message)``."""
    if await crud.get_user_by_username(db, username) or await crud.get_user_by_email(db, email):
        raise ConflictError("Username or email already taken")

    is_first_user = not await crud.any_user_exists(db)
    hashed = get_password_hash(password)
    try:
        user = await crud.create_user(
            db,
            email=email,
            username=username,
            hashed_password=hashed,
            is_admin=is_first_user,
            can_upload=is_first_user,
        )
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Username or email already taken")

    if is_first_user:
        logger.info("Bootstrap admin registered: %s", user.username)
        message = "Registration successful. As the first user you are the administrator."
    else:
        message = "Registration successful. An administrator must grant upload rights."

    await crud.log_activity(db, user.id, "register", f"User {user.email} registered")
    return user, create_access_token(subject=str(user.id)), message


async def login(db: AsyncSession, *, identifier: str, password: str) -> Tuple[User, str]:
    user = await crud.get_user_by_identifier(db, identifier)
    # same error for both causes so accounts cannot be enumerated
    if not user or not verify_password(password, user.hashed_password):
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not user.is_active:
        raise AuthenticationError(INVALID_CREDENTIALS)

    user = await crud.touch_last_login(db, user)
    await crud.log_activity(db, user.id, "login", "User logged in")
    return user, create_access_token(subject=str(user.id))


async def grant_upload(db: AsyncSession, actor: User, target_user_id: int, can_upload: bool) -> User:
    if not actor.is_admin:
        raise AuthorizationError("Admin rights required")

    target = await crud.get_user_by_id(db, target_user_id)
    if not target:
        raise NotFoundError("User not found")

    if target.can_upload != can_upload:
        target = await crud.set_can_upload(db, target, can_upload)
        await crud.log_activity(
            db,
            actor.id,
            "grant_upload" if can_upload else "revoke_upload",
            f"Upload rights for {target.username} set to {can_upload}",
        )
    return target
