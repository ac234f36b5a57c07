"""
Share lifecycle.

A share is a public, token-addressed view of one project. It is gated by
optional password, expiry and download-cap constraints which are evaluated
lazily on every access; nothing sweeps expired shares in the background.

Lookup outcomes:

* unknown ``share_id`` (including shares removed with their project):
  NotFoundError
* known but no longer valid (deactivated, expired or exhausted): GoneError
* password set and no proof presented: the caller only sees that a
  password is required
"""
import logging
import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from app import crud
from app.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    GoneError,
    NotFoundError,
)
from app.core.security import (
    create_share_token,
    hash_share_password,
    share_token_matches,
    verify_share_password,
)
from app.models import File, Project, Share, User
from app.permissions import Action, can_edit_share, share_state
from app.schemas import (
    FileRead,
    ShareAccess,
    ShareCreate,
    ShareProject,
    ShareRead,
    ShareStats,
    ShareUpdate,
    UserBrief,
)
from app.services.projects import load_project
from app.utils.storage import LocalStorage

logger = logging.getLogger("projectdrop.shares")

GONE_MESSAGE = "Share link is no longer available"


def new_share_id() -> str:
    return secrets.token_hex(16)


def share_read(share: Share) -> ShareRead:
    return ShareRead(
        share_id=share.share_id,
        project_id=share.project_id,
        created_by=share.created_by,
        has_password=share.password_hash is not None,
        expires_at=share.expires_at,
        max_downloads=share.max_downloads,
        current_downloads=share.current_downloads,
        is_active=share.is_active,
        created_at=share.created_at,
        last_accessed=share.last_accessed,
    )


async def _get_share(db: AsyncSession, share_id: str) -> Share:
    share = await crud.get_share(db, share_id)
    if not share:
        raise NotFoundError("Share link not found")
    return share


async def _get_valid_share(db: AsyncSession, share_id: str) -> Share:
    share = await _get_share(db, share_id)
    if not share.is_valid():
        raise GoneError(GONE_MESSAGE)
    return share


def _is_unlocked(share: Share, password: Optional[str], token: Optional[str]) -> bool:
    if share.password_hash is None:
        return True
    if token and share_token_matches(token, share.share_id):
        return True
    return bool(password) and verify_share_password(password, share.password_hash)


def _require_unlocked(share: Share, password: Optional[str], token: Optional[str]) -> None:
    if not _is_unlocked(share, password, token):
        raise AuthenticationError("Share password required")


async def _full_access(db: AsyncSession, share: Share, project: Project) -> ShareAccess:
    creator = await crud.get_user_by_id(db, share.created_by)
    files = await crud.list_files(db, project.id)
    return ShareAccess(
        requires_password=False,
        project=ShareProject(id=project.id, name=project.name, description=project.description),
        share=share_read(share),
        created_by=UserBrief.model_validate(creator) if creator else None,
        files=[FileRead.model_validate(f) for f in files],
    )


async def create_share(db: AsyncSession, actor: User, project_id: int, data: ShareCreate) -> Share:
    project, _ = await load_project(
        db, project_id, actor, Action.manage_share, denied="Only the project owner can create share links"
    )
    if await crud.get_active_share_for_project(db, project.id):
        raise ConflictError("A share link already exists for this project")

    share = Share(
        share_id=new_share_id(),
        project_id=project.id,
        created_by=actor.id,
        password_hash=hash_share_password(data.password) if data.password else None,
        expires_at=data.expires_at,
        max_downloads=data.max_downloads,
    )
    try:
        share = await crud.save_share(db, share)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A share link already exists for this project")

    logger.info("Share created for project %s by user %s", project.id, actor.id)
    await crud.log_activity(db, actor.id, "share_create", f"Share link for project {project.name}")
    return share


async def get_project_share(db: AsyncSession, actor: User, project_id: int) -> Share:
    project, _ = await load_project(db, project_id, actor, Action.manage_share)
    share = await crud.get_active_share_for_project(db, project.id)
    if not share:
        raise NotFoundError("No share link for this project")
    return share


async def fetch_share(
    db: AsyncSession, share_id: str, *, password: Optional[str] = None, token: Optional[str] = None
) -> ShareAccess:
    share = await _get_valid_share(db, share_id)
    project = await crud.get_project(db, share.project_id)
    if not project:
        raise NotFoundError("Share link not found")

    if not _is_unlocked(share, password, token):
        return ShareAccess(
            requires_password=True,
            project=ShareProject(id=project.id, name=project.name, description=project.description),
        )
    return await _full_access(db, share, project)


async def verify_share(db: AsyncSession, share_id: str, password: str) -> ShareAccess:
    # the share may have lapsed between the challenge and this call
    share = await _get_valid_share(db, share_id)
    if share.password_hash is not None and not verify_share_password(password, share.password_hash):
        raise AuthenticationError("Wrong password")

    project = await crud.get_project(db, share.project_id)
    if not project:
        raise NotFoundError("Share link not found")

    access = await _full_access(db, share, project)
    if share.password_hash is not None:
        access.share_token = create_share_token(share.share_id)
    return access


async def list_share_files(
    db: AsyncSession, share_id: str, *, password: Optional[str] = None, token: Optional[str] = None
) -> List[File]:
    share = await _get_valid_share(db, share_id)
    _require_unlocked(share, password, token)
    return await crud.list_files(db, share.project_id)


async def consume_share(
    db: AsyncSession,
    share_id: str,
    file_id: int,
    storage: LocalStorage,
    *,
    password: Optional[str] = None,
    token: Optional[str] = None,
) -> File:
    """
    Count one download of ``file_id`` through the share and return the file.

    The download that reaches ``max_downloads`` is still served; the next one
    gets GoneError.
    """
    share = await _get_valid_share(db, share_id)
    _require_unlocked(share, password, token)

    f = await crud.get_file(db, file_id)
    if not f or f.project_id != share.project_id:
        raise NotFoundError("File not found")
    if not storage.exists(f.storage_key):
        logger.error("Storage object %s missing for file %s", f.storage_key, f.id)
        raise NotFoundError("File not found")

    if not await crud.consume_share_download(db, share):
        raise GoneError(GONE_MESSAGE)
    f = await crud.increment_file_downloads(db, f)

    logger.info(
        "Share %s served file %s (%s/%s)",
        share.share_id, f.id, share.current_downloads, share.max_downloads or "-",
    )
    return f


async def edit_share(db: AsyncSession, actor: User, share_id: str, data: ShareUpdate) -> Share:
    share = await _get_share(db, share_id)
    if not can_edit_share(actor, share.created_by):
        raise AuthorizationError("Only the creator can edit this share link")
    if not share.is_active:
        raise GoneError(GONE_MESSAGE)

    fields = data.model_fields_set
    if "password" in fields:
        share.password_hash = hash_share_password(data.password) if data.password else None
    if "expires_at" in fields:
        share.expires_at = data.expires_at
    if "max_downloads" in fields:
        share.max_downloads = data.max_downloads

    share = await crud.save_share(db, share)
    await crud.log_activity(db, actor.id, "share_edit", f"Share {share.share_id} updated")
    return share


async def deactivate_share(db: AsyncSession, actor: User, share_id: str) -> Share:
    share = await _get_share(db, share_id)
    if not can_edit_share(actor, share.created_by):
        raise AuthorizationError("Only the creator can deactivate this share link")

    if share.is_active:
        share.is_active = False
        share = await crud.save_share(db, share)
        logger.info("Share %s deactivated by user %s", share.share_id, actor.id)
        await crud.log_activity(db, actor.id, "share_deactivate", f"Share {share.share_id} deactivated")
    return share


async def share_stats(db: AsyncSession, actor: User, share_id: str) -> ShareStats:
    share = await _get_share(db, share_id)
    if not can_edit_share(actor, share.created_by):
        raise AuthorizationError("Only the creator can view share statistics")

    project = await crud.get_project(db, share.project_id)
    now = datetime.utcnow()
    return ShareStats(
        share_id=share.share_id,
        project_name=project.name if project else "",
        created_at=share.created_at,
        expires_at=share.expires_at,
        max_downloads=share.max_downloads,
        current_downloads=share.current_downloads,
        last_accessed=share.last_accessed,
        is_active=share.is_active,
        is_valid=share.is_valid(now),
        state=share_state(
            share.is_active, share.expires_at, share.max_downloads, share.current_downloads, now
        ),
    )


async def list_my_shares(db: AsyncSession, actor: User) -> List[Share]:
    return await crud.list_shares_by_creator(db, actor.id)
