from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from app.models import (
    User,
    Project,
    Collaborator,
    File,
    Share,
    Message,
    ActivityLog,
    RevokedToken,
)
from app.permissions import CollaboratorPermission, ProjectAccess
from sqlmodel.ext.asyncio.session import AsyncSession
from datetime import datetime
from typing import List, Optional, Tuple


# -------------------------
# User helpers
# -------------------------
async def create_user(
    session: AsyncSession,
    *,
    email: str,
    username: str,
    hashed_password: str,
    is_admin: bool = False,
    can_upload: bool = False,
) -> User:
    user = User(
        email=email,
        username=username,
        hashed_password=hashed_password,
        is_admin=is_admin,
        can_upload=can_upload,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def any_user_exists(session: AsyncSession) -> bool:
    res = await session.exec(select(User.id).limit(1))
    return res.first() is not None


async def any_admin_exists(session: AsyncSession) -> bool:
    res = await session.exec(select(User.id).where(col(User.is_admin).is_(True)).limit(1))
    return res.first() is not None


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    res = await session.exec(select(User).where(User.email == email))
    return res.first()


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    res = await session.exec(select(User).where(User.username == username))
    return res.first()


async def get_user_by_identifier(session: AsyncSession, identifier: str) -> User | None:
    res = await session.exec(
        select(User).where(or_(User.username == identifier, User.email == identifier))
    )
    return res.first()


async def get_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def list_users(session: AsyncSession, limit: int = 200) -> List[User]:
    res = await session.exec(select(User).order_by(col(User.created_at).desc()).limit(limit))
    return list(res.all())


async def touch_last_login(session: AsyncSession, user: User) -> User:
    user.last_login = datetime.utcnow()
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def set_can_upload(session: AsyncSession, user: User, can_upload: bool) -> User:
    user.can_upload = can_upload
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


# -------------------------
# Project helpers
# -------------------------
async def create_project(
    session: AsyncSession,
    *,
    owner_id: int,
    name: str,
    description: str | None = None,
    tags: list[str] | None = None,
    is_public: bool = False,
) -> Project:
    p = Project(
        owner_id=owner_id,
        name=name,
        description=description,
        tags=tags or [],
        is_public=is_public,
    )
    session.add(p)
    await session.commit()
    await session.refresh(p)
    return p


async def get_project(session: AsyncSession, project_id: int) -> Project | None:
    return await session.get(Project, project_id)


async def list_projects_for_user(session: AsyncSession, user_id: int) -> List[Project]:
    member_of = select(Collaborator.project_id).where(Collaborator.user_id == user_id)
    q = (
        select(Project)
        .where(or_(Project.owner_id == user_id, col(Project.id).in_(member_of)))
        .order_by(col(Project.updated_at).desc())
    )
    res = await session.exec(q)
    return list(res.all())


async def save_project(session: AsyncSession, project: Project) -> Project:
    project.updated_at = datetime.utcnow()
    session.add(project)
    await session.commit()
    await session.refresh(project)
    return project


async def get_project_access(session: AsyncSession, project: Project) -> ProjectAccess:
    res = await session.exec(
        select(Collaborator.user_id, Collaborator.permission).where(Collaborator.project_id == project.id)
    )
    collaborators = {user_id: CollaboratorPermission(perm) for user_id, perm in res.all()}
    return ProjectAccess(owner_id=project.owner_id, is_public=project.is_public, collaborators=collaborators)


async def delete_project_cascade(session: AsyncSession, project: Project) -> List[str]:
    """
    Delete a project and everything that references it in one transaction.

    Order: files, shares, messages, collaborators, project. Returns the
    storage keys of the deleted files so the caller can drop the bytes once
    the commit succeeded.
    """
    res = await session.exec(select(File.storage_key).where(File.project_id == project.id))
    storage_keys = list(res.all())

    await session.execute(delete(File).where(File.project_id == project.id))
    await session.execute(delete(Share).where(Share.project_id == project.id))
    await session.execute(delete(Message).where(Message.project_id == project.id))
    await session.execute(delete(Collaborator).where(Collaborator.project_id == project.id))
    await session.delete(project)
    await session.commit()
    return storage_keys


# -------------------------
# Collaborator helpers
# -------------------------
async def list_collaborators(session: AsyncSession, project_id: int) -> List[Tuple[Collaborator, User]]:
    q = (
        select(Collaborator, User)
        .join(User, User.id == Collaborator.user_id)
        .where(Collaborator.project_id == project_id)
        .order_by(col(Collaborator.added_at), col(Collaborator.id))
    )
    res = await session.exec(q)
    return list(res.all())


async def get_collaborator(session: AsyncSession, project_id: int, user_id: int) -> Collaborator | None:
    res = await session.exec(
        select(Collaborator).where(Collaborator.project_id == project_id, Collaborator.user_id == user_id)
    )
    return res.first()


async def upsert_collaborator(
    session: AsyncSession, project_id: int, user_id: int, permission: CollaboratorPermission
) -> Collaborator:
    existing = await get_collaborator(session, project_id, user_id)
    if existing:
        existing.permission = permission
        session.add(existing)
        await session.commit()
        await session.refresh(existing)
        return existing

    c = Collaborator(project_id=project_id, user_id=user_id, permission=permission)
    session.add(c)
    try:
        await session.commit()
    except IntegrityError:
        # a concurrent request inserted the same member first; last write wins
        await session.rollback()
        existing = await get_collaborator(session, project_id, user_id)
        if existing is None:
            raise
        existing.permission = permission
        session.add(existing)
        await session.commit()
        await session.refresh(existing)
        return existing
    await session.refresh(c)
    return c


async def remove_collaborator(session: AsyncSession, project_id: int, user_id: int) -> bool:
    res = await session.execute(
        delete(Collaborator).where(Collaborator.project_id == project_id, Collaborator.user_id == user_id)
    )
    await session.commit()
    return bool(res.rowcount)


# -------------------------
# File helpers
# -------------------------
async def create_file(
    session: AsyncSession,
    *,
    project_id: int,
    uploaded_by: int,
    original_name: str,
    storage_key: str,
    mime_type: str | None,
    size: int,
) -> File:
    f = File(
        project_id=project_id,
        uploaded_by=uploaded_by,
        original_name=original_name,
        storage_key=storage_key,
        mime_type=mime_type,
        size=size,
    )
    session.add(f)
    await session.commit()
    await session.refresh(f)
    return f


async def get_file(session: AsyncSession, file_id: int) -> File | None:
    return await session.get(File, file_id)


async def list_files(session: AsyncSession, project_id: int) -> List[File]:
    res = await session.exec(
        select(File).where(File.project_id == project_id).order_by(col(File.uploaded_at).desc(), col(File.id).desc())
    )
    return list(res.all())


async def increment_file_downloads(session: AsyncSession, f: File) -> File:
    await session.execute(
        update(File)
        .where(File.id == f.id)
        .values(downloads=File.downloads + 1)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(f)
    return f


async def delete_file_row(session: AsyncSession, f: File) -> None:
    await session.delete(f)
    await session.commit()


# -------------------------
# Share helpers
# -------------------------
async def get_share(session: AsyncSession, share_id: str) -> Share | None:
    res = await session.exec(select(Share).where(Share.share_id == share_id))
    return res.first()


async def get_active_share_for_project(session: AsyncSession, project_id: int) -> Share | None:
    res = await session.exec(
        select(Share).where(Share.project_id == project_id, col(Share.is_active).is_(True))
    )
    return res.first()


async def list_shares_by_creator(session: AsyncSession, user_id: int) -> List[Share]:
    res = await session.exec(
        select(Share).where(Share.created_by == user_id).order_by(col(Share.created_at).desc())
    )
    return list(res.all())


async def save_share(session: AsyncSession, share: Share) -> Share:
    session.add(share)
    await session.commit()
    await session.refresh(share)
    return share


async def consume_share_download(session: AsyncSession, share: Share, now: datetime | None = None) -> bool:
    """
    Count one download against ``share`` if it is still valid.

    The validity check and the increment run as one conditional UPDATE so two
    concurrent downloads at the cap cannot both pass. Returns False when no
    row matched, i.e. the share became invalid.
    """
    now = now or datetime.utcnow()
    stmt = (
        update(Share)
        .where(
            Share.id == share.id,
            col(Share.is_active).is_(True),
            or_(col(Share.expires_at).is_(None), col(Share.expires_at) >= now),
            or_(col(Share.max_downloads).is_(None), col(Share.current_downloads) < col(Share.max_downloads)),
        )
        .values(current_downloads=Share.current_downloads + 1, last_accessed=now)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    await session.commit()
    await session.refresh(share)
    return res.rowcount == 1


# -------------------------
# Chat helpers
# -------------------------
async def create_message(
    session: AsyncSession,
    *,
    project_id: int,
    sender_id: int,
    content: str,
    message_type: str = "text",
    file_id: int | None = None,
) -> Message:
    m = Message(
        project_id=project_id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        file_id=file_id,
    )
    session.add(m)
    await session.commit()
    await session.refresh(m)
    return m


async def get_message(session: AsyncSession, message_id: int) -> Message | None:
    return await session.get(Message, message_id)


async def list_messages(session: AsyncSession, project_id: int) -> List[Message]:
    res = await session.exec(
        select(Message).where(Message.project_id == project_id).order_by(col(Message.created_at).desc(), col(Message.id).desc())
    )
    return list(res.all())


async def save_message(session: AsyncSession, message: Message) -> Message:
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return message


async def delete_message(session: AsyncSession, message: Message) -> None:
    await session.delete(message)
    await session.commit()


# -------------------------
# Activity & token revocation
# -------------------------
async def log_activity(session: AsyncSession, user_id: int, action: str, details: str | None = None):
    a = ActivityLog(user_id=user_id, action=action, details=details)
    session.add(a)
    await session.commit()


async def list_activity(session: AsyncSession, limit: int = 100) -> List[ActivityLog]:
    res = await session.exec(select(ActivityLog).order_by(col(ActivityLog.created_at).desc()).limit(limit))
    return list(res.all())


async def revoke_token(session: AsyncSession, jti: str, expires_at: datetime):
    rt = RevokedToken(jti=jti, expires_at=expires_at)
    session.add(rt)
    await session.commit()


async def is_token_revoked(session: AsyncSession, jti: Optional[str]) -> bool:
    if not jti:
        return False
    res = await session.exec(select(RevokedToken).where(RevokedToken.jti == jti))
    return res.first() is not None
