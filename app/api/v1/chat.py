from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from app import crud
from app.core.errors import AuthorizationError, NotFoundError
from app.deps import get_current_user, get_db
from app.permissions import Action, is_allowed
from app.schemas import MessageCreate, MessagePage, MessageRead
from app.services.projects import load_project
from app.utils.paginator import paginate

router = APIRouter()


async def _load_message(db: AsyncSession, message_id: int):
    message = await crud.get_message(db, message_id)
    if not message:
        raise NotFoundError("Message not found")
    return message


async def _check_moderation(db: AsyncSession, message, current, action: Action, denied: str) -> None:
    """Senders and global admins act on a message even without view rights on the project."""
    project = await crud.get_project(db, message.project_id)
    if not project:
        raise NotFoundError("Message not found")
    access = await crud.get_project_access(db, project)
    if not is_allowed(current, access, action, resource_owner_id=message.sender_id):
        raise AuthorizationError(denied)


@router.get("/project/{project_id}", response_model=MessagePage)
async def list_messages(
    project_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project, _ = await load_project(db, project_id, current)
    result = paginate(await crud.list_messages(db, project.id), page=page, page_size=page_size)
    # pages run newest first; each page reads oldest first
    result["items"] = list(reversed(result["items"]))
    return result


@router.post("/project/{project_id}", response_model=MessageRead, status_code=201)
async def post_message(
    project_id: int,
    payload: MessageCreate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project, _ = await load_project(db, project_id, current)
    return await crud.create_message(db, project_id=project.id, sender_id=current.id, content=payload.content)


@router.put("/{message_id}", response_model=MessageRead)
async def edit_message(
    message_id: int,
    payload: MessageCreate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = await _load_message(db, message_id)
    await _check_moderation(db, message, current, Action.edit_message, "Not allowed to edit this message")

    message.content = payload.content
    message.is_edited = True
    message.edited_at = datetime.utcnow()
    return await crud.save_message(db, message)


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = await _load_message(db, message_id)
    await _check_moderation(db, message, current, Action.delete_message, "Not allowed to delete this message")
    await crud.delete_message(db, message)
    return {"ok": True, "message": "Message deleted"}
