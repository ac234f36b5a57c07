import logging
import os
from typing import List

from fastapi import APIRouter, Depends, UploadFile, File
from sqlmodel.ext.asyncio.session import AsyncSession

from app.deps import get_current_user, get_db, get_storage
from app.schemas import FileRead, FileUpdate
from app.utils.storage import LocalStorage, delete_quietly, file_response
from app.crud import (
    create_file,
    create_message,
    delete_file_row,
    get_file,
    get_project,
    get_project_access,
    increment_file_downloads,
    list_files,
    log_activity,
)
from app.core.config import settings
from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.permissions import Action, can_delete_file, can_edit_file, can_view_project
from app.services.projects import load_project

logger = logging.getLogger("projectdrop.files")

router = APIRouter()


async def _load_file(db: AsyncSession, file_id: int, current):
    """Return (file, project access); files of invisible projects are reported missing."""
    file_obj = await get_file(db, file_id)
    if not file_obj:
        raise NotFoundError("File not found")
    project = await get_project(db, file_obj.project_id)
    if not project:
        raise NotFoundError("File not found")
    access = await get_project_access(db, project)
    if not (can_view_project(current, access) or file_obj.is_public):
        raise NotFoundError("File not found")
    return file_obj, access


@router.get("/project/{project_id}", response_model=List[FileRead])
async def project_files(
    project_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project, _ = await load_project(db, project_id, current)
    return await list_files(db, project.id)


@router.post("/upload/{project_id}", response_model=FileRead, status_code=201)
async def upload(
    project_id: int,
    upload_file: UploadFile = File(...),
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    """
    Upload flow:
    1. Check the caller may upload into the project.
    2. Check MIME type and size.
    3. Store the bytes, then create the File record.
    4. Announce the upload in the project chat.
    """
    project, _ = await load_project(
        db, project_id, current, Action.upload_file, denied="No upload rights for this project"
    )

    filename = upload_file.filename or "upload"
    content_type = (upload_file.content_type or "").lower()
    if content_type not in settings.allowed_mime_types:
        raise ValidationError(f"File type not allowed: {content_type or 'unknown'}")

    # read bytes (consume the UploadFile stream once)
    file_bytes = await upload_file.read()
    if len(file_bytes) > settings.max_upload_size_bytes:
        raise ValidationError("File too large")

    _, suffix = os.path.splitext(filename)
    storage_key = storage.save(file_bytes, suffix=suffix.lower())
    try:
        f = await create_file(
            db,
            project_id=project.id,
            uploaded_by=current.id,
            original_name=filename,
            storage_key=storage_key,
            mime_type=content_type,
            size=len(file_bytes),
        )
    except Exception:
        # no metadata row points at these bytes
        delete_quietly(storage, [storage_key])
        raise

    await create_message(
        db,
        project_id=project.id,
        sender_id=current.id,
        content=f'uploaded the file "{filename}"',
        message_type="system",
        file_id=f.id,
    )
    await log_activity(db, current.id, "upload", f"Uploaded file {filename} to project {project.id}")
    return f


@router.get("/download/{file_id}")
async def download(
    file_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    file_obj, _ = await _load_file(db, file_id, current)
    if not storage.exists(file_obj.storage_key):
        logger.error("Storage object %s missing for file %s", file_obj.storage_key, file_obj.id)
        raise NotFoundError("File not found")

    file_obj = await increment_file_downloads(db, file_obj)
    return file_response(storage, file_obj.storage_key, file_obj.original_name, file_obj.mime_type)


@router.put("/{file_id}", response_model=FileRead)
async def update_file(
    file_id: int,
    payload: FileUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    file_obj, access = await _load_file(db, file_id, current)
    if not can_edit_file(current, access, file_obj.uploaded_by):
        raise AuthorizationError("Not allowed to edit this file")

    if payload.is_public is not None:
        file_obj.is_public = payload.is_public
    if payload.tags is not None:
        file_obj.tags = payload.tags

    db.add(file_obj)
    await db.commit()
    await db.refresh(file_obj)
    return file_obj


@router.delete("/{file_id}")
async def delete_file(
    file_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    file_obj, access = await _load_file(db, file_id, current)
    if not can_delete_file(current, access, file_obj.uploaded_by):
        raise AuthorizationError("Not allowed to delete this file")

    storage_key = file_obj.storage_key
    name = file_obj.original_name
    await delete_file_row(db, file_obj)
    # the row is gone; a leftover object is only logged
    delete_quietly(storage, [storage_key])

    await log_activity(db, current.id, "delete_file", f"Deleted file {name}")
    return {"ok": True, "message": "File deleted"}
