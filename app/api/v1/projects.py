from typing import List

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from app import crud
from app.deps import get_current_user, get_db, get_storage, require_upload_permission
from app.permissions import Action
from app.schemas import (
    CollaboratorAdd,
    CollaboratorUpdate,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
)
from app.services import projects as project_service
from app.utils.storage import LocalStorage

router = APIRouter()


@router.get("/", response_model=List[ProjectRead])
async def list_projects(current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return [
        await project_service.project_read(db, p)
        for p in await crud.list_projects_for_user(db, current.id)
    ]


@router.post("/", response_model=ProjectRead, status_code=201)
async def create_project(
    payload: ProjectCreate,
    current=Depends(require_upload_permission),
    db: AsyncSession = Depends(get_db),
):
    project = await crud.create_project(
        db,
        owner_id=current.id,
        name=payload.name,
        description=payload.description,
        tags=payload.tags,
        is_public=payload.is_public,
    )
    await crud.log_activity(db, current.id, "create_project", f"Created project {project.name}")
    return await project_service.project_read(db, project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(project_id: int, current=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    project, _ = await project_service.load_project(db, project_id, current)
    return await project_service.project_read(db, project)


@router.put("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: int,
    payload: ProjectUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project, _ = await project_service.load_project(db, project_id, current, Action.update_project)

    fields = payload.model_fields_set
    if payload.name:
        project.name = payload.name
    if "description" in fields:
        project.description = payload.description
    if payload.tags is not None:
        project.tags = payload.tags
    if payload.is_public is not None:
        project.is_public = payload.is_public

    project = await crud.save_project(db, project)
    return await project_service.project_read(db, project)


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
):
    await project_service.delete_project(db, current, project_id, storage)
    return {"ok": True, "message": "Project deleted"}


# --- Collaborators ---


@router.post("/{project_id}/collaborators", response_model=ProjectRead)
async def add_collaborator(
    project_id: int,
    payload: CollaboratorAdd,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.add_collaborator(db, current, project_id, payload.email, payload.permission)
    return await project_service.project_read(db, project)


@router.put("/{project_id}/collaborators/{user_id}", response_model=ProjectRead)
async def update_collaborator(
    project_id: int,
    user_id: int,
    payload: CollaboratorUpdate,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.update_collaborator(db, current, project_id, user_id, payload.permission)
    return await project_service.project_read(db, project)


@router.delete("/{project_id}/collaborators/{user_id}", response_model=ProjectRead)
async def remove_collaborator(
    project_id: int,
    user_id: int,
    current=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.remove_collaborator(db, current, project_id, user_id)
    return await project_service.project_read(db, project)
