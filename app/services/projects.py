import logging
from typing import Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from app import crud
from app.core.email import send_local_email
from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models import Project, User
from app.permissions import Action, CollaboratorPermission, ProjectAccess, can_view_project, is_allowed
from app.schemas import CollaboratorRead, ProjectRead, UserBrief
from app.utils.storage import LocalStorage, delete_quietly

logger = logging.getLogger("projectdrop.projects")


async def load_project(
    db: AsyncSession,
    project_id: int,
    actor: User,
    action: Action = Action.view_project,
    *,
    resource_owner_id: Optional[int] = None,
    denied: str = "Not allowed",
) -> Tuple[Project, ProjectAccess]:
    """
    Fetch a project and check ``action`` for ``actor``.

    A project the actor cannot even view is reported as missing so private
    projects do not leak; a visible project with insufficient rights raises
    AuthorizationError.
    """
    project = await crud.get_project(db, project_id)
    if not project:
        raise NotFoundError("Project not found")

    access = await crud.get_project_access(db, project)
    if not can_view_project(actor, access):
        raise NotFoundError("Project not found")
    if not is_allowed(actor, access, action, resource_owner_id=resource_owner_id):
        raise AuthorizationError(denied)
    return project, access


async def project_read(db: AsyncSession, project: Project) -> ProjectRead:
    owner = await crud.get_user_by_id(db, project.owner_id)
    collaborators = [
        CollaboratorRead(
            user=UserBrief.model_validate(user),
            permission=c.permission,
            added_at=c.added_at,
        )
        for c, user in await crud.list_collaborators(db, project.id)
    ]
    return ProjectRead(
        id=project.id,
        name=project.name,
        description=project.description,
        tags=project.tags,
        is_public=project.is_public,
        owner=UserBrief.model_validate(owner),
        collaborators=collaborators,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def delete_project(db: AsyncSession, actor: User, project_id: int, storage: LocalStorage) -> None:
    project, _ = await load_project(
        db, project_id, actor, Action.delete_project, denied="Only the project owner can delete the project"
    )
    name = project.name
    storage_keys = await crud.delete_project_cascade(db, project)
    # bytes go only after the metadata is gone
    delete_quietly(storage, storage_keys)

    logger.info("Project %s (%s) deleted with %d files", project_id, name, len(storage_keys))
    await crud.log_activity(db, actor.id, "delete_project", f"Deleted project {name}")


async def add_collaborator(
    db: AsyncSession, actor: User, project_id: int, email: str, permission: CollaboratorPermission
) -> Project:
    project, _ = await load_project(
        db, project_id, actor, Action.manage_collaborators, denied="Only the project owner can add collaborators"
    )
    user = await crud.get_user_by_email(db, email)
    if not user:
        raise NotFoundError("No user with this email address")
    if user.id == project.owner_id:
        raise ValidationError("The owner cannot be added as a collaborator")

    actor_id, actor_name = actor.id, actor.username
    email, username = user.email, user.username

    await crud.upsert_collaborator(db, project.id, user.id, permission)
    project = await crud.save_project(db, project)

    send_local_email(
        email,
        f"You were added to {project.name}",
        f"{actor_name} gave you {permission.value} access to '{project.name}'",
    )
    await crud.log_activity(
        db, actor_id, "add_collaborator", f"{username} -> {permission.value} on project {project.id}"
    )
    return project


async def update_collaborator(
    db: AsyncSession, actor: User, project_id: int, user_id: int, permission: CollaboratorPermission
) -> Project:
    project, _ = await load_project(
        db, project_id, actor, Action.manage_collaborators, denied="Only the project owner can change permissions"
    )
    if not await crud.get_collaborator(db, project.id, user_id):
        raise NotFoundError("Collaborator not found")

    await crud.upsert_collaborator(db, project.id, user_id, permission)
    return await crud.save_project(db, project)


async def remove_collaborator(db: AsyncSession, actor: User, project_id: int, user_id: int) -> Project:
    project, _ = await load_project(
        db, project_id, actor, Action.manage_collaborators, denied="Only the project owner can remove collaborators"
    )
    if await crud.remove_collaborator(db, project.id, user_id):
        await crud.log_activity(db, actor.id, "remove_collaborator", f"user {user_id} from project {project.id}")
    return await crud.save_project(db, project)
