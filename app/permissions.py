"""
Permission resolver.

Pure functions answering "may this identity do X on this project". Rules for
each action are OR'd: any satisfied clause allows the action. The owner
passes every project check; collaborator tiers only add rights for
non-owners. Global admins get no in-project rights except chat moderation.

Nothing here touches the database or raises. Callers load a
``ProjectAccess`` snapshot and map ``False`` to an error at the boundary.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Protocol


class CollaboratorPermission(str, Enum):
    read = "read"
    write = "write"
    admin = "admin"


class Action(str, Enum):
    view_project = "view_project"
    create_project = "create_project"
    update_project = "update_project"
    delete_project = "delete_project"
    manage_collaborators = "manage_collaborators"
    upload_file = "upload_file"
    delete_file = "delete_file"
    edit_file = "edit_file"
    manage_share = "manage_share"
    edit_message = "edit_message"
    delete_message = "delete_message"


class Actor(Protocol):
    id: Optional[int]
    is_admin: bool
    can_upload: bool


@dataclass(frozen=True)
class ProjectAccess:
    """What the resolver needs to know about a project."""
    owner_id: int
    is_public: bool = False
    collaborators: Dict[int, CollaboratorPermission] = field(default_factory=dict)

    def tier_of(self, user_id: Optional[int]) -> Optional[CollaboratorPermission]:
        if user_id is None:
            return None
        return self.collaborators.get(user_id)


WRITE_TIERS = frozenset({CollaboratorPermission.write, CollaboratorPermission.admin})
ADMIN_TIERS = frozenset({CollaboratorPermission.admin})


def is_owner(actor: Actor, project: ProjectAccess) -> bool:
    return actor.id is not None and actor.id == project.owner_id


def _has_tier(actor: Actor, project: ProjectAccess, tiers) -> bool:
    return project.tier_of(actor.id) in tiers


def can_view_project(actor: Actor, project: ProjectAccess) -> bool:
    return is_owner(actor, project) or project.tier_of(actor.id) is not None or project.is_public


def can_create_project(actor: Actor) -> bool:
    return bool(actor.can_upload or actor.is_admin)


def can_update_project(actor: Actor, project: ProjectAccess) -> bool:
    return is_owner(actor, project) or _has_tier(actor, project, {CollaboratorPermission.write})


def can_delete_project(actor: Actor, project: ProjectAccess) -> bool:
    return is_owner(actor, project)


def can_manage_collaborators(actor: Actor, project: ProjectAccess) -> bool:
    return is_owner(actor, project)


def can_upload_file(actor: Actor, project: ProjectAccess) -> bool:
    # the global can_upload flag only gates creating projects
    return is_owner(actor, project) or _has_tier(actor, project, WRITE_TIERS)


def can_delete_file(actor: Actor, project: ProjectAccess, uploader_id: Optional[int]) -> bool:
    return (
        is_owner(actor, project)
        or _has_tier(actor, project, ADMIN_TIERS)
        or (actor.id is not None and actor.id == uploader_id)
    )


def can_edit_file(actor: Actor, project: ProjectAccess, uploader_id: Optional[int]) -> bool:
    return (
        is_owner(actor, project)
        or _has_tier(actor, project, WRITE_TIERS)
        or (actor.id is not None and actor.id == uploader_id)
    )


def can_manage_share(actor: Actor, project: ProjectAccess) -> bool:
    return is_owner(actor, project)


def can_edit_share(actor: Actor, created_by: int) -> bool:
    return actor.id is not None and actor.id == created_by


def can_edit_message(actor: Actor, project: ProjectAccess, sender_id: int) -> bool:
    return (
        (actor.id is not None and actor.id == sender_id)
        or actor.is_admin
        or is_owner(actor, project)
        or _has_tier(actor, project, WRITE_TIERS)
    )


def can_delete_message(actor: Actor, project: ProjectAccess, sender_id: int) -> bool:
    return (
        (actor.id is not None and actor.id == sender_id)
        or actor.is_admin
        or is_owner(actor, project)
        or _has_tier(actor, project, ADMIN_TIERS)
    )


def is_allowed(
    actor: Actor,
    project: Optional[ProjectAccess],
    action: Action,
    *,
    resource_owner_id: Optional[int] = None,
) -> bool:
    """
    Single entry point over the ``can_*`` family.

    ``resource_owner_id`` is the file uploader or the message sender for the
    actions that grant rights to them. ``project`` may be None only for
    ``create_project``.
    """
    if action is Action.create_project:
        return can_create_project(actor)
    if project is None:
        return False
    if action is Action.view_project:
        return can_view_project(actor, project)
    if action is Action.update_project:
        return can_update_project(actor, project)
    if action is Action.delete_project:
        return can_delete_project(actor, project)
    if action is Action.manage_collaborators:
        return can_manage_collaborators(actor, project)
    if action is Action.upload_file:
        return can_upload_file(actor, project)
    if action is Action.delete_file:
        return can_delete_file(actor, project, resource_owner_id)
    if action is Action.edit_file:
        return can_edit_file(actor, project, resource_owner_id)
    if action is Action.manage_share:
        return can_manage_share(actor, project)
    if action is Action.edit_message:
        return resource_owner_id is not None and can_edit_message(actor, project, resource_owner_id)
    if action is Action.delete_message:
        return resource_owner_id is not None and can_delete_message(actor, project, resource_owner_id)
    return False


def share_is_valid(
    is_active: bool,
    expires_at: Optional[datetime],
    max_downloads: Optional[int],
    current_downloads: int,
    now: datetime,
) -> bool:
    if not is_active:
        return False
    if expires_at is not None and now > expires_at:
        return False
    if max_downloads is not None and current_downloads >= max_downloads:
        return False
    return True


class ShareState(str, Enum):
    active_unconsumed = "active_unconsumed"
    active_consuming = "active_consuming"
    expired = "expired"
    exhausted = "exhausted"
    deactivated = "deactivated"


def share_state(
    is_active: bool,
    expires_at: Optional[datetime],
    max_downloads: Optional[int],
    current_downloads: int,
    now: datetime,
) -> ShareState:
    if not is_active:
        return ShareState.deactivated
    if expires_at is not None and now > expires_at:
        return ShareState.expired
    if max_downloads is not None and current_downloads >= max_downloads:
        return ShareState.exhausted
    if current_downloads == 0:
        return ShareState.active_unconsumed
    return ShareState.active_consuming
