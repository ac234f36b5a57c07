from typing import List, Optional
from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field
from datetime import datetime

from app.permissions import CollaboratorPermission, share_is_valid


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str = Field(index=True, unique=True)
    hashed_password: str
    is_admin: bool = Field(default=False)
    can_upload: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    last_login: Optional[datetime] = Field(default=None, sa_type=DateTime)


class Project(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_public: bool = Field(default=False)
    owner_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)


class Collaborator(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_collaborator_project_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="project.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    permission: CollaboratorPermission = Field(default=CollaboratorPermission.read)
    added_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)


class File(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="project.id", index=True)
    uploaded_by: int = Field(foreign_key="user.id")
    original_name: str
    storage_key: str
    mime_type: Optional[str] = None
    size: int = 0
    downloads: int = Field(default=0)
    is_public: bool = Field(default=False)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    uploaded_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)


class Share(SQLModel, table=True):
    # at most one active share per project; deactivated rows are kept
    __table_args__ = (
        Index(
            "uq_share_active_project",
            "project_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    share_id: str = Field(index=True, unique=True)
    project_id: int = Field(foreign_key="project.id", index=True)
    created_by: int = Field(foreign_key="user.id", index=True)
    password_hash: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    max_downloads: Optional[int] = None
    current_downloads: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
    last_accessed: Optional[datetime] = Field(default=None, sa_type=DateTime)

    def is_valid(self, now: datetime | None = None) -> bool:
        return share_is_valid(
            self.is_active,
            self.expires_at,
            self.max_downloads,
            self.current_downloads,
            now or datetime.utcnow(),
        )


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="project.id", index=True)
    sender_id: int = Field(foreign_key="user.id", index=True)
    content: str
    message_type: str = Field(default="text")  # 'text', 'file' or 'system'
    file_id: Optional[int] = None
    is_edited: bool = Field(default=False)
    edited_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime, index=True)


class RevokedToken(SQLModel, table=True):
    jti: str = Field(primary_key=True)
    expires_at: datetime = Field(sa_type=DateTime)


class ActivityLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    action: str
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime)
