from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Annotated, List, Optional
from datetime import datetime, timezone

from app.permissions import CollaboratorPermission, ShareState


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _unique_tags(tags: List[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


Tags = Annotated[List[str], AfterValidator(_unique_tags)]
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]


# -------------------------
# Identity
# -------------------------
class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(min_length=6)


class UserRead(BaseModel):
    id: int
    username: str
    email: EmailStr
    is_admin: bool
    can_upload: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserBrief(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
    message: Optional[str] = None


class GrantUploadReq(BaseModel):
    can_upload: bool


# -------------------------
# Projects
# -------------------------
class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)
    tags: Tags = []
    is_public: bool = False


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[Tags] = None
    is_public: Optional[bool] = None


class CollaboratorRead(BaseModel):
    user: UserBrief
    permission: CollaboratorPermission
    added_at: datetime


class ProjectRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    tags: List[str]
    is_public: bool
    owner: UserBrief
    collaborators: List[CollaboratorRead] = []
    created_at: datetime
    updated_at: datetime


class CollaboratorAdd(BaseModel):
    email: EmailStr
    permission: CollaboratorPermission


class CollaboratorUpdate(BaseModel):
    permission: CollaboratorPermission


# -------------------------
# Files
# -------------------------
class FileRead(BaseModel):
    id: int
    project_id: int
    uploaded_by: int
    original_name: str
    mime_type: Optional[str] = None
    size: int
    downloads: int
    is_public: bool
    tags: List[str]
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileUpdate(BaseModel):
    is_public: Optional[bool] = None
    tags: Optional[Tags] = None


# -------------------------
# Shares
# -------------------------
class ShareCreate(BaseModel):
    password: Optional[str] = Field(default=None, min_length=1)
    expires_at: Optional[UtcDatetime] = None
    max_downloads: Optional[int] = Field(default=None, ge=1)


class ShareUpdate(BaseModel):
    """Omitted fields stay as they are; explicit null (or "" for password) clears them."""
    password: Optional[str] = None
    expires_at: Optional[UtcDatetime] = None
    max_downloads: Optional[int] = Field(default=None, ge=1)


class ShareVerifyReq(BaseModel):
    password: str = Field(min_length=1)


class ShareRead(BaseModel):
    share_id: str
    project_id: int
    created_by: int
    has_password: bool
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    current_downloads: int
    is_active: bool
    created_at: datetime
    last_accessed: Optional[datetime] = None


class ShareProject(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class ShareAccess(BaseModel):
    requires_password: bool = False
    project: ShareProject
    share: Optional[ShareRead] = None
    created_by: Optional[UserBrief] = None
    files: Optional[List[FileRead]] = None
    share_token: Optional[str] = None


class ShareStats(BaseModel):
    share_id: str
    project_name: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    current_downloads: int
    last_accessed: Optional[datetime] = None
    is_active: bool
    is_valid: bool
    state: ShareState


# -------------------------
# Chat
# -------------------------
class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message must not be blank")
        return v


class MessageRead(BaseModel):
    id: int
    project_id: int
    sender_id: int
    content: str
    message_type: str
    file_id: Optional[int] = None
    is_edited: bool
    edited_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessagePage(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int
    items: List[MessageRead]


class ActivityRead(BaseModel):
    id: int
    user_id: int
    action: str
    details: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
