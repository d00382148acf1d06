"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .models import ChatScope, ProjectStatus, ReportResult, Role, TargetType

AVATAR_URL_TEMPLATE = "/api/v1/profile/avatar/{user_id}"


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


# ============================================================================
# Departments
# ============================================================================

class DepartmentResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class DepartmentListResponse(BaseModel):
    items: list[DepartmentResponse]


# ============================================================================
# Users
# ============================================================================

class UserBrief(BaseModel):
    """Team member as shown inside projects and tasks."""

    id: int
    login: str
    full_name: str

    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    """Schema for user responses. The stored avatar path is never exposed."""

    id: int
    login: str
    full_name: str
    position: str
    role: Role
    department_id: int
    department_name: str
    avatar_path: str = Field("", exclude=True)

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @computed_field
    @property
    def avatar_url(self) -> Optional[str]:
        if not self.avatar_path:
            return None
        return AVATAR_URL_TEMPLATE.format(user_id=self.id)


class UserListResponse(BaseModel):
    items: list[UserResponse]


class RegisterRequest(BaseModel):
    """Self-registration. The role is always Member."""

    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    repeat_password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    department_id: int


class LoginRequest(BaseModel):
    login: str
    password: str


class LoginResponse(BaseModel):
    message: str = "ok"
    user: UserResponse


class UserCreate(BaseModel):
    """Administrator-initiated account creation."""

    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    role: str = Role.MEMBER.value
    department_id: int


class UserRoleUpdate(BaseModel):
    role: str  # parsed case-insensitively


class UserUpdate(BaseModel):
    login: str = Field(..., min_length=1, max_length=255)
    full_name: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    role: str
    department_id: int


class ProfileUpdate(BaseModel):
    """Own profile edit; an empty password keeps the current one."""

    full_name: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    password: Optional[str] = None


class ProfileResponse(BaseModel):
    message: str
    user: UserResponse


# ============================================================================
# Projects
# ============================================================================

class ProjectWrite(BaseModel):
    """Schema for creating or replacing a project. An empty key is generated (create) or kept (update)."""

    key: str = Field("", max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    department_id: int
    curator_ids: list[int] = Field(..., min_length=1)
    assignee_ids: list[int] = Field(..., min_length=1)


class ProjectResponse(BaseModel):
    """Schema for project responses."""

    id: int
    key: str
    name: str
    status: ProjectStatus
    department_id: int
    department_name: str
    curator_user_id: int
    curators: list[UserBrief]
    assignees: list[UserBrief]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ProjectListResponse(BaseModel):
    items: list[ProjectResponse]


# ============================================================================
# Tasks
# ============================================================================

class TaskWrite(BaseModel):
    """Schema for creating or replacing a task."""

    key: str = Field("", max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    type: str = Field(..., min_length=1, max_length=50)
    status: str = Field(..., min_length=1, max_length=50)
    priority: str = Field(..., min_length=1, max_length=50)
    project_id: int
    curator_ids: list[int] = Field(..., min_length=1)
    assignee_ids: list[int] = Field(..., min_length=1)
    due_date: Optional[date] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def empty_due_date_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TaskResponse(BaseModel):
    """Schema for task responses."""

    id: int
    key: str
    title: str
    description: str
    type: str = Field(..., validation_alias="task_type")
    status: str
    priority: str
    due_date: Optional[date] = None
    project_id: int
    project_key: str
    project_name: str
    department_id: int
    department_name: str
    curator_user_id: int
    curators: list[UserBrief]
    assignees: list[UserBrief]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskListResponse(BaseModel):
    items: list[TaskResponse]


# ============================================================================
# Reports
# ============================================================================

class ReportResponse(BaseModel):
    """Schema for report responses; ``target_label`` names the closed item."""

    id: int
    target_type: TargetType
    target_id: int
    target_label: str
    result_status: ReportResult
    author_id: int
    author_name: str
    title: str
    resolution: str
    file_name: str = ""
    file_size: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ReportListResponse(BaseModel):
    items: list[ReportResponse]


# ============================================================================
# Chat
# ============================================================================

class DepartmentMessageCreate(BaseModel):
    """Department chat post; without ``department_id`` the actor's own department is used."""

    department_id: Optional[int] = None
    body: str


class ChatMessageResponse(BaseModel):
    id: int
    scope_type: ChatScope
    scope_id: int
    author_id: int = Field(..., validation_alias="author_user_id")
    author_name: str
    body: str
    file_name: str = ""
    file_size: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ChatMessageListResponse(BaseModel):
    items: list[ChatMessageResponse]
