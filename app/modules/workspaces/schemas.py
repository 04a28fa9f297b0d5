from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class WorkspaceRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class WorkspaceCreate(BaseModel):
    name: str


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = None


class WorkspaceResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    is_default: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkspaceWithRoleResponse(WorkspaceResponse):
    user_role: WorkspaceRole = WorkspaceRole.MEMBER


class WorkspaceMemberAdd(BaseModel):
    user_id: str
    role: WorkspaceRole = WorkspaceRole.MEMBER


class WorkspaceMemberRoleUpdate(BaseModel):
    role: WorkspaceRole


class WorkspaceMemberResponse(BaseModel):
    user_id: str
    role: WorkspaceRole

    class Config:
        from_attributes = True


class WorkspaceRoleResponse(BaseModel):
    role: WorkspaceRole
