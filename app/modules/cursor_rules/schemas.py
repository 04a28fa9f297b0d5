from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime

# Letters, digits, spaces, hyphens and underscores; the extension is added on export
FILE_NAME_PATTERN = r"^[a-zA-Z0-9\-_\s]+$"
MAX_FILE_NAME_LENGTH = 100
MAX_CONTENT_LENGTH = 50000
MAX_GLOB_LENGTH = 500


class RuleType(str, Enum):
    PROJECT_RULE = "PROJECT_RULE"
    USER_RULE = "USER_RULE"
    COMMAND = "COMMAND"


class ApplyMode(str, Enum):
    ALWAYS = "always"
    INTELLIGENT = "intelligent"
    SPECIFIC = "specific"
    MANUAL = "manual"


class CursorRuleCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=MAX_FILE_NAME_LENGTH, pattern=FILE_NAME_PATTERN)
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)
    type: RuleType
    is_active: bool = False
    source_message_id: Optional[str] = None
    apply_mode: Optional[ApplyMode] = None  # PROJECT_RULE only
    glob_pattern: Optional[str] = Field(None, max_length=MAX_GLOB_LENGTH)  # used with apply_mode "specific"

    @model_validator(mode="after")
    def apply_mode_only_for_project_rules(self):
        if self.apply_mode is not None and self.type != RuleType.PROJECT_RULE:
            raise ValueError("apply_mode is only valid for PROJECT_RULE")
        return self


class CursorRuleUpdate(BaseModel):
    file_name: Optional[str] = Field(None, min_length=1, max_length=MAX_FILE_NAME_LENGTH, pattern=FILE_NAME_PATTERN)
    content: Optional[str] = Field(None, min_length=1, max_length=MAX_CONTENT_LENGTH)
    is_active: Optional[bool] = None


class CursorRuleResponse(BaseModel):
    id: str
    repository_id: str
    user_id: str
    source_message_id: Optional[str] = None
    type: RuleType
    file_name: str
    content: str
    is_active: bool = False
    apply_mode: Optional[ApplyMode] = None
    glob_pattern: Optional[str] = None
    current_version: int = 1
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RuleNodeMetadata(BaseModel):
    file_name: str
    type: RuleType
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleTreeNode(BaseModel):
    name: str
    type: str  # "file" | "directory"
    path: str
    rule_id: Optional[str] = None
    metadata: Optional[RuleNodeMetadata] = None
    children: Optional[List["RuleTreeNode"]] = None


class RulesTreeResponse(BaseModel):
    name: str = "root"
    type: str = "directory"
    path: str = "/"
    children: List[RuleTreeNode] = []
