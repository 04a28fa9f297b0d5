from supabase import Client
from app.core.errors import NotFoundError
from app.modules.cursor_rules.schemas import (
    CursorRuleCreate, CursorRuleUpdate, CursorRuleResponse, RuleType,
    RuleTreeNode, RuleNodeMetadata, RulesTreeResponse
)
from typing import List
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

RULES_DIR = ".cursor/rules"
COMMANDS_DIR = ".cursor/commands"
USER_RULES_FILE = ".cursorrules"


def rule_file_name(rule: CursorRuleResponse) -> str:
    if rule.type == RuleType.PROJECT_RULE:
        return f"{rule.file_name}.rules.mdc"
    return f"{rule.file_name}.md"


def _file_node(rule: CursorRuleResponse, name: str, path: str) -> RuleTreeNode:
    return RuleTreeNode(
        name=name,
        type="file",
        path=path,
        rule_id=rule.id,
        metadata=RuleNodeMetadata(
            file_name=rule.file_name,
            type=rule.type,
            is_active=rule.is_active,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        ),
    )


def build_rules_tree(rules: List[CursorRuleResponse]) -> RulesTreeResponse:
    """
    Lay rules out the way Cursor reads them from a repository:
    .cursor/rules/<name>.rules.mdc, .cursor/commands/<name>.md and .cursorrules.
    """
    cursor_children = []
    for directory, rule_type in ((RULES_DIR, RuleType.PROJECT_RULE), (COMMANDS_DIR, RuleType.COMMAND)):
        files = [
            _file_node(rule, rule_file_name(rule), f"{directory}/{rule_file_name(rule)}")
            for rule in rules if rule.type == rule_type
        ]
        if files:
            cursor_children.append(RuleTreeNode(
                name=directory.split("/")[-1], type="directory", path=directory, children=files
            ))

    children = []
    if cursor_children:
        children.append(RuleTreeNode(name=".cursor", type="directory", path=".cursor", children=cursor_children))
    children.extend(
        _file_node(rule, USER_RULES_FILE, USER_RULES_FILE)
        for rule in rules if rule.type == RuleType.USER_RULE
    )
    return RulesTreeResponse(children=children)


class CursorRuleService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_rules(self, repository_id: str) -> List[CursorRuleResponse]:
        """Rules of a repository, newest first, soft-deleted ones excluded"""
        try:
            result = self.supabase.table("cursor_rules")\
                .select("*")\
                .eq("repository_id", repository_id)\
                .is_("deleted_at", "null")\
                .order("created_at", desc=True)\
                .execute()
            return [CursorRuleResponse(**r) for r in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch rules: {e}")

    def get_active_rules(self, repository_id: str) -> List[CursorRuleResponse]:
        try:
            result = self.supabase.table("cursor_rules")\
                .select("*")\
                .eq("repository_id", repository_id)\
                .eq("is_active", True)\
                .is_("deleted_at", "null")\
                .order("created_at", desc=True)\
                .execute()
            return [CursorRuleResponse(**r) for r in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch active rules: {e}")

    def get_rule_by_id(self, rule_id: str) -> CursorRuleResponse:
        try:
            result = self.supabase.table("cursor_rules")\
                .select("*")\
                .eq("id", rule_id)\
                .is_("deleted_at", "null")\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch rule: {e}")
        if not result.data:
            raise NotFoundError("Rule")
        return CursorRuleResponse(**result.data[0])

    def create_rule(self, user_id: str, repository_id: str, rule_data: CursorRuleCreate) -> CursorRuleResponse:
        try:
            result = self.supabase.table("cursor_rules").insert({
                "repository_id": repository_id,
                "user_id": user_id,
                "type": rule_data.type.value,
                "file_name": rule_data.file_name,
                "content": rule_data.content,
                "is_active": rule_data.is_active,
                "current_version": 1,
                "source_message_id": rule_data.source_message_id,
                "apply_mode": rule_data.apply_mode.value if rule_data.apply_mode else None,
                "glob_pattern": rule_data.glob_pattern or None,
            }).execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to create rule: {e}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create rule")
        return CursorRuleResponse(**result.data[0])

    def update_rule(self, rule_id: str, updates: CursorRuleUpdate) -> CursorRuleResponse:
        update_data = updates.model_dump(exclude_none=True)
        if not update_data:
            return self.get_rule_by_id(rule_id)
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table("cursor_rules")\
                .update(update_data)\
                .eq("id", rule_id)\
                .is_("deleted_at", "null")\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update rule: {e}")
        if not result.data:
            raise NotFoundError("Rule")
        return CursorRuleResponse(**result.data[0])

    def delete_rule(self, rule_id: str) -> None:
        """Soft delete: the row stays with deleted_at set"""
        try:
            result = self.supabase.table("cursor_rules")\
                .update({"deleted_at": datetime.now(timezone.utc).isoformat()})\
                .eq("id", rule_id)\
                .is_("deleted_at", "null")\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to delete rule: {e}")
        if not result.data:
            raise NotFoundError("Rule")

    def get_rules_tree(self, repository_id: str) -> RulesTreeResponse:
        return build_rules_tree(self.get_rules(repository_id))
