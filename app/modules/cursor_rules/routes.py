from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.cursor_rules.schemas import (
    CursorRuleCreate, CursorRuleUpdate, CursorRuleResponse, RulesTreeResponse
)
from app.modules.cursor_rules.service import CursorRuleService
from app.modules.repositories.service import RepositoryService
from app.core.dependencies import get_current_user, check_workspace_access, check_workspace_admin
from app.core.errors import NotFoundError
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/repositories/{repository_id}/rules", tags=["cursor-rules"])


def get_cursor_rule_service(supabase: Client = Depends(get_supabase)) -> CursorRuleService:
    return CursorRuleService(supabase)


def _workspace_of(repository_id: str, supabase: Client) -> str:
    return RepositoryService(supabase).get_repository_by_id(repository_id).workspace_id


def _rule_in_repository(service: CursorRuleService, repository_id: str, rule_id: str) -> CursorRuleResponse:
    rule = service.get_rule_by_id(rule_id)
    if rule.repository_id != repository_id:
        raise NotFoundError("Rule")
    return rule


@router.get("", response_model=List[CursorRuleResponse])
async def list_rules(
    repository_id: str,
    active_only: bool = False,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(_workspace_of(repository_id, supabase), user_data, supabase)
    if active_only:
        return service.get_active_rules(repository_id)
    return service.get_rules(repository_id)


@router.get("/tree", response_model=RulesTreeResponse)
async def get_rules_tree(
    repository_id: str,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(_workspace_of(repository_id, supabase), user_data, supabase)
    return service.get_rules_tree(repository_id)


@router.post("", response_model=CursorRuleResponse, status_code=201)
async def create_rule(
    repository_id: str,
    rule_data: CursorRuleCreate,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(_workspace_of(repository_id, supabase), user_data, supabase, "create rules")
    return service.create_rule(user_data["id"], repository_id, rule_data)


@router.get("/{rule_id}", response_model=CursorRuleResponse)
async def get_rule(
    repository_id: str,
    rule_id: str,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(_workspace_of(repository_id, supabase), user_data, supabase)
    return _rule_in_repository(service, repository_id, rule_id)


@router.put("/{rule_id}", response_model=CursorRuleResponse)
async def update_rule(
    repository_id: str,
    rule_id: str,
    updates: CursorRuleUpdate,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(_workspace_of(repository_id, supabase), user_data, supabase, "update rules")
    _rule_in_repository(service, repository_id, rule_id)
    return service.update_rule(rule_id, updates)


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(
    repository_id: str,
    rule_id: str,
    user_data: Dict = Depends(get_current_user),
    service: CursorRuleService = Depends(get_cursor_rule_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(_workspace_of(repository_id, supabase), user_data, supabase, "delete rules")
    _rule_in_repository(service, repository_id, rule_id)
    service.delete_rule(rule_id)
    return None
