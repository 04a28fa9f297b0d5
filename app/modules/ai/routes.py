from fastapi import APIRouter, Depends, HTTPException, Query
from app.database.supabase_client import get_supabase
from app.modules.ai.client import GroqClient
from app.modules.ai.schemas import (
    AIProvider, AIPreferencesResponse, AIPreferencesUpdate, AggregatedUsage, GenerateRequest,
    GenerateResponse, ModelsResponse, UsageGroupBy, UsageRecord, UsageRecordResponse,
    PROVIDER_CONFIGS, DEFAULT_PROVIDER
)
from app.modules.ai.service import AIPreferencesService
from app.core.dependencies import get_current_user, check_workspace_access
from supabase import Client
from typing import List, Dict, Optional
import logging
import time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


def get_preferences_service(supabase: Client = Depends(get_supabase)) -> AIPreferencesService:
    return AIPreferencesService(supabase)


def get_groq_client() -> GroqClient:
    return GroqClient()


@router.get("/models", response_model=ModelsResponse)
async def list_models(provider: AIProvider = DEFAULT_PROVIDER):
    """Models available for a provider (public)"""
    config = PROVIDER_CONFIGS[provider]
    return ModelsResponse(provider=provider, default_model=config.default_model, models=config.models)


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service),
    client: GroqClient = Depends(get_groq_client),
    supabase: Client = Depends(get_supabase)
):
    """
    Single-prompt generation. Unset model options fall back to the caller's
    preferences, and the token usage is recorded against the caller.
    """
    if body.workspace_id:
        check_workspace_access(body.workspace_id, user_data, supabase)
    preferences = service.get_user_preferences(user_data["id"])
    model = body.model or preferences.default_model
    temperature = body.temperature if body.temperature is not None else preferences.default_temperature
    max_tokens = body.max_tokens or preferences.default_max_tokens

    started = time.monotonic()
    result = await client.generate(body.prompt, model=model, temperature=temperature, max_tokens=max_tokens)
    elapsed_ms = int((time.monotonic() - started) * 1000)

    try:
        service.track_usage(UsageRecord(
            user_id=user_data["id"],
            workspace_id=body.workspace_id,
            repository_id=body.repository_id,
            provider=body.provider or preferences.default_provider,
            model=result.model,
            prompt_tokens=result.usage.prompt_tokens,
            completion_tokens=result.usage.completion_tokens,
            total_tokens=result.usage.total_tokens,
            generation_time_ms=elapsed_ms,
        ))
    except HTTPException as e:
        logger.error("Generation for user %s succeeded but usage was not recorded: %s", user_data["id"], e.detail)
    return result


@router.get("/preferences", response_model=AIPreferencesResponse)
async def get_preferences(
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service)
):
    return service.get_user_preferences(user_data["id"])


@router.put("/preferences", response_model=AIPreferencesResponse)
async def update_preferences(
    updates: AIPreferencesUpdate,
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service)
):
    return service.update_user_preferences(user_data["id"], updates)


@router.get("/usage", response_model=List[UsageRecordResponse])
async def get_usage(
    days: int = Query(30, ge=1, le=365),
    workspace_id: Optional[str] = Query(None, alias="workspaceId"),
    repository_id: Optional[str] = Query(None, alias="repositoryId"),
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service)
):
    return service.get_user_usage_stats(
        user_data["id"], days=days, workspace_id=workspace_id, repository_id=repository_id
    )


@router.get("/usage/aggregate", response_model=Dict[str, AggregatedUsage])
async def get_aggregated_usage(
    group_by: UsageGroupBy = Query(UsageGroupBy.DAY, alias="groupBy"),
    days: int = Query(30, ge=1, le=365),
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service)
):
    return service.get_aggregated_usage_stats(user_data["id"], days=days, group_by=group_by)


@router.get("/workspaces/{workspace_id}/usage", response_model=List[UsageRecordResponse])
async def get_workspace_usage(
    workspace_id: str,
    days: int = Query(30, ge=1, le=365),
    user_data: Dict = Depends(get_current_user),
    service: AIPreferencesService = Depends(get_preferences_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(workspace_id, user_data, supabase)
    return service.get_workspace_usage_stats(workspace_id, days=days)
