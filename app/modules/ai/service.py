from supabase import Client
from app.core.errors import is_unique_violation
from app.modules.ai.schemas import (
    AIPreferencesResponse, AIPreferencesUpdate, AggregatedUsage, UsageGroupBy, UsageRecord,
    UsageRecordResponse, PROVIDER_CONFIGS, DEFAULT_PROVIDER, DEFAULT_TEMPERATURE, is_model_supported
)
from typing import Dict, List, Optional
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


def usage_window_start(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def aggregate_usage(records: List[UsageRecordResponse], group_by: UsageGroupBy) -> Dict[str, AggregatedUsage]:
    """Totals per provider, model or UTC day; average generation time skips records without one."""
    totals: Dict[str, AggregatedUsage] = {}
    times: Dict[str, List[int]] = {}
    for record in records:
        if group_by == UsageGroupBy.PROVIDER:
            key = record.provider.value
        elif group_by == UsageGroupBy.MODEL:
            key = record.model
        else:
            key = record.created_at.astimezone(timezone.utc).date().isoformat()
        bucket = totals.setdefault(key, AggregatedUsage())
        bucket.request_count += 1
        bucket.total_tokens += record.total_tokens
        bucket.total_cost += record.estimated_cost or 0
        if record.generation_time_ms:
            times.setdefault(key, []).append(record.generation_time_ms)
    for key, samples in times.items():
        totals[key].avg_generation_time = sum(samples) / len(samples)
    return totals


class AIPreferencesService:
    """Per-user model defaults and token usage. Never stores provider API keys."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_user_preferences(self, user_id: str) -> AIPreferencesResponse:
        """Stored preferences, created with defaults on first use"""
        existing = self._find_preferences(user_id)
        if existing is not None:
            return AIPreferencesResponse(**existing)

        defaults = PROVIDER_CONFIGS[DEFAULT_PROVIDER]
        try:
            result = self.supabase.table("user_ai_preferences").insert({
                "user_id": user_id,
                "default_provider": DEFAULT_PROVIDER.value,
                "default_model": defaults.default_model,
                "default_temperature": DEFAULT_TEMPERATURE,
                "default_max_tokens": None,
            }).execute()
        except Exception as e:
            if not is_unique_violation(e):
                raise HTTPException(status_code=500, detail=f"Failed to create AI preferences: {e}")
            # Created by a parallel request
            existing = self._find_preferences(user_id)
            if existing is None:
                raise HTTPException(status_code=500, detail=f"Failed to create AI preferences: {e}")
            return AIPreferencesResponse(**existing)
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create AI preferences")
        return AIPreferencesResponse(**result.data[0])

    def _find_preferences(self, user_id: str) -> Optional[dict]:
        try:
            result = self.supabase.table("user_ai_preferences")\
                .select("*")\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to get AI preferences: {e}")
        return result.data[0] if result.data else None

    def update_user_preferences(self, user_id: str, updates: AIPreferencesUpdate) -> AIPreferencesResponse:
        current = self.get_user_preferences(user_id)
        update_data = updates.model_dump(mode="json", exclude_none=True)
        if not update_data:
            return current

        provider = updates.default_provider or current.default_provider
        model = updates.default_model or current.default_model
        if updates.default_provider is not None and updates.default_model is None:
            model = PROVIDER_CONFIGS[provider].default_model
            update_data["default_model"] = model
        if not is_model_supported(model, provider):
            raise HTTPException(
                status_code=400,
                detail=f"Model {model} is not supported for provider {provider.value}"
            )

        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table("user_ai_preferences")\
                .update(update_data)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update AI preferences: {e}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to update AI preferences")
        return AIPreferencesResponse(**result.data[0])

    def track_usage(self, usage: UsageRecord) -> UsageRecordResponse:
        """
        Store one generation and add it to the user's running totals.

        The totals are a read-modify-write on user_ai_preferences; the
        ai_usage_statistics rows stay the source of truth.
        """
        try:
            result = self.supabase.table("ai_usage_statistics")\
                .insert(usage.model_dump(mode="json"))\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to track AI usage: {e}")
        record = UsageRecordResponse(**result.data[0])

        preferences = self.get_user_preferences(usage.user_id)
        try:
            self.supabase.table("user_ai_preferences").update({
                "total_tokens_used": preferences.total_tokens_used + usage.total_tokens,
                "total_requests_count": preferences.total_requests_count + 1,
                "last_used_at": datetime.now(timezone.utc).isoformat(),
            }).eq("user_id", usage.user_id).execute()
        except Exception:
            logger.exception("Failed to update AI usage totals for user %s", usage.user_id)
        return record

    def get_user_usage_stats(
        self,
        user_id: str,
        days: int = 30,
        workspace_id: Optional[str] = None,
        repository_id: Optional[str] = None,
    ) -> List[UsageRecordResponse]:
        """The user's generations over the last `days` days, newest first"""
        query = self.supabase.table("ai_usage_statistics")\
            .select("*")\
            .eq("user_id", user_id)\
            .gte("created_at", usage_window_start(days).isoformat())
        if workspace_id:
            query = query.eq("workspace_id", workspace_id)
        if repository_id:
            query = query.eq("repository_id", repository_id)
        return self._fetch_usage(query, "Failed to get usage statistics")

    def get_aggregated_usage_stats(
        self, user_id: str, days: int = 30, group_by: UsageGroupBy = UsageGroupBy.DAY
    ) -> Dict[str, AggregatedUsage]:
        return aggregate_usage(self.get_user_usage_stats(user_id, days=days), group_by)

    def get_workspace_usage_stats(self, workspace_id: str, days: int = 30) -> List[UsageRecordResponse]:
        query = self.supabase.table("ai_usage_statistics")\
            .select("*")\
            .eq("workspace_id", workspace_id)\
            .gte("created_at", usage_window_start(days).isoformat())
        return self._fetch_usage(query, "Failed to get workspace usage")

    def _fetch_usage(self, query, error_message: str) -> List[UsageRecordResponse]:
        try:
            result = query.order("created_at", desc=True).execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"{error_message}: {e}")
        return [UsageRecordResponse(**r) for r in result.data]
