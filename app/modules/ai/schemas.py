from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict
from datetime import datetime


class AIProvider(str, Enum):
    GROQ = "groq"


class ProviderConfig(BaseModel):
    default_model: str
    models: List[str]


PROVIDER_CONFIGS: Dict[AIProvider, ProviderConfig] = {
    AIProvider.GROQ: ProviderConfig(
        default_model="llama-3.3-70b-versatile",
        models=[
            "llama-3.3-70b-versatile",
            "llama-3.1-70b-versatile",
            "llama-3.1-8b-instant",
            "mixtral-8x7b-32768",
            "gemma2-9b-it",
        ],
    ),
}

DEFAULT_PROVIDER = AIProvider.GROQ
DEFAULT_TEMPERATURE = 0.7


def is_model_supported(model: str, provider: AIProvider = DEFAULT_PROVIDER) -> bool:
    return model in PROVIDER_CONFIGS[provider].models


class ModelsResponse(BaseModel):
    provider: AIProvider
    default_model: str
    models: List[str]


class AIPreferencesResponse(BaseModel):
    user_id: str
    default_provider: AIProvider
    default_model: str
    default_temperature: float
    default_max_tokens: Optional[int] = None
    total_tokens_used: int = 0
    total_requests_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AIPreferencesUpdate(BaseModel):
    default_provider: Optional[AIProvider] = None
    default_model: Optional[str] = Field(None, min_length=1)
    default_temperature: Optional[float] = Field(None, ge=0, le=2)
    default_max_tokens: Optional[int] = Field(None, gt=0, le=100000)


class UsageRecord(BaseModel):
    """One generation, as stored in ai_usage_statistics"""
    user_id: str
    workspace_id: Optional[str] = None
    repository_id: Optional[str] = None
    provider: AIProvider
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: Optional[float] = None
    generation_time_ms: Optional[int] = None


class UsageRecordResponse(UsageRecord):
    id: str
    created_at: datetime


class UsageGroupBy(str, Enum):
    PROVIDER = "provider"
    MODEL = "model"
    DAY = "day"


class AggregatedUsage(BaseModel):
    request_count: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_generation_time: float = 0.0


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(min_length=1)
    model: Optional[str] = None
    provider: Optional[AIProvider] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0, le=100000)
    workspace_id: Optional[str] = Field(None, alias="workspaceId")
    repository_id: Optional[str] = Field(None, alias="repositoryId")

    @model_validator(mode="after")
    def check_model(self):
        provider = self.provider or DEFAULT_PROVIDER
        if self.model is not None and not is_model_supported(self.model, provider):
            raise ValueError(f"Model {self.model} is not supported for provider {provider.value}")
        return self


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GenerateResponse(BaseModel):
    text: str
    model: str
    usage: TokenUsage
    finish_reason: Optional[str] = None
