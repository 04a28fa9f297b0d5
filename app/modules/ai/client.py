"""
Text generation through Groq's chat completions API.
"""

from app.config.settings import settings
from app.core.errors import UpstreamUnavailableError
from app.modules.ai.schemas import AIProvider, GenerateResponse, TokenUsage, PROVIDER_CONFIGS
from fastapi import HTTPException
from groq import AsyncGroq, APIError
from typing import Optional
import httpx
import logging

logger = logging.getLogger(__name__)


class GroqClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.groq_api_key
        self.http_client = http_client
        self.max_retries = (
            max_retries if max_retries is not None
            else max(settings.external_api_retry_attempts - 1, 0)
        )

    def _client(self) -> AsyncGroq:
        if not self.api_key:
            raise HTTPException(
                status_code=500,
                detail="API key not found for provider groq. Please set GROQ_API_KEY environment variable."
            )
        return AsyncGroq(api_key=self.api_key, http_client=self.http_client, max_retries=self.max_retries)

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateResponse:
        model = model or PROVIDER_CONFIGS[AIProvider.GROQ].default_model
        client = self._client()
        logger.debug("Generating with model %s", model)
        options = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["max_tokens"] = max_tokens
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                **options,
            )
        except APIError as e:
            logger.error("Groq completion failed: %s", e)
            raise UpstreamUnavailableError(f"Groq API error: {e}")
        finally:
            if self.http_client is None:
                await client.close()

        choice = completion.choices[0]
        usage = completion.usage
        return GenerateResponse(
            text=choice.message.content or "",
            model=completion.model or model,
            finish_reason=choice.finish_reason,
            usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
        )
