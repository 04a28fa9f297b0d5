"""
Retry policy for outbound calls to GitHub.

Network errors, 5xx, 429 and 408 are retried with exponential backoff; any
other 4xx fails immediately. Attempts and waits come from the
EXTERNAL_API_RETRY_* settings.
"""

from app.config.settings import settings
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)
import httpx
import logging

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (408, 429)


def is_retryable_http_error(exception: BaseException) -> bool:
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        status_code = exception.response.status_code
        return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES
    return False


def retry_external_api() -> AsyncRetrying:
    """
    Usage:
        async for attempt in retry_external_api():
            with attempt:
                response = await client.get(url)
                response.raise_for_status()
    """
    return AsyncRetrying(
        stop=stop_after_attempt(settings.external_api_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.external_api_retry_multiplier,
            min=settings.external_api_retry_min_wait,
            max=settings.external_api_retry_max_wait,
        ),
        retry=retry_if_exception(is_retryable_http_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
