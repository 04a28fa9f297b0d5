from fastapi import APIRouter, Depends, HTTPException, Request, status
from app.config.settings import settings
from app.core.errors import InvalidSignatureError
from app.database.supabase_client import get_admin_supabase
from app.modules.webhooks.schemas import WebhookAck
from app.modules.webhooks.service import WebhookService
from app.modules.webhooks.verifier import verify_webhook
from supabase import Client
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def require_webhook_config() -> str:
    """Signing secret for the route; 400 when either webhook credential is missing."""
    if not settings.clerk_webhook_signing_secret:
        logger.error("CLERK_WEBHOOK_SIGNING_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="CLERK_WEBHOOK_SIGNING_SECRET is not configured"
        )
    if not settings.supabase_service_role_key:
        logger.error("SUPABASE_SERVICE_ROLE_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="SUPABASE_SERVICE_ROLE_KEY is not configured"
        )
    return settings.clerk_webhook_signing_secret


def get_webhook_service(admin_supabase: Client = Depends(get_admin_supabase)) -> WebhookService:
    return WebhookService(admin_supabase)


@router.post("", response_model=WebhookAck)
async def handle_clerk_webhook(
    request: Request,
    signing_secret: str = Depends(require_webhook_config),
    service: WebhookService = Depends(get_webhook_service)
):
    """
    Clerk user lifecycle webhook (public; authenticated by the Svix signature).

    Returns 400 only when the signing secret or service-role key is missing,
    or verification fails. A verified event is always acknowledged, even if
    handling it failed. The config check is declared first so it runs before
    the service-role client is built.
    """
    body = await request.body()
    try:
        event = verify_webhook(
            request.headers,
            body,
            signing_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )
    except InvalidSignatureError as e:
        logger.warning("Webhook verification failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook verification failed")

    logger.info("Received %s webhook (delivery %s)", event.type, event.delivery_id)
    if not service.process(event):
        return WebhookAck(message="Webhook already processed")
    return WebhookAck(message="Webhook processed successfully")
