"""
Clerk user lifecycle handlers.

Every handler runs with the service-role client (a webhook has no user
session). Business failures are logged and never raised: the endpoint must
ack a verified delivery or Clerk keeps redelivering into the same failure.
"""

from supabase import Client
from app.core.errors import EventTypeMismatchError, is_unique_violation
from app.modules.users.schemas import UserProfileSync, AuthProvider
from app.modules.users.service import UserService
from app.modules.workspaces.lifecycle import WorkspaceLifecycleManager
from app.modules.webhooks.schemas import (
    WebhookEvent, UserCreatedEvent, UserUpdatedEvent, UserDeletedEvent, UnhandledEvent,
    ClerkUserData, ClerkExternalAccount
)
from typing import List
import logging

logger = logging.getLogger(__name__)

EXTERNAL_PROVIDERS = {
    "oauth_github": AuthProvider.GITHUB,
    "oauth_google": AuthProvider.GOOGLE,
}


def provider_from_external_accounts(accounts: List[ClerkExternalAccount]) -> AuthProvider:
    """Map Clerk external accounts to the sign-in provider; no account means email."""
    for account in accounts:
        if not account.provider:
            continue
        if account.provider in EXTERNAL_PROVIDERS:
            return EXTERNAL_PROVIDERS[account.provider]
        return AuthProvider.OPENID
    return AuthProvider.EMAIL


def profile_from_clerk_user(user: ClerkUserData) -> UserProfileSync:
    primary = user.primary_email
    return UserProfileSync(
        email=primary.email_address if primary else None,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        picture=user.image_url,
        email_verified=primary.is_verified if primary else None,
        provider=provider_from_external_accounts(user.external_accounts),
    )


class WebhookService:
    def __init__(self, admin_client: Client):
        self.supabase = admin_client
        self.users = UserService(admin_client)
        self.lifecycle = WorkspaceLifecycleManager(admin_client)

    def process(self, event: WebhookEvent) -> bool:
        """Dispatch a verified event once per delivery id. Returns False for a redelivery."""
        if not self.claim_delivery(event):
            return False
        self.dispatch(event)
        return True

    def claim_delivery(self, event: WebhookEvent) -> bool:
        """
        Record the delivery in the webhook_deliveries ledger.

        A unique violation means this delivery was already handled. Any other
        ledger failure is logged and the event is processed anyway; the
        handlers are safe to repeat.
        """
        try:
            self.supabase.table("webhook_deliveries").insert({
                "id": event.delivery_id,
                "event_type": event.type,
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                logger.info("Webhook delivery %s (%s) already processed, skipping", event.delivery_id, event.type)
                return False
            logger.warning("Could not record webhook delivery %s: %s", event.delivery_id, e)
        return True

    def dispatch(self, event: WebhookEvent) -> None:
        if isinstance(event, UserCreatedEvent):
            self.handle_user_created(event)
        elif isinstance(event, UserUpdatedEvent):
            self.handle_user_updated(event)
        elif isinstance(event, UserDeletedEvent):
            self.handle_user_deleted(event)
        elif isinstance(event, UnhandledEvent):
            logger.info("Unhandled webhook event type: %s", event.type)
        else:
            raise TypeError(f"Unknown webhook event: {event!r}")

    def handle_user_created(self, event: WebhookEvent) -> None:
        """Create the users row and the default workspace for a new Clerk user."""
        if not isinstance(event, UserCreatedEvent):
            raise EventTypeMismatchError("user.created", event.type)

        user_id = event.data.id
        profile = profile_from_clerk_user(event.data)
        logger.info("Processing user.created for %s (%s)", user_id, profile.email)
        if not profile.email:
            logger.warning("User %s has no email address, skipping workspace creation", user_id)
            return

        try:
            self.users.sync_user(user_id, profile)
            self.lifecycle.ensure_default_workspace(
                user_id, profile.first_name, profile.last_name, profile.email
            )
        except Exception:
            # The user can still create a workspace manually
            logger.exception("Error setting up user %s", user_id)

    def handle_user_updated(self, event: WebhookEvent) -> None:
        """Refresh the stored profile from the latest Clerk snapshot."""
        if not isinstance(event, UserUpdatedEvent):
            raise EventTypeMismatchError("user.updated", event.type)

        user_id = event.data.id
        logger.info("Processing user.updated for %s", user_id)
        profile = profile_from_clerk_user(event.data)
        try:
            self.users.sync_user(user_id, profile)
        except Exception:
            logger.exception("Error syncing profile for user %s", user_id)

    def handle_user_deleted(self, event: WebhookEvent) -> None:
        """
        Remove everything the deleted user owned.

        Owned workspaces go first (their members, repositories and rules
        cascade), then the user's git integrations and finally the users row.
        """
        if not isinstance(event, UserDeletedEvent):
            raise EventTypeMismatchError("user.deleted", event.type)

        user_id = event.data.id
        logger.info("Processing user.deleted for %s", user_id)
        deleted = self.lifecycle.cleanup_user_workspaces(user_id)
        logger.info("Removed %d workspace(s) for deleted user %s", deleted, user_id)

        self._delete_rows("git_integrations", "user_id", user_id)
        self._delete_rows("users", "id", user_id)

    def _delete_rows(self, table: str, column: str, user_id: str) -> None:
        try:
            result = self.supabase.table(table).delete().eq(column, user_id).execute()
        except Exception:
            logger.exception("Failed to delete %s rows for deleted user %s", table, user_id)
            return
        logger.info("Deleted %d %s row(s) for user %s", len(result.data or []), table, user_id)
