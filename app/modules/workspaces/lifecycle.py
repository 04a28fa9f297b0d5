"""
Workspace lifecycle driven by Clerk user events.

Runs with the service-role client: webhook deliveries carry no user session,
so these writes bypass RLS.
"""

from supabase import Client
from app.core.errors import WorkspaceCreationFailedError, is_unique_violation
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_NAME = "My Workspace"


def derive_default_workspace_name(
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
) -> str:
    """Full name if there is one, else "<email local part>'s Workspace", else "My Workspace"."""
    full_name = f"{first_name or ''} {last_name or ''}".strip()
    if full_name:
        return full_name
    if email:
        local_part = email.split("@")[0].strip()
        if local_part:
            return f"{local_part}'s Workspace"
    return DEFAULT_WORKSPACE_NAME


class WorkspaceLifecycleManager:
    def __init__(self, admin_client: Client):
        self.supabase = admin_client

    def ensure_default_workspace(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Create the user's default workspace and OWNER membership.

        Returns the new workspace row, or None when the user already owns a
        workspace. The partial unique index on (owner_id) where is_default
        turns a concurrent duplicate delivery into a unique violation, which is
        treated the same as "already exists".

        Raises WorkspaceCreationFailedError if either write fails; a failed
        membership insert first tries to delete the orphaned workspace.
        """
        existing = self.supabase.table("workspaces")\
            .select("id")\
            .eq("owner_id", user_id)\
            .limit(1)\
            .execute()
        if existing.data:
            logger.info("User %s already owns a workspace, skipping creation", user_id)
            return None

        workspace_name = derive_default_workspace_name(first_name, last_name, email)
        logger.info('Creating workspace "%s" for user %s', workspace_name, user_id)

        try:
            result = self.supabase.table("workspaces").insert({
                "name": workspace_name,
                "owner_id": user_id,
                "is_default": True,
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                logger.info("Default workspace for user %s was created concurrently, skipping", user_id)
                return None
            raise WorkspaceCreationFailedError(f"Failed to create workspace: {e}") from e

        if not result.data:
            raise WorkspaceCreationFailedError("Failed to create workspace: no row returned")
        workspace = result.data[0]

        try:
            self.supabase.table("workspace_members").insert({
                "workspace_id": workspace["id"],
                "user_id": user_id,
                "role": "OWNER",
            }).execute()
        except Exception as e:
            logger.error("Failed to add user %s to workspace %s: %s", user_id, workspace["id"], e)
            self._rollback_workspace(workspace["id"])
            raise WorkspaceCreationFailedError(f"Failed to add user to workspace: {e}") from e

        logger.info("Created workspace %s for user %s", workspace["id"], user_id)
        return workspace

    def _rollback_workspace(self, workspace_id: str) -> None:
        try:
            self.supabase.table("workspaces").delete().eq("id", workspace_id).execute()
        except Exception:
            # Left with an ownerless workspace; needs manual cleanup
            logger.exception("Rollback of workspace %s failed", workspace_id)

    def cleanup_user_workspaces(self, user_id: str) -> int:
        """
        Delete every workspace owned by the user and return how many were removed.

        Members, repositories and cursor rules go with them through ON DELETE
        CASCADE. Failures are logged and reported as 0 deleted.
        """
        try:
            owned = self.supabase.table("workspaces")\
                .select("id, name")\
                .eq("owner_id", user_id)\
                .execute()
            if not owned.data:
                logger.info("User %s had no owned workspaces to delete", user_id)
                return 0

            for workspace in owned.data:
                logger.info("Deleting workspace %s (%s) owned by %s", workspace["name"], workspace["id"], user_id)

            workspace_ids = [w["id"] for w in owned.data]
            self.supabase.table("workspaces")\
                .delete()\
                .in_("id", workspace_ids)\
                .execute()
            logger.info("Deleted %d workspace(s) owned by user %s", len(workspace_ids), user_id)
            return len(workspace_ids)
        except Exception:
            logger.exception("Failed to clean up workspaces for user %s", user_id)
            return 0
