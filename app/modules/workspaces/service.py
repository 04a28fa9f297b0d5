from supabase import Client
from app.modules.workspaces.schemas import (
    WorkspaceResponse, WorkspaceWithRoleResponse, WorkspaceMemberResponse, WorkspaceRole
)
from app.core.errors import NotFoundError, WorkspaceCreationFailedError
from app.modules.workspaces.lifecycle import WorkspaceLifecycleManager
from typing import Dict, List, Optional
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

ADMIN_ROLES = (WorkspaceRole.OWNER, WorkspaceRole.ADMIN)


class WorkspaceService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_workspace(self, user_id: str, name: str) -> WorkspaceResponse:
        """Create a workspace and add the creator as OWNER"""
        try:
            result = self.supabase.table("workspaces").insert({
                "name": name,
                "owner_id": user_id,
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create workspace")
            workspace = result.data[0]

            try:
                self.supabase.table("workspace_members").insert({
                    "workspace_id": workspace["id"],
                    "user_id": user_id,
                    "role": WorkspaceRole.OWNER.value,
                }).execute()
            except Exception as e:
                # Rollback: delete the workspace if member insertion fails
                self.supabase.table("workspaces").delete().eq("id", workspace["id"]).execute()
                raise HTTPException(status_code=500, detail=f"Failed to add owner to workspace: {e}")

            return WorkspaceResponse(**workspace)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to create workspace: {e}")

    def get_workspace_by_id(self, workspace_id: str) -> WorkspaceResponse:
        try:
            result = self.supabase.table("workspaces")\
                .select("*")\
                .eq("id", workspace_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch workspace: {e}")
        if not result.data:
            raise NotFoundError("Workspace")
        return WorkspaceResponse(**result.data[0])

    def get_user_workspaces(self, user_id: str) -> List[WorkspaceWithRoleResponse]:
        """
        All workspaces the user belongs to, with their role in each.

        A user with no workspace gets their default one through the same path
        as the user.created webhook, so a listing that races the webhook cannot
        create a second workspace. If creation fails the user gets an empty list.
        """
        roles = self._membership_roles(user_id)
        if not roles:
            logger.info("User %s has no workspaces, ensuring default workspace", user_id)
            self._ensure_default_workspace(user_id)
            roles = self._membership_roles(user_id)
            if not roles:
                return []

        try:
            workspaces = self.supabase.table("workspaces")\
                .select("*")\
                .in_("id", list(roles.keys()))\
                .order("created_at", desc=True)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch workspaces: {e}")

        return [
            WorkspaceWithRoleResponse(**w, user_role=roles.get(w["id"], WorkspaceRole.MEMBER))
            for w in workspaces.data
        ]

    def _membership_roles(self, user_id: str) -> Dict[str, str]:
        try:
            memberships = self.supabase.table("workspace_members")\
                .select("workspace_id, role")\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch user workspaces: {e}")
        return {m["workspace_id"]: m["role"] for m in memberships.data}

    def _ensure_default_workspace(self, user_id: str) -> None:
        try:
            user = self.supabase.table("users")\
                .select("name, email")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch user: {e}")
        profile = user.data[0] if user.data else {}
        try:
            WorkspaceLifecycleManager(self.supabase).ensure_default_workspace(
                user_id,
                first_name=profile.get("name"),
                email=profile.get("email"),
            )
        except WorkspaceCreationFailedError as e:
            logger.error("Failed to create default workspace for %s: %s", user_id, e)

    def get_owned_workspaces(self, user_id: str) -> List[WorkspaceResponse]:
        try:
            result = self.supabase.table("workspaces")\
                .select("*")\
                .eq("owner_id", user_id)\
                .order("created_at", desc=True)\
                .execute()
            return [WorkspaceResponse(**w) for w in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch owned workspaces: {e}")

    def update_workspace(self, workspace_id: str, name: Optional[str] = None) -> WorkspaceResponse:
        update_data = {}
        if name is not None:
            update_data["name"] = name
        if not update_data:
            return self.get_workspace_by_id(workspace_id)
        try:
            result = self.supabase.table("workspaces")\
                .update(update_data)\
                .eq("id", workspace_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update workspace: {e}")
        if not result.data:
            raise NotFoundError("Workspace")
        return WorkspaceResponse(**result.data[0])

    def delete_workspace(self, workspace_id: str) -> bool:
        """Delete workspace (members, repositories and rules cascade)"""
        try:
            result = self.supabase.table("workspaces")\
                .delete()\
                .eq("id", workspace_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to delete workspace: {e}")

    def get_workspace_members(self, workspace_id: str) -> List[WorkspaceMemberResponse]:
        try:
            result = self.supabase.table("workspace_members")\
                .select("user_id, role")\
                .eq("workspace_id", workspace_id)\
                .execute()
            return [WorkspaceMemberResponse(**m) for m in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch workspace members: {e}")

    def add_workspace_member(
        self, workspace_id: str, user_id: str, role: WorkspaceRole = WorkspaceRole.MEMBER
    ) -> WorkspaceMemberResponse:
        if self.get_user_role_in_workspace(workspace_id, user_id) is not None:
            raise HTTPException(status_code=400, detail="User is already a member of this workspace")
        try:
            result = self.supabase.table("workspace_members").insert({
                "workspace_id": workspace_id,
                "user_id": user_id,
                "role": WorkspaceRole(role).value,
            }).execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to add member to workspace: {e}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to add member to workspace")
        return WorkspaceMemberResponse(**result.data[0])

    def remove_workspace_member(self, workspace_id: str, user_id: str) -> bool:
        try:
            result = self.supabase.table("workspace_members")\
                .delete()\
                .eq("workspace_id", workspace_id)\
                .eq("user_id", user_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to remove member from workspace: {e}")

    def update_workspace_member_role(
        self, workspace_id: str, user_id: str, role: WorkspaceRole
    ) -> WorkspaceMemberResponse:
        try:
            result = self.supabase.table("workspace_members")\
                .update({"role": WorkspaceRole(role).value})\
                .eq("workspace_id", workspace_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update member role: {e}")
        if not result.data:
            raise NotFoundError("Workspace member")
        return WorkspaceMemberResponse(**result.data[0])

    def get_user_role_in_workspace(self, workspace_id: str, user_id: str) -> Optional[WorkspaceRole]:
        try:
            result = self.supabase.table("workspace_members")\
                .select("role")\
                .eq("workspace_id", workspace_id)\
                .eq("user_id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch user role: {e}")
        if not result.data:
            return None
        return WorkspaceRole(result.data[0]["role"])

    def has_workspace_access(self, workspace_id: str, user_id: str) -> bool:
        return self.get_user_role_in_workspace(workspace_id, user_id) is not None

    def is_workspace_admin(self, workspace_id: str, user_id: str) -> bool:
        return self.get_user_role_in_workspace(workspace_id, user_id) in ADMIN_ROLES

    def is_workspace_owner(self, workspace_id: str, user_id: str) -> bool:
        return self.get_user_role_in_workspace(workspace_id, user_id) == WorkspaceRole.OWNER
