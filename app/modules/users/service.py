from supabase import Client
from app.modules.users.schemas import (
    UserProfileSync, UserUpdate, UserResponse, UserListResponse, AuthProvider
)
from app.core.errors import NotFoundError, is_unique_violation
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _display_name(profile: UserProfileSync) -> Optional[str]:
    if profile.name and profile.name.strip():
        return profile.name.strip()
    full_name = f"{profile.first_name or ''} {profile.last_name or ''}".strip()
    return full_name or None


class UserService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_user_row(self, column: str, value: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("users")\
                .select("*")\
                .eq(column, value)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch user: {e}")
        return result.data[0] if result.data else None

    def get_user_profile(self, user_id: str) -> UserResponse:
        row = self._get_user_row("id", user_id)
        if row is None:
            raise NotFoundError("User")
        return UserResponse(**row)

    def get_user_by_email(self, email: str) -> UserResponse:
        row = self._get_user_row("email", email.lower())
        if row is None:
            raise NotFoundError("User")
        return UserResponse(**row)

    def get_user_by_username(self, username: str) -> UserResponse:
        row = self._get_user_row("username", username.lower())
        if row is None:
            raise NotFoundError("User")
        return UserResponse(**row)

    def create_user(self, user_id: str, profile: UserProfileSync) -> UserResponse:
        """Insert a users row from a profile snapshot. Email is required."""
        if not profile.email:
            raise HTTPException(status_code=400, detail="Email is required to create a user")
        email = profile.email.lower()
        username = (profile.username or email.split("@")[0]).lower()
        user_insert = {
            "id": user_id,
            "email": email,
            "name": _display_name(profile),
            "username": username,
            "picture": profile.picture,
            "locale": profile.locale or "en-US",
            "email_verified": bool(profile.email_verified),
            "two_factor_enabled": False,
            "provider": (profile.provider or AuthProvider.EMAIL).value,
        }
        try:
            result = self.supabase.table("users").insert(user_insert).execute()
        except Exception as e:
            if not is_unique_violation(e):
                raise HTTPException(status_code=500, detail=f"Failed to create user: {e}")
            # Username taken by someone else; create without one
            logger.info("Username %s taken, creating user %s without username", username, user_id)
            user_insert["username"] = None
            try:
                result = self.supabase.table("users").insert(user_insert).execute()
            except Exception as retry_error:
                raise HTTPException(status_code=500, detail=f"Failed to create user: {retry_error}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create user")
        return UserResponse(**result.data[0])

    def update_user_profile(self, user_id: str, updates: UserUpdate) -> UserResponse:
        """Update only the provided fields"""
        update_data = updates.model_dump(exclude_none=True)
        if "username" in update_data:
            update_data["username"] = update_data["username"].lower()
        update_data["updated_at"] = _now()
        try:
            result = self.supabase.table("users")\
                .update(update_data)\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            if is_unique_violation(e):
                raise HTTPException(status_code=400, detail="Username is already taken")
            raise HTTPException(status_code=500, detail=f"Failed to update user: {e}")
        if not result.data:
            raise NotFoundError("User")
        return UserResponse(**result.data[0])

    def sync_user(self, user_id: str, profile: UserProfileSync) -> UserResponse:
        """
        Upsert the user from the identity provider's latest snapshot.

        Creates the row if absent; otherwise refreshes email, name, username,
        picture and email_verified. Repeating the same snapshot writes nothing.
        """
        existing = self._get_user_row("id", user_id)
        if existing is None:
            logger.info("Creating user %s from identity provider profile", user_id)
            return self.create_user(user_id, profile)

        candidate = {
            "email": profile.email.lower() if profile.email else None,
            "name": _display_name(profile),
            "username": profile.username.lower() if profile.username else None,
            "picture": profile.picture,
            "email_verified": profile.email_verified,
        }
        changes = {
            field: value for field, value in candidate.items()
            if value is not None and existing.get(field) != value
        }
        if not changes:
            return UserResponse(**existing)

        changes["updated_at"] = _now()
        try:
            result = self._apply_sync_changes(user_id, changes)
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update user: {e}")
        if not result.data:
            raise NotFoundError("User")
        logger.info("Updated user %s fields: %s", user_id, ", ".join(sorted(k for k in changes if k != "updated_at")))
        return UserResponse(**result.data[0])

    def _apply_sync_changes(self, user_id: str, changes: Dict[str, Any]):
        try:
            return self.supabase.table("users").update(changes).eq("id", user_id).execute()
        except Exception as e:
            if not (is_unique_violation(e) and "username" in changes):
                raise
        # Username taken by another user; keep the stored one
        logger.info("Username %s taken, keeping existing username for user %s", changes.pop("username"), user_id)
        return self.supabase.table("users").update(changes).eq("id", user_id).execute()

    def delete_user(self, user_id: str) -> bool:
        """Delete user (owned workspaces, memberships and git integrations cascade)"""
        try:
            result = self.supabase.table("users")\
                .delete()\
                .eq("id", user_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to delete user: {e}")

    def is_username_available(self, username: str, exclude_user_id: Optional[str] = None) -> bool:
        try:
            query = self.supabase.table("users")\
                .select("id", count="exact")\
                .eq("username", username.lower())
            if exclude_user_id:
                query = query.neq("id", exclude_user_id)
            result = query.execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to check username: {e}")
        return (result.count or 0) == 0

    def list_users(
        self,
        email: Optional[str] = None,
        username: Optional[str] = None,
        provider: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> UserListResponse:
        start = (page - 1) * limit
        end = start + limit - 1
        try:
            query = self.supabase.table("users").select("*", count="exact")
            if email:
                query = query.eq("email", email.lower())
            if username:
                query = query.eq("username", username.lower())
            if provider:
                query = query.eq("provider", provider)
            result = query.order("created_at", desc=True).range(start, end).execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch users: {e}")
        total = result.count or 0
        return UserListResponse(
            data=[UserResponse(**u) for u in result.data],
            total=total,
            page=page,
            limit=limit,
            has_more=end < total - 1,
        )
