from enum import Enum
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class AuthProvider(str, Enum):
    EMAIL = "email"
    GITHUB = "github"
    GOOGLE = "google"
    OPENID = "openid"


class UserProfileSync(BaseModel):
    """Profile snapshot from the identity provider"""
    email: Optional[str] = None
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    picture: Optional[str] = None
    locale: Optional[str] = None
    email_verified: Optional[bool] = None
    provider: Optional[AuthProvider] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    picture: Optional[str] = None
    username: Optional[str] = None
    locale: Optional[str] = None
    two_factor_enabled: Optional[bool] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    username: Optional[str] = None
    picture: Optional[str] = None
    locale: Optional[str] = "en-US"
    email_verified: bool = False
    two_factor_enabled: bool = False
    provider: Optional[str] = AuthProvider.EMAIL.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    data: List[UserResponse]
    total: int
    page: int
    limit: int
    has_more: bool


class UsernameAvailabilityResponse(BaseModel):
    username: str
    available: bool
