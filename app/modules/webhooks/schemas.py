from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any, Literal, Union


class ClerkEmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email_address: str
    verification: Optional[Dict[str, Any]] = None

    @property
    def is_verified(self) -> bool:
        return bool(self.verification) and self.verification.get("status") == "verified"


class ClerkExternalAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: Optional[str] = None  # oauth_github, oauth_google, ...


class ClerkUserData(BaseModel):
    """The `data` object of user.created / user.updated"""
    model_config = ConfigDict(extra="ignore")

    id: str
    email_addresses: List[ClerkEmailAddress] = []
    primary_email_address_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    image_url: Optional[str] = None
    external_accounts: List[ClerkExternalAccount] = []

    @property
    def primary_email(self) -> Optional[ClerkEmailAddress]:
        for address in self.email_addresses:
            if address.id and address.id == self.primary_email_address_id:
                return address
        return self.email_addresses[0] if self.email_addresses else None


class ClerkDeletedObject(BaseModel):
    """The `data` object of user.deleted; only the id survives deletion"""
    model_config = ConfigDict(extra="ignore")

    id: str
    deleted: bool = True


class UserCreatedEvent(BaseModel):
    type: Literal["user.created"] = "user.created"
    delivery_id: str
    data: ClerkUserData


class UserUpdatedEvent(BaseModel):
    type: Literal["user.updated"] = "user.updated"
    delivery_id: str
    data: ClerkUserData


class UserDeletedEvent(BaseModel):
    type: Literal["user.deleted"] = "user.deleted"
    delivery_id: str
    data: ClerkDeletedObject


class UnhandledEvent(BaseModel):
    """Any event type this service does not act on"""
    type: str
    delivery_id: str
    data: Dict[str, Any] = {}


WebhookEvent = Union[UserCreatedEvent, UserUpdatedEvent, UserDeletedEvent, UnhandledEvent]

EVENT_MODELS = {
    "user.created": UserCreatedEvent,
    "user.updated": UserUpdatedEvent,
    "user.deleted": UserDeletedEvent,
}


class WebhookAck(BaseModel):
    success: bool = True
    message: str
