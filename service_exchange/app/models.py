"""
Data model for the token exchange service.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ExchangeRequest(BaseModel):
    """Inbound body. The token field name differs between deployments."""

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("externalToken", "authgearToken", "authgear_token"),
    )


class TokenIntrospectionResult(BaseModel):
    """Outcome of a successful introspection."""
    active: bool
    subject: str
    claims: Dict[str, Any] = Field(default_factory=dict)


class ExternalIdentity(BaseModel):
    """Canonical identity resolved from the provider."""
    subject: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone_number)


class UserAttributes(BaseModel):
    """Attributes written to the internal user record."""
    email: Optional[str] = None
    email_verified: bool = True
    display_name: Optional[str] = None
    disabled: bool = False

    @classmethod
    def from_identity(cls, identity: ExternalIdentity) -> "UserAttributes":
        # The provider already verified the contact identifier
        return cls(email=identity.email, display_name=identity.display_name)


class ProvisionOutcome(str, Enum):
    UPDATED = "updated"
    CREATED = "created"
    UPSERTED = "upserted"
    CONFLICT = "conflict"


class ExchangeIdentity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    internal_id: str = Field(alias="internalId")
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    external_subject: str = Field(alias="externalSubject")


class ExchangeResponse(BaseModel):
    """Successful exchange body."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    credential: str
    identity: ExchangeIdentity
