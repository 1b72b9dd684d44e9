"""Authenticated-identity session models."""

from typing import Any, Dict, Literal, Optional
from datetime import datetime, timedelta
from pydantic import BaseModel, Field, SecretStr

from .timestamps import Timestamp, utcnow

SESSION_DOCUMENT_TYPE = "user_session"


def session_document_id(tenant_id: str) -> str:
    return f"session_{tenant_id}"


class Credentials(BaseModel):
    """Credentials handed to the identity provider."""

    username: str = Field(..., description="Login name at the identity provider")
    password: SecretStr = Field(..., description="Password (never logged)")


class IdentityProfile(BaseModel):
    """What the identity provider returns for valid credentials."""

    user_key: str = Field(..., description="User key at the identity provider")
    display_name: str = Field(default="User")
    token: str = Field(..., description="Opaque token for downstream calls")
    extra_fields: Dict[str, Any] = Field(default_factory=dict, description="Extra profile fields")


class Session(BaseModel):
    """One active session per tenant, overwritten on re-authentication."""

    id: str = Field(..., description="Document id: session_{tenant_id}")
    document_type: Literal["user_session"] = SESSION_DOCUMENT_TYPE
    tenant_id: str = Field(..., description="Tenant ID (partition key)")
    display_name: str = Field(default="User")
    profile: Dict[str, Any] = Field(default_factory=dict)
    token: str = Field(..., description="Opaque token from the identity provider")
    created_at: Timestamp
    expires_at: Timestamp
    ttl: int = Field(default=3600, description="Time to live in seconds")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "session_91004",
                "tenant_id": "91004",
                "display_name": "Ana",
                "profile": {"user_key": "91004", "paternal_name": "Lopez"},
                "token": "eyJhbGciOi...",
                "created_at": "2026-01-31T10:30:00.000000Z",
                "expires_at": "2026-01-31T11:30:00.000000Z",
            }
        }

    @classmethod
    def issue(cls, tenant_id: str, profile: IdentityProfile, ttl_seconds: int) -> "Session":
        now = utcnow()
        return cls(
            id=session_document_id(tenant_id),
            tenant_id=tenant_id,
            display_name=profile.display_name,
            profile={"user_key": profile.user_key, **profile.extra_fields},
            token=profile.token,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            ttl=ttl_seconds,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())
