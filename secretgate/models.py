"""
Domain models for secrets, credentials and credential usage logs.

Field names are snake_case in Python and camelCase on the wire.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values (SQLite drops tzinfo) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Secret(CamelModel):
    """
    A named sensitive string, e.g. a database connection string.

    `value` is plaintext at the API boundary and ciphertext at rest.
    """
    name: str
    value: str = ""
    kind: str = "SqlServer"
    description: Optional[str] = None
    last_used: Optional[datetime] = None
    created_on: datetime = Field(default_factory=utcnow)


class CredentialKind(str, Enum):
    MASTER = "master"
    ADMIN = "admin"
    USER = "user"


class CredentialState(str, Enum):
    """
    Credential lifecycle.

    ACTIVE -> REVOKED (revoke or expiry), ACTIVE|REVOKED -> DELETED (terminal,
    the record and its usage logs no longer exist).
    """
    ACTIVE = "active"
    REVOKED = "revoked"
    DELETED = "deleted"


class Credential(CamelModel):
    """
    API key record.

    `secret_value` holds the plaintext key only between generation and
    persistence; records read back from storage carry the stored ciphertext.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    secret_value: str = ""
    owner_id: str
    created_at: datetime = Field(default_factory=utcnow)
    expiration_date: Optional[datetime] = None
    last_used: Optional[datetime] = None
    state: CredentialState = CredentialState.ACTIVE
    kind: CredentialKind = CredentialKind.USER
    description: str = ""
    allowed_resource_names: Optional[list[str]] = None

    @property
    def is_active(self) -> bool:
        return self.state == CredentialState.ACTIVE

    @property
    def is_expired(self) -> bool:
        return self.expiration_date is not None and as_utc(self.expiration_date) < utcnow()

    @property
    def is_resource_restricted(self) -> bool:
        return bool(self.allowed_resource_names)

    def allows_resource(self, resource_name: str) -> bool:
        """Case-insensitive membership test; unrestricted credentials allow everything."""
        if not self.is_resource_restricted:
            return True
        wanted = resource_name.casefold()
        return any(name.casefold() == wanted for name in self.allowed_resource_names)


class UsageLogEntry(CamelModel):
    """Append-only record of one authenticated request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    credential_id: str
    owner_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    resource: str = ""
    method: str = ""
    source_ip: str = Field(default="", alias="ipAddress")
    user_agent: str = ""


class CreateCredentialRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    owner_id: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=500)
    expiration_date: Optional[datetime] = None
    kind: CredentialKind = CredentialKind.USER
    allowed_resource_names: Optional[list[str]] = None

    @field_validator("kind")
    @classmethod
    def not_master(cls, v: CredentialKind) -> CredentialKind:
        if v == CredentialKind.MASTER:
            raise ValueError("master credentials cannot be issued")
        return v

    @field_validator("allowed_resource_names")
    @classmethod
    def drop_blank_names(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return None
        names = [name.strip() for name in v if name and name.strip()]
        return names or None


class CredentialResponse(CamelModel):
    """Credential as shown after creation: never carries the key."""
    id: str
    name: str
    owner_id: str
    created_at: datetime
    expiration_date: Optional[datetime] = None
    last_used: Optional[datetime] = None
    is_active: bool
    kind: CredentialKind
    description: str = ""
    allowed_resource_names: Optional[list[str]] = None

    @classmethod
    def from_credential(cls, credential: Credential, **extra) -> "CredentialResponse":
        return cls(
            id=credential.id,
            name=credential.name,
            owner_id=credential.owner_id,
            created_at=credential.created_at,
            expiration_date=credential.expiration_date,
            last_used=credential.last_used,
            is_active=credential.is_active,
            kind=credential.kind,
            description=credential.description,
            allowed_resource_names=credential.allowed_resource_names,
            **extra,
        )


class CredentialCreated(CredentialResponse):
    """Creation response; the only place the plaintext key is ever returned."""
    key: str
