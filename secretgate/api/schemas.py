import re
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from ..models import CamelModel

SECRET_NAME_PATTERN = r"^[A-Za-z0-9_\-.]+$"
SECRET_NAME_MAX_LENGTH = 100

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT_OR_SPECIAL = re.compile(r"[^A-Za-z]")


class SecretUpsertRequest(CamelModel):
    value: str = Field(max_length=4000)
    kind: str = Field(default="SqlServer", max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("value")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("value cannot be blank")
        return v


class SecretSummary(CamelModel):
    """Secret listing entry; never carries the value."""
    name: str
    kind: str
    description: Optional[str] = None
    last_used: Optional[datetime] = None
    created_on: datetime


class OperationResult(CamelModel):
    success: bool
    message: str


class RotateKeyRequest(CamelModel):
    new_key: str = Field(min_length=16, max_length=256)

    @field_validator("new_key")
    @classmethod
    def key_complexity(cls, v: str) -> str:
        if not _LETTER.search(v) or not _DIGIT_OR_SPECIAL.search(v):
            raise ValueError("key must contain letters and at least one digit or special character")
        return v


class GeneratedKeyResponse(CamelModel):
    key: str
    length: int
    message: str
