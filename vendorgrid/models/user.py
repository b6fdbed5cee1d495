"""Current user identity."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, field_validator


class Role(str, Enum):
    """Role of the signed-in user."""

    ADMIN = "ADMIN"
    VENDOR = "VENDOR"
    ANONYMOUS = "anonymous"


class CurrentUser(BaseModel):
    """The signed-in user as reported by the portal."""

    id: str
    role: Role = Role.ANONYMOUS
    name: str = ""
    email: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v)

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, v):
        if isinstance(v, str) and v.upper() in ("ADMIN", "VENDOR"):
            return v.upper()
        return v or Role.ANONYMOUS

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
