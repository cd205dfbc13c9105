from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from models.enums import ContactType, InvitationStatus, StorageShape, TrustRole


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_KNOWN_STATUSES = {s.value for s in InvitationStatus}


def normalize_email(email: str | None) -> str:
    """Lowercase and trim an email; empty string when missing."""
    return (email or "").strip().lower()


class ContactRecord(BaseModel):
    """Logical contact record, independent of the physical shape it was read from."""

    id: str
    owner_person_id: str
    target_email: str | None = None
    full_name: str
    phone: str | None = None
    relationship: str | None = None
    contact_type: ContactType = ContactType.REGULAR
    role: TrustRole | None = None
    is_primary: bool = False
    linked_person_id: str | None = None
    invitation_status: InvitationStatus = InvitationStatus.PENDING
    confirmed_at: str | None = None
    created_at: str | None = None
    source: StorageShape = StorageShape.NORMALIZED

    model_config = ConfigDict(extra="ignore")

    @property
    def is_trusted(self) -> bool:
        return self.contact_type is ContactType.TRUSTED

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ContactRecord":
        """Build from a v_contact_records row, tolerating values older rows carry."""
        data = dict(row)
        status = data.get("invitation_status") or InvitationStatus.PENDING.value
        if status not in _KNOWN_STATUSES:
            # e.g. 'bounced' on legacy rows: still awaiting a usable identity
            status = InvitationStatus.PENDING.value
        data["invitation_status"] = status
        data["is_primary"] = bool(data.get("is_primary") or 0)
        if data.get("contact_type") != ContactType.TRUSTED.value:
            data["role"] = None
            data["is_primary"] = False
        return cls.model_validate(data)


class ContactCheck(BaseModel):
    """Answer to "can I add this email, and who is behind it"."""

    email: str
    contact_exists: bool = False
    contact_id: str | None = None
    contact_name: str | None = None
    contact_type: ContactType | None = None
    invitation_status: InvitationStatus | None = None
    relationships_count: int = 0
    user_exists: bool = False
    existing_user_id: str | None = None
    can_add_contact: bool = True


class ContactInput(BaseModel):
    """Create payload for a contact; enforces the per-type field requirements."""

    email: str
    full_name: str
    phone: str | None = None
    contact_type: ContactType = ContactType.REGULAR
    role: TrustRole | None = None
    relationship: str | None = None
    is_primary: bool = False

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: str) -> str:
        value = normalize_email(value)
        if not value:
            raise ValueError("email is required")
        if not EMAIL_RE.match(value):
            raise ValueError("invalid email format")
        return value

    @field_validator("full_name")
    @classmethod
    def _full_name_present(cls, value: str) -> str:
        if not value:
            raise ValueError("full_name is required")
        return value

    @field_validator("phone", "relationship")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @model_validator(mode="after")
    def _trusted_requirements(self) -> "ContactInput":
        if self.contact_type is ContactType.TRUSTED:
            if not self.phone:
                raise ValueError("trusted contacts require a phone number")
            if self.role is None:
                raise ValueError("trusted contacts require a role")
        else:
            if self.role is not None:
                raise ValueError("role is only valid for trusted contacts")
            if self.is_primary:
                raise ValueError("only trusted contacts can be primary")
        return self
