from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DeceasedConfirmation(BaseModel):
    """Audit row written together with the ACTIVE -> DECEASED transition."""

    id: str
    target_person_id: str
    confirmed_by_person_id: str
    notes: str | None = None
    verification_method: str
    confirmed_at: str

    model_config = ConfigDict(extra="ignore")


class ConfirmationResult(BaseModel):
    """Response shape of the confirmation endpoint."""

    success: bool
    confirmed_by: str
    confirmed_at: str
    confirmation_id: str
    target_person_id: str

    model_config = ConfigDict(extra="ignore")
