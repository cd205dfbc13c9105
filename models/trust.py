from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from models.enums import InvitationStatus, StorageShape, TrustRole


class TrustEntry(BaseModel):
    """One row of the reverse index: an owner that trusts a given email."""

    owner_person_id: str
    role: TrustRole
    is_primary: bool = False
    invitation_status: InvitationStatus = InvitationStatus.PENDING
    source: StorageShape = StorageShape.NORMALIZED

    model_config = ConfigDict(extra="ignore", frozen=True)
