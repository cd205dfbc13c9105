from __future__ import annotations

from pydantic import BaseModel, Field


class RecordError(BaseModel):
    contact_id: str
    error: str


class ReconciliationSummary(BaseModel):
    """Per-run counts of the identity reconciliation job."""

    scanned: int = 0
    fixed: int = 0
    already_linked: int = 0
    no_match: int = 0
    errors: int = 0
    error_details: list[RecordError] = Field(default_factory=list)
    index_entries: int = 0
    cancelled: bool = False
