from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ReleaseShare(BaseModel):
    """One released (content, recipient) pair."""

    id: str
    content_id: str
    owner_person_id: str
    recipient_identity: str
    recipient_person_id: str | None = None
    released_at: str
    viewed_at: str | None = None
    is_legacy_release: bool = True

    model_config = ConfigDict(extra="ignore")


class ReleaseFailure(BaseModel):
    content_id: str
    recipient_identity: str
    error: str


class ReleaseReport(BaseModel):
    """Outcome of one fan-out run over an owner's content."""

    target_person_id: str
    pairs_total: int = 0
    created: int = 0
    skipped_existing: int = 0
    failures: list[ReleaseFailure] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def complete(self) -> bool:
        return not self.failures


class ShareResult(BaseModel):
    """Per-call answer from the external content-sharing collaborator."""

    ok: bool
    error: str | None = None
    external_id: str | None = None
