from __future__ import annotations

from typing import Protocol

from models.release import ShareResult


class ContentSharerPort(Protocol):
    def share(self, content_id: str, recipient_identity: str) -> ShareResult:
        ...
