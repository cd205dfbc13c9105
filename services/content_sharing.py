from __future__ import annotations

import logging
from typing import Optional

import requests

from config.settings import get_settings
from models.release import ShareResult

logger = logging.getLogger(__name__)


class HttpContentSharer:
    """Client for the external content-sharing service.

    POST {SHARE_API_URL}/shares with {content_id, recipient_identity}. A 409
    means the service already holds that share and counts as success, so a
    re-run fan-out stays idempotent end to end.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.share_api_url or "").rstrip("/")
        if not self.base_url:
            raise RuntimeError("SHARE_API_URL is required for the HTTP content sharer")
        self.token = token or settings.share_api_token
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self.session = session or requests.Session()

    def share(self, content_id: str, recipient_identity: str) -> ShareResult:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {
            "content_id": content_id,
            "recipient_identity": recipient_identity,
            "is_legacy_release": True,
        }
        try:
            resp = self.session.post(
                f"{self.base_url}/shares",
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            return ShareResult(ok=False, error=f"request failed: {exc}")

        if resp.status_code in (200, 201, 409):
            external_id = None
            try:
                body = resp.json()
                if isinstance(body, dict):
                    external_id = body.get("id")
            except ValueError:
                external_id = None
            return ShareResult(ok=True, external_id=external_id)
        return ShareResult(ok=False, error=f"HTTP {resp.status_code}: {resp.text[:200]}")
