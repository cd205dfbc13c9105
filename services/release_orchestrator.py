from __future__ import annotations

import concurrent.futures as _fut
import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from config.settings import get_settings
from db.repos.confirmations_repo import ConfirmationsRepo
from db.repos.content_repo import ContentRepo
from db.repos.release_repo import ReleaseShareRepo
from models.release import ReleaseFailure, ReleaseReport, ShareResult
from ports.repos import ReleaseShareRepoPort
from ports.sharing import ContentSharerPort
from services.contact_registry import ContactRegistry
from services.errors import PartialFailureError, ValidationError
from services.identity_resolver import IdentityResolver
from utils.share_logger import log_share_call

logger = logging.getLogger(__name__)

# (content_id, recipient_email, recipient_person_id)
ReleasePair = Tuple[str, str, Optional[str]]


class ReleaseOrchestrator:
    """Fans an owner's private content out to recipients once death is confirmed.

    Re-invoking is safe: pairs that already have a share are skipped, so a
    second run only retries what failed before. Nothing created is ever
    rolled back.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        sharer: ContentSharerPort,
        max_workers: Optional[int] = None,
        shares: Optional[ReleaseShareRepoPort] = None,
    ):
        self.sharer = sharer
        self.max_workers = max(1, max_workers or get_settings().release_concurrency)
        self.shares = shares or ReleaseShareRepo(conn)
        self.content = ContentRepo(conn)
        self.confirmations = ConfirmationsRepo(conn)
        self.registry = ContactRegistry(conn)
        self.resolver = IdentityResolver(conn)

    def plan(self, owner_person_id: str) -> List[ReleasePair]:
        """Every (content, recipient) pair the owner's release should produce."""
        general: Dict[str, Optional[str]] = {}
        for rec in self.registry.list_contacts(owner_person_id):
            if rec.target_email and rec.target_email not in general:
                general[rec.target_email] = rec.linked_person_id
        assignments = self.content.assignments_for_owner(owner_person_id)

        pairs: List[ReleasePair] = []
        for item in self.content.private_items_for_owner(owner_person_id):
            content_id = str(item["id"])
            # Assigned content goes only to its assigned recipients
            recipients = assignments.get(content_id) or list(general)
            for email in recipients:
                person_id = general.get(email) or self.resolver.resolve(email)
                pairs.append((content_id, email, person_id))
        return pairs

    def on_confirmed(self, target_person_id: str) -> ReleaseReport:
        if self.confirmations.get_for_target(target_person_id) is None:
            raise ValidationError("Release requires a recorded deceased confirmation", target_person_id=target_person_id)

        pairs = self.plan(target_person_id)
        existing = self.shares.existing_pairs(target_person_id)
        todo = [p for p in pairs if (p[0], p[1]) not in existing]
        report = ReleaseReport(
            target_person_id=target_person_id,
            pairs_total=len(pairs),
            skipped_existing=len(pairs) - len(todo),
        )
        logger.info(
            f"release fan-out starting pairs={len(pairs)} pending={len(todo)}",
            extra={"step": "release", "status": "start", "target": target_person_id},
        )

        # Share in parallel, persist sequentially on this connection
        with _fut.ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            futures = {ex.submit(self._share, content_id, email): (content_id, email, person_id) for content_id, email, person_id in todo}
            for fut in _fut.as_completed(futures):
                content_id, email, person_id = futures[fut]
                result = fut.result()
                if result.ok:
                    released_at = datetime.now(timezone.utc).isoformat()
                    if self.shares.insert_share(content_id, target_person_id, email, person_id, released_at):
                        report.created += 1
                    else:
                        report.skipped_existing += 1
                    continue
                error = result.error or "share failed"
                self.shares.record_failure(target_person_id, content_id, email, error)
                report.failures.append(ReleaseFailure(content_id=content_id, recipient_identity=email, error=error))
                logger.warning(
                    f"release pair failed content={content_id} recipient={email}",
                    extra={"step": "release", "status": "failed", "target": target_person_id, "error": error},
                )

        logger.info(
            f"release fan-out finished created={report.created} skipped={report.skipped_existing} failed={report.failed}",
            extra={"step": "release", "status": "ok" if report.complete else "partial", "target": target_person_id},
        )
        if not report.complete:
            raise PartialFailureError(report)
        return report

    def _share(self, content_id: str, recipient_identity: str) -> ShareResult:
        t0 = time.time()
        try:
            result = self.sharer.share(content_id, recipient_identity)
        except Exception as exc:
            # One collaborator failure must not abort the rest of the fan-out
            result = ShareResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        log_share_call(
            caller="release_orchestrator.on_confirmed",
            content_id=content_id,
            recipient_identity=recipient_identity,
            duration_ms=int((time.time() - t0) * 1000),
            status="ok" if result.ok else "error",
            error=result.error,
        )
        return result
