from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Optional

from models.reconciliation import ReconciliationSummary
from pipelines.runner import Pipeline, RunContext
from pipelines.steps import LinkIdentities, LoadContactsForReconciliation, RefreshTrustIndex
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex

logger = logging.getLogger(__name__)


class ReconciliationJob:
    """Links contact records to identities that registered later, then rebuilds the trust index.

    Safe to run repeatedly and alongside request traffic: it only fills
    unset links and upgrades pending invitations.
    """

    def __init__(self, conn: sqlite3.Connection, resolver: Optional[IdentityResolver] = None):
        self.conn = conn
        self.resolver = resolver

    def run(
        self,
        owner_person_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationSummary:
        index = TrustedRelationshipIndex(self.conn)
        pipeline = Pipeline(
            [
                LoadContactsForReconciliation(self.conn),
                LinkIdentities(self.conn, resolver=self.resolver, index=index),
                RefreshTrustIndex(self.conn, index=index),
            ]
        )
        started = time.perf_counter()
        ctx = pipeline.run(RunContext(owner_person_id=owner_person_id, cancel_event=cancel_event))
        summary: ReconciliationSummary = ctx.meta.get("summary") or ReconciliationSummary()
        if ctx.meta.get("cancelled"):
            summary.cancelled = True
        logger.info(
            f"reconciliation finished scanned={summary.scanned} fixed={summary.fixed} "
            f"already_linked={summary.already_linked} no_match={summary.no_match} errors={summary.errors}",
            extra={
                "step": "reconcile",
                "status": "cancelled" if summary.cancelled else "ok",
                "target": owner_person_id or "all",
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return summary
