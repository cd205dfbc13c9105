from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from db.repos.contacts_repo import ContactsRepo
from models.reconciliation import ReconciliationSummary
from pipelines.runner import RunContext
from ports.repos import ContactsRepoPort

logger = logging.getLogger(__name__)


class LoadContactsForReconciliation:
    def __init__(self, conn: sqlite3.Connection, repo: Optional[ContactsRepoPort] = None) -> None:
        self.repo = repo or ContactsRepo(conn)

    def run(self, ctx: RunContext) -> RunContext:
        rows = self.repo.select_for_reconciliation(ctx.owner_person_id)
        # Rows stay raw here; each one is parsed inside the per-record error handling of LinkIdentities
        ctx.contacts = list(rows)
        ctx.meta.setdefault("summary", ReconciliationSummary())
        logger.info(
            f"loaded {len(ctx.contacts)} contact records",
            extra={"step": "load_contacts", "status": "ok", "target": ctx.owner_person_id or "all"},
        )
        return ctx
