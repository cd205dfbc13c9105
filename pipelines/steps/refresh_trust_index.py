from __future__ import annotations

import sqlite3
from typing import Optional

from models.reconciliation import ReconciliationSummary
from pipelines.runner import RunContext
from services.trust_index import TrustedRelationshipIndex


class RefreshTrustIndex:
    def __init__(self, conn: sqlite3.Connection, index: Optional[TrustedRelationshipIndex] = None) -> None:
        self.index = index or TrustedRelationshipIndex(conn)

    def run(self, ctx: RunContext) -> RunContext:
        summary: ReconciliationSummary = ctx.meta.setdefault("summary", ReconciliationSummary())
        summary.index_entries = self.index.rebuild()
        return ctx
