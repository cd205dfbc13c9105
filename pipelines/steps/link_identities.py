from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from config.settings import get_settings
from db.repos.contacts_repo import ContactsRepo
from models.contact_record import ContactRecord
from models.enums import InvitationStatus
from models.reconciliation import ReconciliationSummary, RecordError
from pipelines.runner import RunContext
from ports.repos import ContactsRepoPort
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex

logger = logging.getLogger(__name__)


class LinkIdentities:
    """Attach identities that registered after the contact was added.

    Only fills linked_person_id and moves trusted invitations from pending
    to registered (stamping confirmed_at); nothing is deleted or downgraded, so a second run finds
    nothing to do.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        resolver: Optional[IdentityResolver] = None,
        index: Optional[TrustedRelationshipIndex] = None,
        repo: Optional[ContactsRepoPort] = None,
    ) -> None:
        self.repo = repo or ContactsRepo(conn)
        self.resolver = resolver or IdentityResolver(conn)
        self.index = index or TrustedRelationshipIndex(conn)
        self.batch_size = max(1, get_settings().reconcile_batch_size)

    def _upgrade(self, rec: ContactRecord) -> bool:
        if not rec.is_trusted or rec.invitation_status is not InvitationStatus.PENDING:
            return False
        return self.repo.upgrade_invitation(rec.id, rec.source.value, InvitationStatus.REGISTERED.value)

    def _reconcile_one(self, rec: ContactRecord, summary: ReconciliationSummary) -> None:
        if rec.linked_person_id:
            # Linked earlier (e.g. through another owner's shared row) but invitation never moved
            if self._upgrade(rec):
                self.index.refresh(rec.target_email or "")
                summary.fixed += 1
            else:
                summary.already_linked += 1
            return

        person_id = self.resolver.resolve(rec.target_email)
        if not person_id:
            summary.no_match += 1
            return

        linked = self.repo.link_identity(rec.id, rec.source.value, person_id)
        upgraded = self._upgrade(rec)
        if linked or upgraded:
            self.index.refresh(rec.target_email or "")
            summary.fixed += 1
        else:
            summary.already_linked += 1

    def run(self, ctx: RunContext) -> RunContext:
        summary: ReconciliationSummary = ctx.meta.setdefault("summary", ReconciliationSummary())
        total = len(ctx.contacts)
        for idx, row in enumerate(ctx.contacts, start=1):
            if ctx.cancelled:
                summary.cancelled = True
                ctx.meta["cancelled"] = True
                logger.info(
                    f"reconciliation cancelled after {summary.scanned}/{total} records",
                    extra={"step": "link_identities", "status": "cancelled"},
                )
                break
            summary.scanned += 1
            try:
                self._reconcile_one(ContactRecord.from_row(row), summary)
            except Exception as exc:
                summary.errors += 1
                summary.error_details.append(RecordError(contact_id=str(row["id"]), error=str(exc)))
                logger.warning(
                    "failed to reconcile contact record",
                    extra={"step": "link_identities", "status": "error", "target": row["id"], "error": str(exc)},
                )
            if idx % self.batch_size == 0:
                logger.info(
                    f"progress {idx}/{total} fixed={summary.fixed}",
                    extra={"step": "link_identities", "status": "progress"},
                )
        return ctx
