"""Reverse "who trusts me" index.

Contacts are stored from the owner's side, in two physical shapes (the old
flat ``contacts`` table and the normalized ``contacts_new`` +
``user_trusted_contacts`` pair). Authorization needs the contact's side, so
this module folds both shapes into one logical view per email and keeps it
materialized in ``trust_index``.

Merge rules:
  - for a given owner, a record in the normalized shape supersedes every
    legacy record for the same email;
  - remaining trusted records collapse on (owner, role); primary flags are
    OR-ed and the most advanced invitation status wins.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pydantic

from db.repos.contacts_repo import ContactsRepo
from db.repos.trust_index_repo import TrustIndexRepo
from models.contact_record import ContactRecord, normalize_email
from models.enums import InvitationStatus, StorageShape, TrustRole
from models.trust import TrustEntry
from ports.repos import TrustIndexRepoPort

logger = logging.getLogger(__name__)


def parse_contact_rows(rows: Iterable[Mapping[str, Any]], step: str) -> List[ContactRecord]:
    """Convert merged-view rows, skipping (and logging) rows whose values no model accepts."""
    records: List[ContactRecord] = []
    for row in rows:
        try:
            records.append(ContactRecord.from_row(row))
        except pydantic.ValidationError as exc:
            logger.warning(
                "skipping unreadable contact record",
                extra={"step": step, "status": "skipped", "target": row["id"], "error": str(exc).splitlines()[0]},
            )
    return records


_STATUS_RANK = {
    InvitationStatus.PENDING: 0,
    InvitationStatus.REGISTERED: 1,
    InvitationStatus.CONFIRMED: 2,
}


def merge_trust_entries(records: Iterable[ContactRecord]) -> List[TrustEntry]:
    records = list(records)
    normalized_owners = {r.owner_person_id for r in records if r.source is StorageShape.NORMALIZED}
    merged: Dict[Tuple[str, TrustRole], TrustEntry] = {}
    for rec in records:
        if rec.source is StorageShape.LEGACY and rec.owner_person_id in normalized_owners:
            continue
        if not rec.is_trusted or rec.role is None:
            continue
        key = (rec.owner_person_id, rec.role)
        candidate = TrustEntry(
            owner_person_id=rec.owner_person_id,
            role=rec.role,
            is_primary=rec.is_primary,
            invitation_status=rec.invitation_status,
            source=rec.source,
        )
        current = merged.get(key)
        if current is None:
            merged[key] = candidate
            continue
        status = max(current.invitation_status, candidate.invitation_status, key=_STATUS_RANK.__getitem__)
        merged[key] = current.model_copy(
            update={"is_primary": current.is_primary or candidate.is_primary, "invitation_status": status}
        )
    return sorted(merged.values(), key=lambda e: (not e.is_primary, e.owner_person_id, e.role.value))


class TrustedRelationshipIndex:
    def __init__(self, conn: sqlite3.Connection, index_repo: Optional[TrustIndexRepoPort] = None):
        self.contacts = ContactsRepo(conn)
        self.index = index_repo or TrustIndexRepo(conn)

    def trustors_of(self, email: str) -> List[TrustEntry]:
        """Owners that designated this email as a trusted contact, read from the index."""
        rows = self.index.select_for_email(normalize_email(email))
        return [TrustEntry.model_validate(dict(r)) for r in rows]

    def scan(self, email: str) -> List[TrustEntry]:
        """Merged view computed straight from both storage shapes."""
        rows = self.contacts.rows_for_email(normalize_email(email))
        return merge_trust_entries(parse_contact_rows(rows, "scan_trustors"))

    def refresh(self, email: str) -> List[TrustEntry]:
        key = normalize_email(email)
        if not key:
            return []
        entries = self.scan(key)
        if entries == self.trustors_of(key):
            return entries
        self.index.replace_for_email(
            key,
            [(e.owner_person_id, e.role.value, e.is_primary, e.invitation_status.value, e.source.value) for e in entries],
        )
        return entries

    def rebuild(self) -> int:
        """Recompute every key, including ones whose records have since disappeared."""
        emails = set(self.contacts.trusted_emails()) | set(self.index.indexed_emails())
        total = 0
        for email in sorted(emails):
            total += len(self.refresh(email))
        logger.info(
            "trust index rebuilt",
            extra={"step": "rebuild_index", "status": "ok", "target": f"emails={len(emails)} entries={total}"},
        )
        return total
