from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import List, Optional

# Physical table holding the owner-scoped part of a record, per storage shape
_OWNER_TABLE = {
    "legacy": "contacts",
    "normalized": "user_trusted_contacts",
}

_RECORD_COLUMNS = (
    "id, owner_person_id, target_email, full_name, phone, relationship, contact_type, role, "
    "is_primary, linked_person_id, invitation_status, confirmed_at, created_at, source"
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ContactsRepo:
    """Reads merge both contact shapes through v_contact_records; new writes target the normalized shape."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Writes (normalized shape) ---
    def insert_normalized(
        self,
        owner_person_id: str,
        email: str,
        full_name: str,
        phone: Optional[str],
        relationship: Optional[str],
        contact_type: str,
        role: Optional[str],
        is_primary: bool,
        linked_person_id: Optional[str],
        invitation_status: str,
        confirmed_at: Optional[str] = None,
    ) -> str:
        """Upsert the shared contact row by email and add the owner relationship; returns the relationship id.

        Only the email and the linked identity are shared between owners;
        name and phone are kept on the owner's relationship row.
        """
        now = _now_iso()
        cur = self.conn.cursor()
        cur.execute(
            (
                "INSERT INTO contacts_new (id, email, linked_person_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(email) DO UPDATE SET "
                " linked_person_id = COALESCE(contacts_new.linked_person_id, excluded.linked_person_id), "
                " updated_at = excluded.updated_at "
                "RETURNING id;"
            ),
            (uuid.uuid4().hex, email, linked_person_id, now, now),
        )
        contact_id = str(cur.fetchone()[0])
        relationship_id = uuid.uuid4().hex
        cur.execute(
            (
                "INSERT INTO user_trusted_contacts "
                "(id, owner_person_id, contact_id, full_name, phone, relationship, contact_type, role, is_primary, "
                "invitation_status, confirmed_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
            ),
            (
                relationship_id,
                owner_person_id,
                contact_id,
                full_name,
                phone,
                relationship,
                contact_type,
                role,
                1 if is_primary else 0,
                invitation_status,
                confirmed_at,
                now,
                now,
            ),
        )
        self.conn.commit()
        return relationship_id

    # --- Merged reads ---
    def get(self, record_id: str) -> Optional[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_RECORD_COLUMNS} FROM v_contact_records WHERE id = ?", (record_id,))
        return cur.fetchone()

    def list_for_owner(self, owner_person_id: str) -> List[sqlite3.Row]:
        sql = (
            f"SELECT {_RECORD_COLUMNS} FROM v_contact_records WHERE owner_person_id = ? "
            "ORDER BY contact_type DESC, is_primary DESC, created_at DESC"
        )
        cur = self.conn.cursor()
        cur.execute(sql, (owner_person_id,))
        return cur.fetchall()

    def rows_for_email(self, email: str) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_RECORD_COLUMNS} FROM v_contact_records WHERE target_email = lower(trim(?))",
            (email,),
        )
        return cur.fetchall()

    def trusted_emails(self) -> List[str]:
        """Distinct emails with at least one trusted record in either shape."""
        cur = self.conn.cursor()
        cur.execute(
            "SELECT DISTINCT target_email FROM v_contact_records "
            "WHERE contact_type = 'trusted' AND target_email IS NOT NULL AND target_email != '' "
            "ORDER BY target_email"
        )
        return [str(r[0]) for r in cur.fetchall()]

    def select_for_reconciliation(self, owner_person_id: Optional[str] = None) -> List[sqlite3.Row]:
        """All records with an email in scope, oldest first."""
        where = ["target_email IS NOT NULL", "target_email != ''"]
        params: List[str] = []
        if owner_person_id:
            where.append("owner_person_id = ?")
            params.append(owner_person_id)
        sql = f"SELECT {_RECORD_COLUMNS} FROM v_contact_records WHERE {' AND '.join(where)} ORDER BY created_at, id"
        cur = self.conn.cursor()
        cur.execute(sql, tuple(params))
        return cur.fetchall()

    # --- In-place mutations (whichever shape holds the record) ---
    def set_trust(self, record_id: str, source: str, contact_type: str, role: Optional[str], is_primary: bool) -> None:
        table = _OWNER_TABLE[source]
        extra = ", updated_at = datetime('now')" if source == "normalized" else ""
        self.conn.execute(
            f"UPDATE {table} SET contact_type = ?, role = ?, is_primary = ?{extra} WHERE id = ?",
            (contact_type, role, 1 if is_primary else 0, record_id),
        )
        self.conn.commit()

    def clear_primary(self, owner_person_id: str) -> None:
        """Drop the primary flag on every record of an owner, in both shapes."""
        self.conn.execute("UPDATE user_trusted_contacts SET is_primary = 0 WHERE owner_person_id = ? AND is_primary = 1", (owner_person_id,))
        self.conn.execute("UPDATE contacts SET is_primary = 0 WHERE owner_person_id = ? AND is_primary = 1", (owner_person_id,))
        self.conn.commit()

    def update_details(
        self,
        record_id: str,
        source: str,
        full_name: Optional[str],
        phone: Optional[str],
        relationship: Optional[str],
    ) -> None:
        """Update descriptive fields of one owner's record; None leaves a field untouched."""
        extra = ", updated_at = datetime('now')" if source == "normalized" else ""
        self.conn.execute(
            (
                f"UPDATE {_OWNER_TABLE[source]} SET full_name = COALESCE(?, full_name), phone = COALESCE(?, phone), "
                f"relationship = COALESCE(?, relationship){extra} WHERE id = ?"
            ),
            (full_name, phone, relationship, record_id),
        )
        self.conn.commit()

    def delete(self, record_id: str, source: str) -> None:
        """Remove the owner-scoped row only; the shared contact row and all history stay."""
        self.conn.execute(f"DELETE FROM {_OWNER_TABLE[source]} WHERE id = ?", (record_id,))
        self.conn.commit()

    def link_identity(self, record_id: str, source: str, person_id: str) -> bool:
        """Fill linked_person_id if still unset; returns True if a row changed."""
        if source == "legacy":
            cur = self.conn.execute(
                "UPDATE contacts SET linked_person_id = ? WHERE id = ? AND linked_person_id IS NULL",
                (person_id, record_id),
            )
        else:
            cur = self.conn.execute(
                (
                    "UPDATE contacts_new SET linked_person_id = ?, updated_at = datetime('now') "
                    "WHERE id = (SELECT contact_id FROM user_trusted_contacts WHERE id = ?) AND linked_person_id IS NULL"
                ),
                (person_id, record_id),
            )
        self.conn.commit()
        return cur.rowcount > 0

    def upgrade_invitation(self, record_id: str, source: str, to_status: str) -> bool:
        """Move a not-yet-registered invitation forward and stamp confirmed_at; never downgrades.

        Returns True if a row changed.
        """
        table = _OWNER_TABLE[source]
        cur = self.conn.execute(
            (
                f"UPDATE {table} SET invitation_status = ?, confirmed_at = COALESCE(confirmed_at, ?) "
                "WHERE id = ? AND COALESCE(invitation_status, 'pending') NOT IN ('registered', 'confirmed')"
            ),
            (to_status, _now_iso(), record_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def accept_invitation(self, record_id: str, source: str) -> bool:
        """registered -> confirmed; returns True if a row changed."""
        table = _OWNER_TABLE[source]
        cur = self.conn.execute(
            (
                f"UPDATE {table} SET invitation_status = 'confirmed', confirmed_at = COALESCE(confirmed_at, ?) "
                "WHERE id = ? AND invitation_status = 'registered'"
            ),
            (_now_iso(), record_id),
        )
        self.conn.commit()
        return cur.rowcount > 0
