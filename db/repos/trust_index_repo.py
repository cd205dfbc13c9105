from __future__ import annotations

import sqlite3
from typing import Iterable, List, Tuple


class TrustIndexRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def replace_for_email(self, email: str, entries: Iterable[Tuple[str, str, bool, str, str]]) -> None:
        """Atomically swap the index rows of one email.

        entries are (owner_person_id, role, is_primary, invitation_status, source).
        """
        with self.conn:
            self.conn.execute("DELETE FROM trust_index WHERE contact_email = ?", (email,))
            self.conn.executemany(
                (
                    "INSERT INTO trust_index (contact_email, owner_person_id, role, is_primary, invitation_status, source, refreshed_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, datetime('now'))"
                ),
                [(email, owner, role, 1 if primary else 0, status, source) for owner, role, primary, status, source in entries],
            )

    def select_for_email(self, email: str) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT owner_person_id, role, is_primary, invitation_status, source FROM trust_index "
                "WHERE contact_email = ? ORDER BY is_primary DESC, owner_person_id, role"
            ),
            (email,),
        )
        return cur.fetchall()

    def indexed_emails(self) -> List[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT DISTINCT contact_email FROM trust_index")
        return [str(r[0]) for r in cur.fetchall()]

    def count(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM trust_index")
        return int(cur.fetchone()[0])
