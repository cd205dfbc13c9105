from __future__ import annotations

import sqlite3
from typing import Optional


class ConfirmationsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert(
        self,
        confirmation_id: str,
        target_person_id: str,
        confirmed_by_person_id: str,
        notes: Optional[str],
        verification_method: str,
        confirmed_at: str,
    ) -> None:
        """Append the audit row. Caller owns the transaction (no commit here)."""
        self.conn.execute(
            (
                "INSERT INTO deceased_confirmations "
                "(id, target_person_id, confirmed_by_person_id, notes, verification_method, confirmed_at) "
                "VALUES (?, ?, ?, ?, ?, ?)"
            ),
            (confirmation_id, target_person_id, confirmed_by_person_id, notes, verification_method, confirmed_at),
        )

    def get_for_target(self, target_person_id: str) -> Optional[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT id, target_person_id, confirmed_by_person_id, notes, verification_method, confirmed_at "
                "FROM deceased_confirmations WHERE target_person_id = ?"
            ),
            (target_person_id,),
        )
        return cur.fetchone()

    def count_for_target(self, target_person_id: str) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM deceased_confirmations WHERE target_person_id = ?", (target_person_id,))
        return int(cur.fetchone()[0])
