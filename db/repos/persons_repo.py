from __future__ import annotations

import sqlite3
import uuid
from typing import Optional


class PersonsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def insert_person(self, email: str, display_name: Optional[str] = None) -> str:
        """Insert a registered identity; email must already be normalized. Returns person id."""
        person_id = uuid.uuid4().hex
        self.conn.execute(
            "INSERT INTO persons (id, email, display_name) VALUES (?, ?, ?)",
            (person_id, email, display_name),
        )
        self.conn.commit()
        return person_id

    def find_id_by_email(self, email: str) -> Optional[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT id FROM persons WHERE email = lower(trim(?))", (email,))
        row = cur.fetchone()
        return str(row[0]) if row else None

    def get(self, person_id: str) -> Optional[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, email, display_name, account_status, deceased_at, created_at FROM persons WHERE id = ?",
            (person_id,),
        )
        return cur.fetchone()

    def transition_to_deceased(self, person_id: str, at_iso: str) -> bool:
        """Compare-and-swap ACTIVE -> DECEASED. Caller owns the transaction.

        Returns True only if this statement performed the transition.
        """
        cur = self.conn.execute(
            "UPDATE persons SET account_status = 'DECEASED', deceased_at = ? "
            "WHERE id = ? AND account_status = 'ACTIVE'",
            (at_iso, person_id),
        )
        return cur.rowcount == 1
