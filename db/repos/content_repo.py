from __future__ import annotations

import sqlite3
import uuid
from typing import Dict, List, Optional


class ContentRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add_item(self, owner_person_id: str, title: str, is_private: bool = True, content_id: Optional[str] = None) -> str:
        """Register a content item in the catalog; returns its id."""
        content_id = content_id or uuid.uuid4().hex
        self.conn.execute(
            "INSERT INTO content_items (id, owner_person_id, title, is_private) VALUES (?, ?, ?, ?)",
            (content_id, owner_person_id, title, 1 if is_private else 0),
        )
        self.conn.commit()
        return content_id

    def assign(self, content_id: str, recipient_email: str) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO content_assignments (content_id, recipient_email) VALUES (?, lower(trim(?)))",
            (content_id, recipient_email),
        )
        self.conn.commit()

    def get(self, content_id: str) -> Optional[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute("SELECT id, owner_person_id, title, is_private FROM content_items WHERE id = ?", (content_id,))
        return cur.fetchone()

    def private_items_for_owner(self, owner_person_id: str) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, title FROM content_items WHERE owner_person_id = ? AND is_private = 1 ORDER BY created_at, id",
            (owner_person_id,),
        )
        return cur.fetchall()

    def assignments_for_owner(self, owner_person_id: str) -> Dict[str, List[str]]:
        """Map content_id -> assigned recipient emails for an owner's content."""
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT a.content_id, a.recipient_email FROM content_assignments a "
                "JOIN content_items c ON c.id = a.content_id "
                "WHERE c.owner_person_id = ? ORDER BY a.content_id, a.recipient_email"
            ),
            (owner_person_id,),
        )
        result: Dict[str, List[str]] = {}
        for content_id, email in cur.fetchall():
            result.setdefault(str(content_id), []).append(str(email))
        return result
