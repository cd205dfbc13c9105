from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple


class ReleaseShareRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def existing_pairs(self, owner_person_id: str) -> Set[Tuple[str, str]]:
        """(content_id, recipient_identity) pairs already released for an owner."""
        cur = self.conn.cursor()
        cur.execute(
            "SELECT content_id, recipient_identity FROM release_shares WHERE owner_person_id = ?",
            (owner_person_id,),
        )
        return {(str(r[0]), str(r[1])) for r in cur.fetchall()}

    def insert_share(
        self,
        content_id: str,
        owner_person_id: str,
        recipient_identity: str,
        recipient_person_id: Optional[str],
        released_at: str,
        is_legacy_release: bool = True,
    ) -> bool:
        """Create the share unless the pair exists; returns True if a row was inserted."""
        cur = self.conn.execute(
            (
                "INSERT OR IGNORE INTO release_shares "
                "(id, content_id, owner_person_id, recipient_identity, recipient_person_id, released_at, is_legacy_release) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)"
            ),
            (uuid.uuid4().hex, content_id, owner_person_id, recipient_identity, recipient_person_id, released_at, 1 if is_legacy_release else 0),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def record_failure(self, owner_person_id: str, content_id: str, recipient_identity: str, error: str) -> None:
        self.conn.execute(
            "INSERT INTO release_failures (owner_person_id, content_id, recipient_identity, error) VALUES (?, ?, ?, ?)",
            (owner_person_id, content_id, recipient_identity, error),
        )
        self.conn.commit()

    def mark_viewed(self, share_id: str, viewed_at: Optional[str] = None) -> bool:
        """Set viewed_at once; the only mutation a share ever receives."""
        viewed_at = viewed_at or datetime.now(timezone.utc).isoformat()
        cur = self.conn.execute(
            "UPDATE release_shares SET viewed_at = ? WHERE id = ? AND viewed_at IS NULL",
            (viewed_at, share_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def get(self, share_id: str) -> Optional[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT id, content_id, owner_person_id, recipient_identity, recipient_person_id, released_at, viewed_at, is_legacy_release "
                "FROM release_shares WHERE id = ?"
            ),
            (share_id,),
        )
        return cur.fetchone()

    def list_for_owner(self, owner_person_id: str) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT id, content_id, owner_person_id, recipient_identity, recipient_person_id, released_at, viewed_at, is_legacy_release "
                "FROM release_shares WHERE owner_person_id = ? ORDER BY released_at, content_id, recipient_identity"
            ),
            (owner_person_id,),
        )
        return cur.fetchall()

    def shared_with(self, recipient_identity: str) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.execute(
            (
                "SELECT id, content_id, owner_person_id, recipient_identity, recipient_person_id, released_at, viewed_at, is_legacy_release "
                "FROM release_shares WHERE recipient_identity = lower(trim(?)) ORDER BY released_at DESC"
            ),
            (recipient_identity,),
        )
        return cur.fetchall()

    def failure_count(self, owner_person_id: str) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM release_failures WHERE owner_person_id = ?", (owner_person_id,))
        return int(cur.fetchone()[0])
