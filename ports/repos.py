from __future__ import annotations

import sqlite3
from typing import Iterable, List, Optional, Protocol, Set, Tuple


class ContactsRepoPort(Protocol):
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
        ...

    def get(self, record_id: str) -> Optional[sqlite3.Row]:
        ...

    def list_for_owner(self, owner_person_id: str) -> List[sqlite3.Row]:
        ...

    def rows_for_email(self, email: str) -> List[sqlite3.Row]:
        ...

    def select_for_reconciliation(self, owner_person_id: Optional[str] = None) -> List[sqlite3.Row]:
        ...

    def link_identity(self, record_id: str, source: str, person_id: str) -> bool:
        ...

    def upgrade_invitation(self, record_id: str, source: str, to_status: str) -> bool:
        ...

    def accept_invitation(self, record_id: str, source: str) -> bool:
        ...


class TrustIndexRepoPort(Protocol):
    def replace_for_email(self, email: str, entries: Iterable[Tuple[str, str, bool, str, str]]) -> None:
        ...

    def select_for_email(self, email: str) -> List[sqlite3.Row]:
        ...

    def indexed_emails(self) -> List[str]:
        ...


class ReleaseShareRepoPort(Protocol):
    def existing_pairs(self, owner_person_id: str) -> Set[Tuple[str, str]]:
        ...

    def insert_share(
        self,
        content_id: str,
        owner_person_id: str,
        recipient_identity: str,
        recipient_person_id: Optional[str],
        released_at: str,
        is_legacy_release: bool = True,
    ) -> bool:
        ...

    def record_failure(self, owner_person_id: str, content_id: str, recipient_identity: str, error: str) -> None:
        ...
