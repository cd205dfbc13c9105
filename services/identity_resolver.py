from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from db.repos.persons_repo import PersonsRepo
from models.contact_record import EMAIL_RE, normalize_email
from models.person import Person
from services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Maps emails to registered person ids. Not finding one is a normal outcome."""

    def __init__(self, conn: sqlite3.Connection):
        self.persons = PersonsRepo(conn)

    def resolve(self, email: Optional[str]) -> Optional[str]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self.persons.find_id_by_email(normalized)

    def register(self, email: str, display_name: Optional[str] = None) -> str:
        """Create a registered identity (the sign-up collaborator's write path)."""
        normalized = normalize_email(email)
        if not EMAIL_RE.match(normalized):
            raise ValidationError("Invalid email format", email=email)
        if self.persons.find_id_by_email(normalized):
            raise ValidationError("Email is already registered", email=normalized)
        person_id = self.persons.insert_person(normalized, (display_name or "").strip() or None)
        logger.info("registered person", extra={"step": "register", "status": "ok", "target": person_id})
        return person_id

    def get(self, person_id: str) -> Optional[Person]:
        row = self.persons.get(person_id)
        return Person.model_validate(dict(row)) if row else None

    def require(self, person_id: str) -> Person:
        person = self.get(person_id)
        if person is None:
            raise NotFoundError("Person not found", person_id=person_id)
        return person
