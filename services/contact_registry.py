from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

import pydantic

from db.repos.contacts_repo import ContactsRepo
from models.contact_record import ContactCheck, ContactInput, ContactRecord, normalize_email
from models.enums import ContactType, InvitationStatus, StorageShape, TrustRole
from services.errors import NotFoundError, ValidationError
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex, parse_contact_rows

logger = logging.getLogger(__name__)


def _parse_input(payload: Union[ContactInput, Mapping[str, Any]]) -> ContactInput:
    if isinstance(payload, ContactInput):
        return payload
    try:
        return ContactInput.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        problems = [
            {"field": ".".join(str(p) for p in err.get("loc", ())) or "payload", "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid contact payload", problems=problems) from exc


def _coerce_role(role: Union[TrustRole, str, None]) -> TrustRole:
    if role is None:
        raise ValidationError("A role is required for trusted contacts")
    try:
        return TrustRole(role)
    except ValueError:
        raise ValidationError("Unknown trusted contact role", role=str(role)) from None


def _dedupe_shapes(records: List[ContactRecord]) -> List[ContactRecord]:
    """Hide legacy rows superseded by a normalized record for the same owner and email."""
    normalized_keys = {
        (r.owner_person_id, r.target_email) for r in records if r.source is StorageShape.NORMALIZED and r.target_email
    }
    return [
        r
        for r in records
        if not (r.source is StorageShape.LEGACY and (r.owner_person_id, r.target_email) in normalized_keys)
    ]


class ContactRegistry:
    """Owner-scoped contact management across both storage shapes."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        resolver: Optional[IdentityResolver] = None,
        index: Optional[TrustedRelationshipIndex] = None,
    ):
        self.contacts = ContactsRepo(conn)
        self.resolver = resolver or IdentityResolver(conn)
        self.index = index or TrustedRelationshipIndex(conn)

    # --- Reads ---
    def list_contacts(self, owner_person_id: str) -> List[ContactRecord]:
        rows = self.contacts.list_for_owner(owner_person_id)
        return _dedupe_shapes(parse_contact_rows(rows, "list_contacts"))

    def get(self, owner_person_id: str, contact_id: str) -> ContactRecord:
        row = self.contacts.get(contact_id)
        if row is None or row["owner_person_id"] != owner_person_id:
            raise NotFoundError("Contact not found", contact_id=contact_id)
        return self._parse(row)

    def get_for_contact(self, person_id: str, contact_id: str) -> ContactRecord:
        """Read a record from the side of the person it points at."""
        row = self.contacts.get(contact_id)
        if row is None or row["linked_person_id"] != person_id:
            raise NotFoundError("Contact not found", contact_id=contact_id)
        return self._parse(row)

    @staticmethod
    def _parse(row) -> ContactRecord:
        try:
            return ContactRecord.from_row(row)
        except pydantic.ValidationError as exc:
            raise ValidationError("Stored contact record is unreadable", contact_id=row["id"]) from exc

    def find_by_email(self, owner_person_id: str, email: str) -> Optional[ContactRecord]:
        key = normalize_email(email)
        for rec in self.list_contacts(owner_person_id):
            if rec.target_email == key:
                return rec
        return None

    def check_contact(self, owner_person_id: str, email: str) -> ContactCheck:
        key = normalize_email(email)
        rows = self.contacts.rows_for_email(key)
        own = self.find_by_email(owner_person_id, key)
        existing_user_id = self.resolver.resolve(key)
        owners = {r["owner_person_id"] for r in rows}
        return ContactCheck(
            email=key,
            contact_exists=own is not None,
            contact_id=own.id if own else None,
            contact_name=own.full_name if own else None,
            contact_type=own.contact_type if own else None,
            invitation_status=own.invitation_status if own else None,
            relationships_count=len(owners),
            user_exists=existing_user_id is not None,
            existing_user_id=existing_user_id,
            can_add_contact=own is None and existing_user_id != owner_person_id,
        )

    # --- Mutations ---
    def create(self, owner_person_id: str, payload: Union[ContactInput, Mapping[str, Any]]) -> ContactRecord:
        """Add a contact for the owner.

        A target that already has an account is linked right away and the
        relationship counts as registered; otherwise it stays pending until
        the reconciliation job finds the identity.
        """
        data = _parse_input(payload)
        if self.find_by_email(owner_person_id, data.email) is not None:
            raise ValidationError("Contact with this email already exists", email=data.email)

        linked_person_id = self.resolver.resolve(data.email)
        if linked_person_id is not None and linked_person_id == owner_person_id:
            raise ValidationError("You cannot add yourself as a contact", email=data.email)
        status = InvitationStatus.REGISTERED if linked_person_id else InvitationStatus.PENDING
        confirmed_at = datetime.now(timezone.utc).isoformat() if linked_person_id else None

        if data.is_primary:
            self.contacts.clear_primary(owner_person_id)
        record_id = self.contacts.insert_normalized(
            owner_person_id=owner_person_id,
            email=data.email,
            full_name=data.full_name,
            phone=data.phone,
            relationship=data.relationship,
            contact_type=data.contact_type.value,
            role=data.role.value if data.role else None,
            is_primary=data.is_primary,
            linked_person_id=linked_person_id,
            invitation_status=status.value,
            confirmed_at=confirmed_at,
        )
        self._refresh_owner(owner_person_id, data.email)
        logger.info(
            f"contact created type={data.contact_type.value} status={status.value}",
            extra={"step": "create_contact", "status": "ok", "target": record_id},
        )
        return self.get(owner_person_id, record_id)

    def update_details(
        self,
        owner_person_id: str,
        contact_id: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        relationship: Optional[str] = None,
    ) -> ContactRecord:
        rec = self.get(owner_person_id, contact_id)
        if full_name is not None and not full_name.strip():
            raise ValidationError("full_name cannot be empty", contact_id=contact_id)
        if phone is not None and rec.is_trusted and not phone.strip():
            raise ValidationError("Trusted contacts must keep a phone number", contact_id=contact_id)
        self.contacts.update_details(
            rec.id,
            rec.source.value,
            full_name.strip() if full_name is not None else None,
            phone.strip() if phone is not None else None,
            relationship.strip() if relationship is not None else None,
        )
        return self.get(owner_person_id, contact_id)

    def promote(
        self,
        owner_person_id: str,
        contact_id: str,
        role: Union[TrustRole, str, None],
        is_primary: bool = False,
    ) -> ContactRecord:
        """Make a contact trusted. The phone must already be on file; nothing changes otherwise."""
        rec = self.get(owner_person_id, contact_id)
        trust_role = _coerce_role(role)
        if not (rec.phone or "").strip():
            raise ValidationError("A phone number is required before promoting to trusted", contact_id=contact_id)
        if not rec.target_email:
            raise ValidationError("An email is required before promoting to trusted", contact_id=contact_id)
        if is_primary:
            self.contacts.clear_primary(owner_person_id)
        self.contacts.set_trust(rec.id, rec.source.value, ContactType.TRUSTED.value, trust_role.value, is_primary)
        self._refresh_owner(owner_person_id, rec.target_email)
        logger.info(
            f"contact promoted role={trust_role.value}",
            extra={"step": "promote_contact", "status": "ok", "target": rec.id},
        )
        return self.get(owner_person_id, contact_id)

    def demote(self, owner_person_id: str, contact_id: str) -> ContactRecord:
        rec = self.get(owner_person_id, contact_id)
        self.contacts.set_trust(rec.id, rec.source.value, ContactType.REGULAR.value, None, False)
        self._refresh_owner(owner_person_id, rec.target_email)
        logger.info("contact demoted", extra={"step": "demote_contact", "status": "ok", "target": rec.id})
        return self.get(owner_person_id, contact_id)

    def set_primary(self, owner_person_id: str, contact_id: str) -> ContactRecord:
        rec = self.get(owner_person_id, contact_id)
        if not rec.is_trusted or rec.role is None:
            raise ValidationError("Only trusted contacts can be primary", contact_id=contact_id)
        self.contacts.clear_primary(owner_person_id)
        self.contacts.set_trust(rec.id, rec.source.value, ContactType.TRUSTED.value, rec.role.value, True)
        self._refresh_owner(owner_person_id, rec.target_email)
        return self.get(owner_person_id, contact_id)

    def delete(self, owner_person_id: str, contact_id: str) -> None:
        """Remove the record only; confirmations and release history are untouched."""
        rec = self.get(owner_person_id, contact_id)
        self.contacts.delete(rec.id, rec.source.value)
        self._refresh_owner(owner_person_id, rec.target_email)
        logger.info("contact deleted", extra={"step": "delete_contact", "status": "ok", "target": rec.id})

    def accept_invitation(self, person_id: str, contact_id: str) -> ContactRecord:
        """The linked contact acknowledges the relationship: registered -> confirmed.

        Accepting twice is a no-op. A pending invitation has to be linked
        first, either at create time or by the reconciliation job.
        """
        rec = self.get_for_contact(person_id, contact_id)
        if rec.invitation_status is InvitationStatus.CONFIRMED:
            return rec
        if rec.invitation_status is not InvitationStatus.REGISTERED:
            raise ValidationError("Only registered invitations can be accepted", contact_id=contact_id)
        if self.contacts.accept_invitation(rec.id, rec.source.value):
            self._refresh_owner(rec.owner_person_id, rec.target_email)
            logger.info("invitation accepted", extra={"step": "accept_invitation", "status": "ok", "target": rec.id})
        return self.get_for_contact(person_id, contact_id)

    def _refresh_owner(self, owner_person_id: str, email: Optional[str]) -> None:
        # Primary flags span the owner's contacts, so every trusted email of the owner is re-derived
        emails: Dict[str, None] = {}
        if email:
            emails[normalize_email(email)] = None
        for rec in self.list_contacts(owner_person_id):
            if rec.is_trusted and rec.target_email:
                emails[rec.target_email] = None
        for key in emails:
            self.index.refresh(key)
