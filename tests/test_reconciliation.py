from __future__ import annotations

import threading
import uuid

from models.enums import InvitationStatus
from pipelines.reconcile_contacts import ReconciliationJob
from services.contact_registry import ContactRegistry
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex


def _legacy_contact(conn, owner, email, contact_type="trusted", role="executor", status="pending"):
    record_id = uuid.uuid4().hex
    conn.execute(
        (
            "INSERT INTO contacts (id, owner_person_id, email, full_name, phone, contact_type, role, invitation_status) "
            "VALUES (?, ?, ?, 'Someone', '1', ?, ?, ?)"
        ),
        (record_id, owner, email, contact_type, role, status),
    )
    conn.commit()
    return record_id


def test_links_late_registrations_and_upgrades_trusted(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    registry = ContactRegistry(conn)
    trusted = registry.create(owner, {"email": "late@example.com", "full_name": "Late", "phone": "1", "contact_type": "trusted", "role": "executor"})
    regular = registry.create(owner, {"email": "friend@example.com", "full_name": "Friend"})
    registry.create(owner, {"email": "never@example.com", "full_name": "Never"})
    legacy_id = _legacy_contact(conn, owner, "Legacy@Example.com", status="bounced")

    late = resolver.register("late@example.com")
    friend = resolver.register("friend@example.com")
    legacy_person = resolver.register("legacy@example.com")

    summary = ReconciliationJob(conn).run()

    assert summary.scanned == 4
    assert summary.fixed == 3
    assert summary.no_match == 1
    assert summary.errors == 0
    assert summary.cancelled is False

    rec = registry.get(owner, trusted.id)
    assert rec.linked_person_id == late
    assert rec.invitation_status is InvitationStatus.REGISTERED
    reg = registry.get(owner, regular.id)
    assert reg.linked_person_id == friend
    assert reg.invitation_status is InvitationStatus.PENDING
    legacy = registry.get(owner, legacy_id)
    assert legacy.linked_person_id == legacy_person
    assert legacy.invitation_status is InvitationStatus.REGISTERED

    entries = TrustedRelationshipIndex(conn).trustors_of("late@example.com")
    assert entries[0].invitation_status is InvitationStatus.REGISTERED
    assert summary.index_entries == 2


def test_second_run_is_a_no_op(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    ContactRegistry(conn).create(owner, {"email": "late@example.com", "full_name": "Late", "phone": "1", "contact_type": "trusted", "role": "guardian"})
    _legacy_contact(conn, owner, "old@example.com")
    resolver.register("late@example.com")
    resolver.register("old@example.com")

    first = ReconciliationJob(conn).run()
    assert first.fixed == 2
    before = conn.total_changes
    second = ReconciliationJob(conn).run()
    assert second.fixed == 0
    assert second.already_linked == 2
    assert conn.total_changes == before


def test_shared_contact_row_upgrades_every_owner(conn):
    resolver = IdentityResolver(conn)
    owner_a = resolver.register("a@example.com")
    owner_b = resolver.register("b@example.com")
    registry = ContactRegistry(conn)
    payload = {"email": "kid@example.com", "full_name": "Kid", "phone": "1", "contact_type": "trusted", "role": "executor"}
    rec_a = registry.create(owner_a, payload)
    rec_b = registry.create(owner_b, payload)
    resolver.register("kid@example.com")

    summary = ReconciliationJob(conn).run()

    assert summary.fixed == 2
    assert registry.get(owner_a, rec_a.id).invitation_status is InvitationStatus.REGISTERED
    assert registry.get(owner_b, rec_b.id).invitation_status is InvitationStatus.REGISTERED


def test_owner_scope(conn):
    resolver = IdentityResolver(conn)
    owner_a = resolver.register("a@example.com")
    owner_b = resolver.register("b@example.com")
    _legacy_contact(conn, owner_a, "x@example.com")
    b_id = _legacy_contact(conn, owner_b, "y@example.com")
    resolver.register("x@example.com")
    resolver.register("y@example.com")

    summary = ReconciliationJob(conn).run(owner_person_id=owner_a)

    assert summary.scanned == 1 and summary.fixed == 1
    assert ContactRegistry(conn).get(owner_b, b_id).linked_person_id is None


def test_per_record_errors_are_aggregated(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    bad_id = _legacy_contact(conn, owner, "bad@example.com")
    _legacy_contact(conn, owner, "good@example.com")
    resolver.register("good@example.com")

    class _FlakyResolver(IdentityResolver):
        def resolve(self, email):
            if email == "bad@example.com":
                raise RuntimeError("lookup timed out")
            return super().resolve(email)

    summary = ReconciliationJob(conn, resolver=_FlakyResolver(conn)).run()

    assert summary.errors == 1
    assert summary.error_details[0].contact_id == bad_id
    assert "timed out" in summary.error_details[0].error
    assert summary.fixed == 1


def test_cancellation_stops_between_records(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    for i in range(5):
        _legacy_contact(conn, owner, f"c{i}@example.com")
        resolver.register(f"c{i}@example.com")
    cancel = threading.Event()

    class _CancellingResolver(IdentityResolver):
        def resolve(self, email):
            cancel.set()
            return super().resolve(email)

    summary = ReconciliationJob(conn, resolver=_CancellingResolver(conn)).run(cancel_event=cancel)

    assert summary.cancelled is True
    assert summary.scanned == 1
    assert summary.fixed == 1
    linked = conn.execute("SELECT COUNT(*) FROM contacts WHERE linked_person_id IS NOT NULL").fetchone()[0]
    assert linked == 1


def test_unreadable_row_does_not_block_the_run(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    good_id = _legacy_contact(conn, owner, "good@example.com")
    bad_id = _legacy_contact(conn, owner, "odd@example.com", role="trustee")
    resolver.register("good@example.com")
    resolver.register("odd@example.com")

    summary = ReconciliationJob(conn).run()

    assert summary.scanned == 2
    assert summary.fixed == 1
    assert summary.errors == 1
    assert summary.error_details[0].contact_id == bad_id
    assert "role" in summary.error_details[0].error
    good = ContactRegistry(conn).get(owner, good_id)
    assert good.invitation_status is InvitationStatus.REGISTERED
    assert summary.index_entries == 1


def test_upgrade_stamps_confirmed_at(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("owner@example.com")
    registry = ContactRegistry(conn)
    rec = registry.create(owner, {"email": "late@example.com", "full_name": "Late", "phone": "1", "contact_type": "trusted", "role": "executor"})
    assert rec.confirmed_at is None
    resolver.register("late@example.com")

    ReconciliationJob(conn).run()

    assert registry.get(owner, rec.id).confirmed_at is not None
