from __future__ import annotations

import uuid

from db.repos.contacts_repo import ContactsRepo
from db.repos.trust_index_repo import TrustIndexRepo
from models.contact_record import ContactRecord
from models.enums import InvitationStatus, StorageShape, TrustRole
from services.contact_registry import ContactRegistry
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex, merge_trust_entries


def _rec(owner, role, source, status="registered", primary=False, contact_type="trusted"):
    return ContactRecord(
        id=uuid.uuid4().hex,
        owner_person_id=owner,
        target_email="x@example.com",
        full_name="X",
        contact_type=contact_type,
        role=role,
        is_primary=primary,
        invitation_status=status,
        source=source,
    )


def test_merge_prefers_normalized_over_legacy_for_same_owner():
    records = [
        _rec("o1", "executor", StorageShape.LEGACY, status="confirmed"),
        _rec("o1", "guardian", StorageShape.NORMALIZED),
        _rec("o2", "executor", StorageShape.LEGACY, primary=True),
    ]
    entries = merge_trust_entries(records)
    assert [(e.owner_person_id, e.role, e.source) for e in entries] == [
        ("o2", TrustRole.EXECUTOR, StorageShape.LEGACY),
        ("o1", TrustRole.GUARDIAN, StorageShape.NORMALIZED),
    ]


def test_merge_dedupes_on_owner_and_role():
    records = [
        _rec("o1", "executor", StorageShape.LEGACY, status="pending"),
        _rec("o1", "executor", StorageShape.LEGACY, status="registered", primary=True),
        _rec("o1", None, StorageShape.LEGACY, contact_type="regular"),
    ]
    entries = merge_trust_entries(records)
    assert len(entries) == 1
    assert entries[0].is_primary is True
    assert entries[0].invitation_status is InvitationStatus.REGISTERED


def test_index_overlapping_shapes_and_rebuild(conn):
    owner = IdentityResolver(conn).register("owner@example.com")
    legacy_owner = IdentityResolver(conn).register("legacy-owner@example.com")
    # Legacy and normalized rows for the same owner+email, plus a legacy-only owner
    for o, role in ((owner, "guardian"), (legacy_owner, "executor")):
        conn.execute(
            (
                "INSERT INTO contacts (id, owner_person_id, email, full_name, phone, contact_type, role, invitation_status) "
                "VALUES (?, ?, 'Bob@Example.com', 'Bob', '1', 'trusted', ?, 'registered')"
            ),
            (uuid.uuid4().hex, o, role),
        )
    conn.commit()
    ContactsRepo(conn).insert_normalized(
        owner_person_id=owner,
        email="bob@example.com",
        full_name="Bob",
        phone="1",
        relationship=None,
        contact_type="trusted",
        role="executor",
        is_primary=False,
        linked_person_id=None,
        invitation_status="registered",
    )

    index = TrustedRelationshipIndex(conn)
    scanned = index.scan("bob@example.com")
    assert sorted((e.owner_person_id, e.role.value) for e in scanned) == sorted(
        [(owner, "executor"), (legacy_owner, "executor")]
    )

    conn.execute("DELETE FROM trust_index")
    conn.commit()
    assert index.trustors_of("bob@example.com") == []
    total = index.rebuild()
    assert total == 2
    assert TrustIndexRepo(conn).count() == 2
    assert index.trustors_of("BOB@example.com") == scanned


def test_refresh_without_changes_writes_nothing(conn):
    owner = IdentityResolver(conn).register("owner@example.com")
    ContactRegistry(conn).create(
        owner, {"email": "bob@example.com", "full_name": "Bob", "phone": "1", "contact_type": "trusted", "role": "executor"}
    )
    index = TrustedRelationshipIndex(conn)
    before = conn.total_changes
    index.refresh("bob@example.com")
    index.rebuild()
    assert conn.total_changes == before


def test_rebuild_drops_stale_keys(conn):
    owner = IdentityResolver(conn).register("owner@example.com")
    conn.execute(
        "INSERT INTO trust_index (contact_email, owner_person_id, role, is_primary, invitation_status, source) "
        "VALUES ('ghost@example.com', ?, 'executor', 0, 'registered', 'legacy')",
        (owner,),
    )
    conn.commit()
    index = TrustedRelationshipIndex(conn)
    assert len(index.trustors_of("ghost@example.com")) == 1
    assert index.rebuild() == 0
    assert index.trustors_of("ghost@example.com") == []
