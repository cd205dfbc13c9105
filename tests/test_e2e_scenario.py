from __future__ import annotations

import pytest

from db.repos.content_repo import ContentRepo
from db.repos.release_repo import ReleaseShareRepo
from models.enums import AccountStatus, Action, InvitationStatus
from models.release import ShareResult
from pipelines.reconcile_contacts import ReconciliationJob
from services.authorization import AuthorizationGuard, Denied
from services.contact_registry import ContactRegistry
from services.deceased_confirmation import DeceasedConfirmationService
from services.errors import AuthorizationError, PartialFailureError
from services.identity_resolver import IdentityResolver
from services.release_orchestrator import ReleaseOrchestrator


class _Sharer:
    def __init__(self, down=()):
        self.down = set(down)

    def share(self, content_id, recipient_identity):
        if recipient_identity in self.down:
            return ShareResult(ok=False, error="HTTP 502: bad gateway")
        return ShareResult(ok=True)


def test_late_registration_to_release(conn):
    resolver = IdentityResolver(conn)
    registry = ContactRegistry(conn)
    owner = resolver.register("u@example.com", "U")

    contact = registry.create(
        owner, {"email": "c@example.com", "full_name": "C", "phone": "+1 555", "contact_type": "trusted", "role": "executor"}
    )
    registry.create(owner, {"email": "friend@example.com", "full_name": "Friend"})
    assert contact.invitation_status is InvitationStatus.PENDING

    c_id = resolver.register("c@example.com", "C")
    service = DeceasedConfirmationService(conn)
    # Still pending: no authority yet
    with pytest.raises(AuthorizationError):
        service.confirm(c_id, "c@example.com", owner)

    summary = ReconciliationJob(conn).run()
    assert summary.fixed >= 1
    linked = registry.get(owner, contact.id)
    assert linked.linked_person_id == c_id
    assert linked.invitation_status is InvitationStatus.REGISTERED

    content = ContentRepo(conn)
    items = [content.add_item(owner, f"video {i}") for i in range(2)]
    result = service.confirm(c_id, "c@example.com", owner)
    assert result.success and result.confirmed_by == c_id
    assert resolver.get(owner).account_status is AccountStatus.DECEASED

    with pytest.raises(PartialFailureError):
        ReleaseOrchestrator(conn, _Sharer(down={"friend@example.com"})).on_confirmed(owner)
    assert len(ReleaseShareRepo(conn).list_for_owner(owner)) == 2

    report = ReleaseOrchestrator(conn, _Sharer()).on_confirmed(owner)
    assert report.created == 2
    shares = ReleaseShareRepo(conn).list_for_owner(owner)
    pairs = [(s["content_id"], s["recipient_identity"]) for s in shares]
    assert len(pairs) == len(set(pairs)) == 4
    assert set(pairs) == {(i, r) for i in items for r in ("c@example.com", "friend@example.com")}


def test_messenger_may_release_assigned_but_not_confirm(conn):
    resolver = IdentityResolver(conn)
    owner = resolver.register("u@example.com")
    messenger = resolver.register("m@example.com")
    ContactRegistry(conn).create(
        owner, {"email": "m@example.com", "full_name": "M", "phone": "1", "contact_type": "trusted", "role": "legacy_messenger"}
    )
    guard = AuthorizationGuard(conn)
    assert isinstance(guard.authorize("m@example.com", messenger, owner, Action.MARK_DECEASED), Denied)
    assert guard.authorize("m@example.com", messenger, owner, Action.RELEASE_ASSIGNED).allowed
