from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from models.enums import Action, InvitationStatus, TrustRole
from services.errors import AuthorizationError, ForbiddenActionError
from services.identity_resolver import IdentityResolver
from services.trust_index import TrustedRelationshipIndex

logger = logging.getLogger(__name__)


# Role -> permitted actions. Adding a role or an action is a change to this table only.
PERMISSIONS: Dict[TrustRole, FrozenSet[Action]] = {
    TrustRole.EXECUTOR: frozenset({Action.MARK_DECEASED, Action.RELEASE_ALL}),
    TrustRole.GUARDIAN: frozenset({Action.MARK_DECEASED, Action.MONITOR}),
    TrustRole.LEGACY_MESSENGER: frozenset({Action.RELEASE_ASSIGNED}),
}

# Only relationships backed by a registered identity carry authority
_EFFECTIVE_STATUSES = frozenset({InvitationStatus.REGISTERED, InvitationStatus.CONFIRMED})


class DenialReason(str, Enum):
    NO_RELATIONSHIP = "no_relationship"
    ROLE_NOT_PERMITTED = "role_not_permitted"


@dataclass(frozen=True)
class Allowed:
    role: TrustRole
    is_primary: bool = False

    allowed = True


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    detail: str = ""

    allowed = False

    def raise_for(self, action: Action) -> None:
        if self.reason is DenialReason.ROLE_NOT_PERMITTED:
            raise ForbiddenActionError(
                "Your trusted-contact role does not permit this action",
                action=action.value,
                reason=self.reason.value,
            )
        raise AuthorizationError(
            "Only trusted contacts of this person can perform this action",
            action=action.value,
            reason=self.reason.value,
            detail=self.detail,
        )


Decision = Union[Allowed, Denied]


class AuthorizationGuard:
    def __init__(self, conn: sqlite3.Connection, index: Optional[TrustedRelationshipIndex] = None):
        self.index = index or TrustedRelationshipIndex(conn)
        self.resolver = IdentityResolver(conn)

    def authorize(self, requester_email: str, requester_person_id: str, target_person_id: str, action: Action) -> Decision:
        """Decide whether the requester may perform `action` on the target's account.

        Ordinary refusals come back as Denied; nothing is raised here.
        """
        resolved = self.resolver.resolve(requester_email)
        # The claimed email must be the requester's own registered identity
        if resolved is None:
            return self._deny(DenialReason.NO_RELATIONSHIP, "requester email is not a registered identity", target_person_id, action)
        if resolved != requester_person_id:
            return self._deny(DenialReason.NO_RELATIONSHIP, "requester email belongs to another identity", target_person_id, action)

        entries = [
            e
            for e in self.index.trustors_of(requester_email)
            if e.owner_person_id == target_person_id and e.invitation_status in _EFFECTIVE_STATUSES
        ]
        if not entries:
            return self._deny(DenialReason.NO_RELATIONSHIP, "no registered trust relationship", target_person_id, action)

        for entry in entries:
            if action in PERMISSIONS.get(entry.role, frozenset()):
                logger.debug(
                    "authorization granted",
                    extra={"step": "authorize", "status": "allowed", "target": target_person_id},
                )
                return Allowed(role=entry.role, is_primary=entry.is_primary)
        roles = ",".join(sorted(e.role.value for e in entries))
        return self._deny(DenialReason.ROLE_NOT_PERMITTED, f"roles={roles}", target_person_id, action)

    @staticmethod
    def _deny(reason: DenialReason, detail: str, target_person_id: str, action: Action) -> Denied:
        logger.info(
            f"authorization denied for {action.value}",
            extra={"step": "authorize", "status": reason.value, "target": target_person_id, "error": detail},
        )
        return Denied(reason=reason, detail=detail)
