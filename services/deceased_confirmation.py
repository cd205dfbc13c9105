"""ACTIVE -> DECEASED state machine.

The transition and its audit row commit together, guarded by a
compare-and-swap on the prior state (``... WHERE account_status =
'ACTIVE'``) inside a ``BEGIN IMMEDIATE`` transaction, with the UNIQUE
constraint on ``deceased_confirmations.target_person_id`` as a second
line. Concurrent callers in separate processes therefore see exactly one
winner; everyone else gets AlreadyConfirmedError naming the winner's
confirmation. There is no transition out of DECEASED.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from config.settings import Settings, get_settings
from db.repos.confirmations_repo import ConfirmationsRepo
from db.repos.persons_repo import PersonsRepo
from models.confirmation import ConfirmationResult, DeceasedConfirmation
from models.enums import AccountStatus, Action
from services.authorization import AuthorizationGuard, Denied
from services.errors import AlreadyConfirmedError
from services.identity_resolver import IdentityResolver

logger = logging.getLogger(__name__)


class DeceasedConfirmationService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        guard: Optional[AuthorizationGuard] = None,
        notifier: Optional[Callable[[str], Any]] = None,
        settings: Optional[Settings] = None,
    ):
        self.conn = conn
        self.guard = guard or AuthorizationGuard(conn)
        self.resolver = IdentityResolver(conn)
        self.persons = PersonsRepo(conn)
        self.confirmations = ConfirmationsRepo(conn)
        self.notifier = notifier
        self.settings = settings or get_settings()

    def get_confirmation(self, target_person_id: str) -> Optional[DeceasedConfirmation]:
        row = self.confirmations.get_for_target(target_person_id)
        return DeceasedConfirmation.model_validate(dict(row)) if row else None

    def confirm(
        self,
        requester_person_id: str,
        requester_email: str,
        target_person_id: str,
        notes: Optional[str] = None,
        verification_method: Optional[str] = None,
    ) -> ConfirmationResult:
        decision = self.guard.authorize(requester_email, requester_person_id, target_person_id, Action.MARK_DECEASED)
        if isinstance(decision, Denied):
            decision.raise_for(Action.MARK_DECEASED)

        target = self.resolver.require(target_person_id)
        if target.account_status is AccountStatus.DECEASED:
            raise AlreadyConfirmedError(self.get_confirmation(target_person_id))

        confirmation = self._transition(
            target_person_id,
            requester_person_id,
            (notes or "").strip() or None,
            verification_method or self.settings.default_verification_method,
        )
        logger.info(
            f"person marked deceased by {requester_person_id} role={decision.role.value}",
            extra={"step": "confirm_deceased", "status": "ok", "target": target_person_id},
        )
        self._notify(target_person_id)
        return ConfirmationResult(
            success=True,
            confirmed_by=confirmation.confirmed_by_person_id,
            confirmed_at=confirmation.confirmed_at,
            confirmation_id=confirmation.id,
            target_person_id=target_person_id,
        )

    def _transition(
        self,
        target_person_id: str,
        confirmed_by_person_id: str,
        notes: Optional[str],
        verification_method: str,
    ) -> DeceasedConfirmation:
        confirmation = DeceasedConfirmation(
            id=uuid.uuid4().hex,
            target_person_id=target_person_id,
            confirmed_by_person_id=confirmed_by_person_id,
            notes=notes,
            verification_method=verification_method,
            confirmed_at=datetime.now(timezone.utc).isoformat(),
        )
        won = False
        # Take the write lock up front so the CAS sees the latest committed state
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            won = self.persons.transition_to_deceased(target_person_id, confirmation.confirmed_at)
            if won:
                self.confirmations.insert(
                    confirmation.id,
                    confirmation.target_person_id,
                    confirmation.confirmed_by_person_id,
                    confirmation.notes,
                    confirmation.verification_method,
                    confirmation.confirmed_at,
                )
        except sqlite3.IntegrityError:
            # An audit row already exists for this target
            self.conn.rollback()
            won = False
        except Exception:
            self.conn.rollback()
            raise
        else:
            if won:
                self.conn.commit()
            else:
                self.conn.rollback()

        if not won:
            logger.info(
                "lost deceased transition race",
                extra={"step": "confirm_deceased", "status": "already_confirmed", "target": target_person_id},
            )
            raise AlreadyConfirmedError(self.get_confirmation(target_person_id))
        return confirmation

    def _notify(self, target_person_id: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(target_person_id)
        except Exception:
            # The transition is committed; the release can be re-run by hand
            logger.exception(
                "release notification failed",
                extra={"step": "confirm_deceased", "status": "notify_failed", "target": target_person_id},
            )
