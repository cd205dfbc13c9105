from __future__ import annotations

from enum import Enum


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DECEASED = "DECEASED"


class ContactType(str, Enum):
    REGULAR = "regular"
    TRUSTED = "trusted"


class TrustRole(str, Enum):
    EXECUTOR = "executor"
    LEGACY_MESSENGER = "legacy_messenger"
    GUARDIAN = "guardian"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    REGISTERED = "registered"
    CONFIRMED = "confirmed"


class Action(str, Enum):
    MARK_DECEASED = "mark_deceased"
    RELEASE_ALL = "release_all"
    RELEASE_ASSIGNED = "release_assigned"
    MONITOR = "monitor"


class StorageShape(str, Enum):
    LEGACY = "legacy"
    NORMALIZED = "normalized"
