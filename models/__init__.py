from .enums import AccountStatus, Action, ContactType, InvitationStatus, StorageShape, TrustRole
from .person import Person
from .contact_record import ContactCheck, ContactInput, ContactRecord, normalize_email
from .confirmation import ConfirmationResult, DeceasedConfirmation
from .release import ReleaseFailure, ReleaseReport, ReleaseShare, ShareResult
from .reconciliation import ReconciliationSummary, RecordError
from .trust import TrustEntry

__all__ = [
    "AccountStatus",
    "Action",
    "ContactType",
    "InvitationStatus",
    "StorageShape",
    "TrustRole",
    "Person",
    "ContactCheck",
    "ContactInput",
    "ContactRecord",
    "normalize_email",
    "ConfirmationResult",
    "DeceasedConfirmation",
    "ReleaseFailure",
    "ReleaseReport",
    "ReleaseShare",
    "ShareResult",
    "ReconciliationSummary",
    "RecordError",
    "TrustEntry",
]
