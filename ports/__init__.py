from .repos import ContactsRepoPort, ReleaseShareRepoPort, TrustIndexRepoPort
from .sharing import ContentSharerPort

__all__ = [
    "ContactsRepoPort",
    "ReleaseShareRepoPort",
    "TrustIndexRepoPort",
    "ContentSharerPort",
]
