# Namespace for pipeline steps
from .load_contacts import LoadContactsForReconciliation  # noqa: F401
from .link_identities import LinkIdentities  # noqa: F401
from .refresh_trust_index import RefreshTrustIndex  # noqa: F401
