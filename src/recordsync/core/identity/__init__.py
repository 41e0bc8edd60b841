"""Record identity: (class name, id-or-local-id) keys and the identity policy."""

from recordsync.core.identity.models import (
    LOCAL_ID_PREFIX,
    Identity,
    IdentityPolicy,
    is_local_id,
    new_local_id,
    next_instance_token,
)

__all__ = [
    "Identity",
    "IdentityPolicy",
    "LOCAL_ID_PREFIX",
    "is_local_id",
    "new_local_id",
    "next_instance_token",
]
