from __future__ import annotations

from ..backend import BackendStatus
from .client import VaultLockedError

LOCK_MARKERS = ("session expired", "locked")


def classify_probe_error(exc: BaseException) -> BackendStatus:
    """Map a failed health probe to LOCKED or UNAVAILABLE.

    Clients that know the vault is locked raise VaultLockedError. Anything
    else is judged by its message.
    """
    if isinstance(exc, VaultLockedError):
        return BackendStatus.LOCKED
    message = str(exc).lower()
    if any(marker in message for marker in LOCK_MARKERS):
        return BackendStatus.LOCKED
    return BackendStatus.UNAVAILABLE
