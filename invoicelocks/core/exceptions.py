"""Custom exception hierarchy for InvoiceLocks."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from invoicelocks.services.lock_store import LockState


class InvoiceLocksError(Exception):
    """Base exception for all InvoiceLocks errors."""


class ConfigurationError(InvoiceLocksError):
    """Configuration-related errors."""


class LockStoreUnavailableError(InvoiceLocksError):
    """The lock store could not be reached; no lock was granted or released."""


class LockContentionError(InvoiceLocksError):
    """An acquire kept racing with concurrent writers and gave up."""


class InvoiceLockedError(InvoiceLocksError):
    """The invoice is locked for editing by another user."""

    def __init__(self, lock: "LockState") -> None:
        super().__init__(f"Invoice {lock.resource_id} is locked by {lock.owner_name}")
        self.lock = lock
