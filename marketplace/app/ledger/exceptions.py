"""Errors raised by ledger storage backends."""
from __future__ import annotations


class LedgerUnavailableError(RuntimeError):
    """Storage could not be reached or a statement timed out."""


class DuplicateCompletionError(RuntimeError):
    """A completed transaction already exists for the external reference."""

    def __init__(self, reference_id: str) -> None:
        super().__init__(f"Transaction for reference {reference_id!r} already completed")
        self.reference_id = reference_id


__all__ = ["DuplicateCompletionError", "LedgerUnavailableError"]
