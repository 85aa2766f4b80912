"""Ledger error taxonomy.

Every error derives from ``ValueError`` so callers that already guard service
calls with ``except ValueError`` keep working.
"""


class LedgerError(ValueError):
    """Base class for settlement ledger errors."""


class NotFoundError(LedgerError):
    """A referenced id is absent from its collection."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"{collection} {document_id} not found")


class InvalidAmountError(LedgerError):
    """An amount to apply is zero, negative or not a number."""


class InsufficientCreditError(LedgerError):
    """A settlement source cannot cover the total requested from it."""


class OverApplicationError(LedgerError):
    """An amount exceeds what a target document still owes."""


class InvalidTargetStateError(LedgerError):
    """The target document cannot accept a settlement (void, paid, wrong kind)."""


class InvalidSourceStateError(LedgerError):
    """The settlement source cannot be applied (void)."""


class ReversalMismatchError(LedgerError):
    """The two sides of a settlement disagree; the cross-links are corrupted."""
