# Overview: Error taxonomy shared by the ledger, workflow, and claim services.

from __future__ import annotations


class StockChainError(Exception):
    """Base class for errors surfaced to callers of the stock services."""

    http_status = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": type(self).__name__}


class ValidationError(StockChainError, ValueError):
    """400-level input problem (bad quantity, unknown chain, malformed items)."""


class NotFound(StockChainError):
    """Referenced entry, summary, request, or record does not exist."""

    http_status = 404


class InsufficientStock(StockChainError):
    """Consume or dispatch asked for more than the ledger holds. Nothing was applied."""

    http_status = 409

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Need {requested}, but only {available} available."
        )

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
        }


class InvalidStateTransition(StockChainError):
    """A request was not in the status the operation requires."""

    http_status = 409

    def __init__(self, action: str, current_status: str, required: tuple[str, ...]):
        self.action = action
        self.current_status = current_status
        self.required = required
        super().__init__(
            f"Cannot {action} request in {current_status} status "
            f"(requires {' or '.join(required)})"
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current_status": self.current_status}


class NotClaimable(StockChainError):
    """No single sent approval record matches the request and claimant."""

    http_status = 409


class PartialWriteFailure(StockChainError):
    """
    A multi-step operation failed part-way through.

    The surrounding transaction is rolled back, so none of the completed
    steps persist; the caller may retry the whole operation.
    """

    http_status = 500

    def __init__(self, operation: str, staged_writes: int, cause: Exception | None = None):
        self.operation = operation
        self.staged_writes = staged_writes
        self.cause = cause
        super().__init__(
            f"{operation} failed with {staged_writes} write(s) staged; no changes were kept"
        )
