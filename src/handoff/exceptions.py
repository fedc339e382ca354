"""Handoff exception hierarchy.

All handoff-specific exceptions inherit from HandoffError.
"""

from __future__ import annotations

from typing import Any

from handoff.config import MAX_RAW_OUTPUT_CHARS
from handoff.models import AttemptRecord, ContractType, ViolationContext


class HandoffError(Exception):
    """Base exception for all handoff errors."""


class HandoffViolation(HandoffError):
    """A guarded call broke its input or output contract for good.

    Raised (or handed to the failure policy) once retries are exhausted
    or not allowed. Carries the full attempt ledger so the failure can
    be reconstructed after the fact.

    Attributes:
        node_name: Name of the guarded producer.
        field_path: Dotted path of the first failing field, or "root".
        context: ViolationContext with expected/received details.
        history: Ordered attempt ledger (empty for input violations).
        total_attempts: Number of attempts made; 1 when the ledger is
            empty, since an input violation still counts as one call.
    """

    def __init__(
        self,
        context: ViolationContext,
        history: list[AttemptRecord] | tuple[AttemptRecord, ...] | None = None,
    ) -> None:
        self.context = context
        self.node_name = context.node_name
        self.field_path = context.field_path
        self.history: tuple[AttemptRecord, ...] = tuple(history or ())
        self.total_attempts = len(self.history) or 1
        super().__init__(
            f"Validation failed at '{context.node_name}': {context.expected}"
        )

    @property
    def contract_type(self) -> ContractType:
        return self.context.contract_type

    @property
    def ledger(self) -> tuple[AttemptRecord, ...]:
        """Alias for ``history``."""
        return self.history

    def to_dict(self) -> dict[str, Any]:
        """Plain, JSON-serializable form with ISO-8601 timestamps."""
        return {
            "node_name": self.node_name,
            "field_path": self.field_path,
            "context": self.context.to_dict(),
            "total_attempts": self.total_attempts,
            "history": [record.to_dict() for record in self.history],
        }

    def pprint(self) -> None:
        """Pretty-print the violation and its ledger using rich."""
        from handoff.formatting import pprint_violation

        pprint_violation(self)


class ParseError(HandoffError, ValueError):
    """Raised when producer text cannot be decoded into structured data.

    ``raw_output`` is truncated to MAX_RAW_OUTPUT_CHARS.
    """

    def __init__(self, message: str, raw_output: str = "") -> None:
        self.raw_output = raw_output[:MAX_RAW_OUTPUT_CHARS]
        super().__init__(message)


class GuardInvariantError(HandoffError):
    """The attempt loop finished without returning or failing."""
