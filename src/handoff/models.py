"""Data models for attempt diagnostics and the attempt ledger.

Diagnostic describes why one attempt failed, AttemptRecord is one entry
of the per-call ledger, and ViolationContext carries the user-facing
details of a terminal contract violation. All three are immutable.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from handoff.config import MAX_RAW_OUTPUT_CHARS


class DiagnosticKind(str, enum.Enum):
    """Kinds of attempt failure that the guard classifies."""

    VALIDATION = "validation"
    PARSE = "parse"


class ContractType(str, enum.Enum):
    """Which side of the producer a contract guards."""

    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True)
class Diagnostic:
    """Why a single attempt failed.

    ``raw_output`` is truncated to MAX_RAW_OUTPUT_CHARS when the
    diagnostic is created, so every consumer (feedback, ledger, logs,
    serialized violations) sees a bounded payload.

    Attributes:
        kind: Failure classification ("validation" or "parse").
        message: Human-readable failure message.
        field: Dotted path of the failing field, if any.
        expected: What the schema expected.
        received: Preview of what the producer returned.
        suggestion: Hint for fixing the failure on the next attempt.
        raw_output: Raw producer text for parse failures.
    """

    kind: DiagnosticKind
    message: str
    field: str | None = None
    expected: str | None = None
    received: str | None = None
    suggestion: str | None = None
    raw_output: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", DiagnosticKind(self.kind))
        if self.raw_output is not None and len(self.raw_output) > MAX_RAW_OUTPUT_CHARS:
            object.__setattr__(self, "raw_output", self.raw_output[:MAX_RAW_OUTPUT_CHARS])

    def __str__(self) -> str:
        where = f" at '{self.field}'" if self.field else ""
        return f"{self.kind.value}{where}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class AttemptRecord:
    """One ledger entry: a single producer invocation and its outcome.

    ``diagnostic`` is None when the attempt succeeded.
    """

    attempt: int
    timestamp: datetime
    duration_ms: float
    diagnostic: Diagnostic | None = None

    @property
    def succeeded(self) -> bool:
        return self.diagnostic is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "diagnostic": self.diagnostic.to_dict() if self.diagnostic else None,
        }


@dataclass(frozen=True)
class ViolationContext:
    """Details of the contract failure that ended a guarded call."""

    node_name: str
    contract_type: ContractType
    field_path: str
    expected: str
    received: str
    received_type: str
    suggestion: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "contract_type", ContractType(self.contract_type))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["contract_type"] = self.contract_type.value
        return data
