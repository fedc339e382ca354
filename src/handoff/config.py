"""Guard configuration types.

Provides OnFail, CustomHandler, and GuardConfig for configuring a
guarded producer, plus the truncation limits shared by diagnostics,
feedback, and violations.

Failure policies map to terminal behaviour:
- RAISE: the HandoffViolation is raised
- RETURN_NONE: the call returns None
- RETURN_INPUT: the call returns the caller's original input
- CustomHandler: the handler's return value becomes the call's result
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from handoff.exceptions import HandoffViolation

# Raw producer output kept on a Diagnostic or ParseError.
MAX_RAW_OUTPUT_CHARS = 500

# Raw output excerpt included in retry feedback.
FEEDBACK_RAW_CHARS = 200

# Preview of the offending value in a ViolationContext.
RECEIVED_PREVIEW_CHARS = 200

RETRYABLE_KINDS = frozenset({"validation", "parse"})


class OnFail(str, enum.Enum):
    """Built-in failure policies applied once a violation is terminal."""

    RAISE = "raise"
    RETURN_NONE = "return_none"
    RETURN_INPUT = "return_input"


@dataclass(frozen=True)
class CustomHandler:
    """Failure policy delegating to a user callable.

    The handler receives the terminal HandoffViolation; whatever it
    returns is handed back to the caller unchanged.
    """

    handler: Callable[[HandoffViolation], Any]

    def __call__(self, violation: HandoffViolation) -> Any:
        return self.handler(violation)


FailurePolicy = Union[OnFail, CustomHandler]


def resolve_on_fail(on_fail: str | OnFail | CustomHandler | Callable) -> FailurePolicy:
    """Normalise the ``on_fail`` argument of guard() into a FailurePolicy.

    Raises:
        ValueError: If a string does not name a built-in policy.
        TypeError: If the value is neither a string nor callable.
    """
    if isinstance(on_fail, (OnFail, CustomHandler)):
        return on_fail
    if isinstance(on_fail, str):
        try:
            return OnFail(on_fail)
        except ValueError:
            valid = ", ".join(repr(p.value) for p in OnFail)
            raise ValueError(
                f"on_fail must be one of {valid} or a callable, got {on_fail!r}"
            ) from None
    if callable(on_fail):
        return CustomHandler(on_fail)
    raise TypeError(
        f"on_fail must be a string or callable, got {type(on_fail).__name__}"
    )


@dataclass(frozen=True)
class GuardConfig:
    """Immutable configuration for one guarded producer.

    Attributes:
        node_name: Name reported in violations (defaults to the wrapped
            function's ``__name__``).
        input_schema: Schema for the call's input, or None to skip.
        output_schema: Schema for the producer's result, or None to skip.
        max_attempts: Total producer invocations allowed per call (>= 1).
        retry_on: Failure kinds that may trigger another attempt.
        on_fail: Policy applied to a terminal violation.
        input_param: Name of the argument (or mapping key) that holds the
            input to validate. None means the first argument.
    """

    node_name: str
    input_schema: Any = None
    output_schema: Any = None
    max_attempts: int = 1
    retry_on: frozenset[str] = field(default=RETRYABLE_KINDS)
    on_fail: FailurePolicy = OnFail.RAISE
    input_param: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise TypeError(
                f"max_attempts must be an int, got {type(self.max_attempts).__name__}"
            )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        unknown = set(self.retry_on) - RETRYABLE_KINDS
        if unknown:
            raise ValueError(
                f"retry_on must be a subset of {sorted(RETRYABLE_KINDS)}, "
                f"got unknown kinds {sorted(unknown)}"
            )
        if not isinstance(self.on_fail, (OnFail, CustomHandler)):
            raise TypeError("on_fail must be an OnFail or CustomHandler; use resolve_on_fail()")

    @classmethod
    def build(
        cls,
        *,
        node_name: str,
        input: Any = None,
        output: Any = None,
        max_attempts: int = 1,
        retry_on: Iterable[str] = ("validation", "parse"),
        on_fail: str | OnFail | CustomHandler | Callable = "raise",
        input_param: str | None = None,
    ) -> GuardConfig:
        """Build a config from the keyword arguments accepted by guard()."""
        if isinstance(retry_on, str):
            retry_on = (retry_on,)
        return cls(
            node_name=node_name,
            input_schema=input,
            output_schema=output,
            max_attempts=max_attempts,
            retry_on=frozenset(retry_on),
            on_fail=resolve_on_fail(on_fail),
            input_param=input_param,
        )

    def retries(self, kind: str) -> bool:
        """Whether failures of ``kind`` may trigger another attempt."""
        return kind in self.retry_on
