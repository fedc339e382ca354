"""Call-scoped retry state for code running inside a guarded producer.

The guard publishes a fresh RetryState for every attempt. Producer code
reads it through the module-level ``retry`` proxy (or get_retry_state())
instead of receiving it as an argument:

    @guard(output=Summary, max_attempts=3)
    async def summarize(text):
        prompt = build_prompt(text)
        if retry.is_retry:
            prompt += "\\n\\n" + retry.feedback()
        return parse_json(await llm(prompt))

The state lives in a ContextVar, so it follows the logical call: each
asyncio task and each thread sees only the state published by its own
guarded call. Outside any guarded call a default first-attempt state is
returned.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, TypeVar

from handoff.config import FEEDBACK_RAW_CHARS
from handoff.models import AttemptRecord, Diagnostic

T = TypeVar("T")


@dataclass(frozen=True)
class RetryState:
    """Snapshot of one attempt within a guarded call.

    Attributes:
        attempt: 1-based attempt number.
        max_attempts: Attempts allowed for the call.
        last_error: Diagnostic of the previous attempt, or None.
        history: Ledger of the attempts made before this one.
    """

    attempt: int = 1
    max_attempts: int = 1
    last_error: Diagnostic | None = None
    history: tuple[AttemptRecord, ...] = ()
    _feedback_fn: Callable[[], str | None] | None = field(
        default=None, repr=False, compare=False
    )

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.attempt

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt == self.max_attempts

    def feedback(self) -> str | None:
        """Feedback text describing the previous failure, or None."""
        if self._feedback_fn is not None:
            return self._feedback_fn()
        return format_feedback(self.last_error)


DEFAULT_STATE = RetryState()

_current_state: ContextVar[RetryState | None] = ContextVar(
    "handoff_retry_state", default=None
)


def format_feedback(diagnostic: Diagnostic | None) -> str | None:
    """Render a diagnostic as a block of text for the next prompt."""
    if diagnostic is None:
        return None

    lines = [f"[Retry] Previous attempt failed ({diagnostic.kind.value}):"]
    lines.append(f"  Message: {diagnostic.message}")
    if diagnostic.field:
        lines.append(f"  Field: {diagnostic.field}")
    if diagnostic.suggestion:
        lines.append(f"  Suggestion: {diagnostic.suggestion}")
    if diagnostic.raw_output:
        lines.append(f"  Raw output: {diagnostic.raw_output[:FEEDBACK_RAW_CHARS]}")
    return "\n".join(lines)


def get_retry_state() -> RetryState:
    """Return the innermost published state, or the default state."""
    state = _current_state.get()
    return state if state is not None else DEFAULT_STATE


@contextmanager
def retry_scope(state: RetryState) -> Iterator[RetryState]:
    """Publish ``state`` for the duration of the ``with`` block.

    Nested scopes shadow the outer state and restore it on exit.
    """
    token = _current_state.set(state)
    try:
        yield state
    finally:
        _current_state.reset(token)


def run_with_retry_state(
    state: RetryState, fn: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Call ``fn(*args, **kwargs)`` with ``state`` published."""
    with retry_scope(state):
        return fn(*args, **kwargs)


async def run_with_retry_state_async(
    state: RetryState, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> T:
    """Await ``fn(*args, **kwargs)`` with ``state`` published.

    The state stays visible across every suspension point of ``fn``.
    """
    with retry_scope(state):
        return await fn(*args, **kwargs)


class _RetryProxy:
    """Read-only view of the current RetryState.

    Attribute access is resolved at read time, so a single module-level
    instance serves every concurrent call. ``bool(retry)`` is
    ``retry.is_retry``.
    """

    __slots__ = ()

    def __getattr__(self, name: str) -> Any:
        return getattr(get_retry_state(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("retry state is read-only")

    def __bool__(self) -> bool:
        return get_retry_state().is_retry

    def __repr__(self) -> str:
        return f"retry<{get_retry_state()!r}>"


retry = _RetryProxy()
