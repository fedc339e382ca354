"""Test helpers for producers that read the ambient retry state.

mock_retry() runs a function as if it were attempt ``attempt`` of a
guarded call, without going through the retry loop:

    def test_prompt_includes_feedback():
        prompt = mock_retry(build_prompt, "q", feedback_text="too short")
        assert "too short" in prompt
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from handoff.models import Diagnostic, DiagnosticKind
from handoff.retry import RetryState, retry_scope

T = TypeVar("T")


def make_retry_state(
    *,
    attempt: int = 2,
    max_attempts: int = 3,
    last_error: Diagnostic | None = None,
    feedback_text: str | None = None,
) -> RetryState:
    """Build a synthetic RetryState.

    If only ``feedback_text`` is given, a validation Diagnostic with that
    message stands in for the previous failure, and ``feedback()``
    returns ``"Mock feedback for: <message>"``.
    """
    if last_error is None and feedback_text:
        last_error = Diagnostic(kind=DiagnosticKind.VALIDATION, message=feedback_text)

    def feedback() -> str | None:
        return f"Mock feedback for: {last_error.message}" if last_error else None

    return RetryState(
        attempt=attempt,
        max_attempts=max_attempts,
        last_error=last_error,
        _feedback_fn=feedback,
    )


def mock_retry(
    fn: Callable[..., T],
    *args: Any,
    attempt: int = 2,
    max_attempts: int = 3,
    last_error: Diagnostic | None = None,
    feedback_text: str | None = None,
    **kwargs: Any,
) -> T:
    """Call ``fn(*args, **kwargs)`` under a synthetic retry state."""
    state = make_retry_state(
        attempt=attempt,
        max_attempts=max_attempts,
        last_error=last_error,
        feedback_text=feedback_text,
    )
    with retry_scope(state):
        return fn(*args, **kwargs)


async def mock_retry_async(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    attempt: int = 2,
    max_attempts: int = 3,
    last_error: Diagnostic | None = None,
    feedback_text: str | None = None,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)`` under a synthetic retry state."""
    state = make_retry_state(
        attempt=attempt,
        max_attempts=max_attempts,
        last_error=last_error,
        feedback_text=feedback_text,
    )
    with retry_scope(state):
        return await fn(*args, **kwargs)
