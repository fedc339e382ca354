"""Validation and retry guard for unreliable producer functions.

Provides guard() -- a decorator that validates a producer's input once,
then drives an attempt loop that validates each result, classifies
failures, feeds diagnostics back to the next attempt, and finally
either returns a schema-valid value or applies the failure policy to a
HandoffViolation.

Flow, per call:
    1. Extract the input and validate it (terminal on failure, no retry)
    2. Publish a RetryState for attempt n and invoke the producer
    3. Validate the result; on success record the attempt and return
    4. On a validation or parse failure record a Diagnostic and either
       retry (if attempts remain and the kind is retryable) or finish
       with a HandoffViolation
    5. Any other exception propagates immediately

Both plain and coroutine functions are supported; the state machine in
_GuardRun is shared and only the invocation differs.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from handoff.config import RECEIVED_PREVIEW_CHARS, CustomHandler, GuardConfig, OnFail
from handoff.exceptions import GuardInvariantError, HandoffViolation, ParseError
from handoff.models import (
    AttemptRecord,
    ContractType,
    Diagnostic,
    DiagnosticKind,
    ViolationContext,
)
from handoff.retry import RetryState, retry_scope
from handoff.schema import compile_schema, preview, suggest_fix, validate

logger = logging.getLogger(__name__)

PARSE_SUGGESTION = "Return valid JSON"

_RETRY_PARAM = "retry"

_BOUND_PARAMS = frozenset({"self", "cls"})


def guard(
    *,
    input: Any = None,
    output: Any = None,
    node_name: str | None = None,
    max_attempts: int = 1,
    retry_on: Iterable[str] = ("validation", "parse"),
    on_fail: str | OnFail | CustomHandler | Callable = "raise",
    input_param: str | None = None,
) -> Callable[[Callable], Callable]:
    """Guard a producer with input/output contracts and bounded retries.

    Args:
        input: Schema for the call's input (validated once, never retried).
        output: Schema for the producer's result (validated every attempt).
        node_name: Name used in violations. Defaults to the function name.
        max_attempts: Total attempts per call, including the first.
        retry_on: Failure kinds that may be retried: "validation" and/or
            "parse".
        on_fail: "raise", "return_none", "return_input", or a callable
            taking the HandoffViolation and returning the call's result.
        input_param: Argument name (or key of a mapping first argument)
            holding the input to validate. Defaults to the first argument
            (after ``self``/``cls`` on methods).

    Returns:
        A decorator. The wrapped function keeps the producer's signature;
        coroutine functions stay awaitable.

    Raises:
        ValueError: If the configuration is invalid (raised at decoration).

    Example:
        >>> @guard(output=Answer, max_attempts=3)
        ... def answer(question):
        ...     prompt = question
        ...     if retry.is_retry:
        ...         prompt += "\\n" + retry.feedback()
        ...     return parse_json(llm(prompt))
    """

    def decorator(fn: Callable) -> Callable:
        config = GuardConfig.build(
            node_name=node_name or getattr(fn, "__name__", "anonymous"),
            input=input,
            output=output,
            max_attempts=max_attempts,
            retry_on=retry_on,
            on_fail=on_fail,
            input_param=input_param,
        )
        return Guard(fn, config).wrap()

    return decorator


class Guard:
    """A producer bound to its GuardConfig, with compiled schemas."""

    def __init__(self, fn: Callable, config: GuardConfig) -> None:
        self.fn = fn
        self.config = config
        self.input_adapter = (
            compile_schema(config.input_schema) if config.input_schema is not None else None
        )
        self.output_adapter = (
            compile_schema(config.output_schema) if config.output_schema is not None else None
        )
        try:
            self.signature: inspect.Signature | None = inspect.signature(fn)
        except (TypeError, ValueError):
            self.signature = None

    @property
    def accepts_retry_param(self) -> bool:
        return self.signature is not None and _RETRY_PARAM in self.signature.parameters

    @property
    def is_async(self) -> bool:
        """Whether calling the producer returns a coroutine.

        Covers coroutine functions and instances whose ``__call__`` is one.
        """
        fn = self.fn
        if inspect.iscoroutinefunction(fn):
            return True
        if inspect.isfunction(fn) or inspect.ismethod(fn):
            return False
        return inspect.iscoroutinefunction(getattr(type(fn), "__call__", None))

    @property
    def input_offset(self) -> int:
        """Leading positional arguments that are never the input.

        1 for a function defined in a class body (first parameter ``self``
        or ``cls``), so a guarded method validates its real first argument.
        """
        if self.signature is None:
            return 0
        params = list(self.signature.parameters.values())
        if params and params[0].name in _BOUND_PARAMS and params[0].kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            return 1
        return 0

    def wrap(self) -> Callable:
        fn = self.fn

        if self.is_async:

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                run = _GuardRun(self, args, kwargs)
                violation = run.check_input()
                if violation is not None:
                    return run.apply_policy(violation)

                for state in run.attempts():
                    call_args, call_kwargs = run.call_args(state)
                    started = run.begin()
                    try:
                        with retry_scope(state):
                            result = await fn(*call_args, **call_kwargs)
                    except ParseError as exc:
                        outcome = run.on_parse_error(state, exc, started)
                        if outcome.action == "reraise":
                            raise
                    else:
                        outcome = run.on_result(state, result, started)
                    if outcome.action != "retry":
                        return run.conclude(outcome)

                raise GuardInvariantError(
                    f"Attempt loop for '{self.config.node_name}' ended without an outcome"
                )

            wrapper = async_wrapper
        else:

            @functools.wraps(fn)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                run = _GuardRun(self, args, kwargs)
                violation = run.check_input()
                if violation is not None:
                    return run.apply_policy(violation)

                for state in run.attempts():
                    call_args, call_kwargs = run.call_args(state)
                    started = run.begin()
                    try:
                        with retry_scope(state):
                            result = fn(*call_args, **call_kwargs)
                    except ParseError as exc:
                        outcome = run.on_parse_error(state, exc, started)
                        if outcome.action == "reraise":
                            raise
                    else:
                        if inspect.isawaitable(result):
                            if inspect.iscoroutine(result):
                                result.close()
                            raise TypeError(
                                f"'{self.config.node_name}' returned an awaitable from a "
                                "sync call; guard a coroutine function instead"
                            )
                        outcome = run.on_result(state, result, started)
                    if outcome.action != "retry":
                        return run.conclude(outcome)

                raise GuardInvariantError(
                    f"Attempt loop for '{self.config.node_name}' ended without an outcome"
                )

            wrapper = sync_wrapper

        wrapper.guard_config = self.config  # type: ignore[attr-defined]
        return wrapper


@dataclass(frozen=True)
class _Outcome:
    """Decision taken after one attempt.

    action is one of "success", "retry", "violation", "reraise".
    """

    action: str
    value: Any = None
    violation: HandoffViolation | None = None


_RETRY = _Outcome("retry")
_RERAISE = _Outcome("reraise")


class _GuardRun:
    """State of one logical call through a Guard.

    Owns the call's ledger and last diagnostic; nothing here is shared
    between calls.
    """

    def __init__(self, guard_: Guard, args: tuple, kwargs: dict) -> None:
        self.guard = guard_
        self.config = guard_.config
        self.args = args
        self.kwargs = kwargs
        self.input_data = self._resolve_input()
        self.history: list[AttemptRecord] = []
        self.last_error: Diagnostic | None = None
        self._started_at: datetime | None = None

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _resolve_input(self) -> Any:
        args, kwargs = self.args, self.kwargs
        offset = self.guard.input_offset
        name = self.config.input_param

        if name is None:
            if len(args) > offset:
                return args[offset]
            bound = self._bind(args, kwargs)
            if bound is not None:
                return self._first_bound_input(bound, offset)
            rest = [value for key, value in kwargs.items() if key != _RETRY_PARAM]
            return rest[0] if len(rest) == 1 else None

        if name in kwargs:
            return kwargs[name]
        bound = self._bind(args, kwargs)
        if bound is not None and name in bound.arguments:
            return bound.arguments[name]
        first = args[offset] if len(args) > offset else None
        if isinstance(first, Mapping) and name in first:
            return first[name]
        return first

    def _first_bound_input(self, bound: inspect.BoundArguments, offset: int) -> Any:
        """First argument bound by keyword, in signature order, skipping ``retry``."""
        params = bound.signature.parameters
        skipped = set(list(params)[:offset])
        for key, value in bound.arguments.items():
            if key == _RETRY_PARAM or key in skipped:
                continue
            kind = params[key].kind
            if kind is inspect.Parameter.VAR_POSITIONAL:
                continue
            if kind is inspect.Parameter.VAR_KEYWORD:
                rest = [v for k, v in value.items() if k != _RETRY_PARAM]
                return rest[0] if rest else None
            return value
        return None

    def _bind(self, args: tuple, kwargs: dict) -> inspect.BoundArguments | None:
        if self.guard.signature is None:
            return None
        try:
            return self.guard.signature.bind_partial(*args, **kwargs)
        except TypeError:
            return None

    def check_input(self) -> HandoffViolation | None:
        """Validate the input once; returns the violation on failure."""
        if self.guard.input_adapter is None:
            return None

        outcome = validate(self.guard.input_adapter, self.input_data)
        if outcome.ok:
            return None

        error = outcome.first_error
        violation = HandoffViolation(
            ViolationContext(
                node_name=self.config.node_name,
                contract_type=ContractType.INPUT,
                field_path=error.field_path,
                expected=error.message,
                received=preview(self.input_data),
                received_type=type(self.input_data).__name__,
                suggestion=suggest_fix(error),
            )
        )
        self._warn(violation)
        return violation

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def attempts(self) -> Iterator[RetryState]:
        """Yield a fresh RetryState for each attempt, 1..max_attempts."""
        for attempt in range(1, self.config.max_attempts + 1):
            yield RetryState(
                attempt=attempt,
                max_attempts=self.config.max_attempts,
                last_error=self.last_error,
                history=tuple(self.history),
            )

    def call_args(self, state: RetryState) -> tuple[tuple, dict]:
        """Arguments for this attempt, with ``state`` injected if requested.

        The state is passed to a ``retry`` parameter the caller left unset
        (or set to None), or into a ``"retry": None`` slot of a dict first
        argument. Otherwise the caller's arguments are used as-is.
        """
        args, kwargs = self.args, self.kwargs

        if self.guard.accepts_retry_param:
            bound = self._bind(args, kwargs)
            if bound is not None and bound.arguments.get(_RETRY_PARAM) is None:
                bound.arguments[_RETRY_PARAM] = state
                return bound.args, bound.kwargs

        offset = self.guard.input_offset
        if len(args) > offset and isinstance(args[offset], dict):
            options = args[offset]
            if _RETRY_PARAM in options and options[_RETRY_PARAM] is None:
                injected = {**options, _RETRY_PARAM: state}
                return (*args[:offset], injected, *args[offset + 1:]), kwargs

        return args, kwargs

    def begin(self) -> float:
        self._started_at = datetime.now(timezone.utc)
        return time.perf_counter()

    def _record(self, state: RetryState, started: float, diagnostic: Diagnostic | None) -> None:
        self.history.append(
            AttemptRecord(
                attempt=state.attempt,
                timestamp=self._started_at or datetime.now(timezone.utc),
                duration_ms=(time.perf_counter() - started) * 1000,
                diagnostic=diagnostic,
            )
        )
        if diagnostic is not None:
            self.last_error = diagnostic
            logger.debug(
                "Attempt %d/%d of '%s' failed (%s): %s",
                state.attempt, state.max_attempts, self.config.node_name,
                diagnostic.kind.value, diagnostic.message,
            )

    def on_result(self, state: RetryState, result: Any, started: float) -> _Outcome:
        """Validate a returned value and decide what happens next."""
        if self.guard.output_adapter is None:
            self._record(state, started, None)
            return self._success(state, result)

        outcome = validate(self.guard.output_adapter, result)
        if outcome.ok:
            self._record(state, started, None)
            return self._success(state, result)

        error = outcome.first_error
        received = preview(result)
        suggestion = suggest_fix(error)
        self._record(
            state,
            started,
            Diagnostic(
                kind=DiagnosticKind.VALIDATION,
                message=error.message,
                field=error.field_path,
                expected=error.message,
                received=received,
                suggestion=suggestion,
            ),
        )

        if state.attempt < state.max_attempts and self.config.retries("validation"):
            return _RETRY

        return self._violation(
            ViolationContext(
                node_name=self.config.node_name,
                contract_type=ContractType.OUTPUT,
                field_path=error.field_path,
                expected=error.message,
                received=received,
                received_type=type(result).__name__,
                suggestion=suggestion,
            )
        )

    def on_parse_error(self, state: RetryState, exc: ParseError, started: float) -> _Outcome:
        """Record a decode failure and decide what happens next."""
        self._record(
            state,
            started,
            Diagnostic(
                kind=DiagnosticKind.PARSE,
                message=str(exc),
                raw_output=exc.raw_output,
                suggestion=PARSE_SUGGESTION,
            ),
        )

        retryable = self.config.retries("parse")
        if state.attempt < state.max_attempts and retryable:
            return _RETRY
        if state.max_attempts == 1 or not retryable:
            return _RERAISE

        return self._violation(
            ViolationContext(
                node_name=self.config.node_name,
                contract_type=ContractType.OUTPUT,
                field_path="root",
                expected="Valid JSON",
                received=exc.raw_output[:RECEIVED_PREVIEW_CHARS],
                received_type="str",
                suggestion=PARSE_SUGGESTION,
            )
        )

    def _success(self, state: RetryState, result: Any) -> _Outcome:
        if state.is_retry:
            logger.debug(
                "'%s' succeeded on attempt %d/%d",
                self.config.node_name, state.attempt, state.max_attempts,
            )
        return _Outcome("success", value=result)

    def _violation(self, context: ViolationContext) -> _Outcome:
        violation = HandoffViolation(context, history=self.history)
        self._warn(violation)
        return _Outcome("violation", violation=violation)

    def _warn(self, violation: HandoffViolation) -> None:
        policy = self.config.on_fail
        logger.warning(
            "%s contract violated at '%s' after %d attempt(s) (field=%s, on_fail=%s): %s",
            violation.contract_type.value.capitalize(), violation.node_name,
            violation.total_attempts, violation.field_path,
            "custom" if isinstance(policy, CustomHandler) else policy.value,
            violation.context.expected,
        )

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def conclude(self, outcome: _Outcome) -> Any:
        if outcome.action == "success":
            return outcome.value
        if outcome.violation is None:
            raise GuardInvariantError(f"Unexpected outcome {outcome.action!r}")
        return self.apply_policy(outcome.violation)

    def apply_policy(self, violation: HandoffViolation) -> Any:
        """Apply the configured failure policy to a terminal violation."""
        policy = self.config.on_fail

        if isinstance(policy, CustomHandler):
            return policy(violation)
        if policy is OnFail.RETURN_NONE:
            return None
        if policy is OnFail.RETURN_INPUT:
            return self.input_data
        if policy is OnFail.RAISE:
            raise violation
        raise GuardInvariantError(f"Unknown failure policy {policy!r}")
