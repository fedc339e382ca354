"""Property-based tests for the attempt loop and diagnostics."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from handoff import Diagnostic, HandoffViolation, ParseError, guard
from tests.conftest import Producer, SimpleOutput

GOOD = {"result": "ok", "score": 1}
BAD = {"result": "ok"}

attempt_counts = st.integers(min_value=1, max_value=8)


@given(raw=st.text(max_size=3000))
def test_raw_output_bounded(raw):
    diag = Diagnostic(kind="parse", message="bad", raw_output=raw)
    assert len(diag.raw_output) <= 500
    assert raw.startswith(diag.raw_output)


@given(raw=st.text(max_size=3000))
def test_parse_error_raw_output_bounded(raw):
    assert len(ParseError("bad", raw).raw_output) <= 500


@settings(max_examples=30)
@given(max_attempts=attempt_counts)
def test_first_success_invokes_once(max_attempts):
    producer = Producer(GOOD)
    guard(output=SimpleOutput, max_attempts=max_attempts)(producer)({})
    assert producer.call_count == 1


@settings(max_examples=30)
@given(max_attempts=attempt_counts)
def test_exhaustion_ledger(max_attempts):
    producer = Producer(BAD)
    guarded = guard(output=SimpleOutput, max_attempts=max_attempts)(producer)

    with pytest.raises(HandoffViolation) as exc_info:
        guarded({})

    err = exc_info.value
    assert producer.call_count == max_attempts
    assert err.total_attempts == max_attempts
    assert [r.attempt for r in err.history] == list(range(1, max_attempts + 1))
    assert len(err.to_dict()["history"]) == max_attempts


@settings(max_examples=50)
@given(data=st.data())
def test_attempts_strictly_increase(data):
    max_attempts = data.draw(attempt_counts, label="max_attempts")
    succeed_on = data.draw(st.integers(min_value=1, max_value=max_attempts), label="succeed_on")
    producer = Producer(*([BAD] * (succeed_on - 1)), GOOD)

    assert guard(output=SimpleOutput, max_attempts=max_attempts)(producer)({}) == GOOD
    assert producer.seen_attempts == list(range(1, succeed_on + 1))
    # feedback is present exactly on retries
    assert [fb is not None for fb in producer.seen_feedback] == [
        attempt > 1 for attempt in producer.seen_attempts
    ]


@settings(max_examples=30)
@given(max_attempts=st.integers(min_value=2, max_value=8))
def test_disabled_parse_retry_propagates_after_one_call(max_attempts):
    producer = Producer(ParseError("bad", "{"), GOOD)
    guarded = guard(output=SimpleOutput, max_attempts=max_attempts, retry_on=["validation"])(producer)

    with pytest.raises(ParseError):
        guarded({})
    assert producer.call_count == 1
