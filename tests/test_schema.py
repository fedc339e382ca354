"""Tests for the pydantic schema adapter and suggestion derivation."""

from __future__ import annotations

from typing import Literal

import pytest
from pydantic import BaseModel, TypeAdapter, field_validator

from handoff.schema import FieldError, compile_schema, preview, suggest_fix, validate
from tests.conftest import Review, SimpleOutput

GOOD_REVIEW = {"summary": "A solid, well written book.", "stars": 4, "mood": "happy"}


def _first_error(schema, value) -> FieldError:
    outcome = validate(compile_schema(schema), value)
    assert not outcome.ok
    return outcome.first_error


class TestValidate:
    def test_ok(self):
        outcome = validate(compile_schema(Review), GOOD_REVIEW)
        assert outcome.ok
        assert isinstance(outcome.value, Review)
        assert outcome.errors == ()
        assert outcome.first_error is None

    def test_reuses_type_adapter(self):
        adapter = TypeAdapter(list[int])
        assert compile_schema(adapter) is adapter

    def test_non_model_schema(self):
        adapter = compile_schema(list[int])
        assert validate(adapter, [1, 2]).ok
        err = validate(adapter, [1, "x"]).first_error
        assert err.path == "1"
        assert err.field_path == "1"

    def test_nested_path(self):
        class Wrapper(BaseModel):
            items: list[SimpleOutput]

        err = _first_error(Wrapper, {"items": [{"result": "a", "score": 1}, {"result": "b"}]})
        assert err.field_path == "items.1.score"
        assert err.code == "missing"

    def test_root_error_path(self):
        err = _first_error(int, "nope")
        assert err.path == ""
        assert err.field_path == "root"

    def test_only_errors_collected_not_raised(self):
        outcome = validate(compile_schema(Review), {})
        assert not outcome.ok
        assert len(outcome.errors) == 3


class TestSuggestFix:
    def test_too_small_string(self):
        err = _first_error(Review, {**GOOD_REVIEW, "summary": "short"})
        assert err.code == "string_too_short"
        assert suggest_fix(err) == "Increase the length/value of 'summary'"

    def test_too_small_number(self):
        err = _first_error(Review, {**GOOD_REVIEW, "stars": 0})
        assert suggest_fix(err) == "Increase the length/value of 'stars'"

    def test_too_big(self):
        err = _first_error(Review, {**GOOD_REVIEW, "stars": 9})
        assert suggest_fix(err) == "Decrease the length/value of 'stars'"

    def test_type_mismatch(self):
        err = _first_error(Review, {**GOOD_REVIEW, "stars": "many"})
        assert suggest_fix(err) == "'stars' should be int, got str"

    def test_type_mismatch_at_root(self):
        err = _first_error(str, 12)
        assert suggest_fix(err) == "'value' should be string, got int"

    def test_model_type_mismatch(self):
        err = _first_error(SimpleOutput, ["not", "a", "dict"])
        assert suggest_fix(err).startswith("'value' should be ")
        assert suggest_fix(err).endswith("got list")

    def test_enum_mismatch(self):
        err = _first_error(Review, {**GOOD_REVIEW, "mood": "angry"})
        hint = suggest_fix(err)
        assert hint.startswith("'mood' must be one of: ")
        assert "'happy'" in hint and "'sad'" in hint

    def test_literal_mismatch(self):
        err = _first_error(Literal["a", "b"], "c")
        assert suggest_fix(err).startswith("'value' must be one of: ")

    def test_generic(self):
        class Even(BaseModel):
            n: int

            @field_validator("n")
            @classmethod
            def must_be_even(cls, v):
                if v % 2:
                    raise ValueError("must be even")
                return v

        err = _first_error(Even, {"n": 3})
        assert suggest_fix(err) == f"Fix 'n': {err.message}"
        assert "must be even" in err.message

    def test_missing_field(self):
        err = _first_error(SimpleOutput, {"result": "ok"})
        assert suggest_fix(err) == "Fix 'score': Field required"


class TestFieldError:
    def test_type_mismatch_expected_and_received(self):
        err = _first_error(Review, {**GOOD_REVIEW, "stars": "many"})
        assert err.expected == "int"
        assert err.received_type == "str"

    def test_expected_falls_back_to_message(self):
        err = _first_error(Review, {**GOOD_REVIEW, "stars": 9})
        assert err.expected_type is None
        assert err.expected == err.message

    def test_root_field_path(self):
        err = _first_error(str, 12)
        assert err.path == ""
        assert err.field_path == "root"
        assert err.received_type == "int"


class TestPreview:
    def test_json_like(self):
        assert preview({"a": 1}) == '{"a":1}'
        assert preview(None) == "null"
        assert preview("x") == '"x"'

    def test_truncated(self):
        assert len(preview("y" * 1000)) == 200

    @pytest.mark.parametrize("value", [object(), {1, 2}, b"\xff"])
    def test_unusual_values(self, value):
        assert isinstance(preview(value), str)
