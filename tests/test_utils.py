"""Tests for parse_json and code-fence stripping."""

from __future__ import annotations

import pytest

from handoff import ParseError, parse_json
from handoff.utils import strip_code_fence


class TestParseJson:
    def test_valid(self):
        assert parse_json('{"a": 1}') == {"a": 1}

    def test_strips_code_fence(self):
        text = '```json\n{"a": 1}\n```'
        assert parse_json(text) == {"a": 1}

    def test_strips_bare_fence(self):
        assert parse_json("```\n[1, 2]\n```") == [1, 2]

    def test_strips_bom_and_whitespace(self):
        assert parse_json('\ufeff  {"a": 1}\n') == {"a": 1}

    def test_invalid_raises_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            parse_json("not json")
        assert exc_info.value.raw_output == "not json"

    def test_invalid_raw_output_bounded(self):
        with pytest.raises(ParseError) as exc_info:
            parse_json("{" + "x" * 2000)
        assert len(exc_info.value.raw_output) == 500

    @pytest.mark.parametrize("value,type_name", [(None, "NoneType"), (42, "int"), ({"a": 1}, "dict")])
    def test_non_string(self, value, type_name):
        with pytest.raises(ParseError, match=f"Expected string, got {type_name}"):
            parse_json(value)


class TestStripCodeFence:
    def test_no_fence(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_unterminated_fence(self):
        assert strip_code_fence('```json\n{"a": 1}') == '{"a": 1}'
