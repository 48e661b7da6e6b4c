"""Tests for llm/parsing.py module."""

import pytest

from charity_oracle.errors import MalformedResponseError
from charity_oracle.llm.parsing import coerce_score, extract_json_object


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object('{"baseScore": 70}') == {"baseScore": 70}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"baseScore": 55, "flags": []}\n```\nThanks'
        assert extract_json_object(text) == {"baseScore": 55, "flags": []}

    def test_fence_without_language(self):
        assert extract_json_object('```\n{"a": 1}\n```') == {"a": 1}

    def test_braced_span_in_prose(self):
        text = 'Analysis follows {"imageScore": 80, "valid": true} end of analysis'
        assert extract_json_object(text) == {"imageScore": 80, "valid": True}

    def test_array_is_not_an_object(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object("[1, 2, 3]")

    def test_no_json(self):
        with pytest.raises(MalformedResponseError) as exc:
            extract_json_object("I cannot help with that.")
        assert exc.value.raw == "I cannot help with that."

    def test_empty(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object("   ")


class TestCoerceScore:
    @pytest.mark.parametrize(
        "value,expected",
        [(70, 70), ("45", 45), (88.6, 88.6), (58.5, 58.5), (-5, 0), (140, 100)],
    )
    def test_values(self, value, expected):
        assert coerce_score(value) == expected

    @pytest.mark.parametrize("value", [None, "high", True, [50], "nan", float("inf")])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(MalformedResponseError):
            coerce_score(value)
