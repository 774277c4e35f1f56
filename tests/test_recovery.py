"""Tests for response cleaning, JSON recovery and the field reader."""

from __future__ import annotations

import json

import pytest

from article_publisher.errors import MalformedResponseError
from article_publisher.recovery import (
    EMPTY_OBJECT,
    ResponseReader,
    clean_response,
    parse_response,
    strip_fences,
    strip_reasoning,
    strip_wrappers,
)

SAMPLES = [
    '```json\n{"a":1}\n```',
    '<think>plan</think>\n```json\n{"a":1}\n```',
    '```\n<think>plan</think>{"a": 1}\n```',
    'reasoning...</think>\n{"a": 1}',
    '<think>partial reasoning\n{"a": 2}',
    '{"expr": "a < b > c"}',
    "plain text",
    "  padded  ",
    "<think>only thoughts</think>",
]


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('```json\n{"a":1}\n```') == '{"a":1}'

    def test_bare_fence(self):
        assert strip_fences('```\n{"a":1}\n```') == '{"a":1}'

    def test_unfenced_text_returned_unchanged(self):
        assert strip_fences("  hello  ") == "  hello  "

    def test_missing_closing_fence(self):
        assert strip_fences('```json\n{"a":1}') == '{"a":1}'


class TestStripReasoning:
    def test_no_tags_unchanged(self):
        assert strip_reasoning('  {"a": 1}  ') == '  {"a": 1}  '

    def test_reasoning_only_becomes_empty(self):
        assert strip_reasoning("<think>I should answer carefully.</think>") == ""

    def test_multiple_blocks_removed(self):
        assert strip_reasoning('<think>a</think>{"x":<think>b</think>1}') == '{"x":1}'

    def test_comparison_operators_inside_block(self):
        text = '<think>if a < b and b > c then answer</think>{"x": 1}'
        assert strip_reasoning(text) == '{"x": 1}'

    def test_case_insensitive_tags(self):
        assert strip_reasoning("<THINK>a</Think>{}") == "{}"

    def test_orphan_close_tag_loses_only_the_tag(self):
        assert strip_reasoning('reasoning...</think>\n{"a": 1}') == 'reasoning...\n{"a": 1}'

    def test_orphan_open_tag_cut_to_data_line(self):
        assert strip_reasoning('<think>partial reasoning\n{"a": 2}') == '{"a": 2}'

    def test_trailing_orphan_open_tag_cut_to_end(self):
        assert strip_reasoning('{"a": 1}\n<think>partial') == '{"a": 1}'

    def test_angle_brackets_in_json_untouched(self):
        text = '{"expr": "a < b > c"}'
        assert strip_reasoning(text) == text


class TestCleanResponse:
    @pytest.mark.parametrize("raw", [None, "", "   \n\t"])
    def test_empty_input_becomes_sentinel(self, raw):
        assert clean_response(raw) == EMPTY_OBJECT

    def test_fence_example(self):
        assert clean_response('```json\n{"a":1}\n```') == '{"a":1}'

    def test_reasoning_then_fence(self):
        assert clean_response('<think>plan</think>\n```json\n{"a":1}\n```') == '{"a":1}'

    def test_reasoning_only_is_empty_not_sentinel(self):
        assert clean_response("<think>only thoughts</think>") == ""

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_idempotent(self, raw):
        once = strip_wrappers(raw)
        assert strip_wrappers(once) == once


class TestParseResponse:
    def test_valid_object(self):
        reader = parse_response('```json\n{"title": "Kafka"}\n```')
        assert reader.get_str("title") == "Kafka"

    def test_empty_input_parses_to_empty_object(self):
        assert parse_response(None).data == {}

    def test_trailing_comma_repaired(self):
        reader = parse_response('{"items": ["a", "b",],}')
        assert reader.get_str_list("items") == ["a", "b"]

    def test_smart_quotes_repaired(self):
        reader = parse_response("{“title”: “Kafka”}")
        assert reader.get_str("title") == "Kafka"

    def test_leading_prose_repaired(self):
        reader = parse_response('reasoning...</think>\n{"a": 1}')
        assert reader.get_int("a") == 1

    def test_reasoning_only_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_response("<think>nothing else</think>")

    def test_array_is_malformed(self):
        with pytest.raises(MalformedResponseError, match="expected a JSON object"):
            parse_response("[1, 2, 3]")

    def test_garbage_is_malformed(self):
        with pytest.raises(MalformedResponseError) as exc_info:
            parse_response("I could not produce JSON, sorry")
        assert exc_info.value.raw == "I could not produce JSON, sorry"


class TestResponseReader:
    def test_missing_and_null_fall_back(self):
        reader = ResponseReader({"a": None})
        assert reader.get_str("a", "x") == "x"
        assert reader.get_str("missing") == ""
        assert reader.get_int("missing", 5) == 5
        assert reader.get_list("missing") == []

    def test_camel_case_alias(self):
        reader = ResponseReader({"keyFacts": ["one"], "overallScore": 0.5})
        assert reader.get_str_list("key_facts") == ["one"]
        assert reader.get_float("overall_score") == 0.5
        assert reader.has("key_facts")

    def test_numeric_coercion(self):
        reader = ResponseReader({"a": "3", "b": 3.7, "c": "abc", "d": True, "e": "0.25"})
        assert reader.get_int("a") == 3
        assert reader.get_int("b") == 3
        assert reader.get_int("c", -1) == -1
        assert reader.get_int("d", 9) == 9
        assert reader.get_float("e") == 0.25
        assert reader.get_float("c", 1.5) == 1.5

    def test_infinite_int_falls_back(self):
        reader = ResponseReader(json.loads('{"n": 1e999, "s": "1e999", "m": "-inf"}'))
        assert reader.get_int("n", 7) == 7
        assert reader.get_int("s", 7) == 7
        assert reader.get_int("m", 7) == 7

    def test_get_bool(self):
        reader = ResponseReader({"a": "yes", "b": "no", "c": 1, "d": "maybe"})
        assert reader.get_bool("a") is True
        assert reader.get_bool("b") is False
        assert reader.get_bool("c") is True
        assert reader.get_bool("d", True) is True

    def test_has_required_rejects_blank(self):
        reader = ResponseReader({"content": "  ", "summary": "ok"})
        assert reader.has_required("summary")
        assert not reader.has_required("content", "summary")
        assert not reader.has_required("missing")

    def test_str_list_forms(self):
        reader = ResponseReader({"one": "solo", "many": ["a", None, "", 2], "blank": " "})
        assert reader.get_str_list("one") == ["solo"]
        assert reader.get_str_list("many") == ["a", "2"]
        assert reader.get_str_list("blank") == []

    def test_objects_skip_non_dicts(self):
        reader = ResponseReader({"items": [{"x": 1}, "text", {"x": 2}]})
        assert [r.get_int("x") for r in reader.get_objects("items")] == [1, 2]
        assert reader.get_object("items") is None

    def test_str_map(self):
        reader = ResponseReader({"glossary": {"log": "append-only", "bad": None}})
        assert reader.get_str_map("glossary") == {"log": "append-only"}
