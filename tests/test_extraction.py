"""Tests for ordered extraction rules."""

from portraitly.services.image_generation.extraction import (
    RESULT_URL_RULES,
    TASK_ID_RULES,
    ExtractionRule,
    extract_first,
    rule,
)


def test_rule_parses_list_indices():
    assert rule("data.output.0") == ExtractionRule("data.output.0", ("data", "output", 0))


def test_first_matching_rule_wins():
    doc = {"resultImageUrl": "https://b", "data": {"resultImageUrl": "https://a"}}

    assert extract_first(doc, RESULT_URL_RULES) == ("data.resultImageUrl", "https://a")


def test_later_rule_used_when_earlier_missing():
    doc = {"data": {"output": ["https://first", "https://second"]}}

    assert extract_first(doc, RESULT_URL_RULES) == ("data.output.0", "https://first")


def test_empty_values_are_skipped():
    doc = {"data": {"resultImageUrl": ""}, "imageUrl": "https://c"}

    assert extract_first(doc, RESULT_URL_RULES) == ("imageUrl", "https://c")


def test_no_match_returns_none():
    assert extract_first({"data": {"status": "ok"}}, RESULT_URL_RULES) is None
    assert extract_first({"output": []}, RESULT_URL_RULES) is None
    assert extract_first("not a document", RESULT_URL_RULES) is None


def test_task_id_rules_stringify_values():
    assert extract_first({"data": {"task_id": 12345}}, TASK_ID_RULES) == ("data.task_id", "12345")


def test_wrong_shape_does_not_raise():
    custom = (rule("data.0"), rule("data.id"))

    assert extract_first({"data": {"id": "x"}}, custom) == ("data.id", "x")
