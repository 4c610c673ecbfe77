import json
import logging

import pytest

from budget_categorizer.models import CategorizationResult, fallback_result
from budget_categorizer.parsing import ResponseParser, extract_json_array, find_balanced_array

NETFLIX = {"mainCategory": "Entertainment", "subCategory": "Movies"}
GROCERIES = {"mainCategory": "Food & Dining", "subCategory": "Groceries"}


@pytest.fixture
def parser(taxonomy) -> ResponseParser:
    return ResponseParser(taxonomy)


def test_bare_json_array_is_parsed(parser):
    results = parser.parse(json.dumps([NETFLIX, GROCERIES]), 2)
    assert results == [
        CategorizationResult("Entertainment", "Movies"),
        CategorizationResult("Food & Dining", "Groceries"),
    ]
    assert all(r.user_modified is False for r in results)


def test_fenced_json_is_parsed(parser):
    text = "```json\n" + json.dumps([NETFLIX]) + "\n```"
    assert parser.parse(text, 1) == [CategorizationResult("Entertainment", "Movies")]


def test_array_surrounded_by_prose_is_parsed(parser):
    text = "Sure! Here are the results:\n" + json.dumps([GROCERIES]) + "\nLet me know."
    assert parser.parse(text, 1) == [CategorizationResult("Food & Dining", "Groceries")]


def test_extra_keys_on_items_are_ignored(parser):
    item = {**NETFLIX, "confidence": 0.9}
    assert parser.parse(json.dumps([item]), 1) == [CategorizationResult("Entertainment", "Movies")]


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        "I cannot help with that.",
        '[{"mainCategory": "Entertainment", "subCategory": "Mov',
        "[not json at all]",
        '{"mainCategory": "Entertainment", "subCategory": "Movies"}',
    ],
)
@pytest.mark.parametrize("expected", [0, 1, 3])
def test_unusable_text_yields_all_fallbacks(parser, text, expected):
    results = parser.parse(text, expected)
    assert len(results) == expected
    assert all(r == fallback_result() for r in results)


def test_count_mismatch_falls_back_for_every_position(parser, caplog):
    with caplog.at_level(logging.WARNING, logger="budget_categorizer"):
        results = parser.parse(json.dumps([NETFLIX]), 2)
    assert results == [fallback_result(), fallback_result()]
    assert "parse:count_mismatch expected=2 actual=1" in caplog.text


def test_too_many_items_also_fall_back(parser):
    results = parser.parse(json.dumps([NETFLIX, NETFLIX, NETFLIX]), 2)
    assert results == [fallback_result(), fallback_result()]


def test_invented_category_is_rejected_with_warning(parser, caplog):
    text = json.dumps([{"mainCategory": "Entertainment", "subCategory": "Streaming"}, GROCERIES])
    with caplog.at_level(logging.WARNING, logger="budget_categorizer"):
        results = parser.parse(text, 2)
    assert results == [fallback_result(), CategorizationResult("Food & Dining", "Groceries")]
    assert "parse:rejected_pair index=0" in caplog.text
    assert "Streaming" in caplog.text


def test_cross_category_pair_is_rejected(parser):
    text = json.dumps([{"mainCategory": "Shopping", "subCategory": "Internet"}])
    assert parser.parse(text, 1) == [fallback_result()]


@pytest.mark.parametrize(
    "item",
    [
        {"mainCategory": "Entertainment"},
        {"subCategory": "Movies"},
        {"mainCategory": 1, "subCategory": "Movies"},
        {"mainCategory": "Entertainment", "subCategory": None},
        "Entertainment/Movies",
        None,
    ],
)
def test_malformed_item_falls_back_only_at_its_position(parser, item):
    results = parser.parse(json.dumps([NETFLIX, item]), 2)
    assert results == [CategorizationResult("Entertainment", "Movies"), fallback_result()]


def test_fallback_pair_from_classifier_is_accepted(parser):
    text = json.dumps([{"mainCategory": "To Classify", "subCategory": "Needs Review"}])
    [result] = parser.parse(text, 1)
    assert result.is_fallback


def test_empty_array_for_zero_expected(parser):
    assert parser.parse("[]", 0) == []


@pytest.mark.parametrize("bad", [-1, 1.5, "2", True])
def test_invalid_expected_count_raises(parser, bad):
    with pytest.raises(ValueError):
        parser.parse("[]", bad)


def test_unloaded_taxonomy_rejects_everything(taxonomy_entries):
    from budget_categorizer.taxonomy import TaxonomyCache

    parser = ResponseParser(TaxonomyCache.from_entries(taxonomy_entries))
    assert parser.parse(json.dumps([NETFLIX]), 1) == [fallback_result()]


# ---- Extraction helpers ------------------------------------------------------


def test_brackets_inside_strings_do_not_end_the_array():
    text = 'prefix [{"mainCategory": "A ] [ \\" B", "subCategory": "x"}] suffix ]'
    assert extract_json_array(text) == [{"mainCategory": 'A ] [ " B', "subCategory": "x"}]


def test_nested_arrays_are_balanced():
    assert find_balanced_array("x [[1, 2], [3]] y") == "[[1, 2], [3]]"


def test_unclosed_array_is_not_found():
    assert find_balanced_array("[[1, 2]") is None
    assert find_balanced_array("no brackets") is None


def test_absurdly_nested_array_falls_back_instead_of_raising(parser):
    text = "[" * 100_000 + "]" * 100_000
    assert extract_json_array(text) is None
    assert parser.parse(text, 2) == [fallback_result(), fallback_result()]


def test_array_after_a_fence_without_one_is_still_found(parser):
    text = "```text\nthinking about it\n```\nResult: " + json.dumps([NETFLIX])
    assert parser.parse(text, 1) == [CategorizationResult("Entertainment", "Movies")]
