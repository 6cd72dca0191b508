"""
SafeCheck — Threshold Evaluator Tests
======================================
"""

import pytest

from app.inspections.models import CheckDefinition
from app.inspections.thresholds import (
    CheckOutcome,
    describe_threshold,
    evaluate,
    parse_number,
)

PASS = CheckOutcome.PASS
FAIL = CheckOutcome.FAIL


def numeric(mode=None, val1=None, val2=None, unit=None):
    return CheckDefinition.from_dict({
        "id": "n", "name": "Reading", "inputType": "number",
        "thresholdMode": mode, "val1": val1, "val2": val2, "unit": unit,
    })


class TestBooleanChecks:

    def test_false_fails(self):
        assert evaluate(CheckDefinition(id="b"), False) == FAIL

    @pytest.mark.parametrize("raw", [True, None])
    def test_true_or_unset_passes(self, raw):
        assert evaluate(CheckDefinition(id="b"), raw) == PASS

    def test_falsy_non_boolean_passes(self):
        # Only an explicit False fails
        assert evaluate(CheckDefinition(id="b"), 0) == PASS


class TestNumericChecks:

    @pytest.mark.parametrize("raw,expected", [
        (5, FAIL), (10, PASS), (30, PASS), (50, PASS), (50.01, FAIL), ("30", PASS), ("5", FAIL),
    ])
    def test_range(self, raw, expected):
        assert evaluate(numeric("range", 10, 50), raw) == expected

    @pytest.mark.parametrize("mode,raw,expected", [
        ("gt", 0, FAIL), ("gt", 0.1, PASS),
        ("gte", 4.9, FAIL), ("gte", 5, PASS),
        ("lt", 5, FAIL), ("lt", 4.9, PASS),
        ("lte", 5.1, FAIL), ("lte", 5, PASS),
    ])
    def test_single_bound_modes(self, mode, raw, expected):
        val1 = 0 if mode == "gt" else 5
        assert evaluate(numeric(mode, val1), raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, True])
    def test_unparseable_never_fails(self, raw):
        assert evaluate(numeric("range", 10, 50), raw) == PASS

    def test_no_mode_always_passes(self):
        assert evaluate(numeric(), -1000) == PASS

    def test_missing_bound_compares_as_zero(self):
        assert evaluate(numeric("gt"), 0) == FAIL
        assert evaluate(numeric("range", 1), 0.5) == FAIL

    def test_inverted_range_is_not_rejected(self):
        # val1 > val2 is stored as given; every value falls outside it
        assert evaluate(numeric("range", 50, 10), 30) == FAIL

    def test_unit_suffix_is_ignored(self):
        assert evaluate(numeric("lte", 1.0), "0.85MPa") == PASS


class TestParseNumber:

    @pytest.mark.parametrize("raw,value", [
        ("12.5kg", 12.5), (" 7", 7.0), ("-3", -3.0), (".5", 0.5), ("1e3", 1000.0), (4, 4.0),
    ])
    def test_prefix(self, raw, value):
        assert parse_number(raw) == value

    @pytest.mark.parametrize("raw", ["kg12", None, False, float("nan")])
    def test_no_number(self, raw):
        assert parse_number(raw) is None


class TestDescribeThreshold:

    def test_descriptions(self):
        assert describe_threshold(numeric("range", 10, 50)) == "range 10~50"
        assert describe_threshold(numeric("gt", 5)) == "gt 5"
        assert describe_threshold(numeric("lte", 0.98)) == "lte 0.98"

    def test_no_description(self):
        assert describe_threshold(numeric()) is None
        assert describe_threshold(CheckDefinition(id="b")) is None
