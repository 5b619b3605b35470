from __future__ import annotations

import tomllib
from typing import ClassVar

import pytest

from docket.defaults import (
    BUDGET_DEFAULTS,
    FOCUS_AREAS,
    OUTPUT_DEFAULTS,
    SCAN_DEFAULTS,
    TASK_DEFAULTS,
    TRIM_DEFAULTS,
    VALIDATION_DEFAULTS,
    generate_toml,
)
from docket.models import Category

# ---------------------------------------------------------------------------
# Structure & type checks
# ---------------------------------------------------------------------------


class TestBudgetDefaults:
    expected_keys: ClassVar[set[str]] = {
        "target_batch_tokens",
        "max_batch_tokens",
        "target_file_tokens",
        "max_file_tokens",
        "max_batches",
    }

    def test_keys(self):
        assert set(BUDGET_DEFAULTS) == self.expected_keys

    def test_all_values_are_positive_ints(self):
        for value in BUDGET_DEFAULTS.values():
            assert isinstance(value, int)
            assert value > 0

    def test_ordering(self):
        b = BUDGET_DEFAULTS
        assert b["target_file_tokens"] <= b["target_batch_tokens"] <= b["max_batch_tokens"]
        assert b["target_file_tokens"] <= b["max_file_tokens"] <= b["max_batch_tokens"]


class TestScanDefaults:
    def test_keys(self):
        assert set(SCAN_DEFAULTS) == {"max_depth", "read_workers", "exclude"}

    @pytest.mark.parametrize("name", [".git", "node_modules", "__pycache__", ".docket"])
    def test_excludes(self, name: str):
        assert name in SCAN_DEFAULTS["exclude"]  # type: ignore[operator]


class TestOtherDefaults:
    def test_trim(self):
        assert 0 < TRIM_DEFAULTS["high_value_fraction"] <= 1
        assert isinstance(TRIM_DEFAULTS["allow_unsafe_split"], bool)

    def test_validation(self):
        assert 0 < VALIDATION_DEFAULTS["min_quality_score"] <= 100

    def test_tasks_are_bools(self):
        assert all(isinstance(v, bool) for v in TASK_DEFAULTS.values())

    def test_output_dir(self):
        assert OUTPUT_DEFAULTS["dir"] == "docs/docket"


class TestFocusAreas:
    def test_every_category_has_focus_areas(self):
        assert set(FOCUS_AREAS) == {c.value for c in Category}
        assert all(FOCUS_AREAS.values())


class TestGenerateToml:
    def test_returns_str(self):
        assert isinstance(generate_toml(), str)

    def test_parseable(self):
        tomllib.loads(generate_toml())

    def test_contains_all_sections(self):
        parsed = tomllib.loads(generate_toml())
        assert set(parsed) == {
            "budget",
            "scan",
            "trim",
            "validation",
            "tasks",
            "output",
            "priority",
        }

    def test_roundtrip_budget(self):
        parsed = tomllib.loads(generate_toml())
        assert parsed["budget"] == BUDGET_DEFAULTS

    def test_roundtrip_scan(self):
        parsed = tomllib.loads(generate_toml())
        assert parsed["scan"] == SCAN_DEFAULTS

    def test_roundtrip_trim(self):
        parsed = tomllib.loads(generate_toml())
        assert parsed["trim"] == TRIM_DEFAULTS

    def test_roundtrip_output(self):
        parsed = tomllib.loads(generate_toml())
        assert parsed["output"] == OUTPUT_DEFAULTS
        assert parsed["priority"] == {}
