from __future__ import annotations

from pathlib import Path

import pytest

from docket.state_db import StateDB
from docket.validation import OutputValidator


@pytest.fixture()
def db(tmp_path: Path) -> StateDB:
    return StateDB(tmp_path / ".docket" / "state.db")


@pytest.fixture()
def output_root(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    return root


@pytest.fixture()
def validator(output_root: Path) -> OutputValidator:
    return OutputValidator(output_root, min_quality_score=70)
