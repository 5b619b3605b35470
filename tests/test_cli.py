"""Tests for the docket CLI."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from docket.cli import _parse_priorities, main
from factories import write_doc


@pytest.fixture()
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "main.py").write_text("import sys\n\n\ndef run():\n    return 0\n" * 40)
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "helpers.py").write_text("def add(a, b):\n    return a + b\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    """CLI --version prints version string."""
    with pytest.raises(SystemExit, match="0"):
        main(["--version"])
    assert "docket" in capsys.readouterr().out


def test_help_default(capsys: pytest.CaptureFixture[str]) -> None:
    """CLI with no args prints help and returns 0."""
    assert main([]) == 0
    assert "plan" in capsys.readouterr().out


def test_submit_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit, match="0"):
        main(["submit", "--help"])
    captured = capsys.readouterr()
    assert "--output" in captured.out
    assert "--notes" in captured.out


def test_init_calls_init_config(tmp_path: Path) -> None:
    with (
        patch(
            "docket.config.init_config",
            return_value=tmp_path / ".docket" / "docket.toml",
        ) as mock_init,
        patch("docket.cli.Path") as mock_path_cls,
    ):
        mock_path_cls.cwd.return_value = tmp_path
        result = main(["--init"])

    assert result == 0
    mock_init.assert_called_once_with(tmp_path)


def test_main_module_runnable() -> None:
    import runpy

    with (
        patch("docket.cli.main", return_value=0) as mock_main,
        pytest.raises(SystemExit, match="0"),
    ):
        runpy.run_module("docket", run_name="__main__")
    mock_main.assert_called_once()


class TestParsePriorities:
    def test_parses_pairs(self) -> None:
        assert _parse_priorities(["src/a.py=90", "b=c.py=5"]) == {"src/a.py": 90, "b=c.py": 5}

    @pytest.mark.parametrize("value", ["nonsense", "=5", "a.py=high"])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(ValueError):
            _parse_priorities([value])


class TestWorkflow:
    def _next(self, capsys: pytest.CaptureFixture[str]) -> dict:
        assert main(["next"]) == 0
        return json.loads(capsys.readouterr().out)

    def test_plan(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["plan"]) == 0
        out = capsys.readouterr().out
        assert "tasks planned" in out
        assert "batch_001" in out
        assert (project / ".docket" / "state.db").is_file()

    def test_next_before_plan_is_blocked(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["next"]) == 3
        outcome = json.loads(capsys.readouterr().out)
        assert outcome["outcome"] == "blocked"

    def test_next_and_submit(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["plan"])
        capsys.readouterr()

        outcome = self._next(capsys)
        assert outcome["outcome"] == "dispatched"
        task = outcome["task"]
        assert task["id"] == "file_1_1"
        assert task["payload"]["path"] == "main.py"
        pattern = task["expected_outputs"][0]["pattern"]

        write_doc(project / "docs" / "docket", pattern)
        code = main(["submit", task["id"], "--output", pattern, "--notes", "Documented run()"])
        result = json.loads(capsys.readouterr().out)

        assert code == 0
        assert result["accepted"] is True
        assert result["task"]["status"] == "completed"

    def test_rejected_submission(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["plan"])
        capsys.readouterr()
        task = self._next(capsys)["task"]

        code = main(["submit", task["id"], "--output", "files/nothing.md"])
        result = json.loads(capsys.readouterr().out)

        assert code == 4
        assert result["accepted"] is False
        assert result["task"]["status"] == "error"

        assert main(["reset", task["id"]]) == 0
        assert capsys.readouterr().out.strip() == f"{task['id']}: pending"

    def test_skip_and_status(self, project: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["plan"])
        capsys.readouterr()

        assert main(["skip", "file_1_1", "--reason", "generated"]) == 0
        assert capsys.readouterr().out.strip() == "file_1_1: skipped"

        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "Progress" in out
        assert "file_processing" in out

    def test_invalid_transition_exit_code(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["plan"])
        capsys.readouterr()
        assert main(["reset", "file_1_1"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_replan_of_changed_tree_needs_fresh(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["plan"])
        (project / "src" / "helpers.py").unlink()
        capsys.readouterr()

        assert main(["plan"]) == 1
        assert "--fresh" in capsys.readouterr().err
        assert main(["plan", "--fresh"]) == 0

    def test_bad_priority_exit_code(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["plan", "--priority", "nonsense"]) == 2
        assert "PATH=N" in capsys.readouterr().err

    def test_priority_override_changes_order(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        main(["plan", "--priority", "src/helpers.py=99"])
        capsys.readouterr()
        task = self._next(capsys)["task"]
        assert task["payload"]["path"] == "src/helpers.py"


def test_verbose_configures_package_logger(project: Path) -> None:
    import logging

    logger = logging.getLogger("docket")
    try:
        assert main(["-v", "status"]) == 0
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
