from __future__ import annotations

from pathlib import Path

import pytest

from docket.defaults import SCAN_DEFAULTS
from docket.errors import ScanError
from docket.models import Category
from docket.prioritizer import (
    categorize,
    is_excluded,
    is_recognized,
    scan_project,
    score_importance,
)

EXCLUDE: list[str] = list(SCAN_DEFAULTS["exclude"])  # type: ignore[arg-type]


def _write(root: Path, rel: str, content: str = "x = 1\n") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    _write(tmp_path, "main.py", "import app\n" * 200)
    _write(tmp_path, "pyproject.toml", "[project]\nname = 'demo'\n")
    _write(tmp_path, "README.md", "# Demo\n")
    _write(tmp_path, "src/api/routes.py")
    _write(tmp_path, "src/services/user_service.py")
    _write(tmp_path, "src/models/user.py")
    _write(tmp_path, "tests/test_user.py")
    _write(tmp_path, "node_modules/pkg/index.js")
    _write(tmp_path, "logo.png")
    _write(tmp_path, "server.log")
    return tmp_path


class TestCategorize:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("main.py", Category.ENTRY),
            ("src/index.ts", Category.ENTRY),
            ("package.json", Category.CONFIG),
            ("app/settings.py", Category.CONFIG),
            ("src/api/users.py", Category.ROUTE),
            ("src/user_controller.js", Category.CONTROLLER),
            ("src/payment_service.py", Category.SERVICE),
            ("src/schema.py", Category.MODEL),
            ("ui/components/button.tsx", Category.COMPONENT),
            ("src/helpers.py", Category.UTILITY),
            ("tests/test_orders.py", Category.TEST),
            ("docs/guide.md", Category.OTHER),
        ],
    )
    def test_categories(self, path: str, expected: Category) -> None:
        assert categorize(path) is expected

    def test_first_match_wins(self) -> None:
        # "config" is checked before "test"
        assert categorize("tests/test_config.py") is Category.CONFIG
        # "api" is checked before "model"
        assert categorize("src/api/user_model.py") is Category.ROUTE

    def test_entry_requires_exact_name(self) -> None:
        assert categorize("src/domain.py") is not Category.ENTRY


class TestScoreImportance:
    def test_entry_bonus(self) -> None:
        assert score_importance(Category.ENTRY, 0, 2000) == 70

    def test_config_bonus_with_depth_and_tiny_penalty(self) -> None:
        assert score_importance(Category.CONFIG, 1, 50) == 35

    def test_plain_file(self) -> None:
        assert score_importance(Category.OTHER, 0, 500) == 10

    def test_floor_is_one(self) -> None:
        assert score_importance(Category.OTHER, 5, 10) == 1
        assert score_importance(Category.OTHER, 0, 600_000) == 1

    def test_depth_lowers_score(self) -> None:
        shallow = score_importance(Category.SERVICE, 1, 2000)
        deep = score_importance(Category.SERVICE, 3, 2000)
        assert shallow > deep


class TestFilters:
    def test_excluded_by_name_and_glob(self) -> None:
        assert is_excluded("node_modules", EXCLUDE)
        assert is_excluded("debug.log", EXCLUDE)
        assert not is_excluded("src", EXCLUDE)

    def test_recognized(self) -> None:
        assert is_recognized("app.py")
        assert is_recognized("Dockerfile")
        assert is_recognized("README")
        assert not is_recognized("logo.png")
        assert not is_recognized(".env")


class TestScanProject:
    def test_finds_recognized_files(self, project: Path) -> None:
        result = scan_project(project, EXCLUDE)
        paths = {f.path for f in result.files}
        assert paths == {
            "main.py",
            "pyproject.toml",
            "README.md",
            "src/api/routes.py",
            "src/services/user_service.py",
            "src/models/user.py",
            "tests/test_user.py",
        }
        assert result.warnings == []

    def test_env_files_not_scanned(self, project: Path) -> None:
        (project / ".env").write_text("SECRET_KEY=abc\n")
        result = scan_project(project, EXCLUDE)
        assert ".env" not in {f.path for f in result.files}

    def test_entry_point_ranks_first(self, project: Path) -> None:
        result = scan_project(project, EXCLUDE)
        assert result.files[0].path == "main.py"
        assert result.files[0].category is Category.ENTRY
        importances = [f.importance for f in result.files]
        assert importances == sorted(importances, reverse=True)

    def test_records_depth_and_language(self, project: Path) -> None:
        result = scan_project(project, EXCLUDE)
        by_path = {f.path: f for f in result.files}
        assert by_path["main.py"].depth == 0
        assert by_path["src/api/routes.py"].depth == 2
        assert by_path["src/api/routes.py"].language == "python"
        assert by_path["pyproject.toml"].language == "toml"

    def test_deterministic(self, project: Path) -> None:
        first = scan_project(project, EXCLUDE)
        second = scan_project(project, EXCLUDE)
        assert [f.path for f in first.files] == [f.path for f in second.files]

    def test_depth_limit(self, project: Path) -> None:
        result = scan_project(project, EXCLUDE, max_depth=1)
        paths = {f.path for f in result.files}
        assert "tests/test_user.py" in paths
        assert "src/api/routes.py" not in paths

    def test_skip_dirs(self, project: Path) -> None:
        _write(project, "docs/docket/files/main.py.md", "# main\n")
        _write(project, "docs/guide.md", "# Guide\n")
        result = scan_project(project, EXCLUDE, skip_dirs=["docs/docket"])
        paths = {f.path for f in result.files}
        assert "docs/guide.md" in paths
        assert not any(p.startswith("docs/docket/") for p in paths)

    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(ScanError):
            scan_project(tmp_path / "missing", EXCLUDE)

    def test_root_is_a_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.py"
        target.write_text("x = 1\n")
        with pytest.raises(ScanError):
            scan_project(target, EXCLUDE)

    def test_statistics(self, project: Path) -> None:
        stats = scan_project(project, EXCLUDE).statistics()
        assert stats["total_files"] == 7
        assert stats["categories"]["entry"] == 1  # type: ignore[index]
        assert stats["languages"]["python"] == 5  # type: ignore[index]
        assert stats["warnings"] == 0
