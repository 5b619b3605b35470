from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from docket.pipeline import build_registry
from docket.registry import ServiceRegistry


def _function(name: str, body_lines: int) -> str:
    return f"def {name}():\n" + "    x = 1\n" * body_lines + "\n"


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    files = {
        "main.py": "from src.services.user_service import UserService\n\n"
        "def main():\n    UserService().run()\n",
        "README.md": "# Demo\n\nA small demo project.\n",
        "src/services/user_service.py": (
            "class UserService:\n    def run(self):\n        return 0\n"
        ),
        "src/models/user.py": "class User:\n    name: str\n",
        "src/big.py": "import os\n\n" + "".join(_function(f"step_{i}", 300) for i in range(30)),
        "node_modules/lib/index.js": "module.exports = {};\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    config_dir = root / ".docket"
    config_dir.mkdir()
    (config_dir / "docket.toml").write_text("[tasks]\ninclude_module_tasks = true\n")
    return root


@pytest.fixture()
def registry(project_root: Path) -> Iterator[ServiceRegistry]:
    reg = build_registry(project_root)
    yield reg
    reg.close()
