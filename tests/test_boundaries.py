from __future__ import annotations

import pytest

from docket.boundaries import (
    extract_imports,
    find_boundaries,
    split_into_chunks,
)
from docket.errors import BudgetExceededError
from docket.tokens import estimate_tokens


def _function(name: str, body_lines: int) -> str:
    return f"def {name}():\n" + "    x = 1\n" * body_lines


class TestFindBoundaries:
    def test_python_top_level_only(self) -> None:
        lines = [
            "class A:\n",
            "    def method(self):\n",
            "        return 1\n",
            "\n",
            "def helper():\n",
            "    pass\n",
        ]
        found = find_boundaries(lines, "python")
        assert [(b.line, b.kind) for b in found] == [(0, "class"), (4, "function")]

    def test_decorators_attach_to_declaration(self) -> None:
        lines = [
            "import functools\n",
            "\n",
            "# Cached lookup\n",
            "@functools.cache\n",
            "def lookup():\n",
            "    return 1\n",
        ]
        found = find_boundaries(lines, "python")
        assert [b.line for b in found] == [2]

    def test_control_flow_is_not_a_boundary(self) -> None:
        lines = ["if True:\n", "    pass\n", "for x in y:\n", "    pass\n"]
        assert find_boundaries(lines, "python") == []

    def test_javascript(self) -> None:
        lines = [
            "import x from 'y';\n",
            "export function a() {\n",
            "}\n",
            "const b = () => 1;\n",
            "class C {}\n",
        ]
        found = find_boundaries(lines, "javascript")
        assert [(b.line, b.kind) for b in found] == [
            (1, "function"),
            (3, "function"),
            (4, "class"),
        ]

    def test_java_members(self) -> None:
        lines = [
            "public class Service {\n",
            "    public void run() {\n",
            "        if (ready) {\n",
            "        }\n",
            "    }\n",
            "}\n",
        ]
        found = find_boundaries(lines, "java")
        assert [b.line for b in found] == [0, 1]

    def test_class_outranks_function(self) -> None:
        found = find_boundaries(["class A:\n", "def f():\n"], "python")
        assert found[0].priority > found[1].priority


class TestExtractImports:
    def test_python(self) -> None:
        lines = ["import os\n", "from a import b\n", "x = 1\n"]
        assert extract_imports(lines, "python") == ["import os", "from a import b"]

    def test_unknown_language(self) -> None:
        assert extract_imports(["import os\n"], "cobol") == []


class TestSplitIntoChunks:
    def test_empty_text(self) -> None:
        assert split_into_chunks("", "python", 100) == []

    def test_splits_at_function_boundaries(self) -> None:
        text = "".join(_function(f"f{i}", 1500) for i in range(4))
        target = estimate_tokens("x" * 20000, "python")
        chunks = split_into_chunks(text, "python", target)
        assert len(chunks) == 4
        for n, chunk in enumerate(chunks, start=1):
            assert chunk.ordinal == n
            assert chunk.total == 4
            assert chunk.content.startswith(f"def f{n - 1}():")
            assert chunk.tokens <= target
            assert not chunk.unsafe_split
        assert "".join(c.content for c in chunks) == text

    def test_packs_small_declarations_together(self) -> None:
        text = "".join(_function(f"f{i}", 5) for i in range(10))
        chunks = split_into_chunks(text, "python", 10_000)
        assert len(chunks) == 1
        assert chunks[0].start_line == 1
        assert chunks[0].end_line == text.count("\n")

    def test_line_ranges_are_contiguous(self) -> None:
        text = "".join(_function(f"f{i}", 200) for i in range(6))
        chunks = split_into_chunks(text, "python", 1000)
        assert chunks[0].start_line == 1
        for prev, nxt in zip(chunks, chunks[1:]):
            assert nxt.start_line == prev.end_line + 1
        assert chunks[-1].end_line == text.count("\n")

    def test_oversized_declaration_is_split_unsafely(self) -> None:
        text = _function("huge", 2000)
        chunks = split_into_chunks(text, "python", 500)
        assert len(chunks) > 1
        assert all(c.unsafe_split for c in chunks)
        assert all(c.tokens <= 500 for c in chunks)
        assert "".join(c.content for c in chunks) == text

    def test_oversized_declaration_rejected_when_unsafe_disallowed(self) -> None:
        text = _function("huge", 2000)
        with pytest.raises(BudgetExceededError) as excinfo:
            split_into_chunks(
                text, "python", 500, allow_unsafe_split=False, path="src/huge.py"
            )
        assert excinfo.value.path == "src/huge.py:1"
        assert excinfo.value.budget == 500

    def test_single_long_line_is_cut(self) -> None:
        text = "x" * 10_000
        chunks = split_into_chunks(text, "text", 300)
        assert len(chunks) > 1
        assert all(c.tokens <= 300 for c in chunks)
        assert "".join(c.content for c in chunks) == text

    def test_imports_are_context_for_later_chunks(self) -> None:
        text = "import os\nimport sys\n\n" + _function("a", 400) + _function("b", 400)
        chunks = split_into_chunks(text, "python", 1500)
        assert len(chunks) == 2
        assert chunks[0].context == ()
        assert chunks[1].context == ("import os", "import sys")
