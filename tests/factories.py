"""Builders for tasks and output documents shared by the test modules."""

from __future__ import annotations

from pathlib import Path

from docket.models import (
    AnalysisPayload,
    Category,
    Dependency,
    ExpectedOutput,
    FileProcessingPayload,
    NoDependency,
    Task,
    TaskInstructions,
    TaskType,
)

GOOD_DOC = (
    "# Module overview\n\n"
    "This document describes what the module does, how it is wired into the\n"
    "application, and which functions other modules are expected to call.\n\n"
    "## Public interface\n\n"
    "The module exposes a single `run` function that accepts a configuration\n"
    "object and returns an exit code. Errors are reported through exceptions\n"
    "and logged before they propagate.\n\n"
    "## Usage\n\n"
    "```python\n"
    "from app import run\n\n"
    "run(config)\n"
    "```\n\n"
    "## Notes\n\n"
    "The function is safe to call more than once and keeps no global state.\n"
    "Configuration is read once at startup and passed down explicitly.\n"
)


def make_file_task(
    task_id: str = "file_1_1",
    path: str = "src/app.py",
    priority: int = 50,
    depends_on: Dependency | None = None,
) -> Task:
    pattern = f"files/{path}.md"
    return Task(
        id=task_id,
        type=TaskType.FILE_PROCESSING,
        title=f"Process file: {path}",
        description=f"Document {path}.",
        priority=priority,
        depends_on=depends_on or NoDependency(),
        expected_outputs=[ExpectedOutput(pattern=pattern)],
        payload=FileProcessingPayload(
            batch_id="batch_001",
            position=1,
            path=path,
            category=Category.OTHER,
            language="python",
            importance=priority,
        ),
        instructions=TaskInstructions(
            target_file=path,
            expected_output=pattern,
            focus_areas=["purpose"],
            quality_checks=["exists"],
        ),
        estimated_time="2-4 min",
    )


def make_analysis_task(
    task_id: str,
    depends_on: Dependency,
    priority: int = 70,
    output: str = "analysis/module-structure.md",
) -> Task:
    return Task(
        id=task_id,
        type=TaskType.ANALYSIS,
        title="Analyze",
        description="Analyze the modules.",
        priority=priority,
        depends_on=depends_on,
        expected_outputs=[ExpectedOutput(pattern=output)],
        payload=AnalysisPayload(focus="module_structure"),
        instructions=TaskInstructions(
            expected_output=output, focus_areas=["modules"], quality_checks=["exists"]
        ),
        estimated_time="10-15 min",
    )


def write_doc(root: Path, rel: str, content: str = GOOD_DOC) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path

