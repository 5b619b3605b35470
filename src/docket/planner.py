"""Turn work units into task definitions.

Every file entry of every work unit becomes one ``file_processing`` task
with the id ``file_<batch>_<position>``; ids are stable for an unchanged
plan. Follow-on analysis, module-creation and summary tasks are appended
and always name their dependency explicitly.
"""

from __future__ import annotations

from typing import Final

from docket.config import TaskConfig
from docket.dag import DAG, CycleError
from docket.defaults import FOCUS_AREAS
from docket.models import (
    AnalysisPayload,
    Category,
    ExpectedOutput,
    FileEntry,
    FileProcessingPayload,
    Milestone,
    MilestoneDependency,
    ModuleCreationPayload,
    NoDependency,
    SummaryPayload,
    Task,
    TaskDependency,
    TaskInstructions,
    TaskType,
    WorkUnit,
)

# Task types whose completion satisfies each milestone.
MILESTONE_TYPES: Final[dict[Milestone, frozenset[TaskType]]] = {
    Milestone.FILE_PROCESSING_COMPLETE: frozenset({TaskType.FILE_PROCESSING}),
    Milestone.ALL_ANALYSIS_COMPLETE: frozenset(
        {TaskType.FILE_PROCESSING, TaskType.ANALYSIS, TaskType.MODULE_CREATION}
    ),
}

FILE_QUALITY_CHECKS: Final = [
    "Output file exists at the expected path",
    "Explains the purpose of the file",
    "Describes the public interface",
    "Uses markdown headings",
    "Includes at least one usage example",
]

DOCUMENT_QUALITY_CHECKS: Final = [
    "Output file exists at the expected path",
    "Uses markdown headings with at least two levels",
    "References the documented files",
    "Covers every section listed in the focus areas",
]

MODULE_STRUCTURE_ID: Final = "analysis_module_structure"
INTEGRATION_POINTS_ID: Final = "analysis_integration_points"
SUMMARY_ID: Final = "summary_architecture"


def file_output_pattern(entry: FileEntry) -> str:
    if entry.chunk is not None:
        return f"files/{entry.path}.part{entry.chunk.ordinal}.md"
    return f"files/{entry.path}.md"


def estimate_time(entry: FileEntry) -> str:
    if entry.trim is not None or entry.chunk is not None:
        return "5-8 min"
    if entry.importance > 50:
        return "4-6 min"
    return "2-4 min"


def _file_task(unit: WorkUnit, position: int, entry: FileEntry, priority: int) -> Task:
    name = entry.path.rsplit("/", 1)[-1]
    title = f"Process file: {name}"
    if entry.chunk is not None:
        title += f" (part {entry.chunk.ordinal}/{entry.chunk.total})"
    pattern = file_output_pattern(entry)
    return Task(
        id=f"file_{unit.index}_{position}",
        type=TaskType.FILE_PROCESSING,
        title=title,
        description=f"Document {entry.path} ({entry.category.value}, {entry.language}).",
        priority=priority,
        depends_on=NoDependency(),
        expected_outputs=[
            ExpectedOutput(pattern=pattern, description=f"Documentation for {entry.path}")
        ],
        payload=FileProcessingPayload(
            batch_id=unit.batch_id,
            position=position,
            path=entry.path,
            category=entry.category,
            language=entry.language,
            importance=entry.importance,
            trimmed=entry.trim is not None,
            chunk=entry.chunk,
        ),
        instructions=TaskInstructions(
            target_file=entry.path,
            expected_output=pattern,
            focus_areas=list(FOCUS_AREAS[entry.category.value]),
            quality_checks=list(FILE_QUALITY_CHECKS),
        ),
        estimated_time=estimate_time(entry),
    )


def _document_task(
    task_id: str,
    task_type: TaskType,
    title: str,
    description: str,
    priority: int,
    depends_on: MilestoneDependency | TaskDependency,
    output: str,
    payload: AnalysisPayload | ModuleCreationPayload | SummaryPayload,
    focus_areas: list[str],
    estimated_time: str,
) -> Task:
    return Task(
        id=task_id,
        type=task_type,
        title=title,
        description=description,
        priority=priority,
        depends_on=depends_on,
        expected_outputs=[ExpectedOutput(pattern=output, description=title)],
        payload=payload,
        instructions=TaskInstructions(
            expected_output=output,
            focus_areas=focus_areas,
            quality_checks=list(DOCUMENT_QUALITY_CHECKS),
        ),
        estimated_time=estimated_time,
    )


def generate_tasks(
    units: list[WorkUnit],
    options: TaskConfig,
    priorities: dict[str, int] | None = None,
) -> list[Task]:
    """Generate the full, validated task list for *units*."""
    overrides = priorities or {}
    tasks: list[Task] = []
    files_by_category: dict[Category, list[str]] = {}

    for unit in units:
        for position, entry in enumerate(unit.entries, start=1):
            priority = overrides.get(entry.path, entry.importance)
            tasks.append(_file_task(unit, position, entry, priority))
            paths = files_by_category.setdefault(entry.category, [])
            if entry.path not in paths:
                paths.append(entry.path)

    if not tasks:
        return tasks

    after_files = MilestoneDependency(milestone=Milestone.FILE_PROCESSING_COMPLETE)

    if options.include_analysis:
        tasks.append(
            _document_task(
                MODULE_STRUCTURE_ID,
                TaskType.ANALYSIS,
                "Analyze module structure",
                "Describe how the documented files group into modules and layers.",
                70,
                after_files,
                "analysis/module-structure.md",
                AnalysisPayload(focus="module_structure"),
                ["module boundaries", "layering", "shared utilities"],
                "10-15 min",
            )
        )
        tasks.append(
            _document_task(
                INTEGRATION_POINTS_ID,
                TaskType.ANALYSIS,
                "Analyze integration points",
                "Describe how modules call each other and which external systems they use.",
                60,
                TaskDependency(task_id=MODULE_STRUCTURE_ID),
                "analysis/integration-analysis.md",
                AnalysisPayload(focus="integration_points"),
                ["internal calls", "external services", "data flow"],
                "10-15 min",
            )
        )

    if options.include_module_tasks:
        for category in Category:
            paths = files_by_category.get(category)
            if not paths:
                continue
            tasks.append(
                _document_task(
                    f"module_{category.value}",
                    TaskType.MODULE_CREATION,
                    f"Write {category.value} module overview",
                    f"Summarize the {len(paths)} {category.value} files as one module.",
                    65,
                    after_files,
                    f"modules/{category.value}.md",
                    ModuleCreationPayload(category=category, files=paths),
                    list(FOCUS_AREAS[category.value]),
                    "8-12 min",
                )
            )

    if options.include_summary:
        tasks.append(
            _document_task(
                SUMMARY_ID,
                TaskType.SUMMARY,
                "Write system architecture summary",
                "Combine the file, module and analysis documents into one architecture overview.",
                90,
                MilestoneDependency(milestone=Milestone.ALL_ANALYSIS_COMPLETE),
                "summary/system-architecture.md",
                SummaryPayload(
                    sections=["overview", "components", "data flow", "deployment"]
                ),
                ["overall architecture", "key design decisions", "entry points"],
                "15-20 min",
            )
        )

    check_plan(tasks)
    return tasks


def dependency_ids(task: Task, tasks: list[Task]) -> list[str]:
    """Expand a task's dependency reference into concrete task ids."""
    dep = task.depends_on
    if isinstance(dep, TaskDependency):
        return [dep.task_id]
    if isinstance(dep, MilestoneDependency):
        types = MILESTONE_TYPES[dep.milestone]
        return [t.id for t in tasks if t.type in types and t.id != task.id]
    return []


def check_plan(tasks: list[Task]) -> None:
    """Reject duplicate ids, references to unknown tasks and dependency cycles."""
    seen: set[str] = set()
    for task in tasks:
        if task.id in seen:
            msg = f"Duplicate task id {task.id!r}"
            raise ValueError(msg)
        seen.add(task.id)

    dag = DAG()
    for task in tasks:
        dag.add_node(task.id, dependency_ids(task, tasks))
    for task_id, unknown in dag.missing().items():
        msg = f"Task {task_id!r} depends on unknown task {unknown[0]!r}"
        raise ValueError(msg)
    cycle = dag.find_cycle()
    if cycle:
        raise CycleError(cycle)
