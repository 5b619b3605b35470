"""Pydantic models defining the data contracts of the docket pipeline.

Scanning produces ``SourceFile`` records, the batch builder packs them into
``WorkUnit`` bundles, and the planner turns those into ``Task`` records that
the dispatcher hands to the external agent one at a time. Every model is
JSON serializable so it can be stored in the state database or printed for
an agent to read.

Task payloads and dependency references are closed tagged unions: the
``kind`` field selects the variant, and each variant only carries the
fields it needs.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Category(StrEnum):
    ENTRY = "entry"
    CONFIG = "config"
    ROUTE = "route"
    CONTROLLER = "controller"
    SERVICE = "service"
    MODEL = "model"
    COMPONENT = "component"
    UTILITY = "utility"
    TEST = "test"
    OTHER = "other"


class SourceFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    size: int
    mtime: float
    category: Category
    language: str
    importance: int
    depth: int = 0


class ScanWarning(BaseModel):
    path: str
    reason: str


# ── Work units ──────────────────────────────────────────────────────


class Strategy(StrEnum):
    COMBINED = "combined"
    SINGLE = "single"
    CHUNKED = "chunked"


class TrimInfo(BaseModel):
    original_tokens: int
    kept_tokens: int
    compression_ratio: float
    removed_lines: int
    strategy: str


class ChunkInfo(BaseModel):
    ordinal: int
    total: int
    start_line: int
    end_line: int
    unsafe_split: bool = False
    context: list[str] = Field(default_factory=list)


class FileEntry(BaseModel):
    path: str
    category: Category
    language: str
    importance: int
    content: str
    tokens: int
    processing_hint: str
    trim: TrimInfo | None = None
    chunk: ChunkInfo | None = None


class WorkUnit(BaseModel):
    batch_id: str
    index: int
    strategy: Strategy
    entries: list[FileEntry]
    tokens: int
    warnings: list[str] = Field(default_factory=list)


class BatchSummary(BaseModel):
    batch_id: str
    strategy: Strategy
    tokens: int
    files: list[str]


class BatchManifest(BaseModel):
    total_files: int
    total_batches: int
    total_tokens: int
    batches: list[BatchSummary]
    deferred: list[str] = Field(default_factory=list)
    skipped: list[ScanWarning] = Field(default_factory=list)


# ── Tasks ───────────────────────────────────────────────────────────


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class TaskType(StrEnum):
    FILE_PROCESSING = "file_processing"
    ANALYSIS = "analysis"
    MODULE_CREATION = "module_creation"
    SUMMARY = "summary"


class Milestone(StrEnum):
    FILE_PROCESSING_COMPLETE = "file_processing_complete"
    ALL_ANALYSIS_COMPLETE = "all_analysis_complete"


class NoDependency(BaseModel):
    kind: Literal["none"] = "none"


class TaskDependency(BaseModel):
    kind: Literal["task"] = "task"
    task_id: str


class MilestoneDependency(BaseModel):
    kind: Literal["milestone"] = "milestone"
    milestone: Milestone


Dependency = Annotated[
    NoDependency | TaskDependency | MilestoneDependency,
    Field(discriminator="kind"),
]


class FileProcessingPayload(BaseModel):
    kind: Literal["file_processing"] = "file_processing"
    batch_id: str
    position: int
    path: str
    category: Category
    language: str
    importance: int
    trimmed: bool = False
    chunk: ChunkInfo | None = None


class AnalysisPayload(BaseModel):
    kind: Literal["analysis"] = "analysis"
    focus: str


class ModuleCreationPayload(BaseModel):
    kind: Literal["module_creation"] = "module_creation"
    category: Category
    files: list[str]


class SummaryPayload(BaseModel):
    kind: Literal["summary"] = "summary"
    sections: list[str]


TaskPayload = Annotated[
    FileProcessingPayload | AnalysisPayload | ModuleCreationPayload | SummaryPayload,
    Field(discriminator="kind"),
]


class ExpectedOutput(BaseModel):
    pattern: str
    description: str = ""


class TaskInstructions(BaseModel):
    target_file: str | None = None
    expected_output: str
    focus_areas: list[str]
    quality_checks: list[str]


class Task(BaseModel):
    id: str
    type: TaskType
    title: str
    description: str
    priority: int
    depends_on: Dependency
    expected_outputs: list[ExpectedOutput]
    payload: TaskPayload
    instructions: TaskInstructions
    estimated_time: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    attempts: int = 0
    notes: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _payload_matches_type(self) -> Task:
        if self.payload.kind != self.type.value:
            msg = f"payload kind {self.payload.kind!r} does not match type {self.type.value!r}"
            raise ValueError(msg)
        return self


# ── Validation ──────────────────────────────────────────────────────


class IssueSeverity(StrEnum):
    BLOCKING = "blocking"
    ADVISORY = "advisory"


class CheckIssue(BaseModel):
    message: str
    severity: IssueSeverity = IssueSeverity.BLOCKING


class CheckOutcome(BaseModel):
    name: str
    passed: bool
    score: int
    max_score: int
    min_score: int
    issues: list[CheckIssue] = Field(default_factory=list)


class ValidationResult(BaseModel):
    task_id: str
    passed: bool
    score: int
    max_score: int
    quality_score: int
    threshold: int
    checks: list[CheckOutcome]
    suggestions: list[str] = Field(default_factory=list)

    @property
    def issues(self) -> list[str]:
        return [issue.message for check in self.checks for issue in check.issues]


# ── Agent exchange ──────────────────────────────────────────────────


class Submission(BaseModel):
    task_id: str
    outputs: list[str]
    notes: str = ""


class Progress(BaseModel):
    total: int
    completed: int
    skipped: int
    errored: int
    in_progress: int
    pending: int
    remaining: int
    percentage: int
    phase: str
    time_remaining: str
    current_task: str | None = None


class BlockedTask(BaseModel):
    task_id: str
    waiting_on: str


class Dispatched(BaseModel):
    outcome: Literal["dispatched"] = "dispatched"
    task: Task
    progress: Progress
    next_steps: list[str]
    work_unit: WorkUnit | None = None


class Blocked(BaseModel):
    outcome: Literal["blocked"] = "blocked"
    reason: str
    waiting: list[BlockedTask]
    suggestions: list[str]
    progress: Progress


class CompletionSummary(BaseModel):
    total: int
    completed: int
    skipped: int
    by_type: dict[str, int]


class AllComplete(BaseModel):
    outcome: Literal["complete"] = "complete"
    summary: CompletionSummary
    progress: Progress


NextTaskResult = Annotated[
    Dispatched | Blocked | AllComplete,
    Field(discriminator="outcome"),
]


class SubmissionResult(BaseModel):
    accepted: bool
    task: Task
    validation: ValidationResult
    recommendation: str
    progress: Progress


class PlanResult(BaseModel):
    manifest: BatchManifest
    task_count: int
    task_ids: list[str]
