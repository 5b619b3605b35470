"""Hand out one task at a time and gate completion behind validation.

The dispatcher is the only component that changes task status. Every
operation returns an explicit result object; nothing is signalled through
callbacks.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter

from docket.dag import DAG
from docket.errors import DependencyUnsatisfiedError, InvalidStateError
from docket.models import (
    AllComplete,
    Blocked,
    BlockedTask,
    CompletionSummary,
    Dispatched,
    FileProcessingPayload,
    MilestoneDependency,
    Progress,
    Submission,
    SubmissionResult,
    Task,
    TaskDependency,
    TaskStatus,
)
from docket.planner import MILESTONE_TYPES, dependency_ids
from docket.state_db import TERMINAL, StateDB
from docket.validation import OutputValidator

logger = logging.getLogger(__name__)


def check_dependency(task: Task, tasks: list[Task]) -> None:
    """Raise DependencyUnsatisfiedError unless *task*'s dependency is resolved.

    Completed and skipped tasks both count as resolved.
    """
    dep = task.depends_on
    if isinstance(dep, TaskDependency):
        target = next((t for t in tasks if t.id == dep.task_id), None)
        if target is None:
            raise DependencyUnsatisfiedError(task.id, f"unknown task {dep.task_id}")
        if target.status not in TERMINAL:
            raise DependencyUnsatisfiedError(task.id, dep.task_id)
    elif isinstance(dep, MilestoneDependency):
        types = MILESTONE_TYPES[dep.milestone]
        open_ids = [
            t.id
            for t in tasks
            if t.type in types and t.id != task.id and t.status not in TERMINAL
        ]
        if open_ids:
            raise DependencyUnsatisfiedError(
                task.id, f"{dep.milestone.value} ({len(open_ids)} tasks open)"
            )


class Dispatcher:
    def __init__(self, db: StateDB, validator: OutputValidator) -> None:
        self._db = db
        self._validator = validator
        self._lock = threading.Lock()

    def _require(self, task_id: str) -> Task:
        task = self._db.get_task(task_id)
        if task is None:
            raise InvalidStateError(task_id, "no such task")
        return task

    def status(self) -> Progress:
        return self._db.progress()

    # ── Dispatch ─────────────────────────────────────────────────────

    def next_task(self) -> Dispatched | Blocked | AllComplete:
        """Claim the highest-priority eligible task, or explain why there is none."""
        with self._lock:
            tasks = self._db.list_tasks()
            order = {t.id: i for i, t in enumerate(tasks)}
            graph = DAG()
            for task in tasks:
                graph.add_node(task.id, dependency_ids(task, tasks))
            resolved = {t.id for t in tasks if t.status in TERMINAL}
            ready = {node.id for node in graph.ready(resolved)}

            eligible: list[Task] = []
            waiting: list[BlockedTask] = []
            for task in tasks:
                if task.status is not TaskStatus.PENDING:
                    continue
                if task.id in ready:
                    eligible.append(task)
                    continue
                try:
                    check_dependency(task, tasks)
                except DependencyUnsatisfiedError as exc:
                    waiting.append(BlockedTask(task_id=exc.task_id, waiting_on=exc.waiting_on))

            eligible.sort(key=lambda t: (-t.priority, order[t.id]))
            for candidate in eligible:
                try:
                    claimed = self._db.transition(candidate.id, TaskStatus.IN_PROGRESS)
                except InvalidStateError:
                    logger.debug("Task %s was claimed elsewhere", candidate.id)
                    continue
                logger.info(
                    "Dispatching %s priority=%d attempt=%d",
                    claimed.id,
                    claimed.priority,
                    claimed.attempts,
                )
                unit = None
                if isinstance(claimed.payload, FileProcessingPayload):
                    unit = self._db.get_work_unit(claimed.payload.batch_id)
                return Dispatched(
                    task=claimed,
                    progress=self._db.progress(),
                    next_steps=self._next_steps(claimed),
                    work_unit=unit,
                )

            progress = self._db.progress()
            if tasks and all(t.status in TERMINAL for t in tasks):
                done = [t for t in tasks if t.status is TaskStatus.COMPLETED]
                return AllComplete(
                    summary=CompletionSummary(
                        total=len(tasks),
                        completed=len(done),
                        skipped=len(tasks) - len(done),
                        by_type=dict(Counter(t.type.value for t in done)),
                    ),
                    progress=progress,
                )
            return self._blocked(tasks, waiting, progress)

    def _next_steps(self, task: Task) -> list[str]:
        outputs = ", ".join(e.pattern for e in task.expected_outputs)
        return [
            f"Write {outputs} under {self._validator.output_root}",
            f"Submit the produced paths for {task.id} with implementation notes",
        ]

    def _blocked(
        self, tasks: list[Task], waiting: list[BlockedTask], progress: Progress
    ) -> Blocked:
        if not tasks:
            return Blocked(
                reason="No tasks have been planned",
                waiting=[],
                suggestions=["Plan the project before requesting tasks"],
                progress=progress,
            )
        in_flight = [t.id for t in tasks if t.status is TaskStatus.IN_PROGRESS]
        errored = [t.id for t in tasks if t.status is TaskStatus.ERROR]
        suggestions: list[str] = []
        if in_flight:
            suggestions.append("Submit the in-progress task: " + ", ".join(in_flight))
        if errored:
            suggestions.append(
                "Reset or skip the failed tasks: " + ", ".join(errored)
            )
        reason = (
            f"{len(waiting)} pending tasks are waiting on unfinished dependencies"
            if waiting
            else "No pending tasks are eligible"
        )
        logger.info("Blocked: %s", reason)
        return Blocked(reason=reason, waiting=waiting, suggestions=suggestions, progress=progress)

    # ── Completion ───────────────────────────────────────────────────

    def submit_completion(self, submission: Submission) -> SubmissionResult:
        """Validate a submission and complete or fail the in-progress task.

        Raises InvalidStateError if the task does not exist or is not
        in progress; the task is left untouched in that case.
        """
        with self._lock:
            task = self._require(submission.task_id)
            if task.status is not TaskStatus.IN_PROGRESS:
                raise InvalidStateError(
                    task.id, f"is {task.status.value}, expected in_progress"
                )
            result = self._validator.validate(task, submission)
            self._db.record_validation(result, task.attempts)
            note = submission.notes.strip() or None
            if result.passed:
                updated = self._db.transition(
                    task.id, TaskStatus.COMPLETED, note=note, errors=[]
                )
                recommendation = "Task completed; request the next task"
                logger.info("Completed %s (quality %d%%)", task.id, result.quality_score)
            else:
                updated = self._db.transition(
                    task.id, TaskStatus.ERROR, note=note, errors=result.issues
                )
                recommendation = (
                    "Fix the reported issues, reset the task and submit it again"
                )
                logger.warning(
                    "Validation failed for %s: %s", task.id, "; ".join(result.issues)
                )
            return SubmissionResult(
                accepted=result.passed,
                task=updated,
                validation=result,
                recommendation=recommendation,
                progress=self._db.progress(),
            )

    def reset_task(self, task_id: str) -> Task:
        """Return a task in error to pending so it can be dispatched again."""
        with self._lock:
            task = self._db.transition(task_id, TaskStatus.PENDING, note="reset")
        logger.info("Reset %s to pending", task_id)
        return task

    def skip_task(self, task_id: str, reason: str = "") -> Task:
        """Operator action: mark a pending or failed task as skipped."""
        with self._lock:
            task = self._db.transition(
                task_id, TaskStatus.SKIPPED, note=f"skipped: {reason}" if reason else "skipped"
            )
        logger.info("Skipped %s", task_id)
        return task
