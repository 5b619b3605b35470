"""Exception taxonomy shared across the docket pipeline.

Validation failures are not exceptions: they are reported as a
``ValidationResult`` with ``passed=False``.
"""

from __future__ import annotations


class DocketError(Exception):
    """Base class for all docket errors."""


class ScanError(DocketError):
    """The project root (or a path under it) could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class BudgetExceededError(DocketError):
    """A unit of content cannot be made to fit the configured budget."""

    def __init__(self, path: str, cost: int, budget: int) -> None:
        self.path = path
        self.cost = cost
        self.budget = budget
        super().__init__(
            f"{path}: estimated cost {cost} exceeds budget {budget}"
        )


class InvalidStateError(DocketError):
    """A task operation was requested from a state that does not allow it."""

    def __init__(self, task_id: str, message: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id}: {message}")


class DependencyUnsatisfiedError(DocketError):
    """A task's dependency has not completed yet."""

    def __init__(self, task_id: str, waiting_on: str) -> None:
        self.task_id = task_id
        self.waiting_on = waiting_on
        super().__init__(f"Task {task_id} is waiting on {waiting_on}")


class PlanConflictError(DocketError):
    """A replan would change what stored task ids refer to."""

    def __init__(self, task_ids: list[str]) -> None:
        self.task_ids = task_ids
        shown = ", ".join(task_ids[:5])
        if len(task_ids) > 5:
            shown += f" and {len(task_ids) - 5} more"
        super().__init__(
            f"The project changed since it was planned ({shown}); "
            "plan again with --fresh to discard the stored tasks"
        )
