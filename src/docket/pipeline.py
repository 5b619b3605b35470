"""Wire docket's collaborators together and run the planning pass."""

from __future__ import annotations

import logging
from pathlib import Path

from docket.batching import BatchBuilder
from docket.config import DocketConfig, load_config, state_db_path
from docket.dispatch import Dispatcher
from docket.models import PlanResult
from docket.planner import generate_tasks
from docket.prioritizer import scan_project
from docket.registry import ServiceRegistry
from docket.state_db import StateDB
from docket.validation import OutputValidator

logger = logging.getLogger(__name__)


def build_registry(
    project_root: Path, config: DocketConfig | None = None
) -> ServiceRegistry:
    """Register every collaborator for *project_root*; nothing is built yet."""
    registry = ServiceRegistry()
    registry.register("config", lambda: config or load_config(project_root))
    registry.register("state_db", lambda: StateDB(state_db_path(project_root)))
    registry.register(
        "builder",
        lambda cfg: BatchBuilder(project_root, cfg.budget, cfg.trim, cfg.scan.read_workers),
        ["config"],
    )
    registry.register(
        "validator",
        lambda cfg: OutputValidator(project_root / cfg.output_dir, cfg.min_quality_score),
        ["config"],
    )
    registry.register("dispatcher", Dispatcher, ["state_db", "validator"])
    registry.validate()
    return registry


def prepare_project(
    project_root: Path,
    registry: ServiceRegistry,
    priorities: dict[str, int] | None = None,
    fresh: bool = False,
) -> PlanResult:
    """Scan, batch and plan *project_root*, storing the tasks.

    Raises ScanError if the project root cannot be read.
    """
    cfg: DocketConfig = registry.get("config")
    db: StateDB = registry.get("state_db")
    builder: BatchBuilder = registry.get("builder")

    scan = scan_project(
        project_root,
        cfg.scan.exclude,
        cfg.scan.max_depth,
        cfg.scan.read_workers,
        skip_dirs=[cfg.output_dir],
    )
    built = builder.build(scan.files, scan.warnings)
    tasks = generate_tasks(built.units, cfg.tasks, {**cfg.priorities, **(priorities or {})})

    if fresh:
        db.reset()
    added = db.save_plan(project_root, tasks, built.manifest, built.units)
    logger.info("Planned %d tasks (%d new)", len(tasks), added)
    return PlanResult(
        manifest=built.manifest,
        task_count=len(tasks),
        task_ids=[t.id for t in tasks],
    )
