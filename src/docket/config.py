from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from docket.defaults import (
    BUDGET_DEFAULTS,
    OUTPUT_DEFAULTS,
    PRIORITY_DEFAULTS,
    SCAN_DEFAULTS,
    TASK_DEFAULTS,
    TRIM_DEFAULTS,
    VALIDATION_DEFAULTS,
    generate_toml,
)

CONFIG_FILENAME = "docket.toml"
CONFIG_DIR = ".docket"
STATE_FILENAME = "state.db"


@dataclass
class BudgetConfig:
    target_batch_tokens: int
    max_batch_tokens: int
    target_file_tokens: int
    max_file_tokens: int
    max_batches: int

    def __post_init__(self) -> None:
        if not (
            0 < self.target_file_tokens
            <= self.target_batch_tokens
            <= self.max_batch_tokens
        ):
            msg = (
                "budget must satisfy 0 < target_file_tokens <= "
                "target_batch_tokens <= max_batch_tokens"
            )
            raise ValueError(msg)
        if not self.target_file_tokens <= self.max_file_tokens <= self.max_batch_tokens:
            msg = "budget must satisfy target_file_tokens <= max_file_tokens <= max_batch_tokens"
            raise ValueError(msg)
        if self.max_batches < 1:
            msg = "max_batches must be at least 1"
            raise ValueError(msg)


@dataclass
class ScanConfig:
    max_depth: int
    read_workers: int
    exclude: list[str] = field(default_factory=list)


@dataclass
class TrimConfig:
    high_value_fraction: float
    allow_unsafe_split: bool


@dataclass
class TaskConfig:
    include_analysis: bool
    include_summary: bool
    include_module_tasks: bool


@dataclass
class DocketConfig:
    budget: BudgetConfig = field(
        default_factory=lambda: BudgetConfig(**BUDGET_DEFAULTS),
    )
    scan: ScanConfig = field(
        default_factory=lambda: ScanConfig(
            max_depth=SCAN_DEFAULTS["max_depth"],  # type: ignore[arg-type]
            read_workers=SCAN_DEFAULTS["read_workers"],  # type: ignore[arg-type]
            exclude=list(SCAN_DEFAULTS["exclude"]),  # type: ignore[arg-type]
        ),
    )
    trim: TrimConfig = field(default_factory=lambda: TrimConfig(**TRIM_DEFAULTS))  # type: ignore[arg-type]
    min_quality_score: int = VALIDATION_DEFAULTS["min_quality_score"]
    tasks: TaskConfig = field(default_factory=lambda: TaskConfig(**TASK_DEFAULTS))
    output_dir: str = OUTPUT_DEFAULTS["dir"]
    priorities: dict[str, int] = field(default_factory=dict)


def _deep_merge(base: dict, overrides: dict) -> dict:
    merged = dict(base)
    for key, value in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_defaults() -> dict:
    return {
        "budget": dict(BUDGET_DEFAULTS),
        "scan": {**SCAN_DEFAULTS, "exclude": list(SCAN_DEFAULTS["exclude"])},  # type: ignore[arg-type]
        "trim": dict(TRIM_DEFAULTS),
        "validation": dict(VALIDATION_DEFAULTS),
        "tasks": dict(TASK_DEFAULTS),
        "output": dict(OUTPUT_DEFAULTS),
        "priority": dict(PRIORITY_DEFAULTS),
    }


def _config_from_dict(data: dict) -> DocketConfig:
    scan_data = data.get("scan", SCAN_DEFAULTS)
    return DocketConfig(
        budget=BudgetConfig(**data.get("budget", BUDGET_DEFAULTS)),
        scan=ScanConfig(
            max_depth=scan_data["max_depth"],
            read_workers=scan_data["read_workers"],
            exclude=list(scan_data["exclude"]),
        ),
        trim=TrimConfig(**data.get("trim", TRIM_DEFAULTS)),
        min_quality_score=data.get("validation", VALIDATION_DEFAULTS)[
            "min_quality_score"
        ],
        tasks=TaskConfig(**data.get("tasks", TASK_DEFAULTS)),
        output_dir=data.get("output", OUTPUT_DEFAULTS)["dir"],
        priorities={str(k): int(v) for k, v in data.get("priority", {}).items()},
    )


def load_config(project_root: Path) -> DocketConfig:
    """Load config: source defaults merged with .docket/docket.toml overrides."""
    defaults = _build_defaults()
    toml_path = project_root / CONFIG_DIR / CONFIG_FILENAME

    if not toml_path.is_file():
        return _config_from_dict(defaults)

    try:
        raw = toml_path.read_bytes()
        overrides = tomllib.loads(raw.decode())
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        print(f"Warning: failed to parse {toml_path}: {exc}", file=sys.stderr)
        return _config_from_dict(defaults)

    merged = _deep_merge(defaults, overrides)
    return _config_from_dict(merged)


def init_config(project_root: Path) -> Path:
    """Write .docket/docket.toml from source defaults. Backup existing."""
    config_dir = project_root / CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists():
        backup_path = config_path.with_suffix(".toml.bak")
        backup_path.write_text(config_path.read_text())

    config_path.write_text(generate_toml())
    return config_path


def state_db_path(project_root: Path) -> Path:
    return project_root / CONFIG_DIR / STATE_FILENAME
