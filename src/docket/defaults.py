"""Compiled-in default configuration values for docket.

This module is the single source of truth for all default settings.
Other modules should import from here rather than duplicating values.
"""

from __future__ import annotations

from typing import Final

BUDGET_DEFAULTS: Final[dict[str, int]] = {
    "target_batch_tokens": 18000,
    "max_batch_tokens": 22000,
    "target_file_tokens": 15000,
    "max_file_tokens": 20000,
    "max_batches": 200,
}

SCAN_DEFAULTS: Final[dict[str, int | list[str]]] = {
    "max_depth": 6,
    "read_workers": 4,
    "exclude": [
        ".git",
        ".svn",
        "node_modules",
        "__pycache__",
        ".pytest_cache",
        "venv",
        ".venv",
        "build",
        "dist",
        "target",
        "out",
        ".DS_Store",
        ".idea",
        ".vscode",
        "*.log",
        "*.tmp",
        "coverage",
        ".nyc_output",
        "logs",
        ".docket",
    ],
}

TRIM_DEFAULTS: Final[dict[str, float | bool]] = {
    "high_value_fraction": 0.8,
    "allow_unsafe_split": True,
}

VALIDATION_DEFAULTS: Final[dict[str, int]] = {
    "min_quality_score": 70,
}

TASK_DEFAULTS: Final[dict[str, bool]] = {
    "include_analysis": True,
    "include_summary": True,
    "include_module_tasks": False,
}

OUTPUT_DEFAULTS: Final[dict[str, str]] = {
    "dir": "docs/docket",
}

PRIORITY_DEFAULTS: Final[dict[str, int]] = {}


_BARE_KEY_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
)


def _quote_key(key: str) -> str:
    if key and all(c in _BARE_KEY_CHARS for c in key):
        return key
    return f'"{key}"'


def _format_toml_value(value: object) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_format_toml_value(v) for v in value) + "]"
    msg = f"Unsupported type: {type(value)}"
    raise TypeError(msg)


def _section_to_toml(name: str, data: dict[str, object]) -> str:
    lines = [f"[{name}]"]
    for key, value in data.items():
        lines.append(f"{_quote_key(key)} = {_format_toml_value(value)}")
    return "\n".join(lines)


def generate_toml() -> str:
    """Generate a TOML configuration string from compiled-in defaults."""
    sections = [
        _section_to_toml("budget", BUDGET_DEFAULTS),
        _section_to_toml("scan", SCAN_DEFAULTS),
        _section_to_toml("trim", TRIM_DEFAULTS),
        _section_to_toml("validation", VALIDATION_DEFAULTS),
        _section_to_toml("tasks", TASK_DEFAULTS),
        _section_to_toml("output", OUTPUT_DEFAULTS),
        _section_to_toml("priority", PRIORITY_DEFAULTS),
    ]
    return "\n\n".join(sections) + "\n"


FOCUS_AREAS: Final[dict[str, list[str]]] = {
    "entry": ["startup sequence", "configuration loading", "top-level wiring"],
    "config": ["settings and their defaults", "environment variables", "build scripts"],
    "route": ["endpoints and methods", "request parameters", "middleware"],
    "controller": ["request handling", "input validation", "responses and errors"],
    "service": ["business logic", "external integrations", "error handling"],
    "model": ["fields and types", "relationships", "validation rules"],
    "component": ["inputs and outputs", "state", "rendering"],
    "utility": ["public helpers", "usage examples", "edge cases"],
    "test": ["covered behaviour", "fixtures", "gaps in coverage"],
    "other": ["purpose", "public interface", "dependencies"],
}
