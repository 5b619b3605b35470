"""Reduce a file to a token budget while keeping its structural skeleton.

Trimming runs in two passes over the lines of a file:

1. keep lines matching the language's high-value patterns (imports,
   exports, declarations, docstrings) until ``high_value_fraction`` of
   the budget is used;
2. fill the rest of the budget with the remaining non-blank,
   non-comment lines in file order.

Kept lines are emitted in their original order followed by a trim marker.
Trimming is idempotent: content that already carries a marker and whose
body fits the budget is returned unchanged.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Final

from docket.models import TrimInfo
from docket.tokens import estimate_tokens

logger = logging.getLogger(__name__)

_JS_PATTERNS: Final = [
    r"^\s*import\s",
    r"^\s*export\s",
    r"^\s*/\*\*",
    r"^\s*class\s",
    r"^\s*(async\s+)?function\s",
    r"^\s*const\s+\w+\s*=\s*(async\s*)?\(.*\)\s*=>",
    r"^\s*(module\.)?exports",
    r"//\s*(TODO|FIXME|NOTE)",
]

HIGH_VALUE_PATTERNS: Final[dict[str, list[re.Pattern[str]]]] = {
    "python": [
        re.compile(p)
        for p in (
            r"^\s*import\s",
            r"^\s*from\s+\S+\s+import\s",
            r"^\s*class\s",
            r"^\s*(async\s+)?def\s",
            r'^\s*[rbuRBU]?("""|\'\'\')',
            r"^\s*@\w+",
            r"^if __name__ == [\"']__main__[\"']",
        )
    ],
    "javascript": [re.compile(p) for p in _JS_PATTERNS],
    "typescript": [
        re.compile(p)
        for p in (
            *_JS_PATTERNS,
            r"^\s*(export\s+)?interface\s",
            r"^\s*(export\s+)?type\s+\w+",
            r"^\s*(export\s+)?enum\s",
            r"^\s*(export\s+)?const\s+\w+\s*:\s*\w+",
        )
    ],
    "java": [
        re.compile(p)
        for p in (
            r"^\s*package\s",
            r"^\s*import\s",
            r"^\s*(public|private|protected)?\s*(abstract\s+|final\s+)?(class|interface|enum)\s",
            r"^\s*(public|private|protected)\s+[\w<>\[\], ]+\s+\w+\s*\(",
            r"^\s*@\w+",
        )
    ],
    "go": [
        re.compile(p)
        for p in (r"^package\s", r"^import\s", r"^func\s", r"^type\s", r"^\s*\"[\w./-]+\"$")
    ],
    "rust": [
        re.compile(p)
        for p in (
            r"^\s*use\s",
            r"^\s*(pub\s+)?(async\s+)?fn\s",
            r"^\s*(pub\s+)?(struct|enum|trait|mod)\s",
            r"^\s*impl\b",
            r"^\s*#\[",
        )
    ],
    "markdown": [
        re.compile(p)
        for p in (r"^#{1,6}\s", r"^\s*[-*+]\s", r"^\s*\d+\.\s", r"^```", r"^\|")
    ],
    "yaml": [re.compile(p) for p in (r"^[\w-]+:", r"^\s*-\s")],
}

_GENERIC_PATTERNS: Final = [
    re.compile(p)
    for p in (
        r"^\s*(import|from|include|require|use)\b",
        r"^\s*(class|def|function|func|fn|interface|struct|module)\b",
    )
]

_COMMENT_PREFIXES: Final[dict[str, tuple[str, ...]]] = {
    "python": ("#",),
    "yaml": ("#",),
    "toml": ("#",),
    "shell": ("#",),
    "ruby": ("#",),
    "markdown": ("<!--",),
    "html": ("<!--",),
    "xml": ("<!--",),
    "sql": ("--",),
}
_DEFAULT_COMMENT_PREFIXES: Final = ("//", "/*", "*")

_MARKER_TEMPLATES: Final[dict[str, str]] = {
    "python": "# ... ({n} lines trimmed)",
    "yaml": "# ... ({n} lines trimmed)",
    "toml": "# ... ({n} lines trimmed)",
    "shell": "# ... ({n} lines trimmed)",
    "ruby": "# ... ({n} lines trimmed)",
    "markdown": "<!-- ... ({n} lines trimmed) -->",
    "html": "<!-- ... ({n} lines trimmed) -->",
    "xml": "<!-- ... ({n} lines trimmed) -->",
    "sql": "-- ... ({n} lines trimmed)",
    "text": "... ({n} lines trimmed)",
}
_DEFAULT_MARKER: Final = "// ... ({n} lines trimmed)"
_MARKER_RE: Final = re.compile(r"\.\.\. \(\d+ lines trimmed\)")

STRATEGY_DESCRIPTIONS: Final[dict[str, str]] = {
    "javascript": "Kept imports, exports and function definitions",
    "typescript": "Kept imports, exports, type definitions and function signatures",
    "python": "Kept imports, class and function definitions and docstrings",
    "json": "Kept important configuration fields",
    "markdown": "Kept headings, lists and code examples",
    "yaml": "Kept top-level keys and list items",
}
_DEFAULT_STRATEGY: Final = "Generic smart trim of low-value lines"

IMPORTANT_JSON_KEYS: Final = (
    "name",
    "version",
    "description",
    "main",
    "scripts",
    "dependencies",
    "devDependencies",
)


@dataclass(frozen=True)
class TrimResult:
    content: str
    trimmed: bool
    info: TrimInfo | None = None


def trim_marker(language: str, removed: int) -> str:
    return _MARKER_TEMPLATES.get(language, _DEFAULT_MARKER).format(n=removed)


def is_high_value(line: str, language: str) -> bool:
    patterns = HIGH_VALUE_PATTERNS.get(language, _GENERIC_PATTERNS)
    return any(p.search(line) for p in patterns)


def _is_trivial(line: str, language: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return True
    prefixes = _COMMENT_PREFIXES.get(language, _DEFAULT_COMMENT_PREFIXES)
    return stripped.startswith(prefixes)


def _line_cost(line: str, language: str) -> int:
    return estimate_tokens(line + "\n", language)


def _already_trimmed(text: str, language: str, budget: int) -> bool:
    body, _, last = text.rstrip("\n").rpartition("\n")
    if not _MARKER_RE.search(last):
        return False
    return estimate_tokens(body, language) <= budget


def _trim_json(text: str, budget: int) -> str | None:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    kept = {k: data[k] for k in IMPORTANT_JSON_KEYS if k in data}
    if not kept or len(kept) == len(data):
        return None
    kept["..."] = f"({len(data) - len(kept)} keys trimmed)"
    reduced = json.dumps(kept, indent=2)
    if estimate_tokens(reduced, "json") > budget:
        return None
    return reduced


def trim_content(
    text: str,
    language: str,
    budget: int,
    high_value_fraction: float = 0.8,
) -> TrimResult:
    """Trim *text* so its estimated cost fits *budget* tokens."""
    if budget <= 0:
        msg = f"budget must be positive, got {budget}"
        raise ValueError(msg)

    original_tokens = estimate_tokens(text, language)
    if original_tokens <= budget or _already_trimmed(text, language, budget):
        return TrimResult(content=text, trimmed=False)

    if language == "json":
        reduced = _trim_json(text, budget)
        if reduced is not None:
            kept_tokens = estimate_tokens(reduced, language)
            return TrimResult(
                content=reduced,
                trimmed=True,
                info=TrimInfo(
                    original_tokens=original_tokens,
                    kept_tokens=kept_tokens,
                    compression_ratio=round(kept_tokens / original_tokens, 3),
                    removed_lines=text.count("\n") - reduced.count("\n"),
                    strategy=STRATEGY_DESCRIPTIONS["json"],
                ),
            )

    lines = text.splitlines()
    kept: set[int] = set()
    used = 0

    high_value_budget = int(budget * high_value_fraction)
    for i, line in enumerate(lines):
        if not line.strip() or not is_high_value(line, language):
            continue
        cost = _line_cost(line, language)
        if used + cost > high_value_budget:
            continue
        kept.add(i)
        used += cost

    for i, line in enumerate(lines):
        if i in kept or _is_trivial(line, language):
            continue
        cost = _line_cost(line, language)
        if used + cost > budget:
            break
        kept.add(i)
        used += cost

    removed = len(lines) - len(kept)
    body = [lines[i] for i in sorted(kept)]
    content = "\n".join([*body, trim_marker(language, removed)])
    kept_tokens = estimate_tokens(content, language)
    strategy = STRATEGY_DESCRIPTIONS.get(language, _DEFAULT_STRATEGY)
    logger.debug(
        "Trimmed %d of %d lines (%d -> %d tokens)",
        removed,
        len(lines),
        original_tokens,
        kept_tokens,
    )
    return TrimResult(
        content=content,
        trimmed=True,
        info=TrimInfo(
            original_tokens=original_tokens,
            kept_tokens=kept_tokens,
            compression_ratio=round(kept_tokens / original_tokens, 3),
            removed_lines=removed,
            strategy=strategy,
        ),
    )
