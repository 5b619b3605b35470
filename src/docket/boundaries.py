"""Split oversized files into chunks at structural boundaries.

A boundary is the first line of a top-level declaration (class, function,
interface, type). Decorators and comment blocks directly above a declaration
belong to it. The file is cut into segments at those lines and segments are
packed greedily into chunks that stay within the target cost, so chunk
contents concatenated in ordinal order reproduce the original text.

A segment that is larger than the target on its own is hard-split line by
line and its chunks are flagged ``unsafe_split``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Final

from docket.errors import BudgetExceededError
from docket.tokens import chars_for_tokens, estimate_tokens

logger = logging.getLogger(__name__)

BOUNDARY_PRIORITIES: Final[dict[str, int]] = {
    "class": 10,
    "interface": 9,
    "function": 8,
    "type": 7,
    "module": 6,
    "comment": 5,
    "other": 3,
}

_JS_BOUNDARIES: Final = [
    (r"^(export\s+)?(default\s+)?(async\s+)?function\b", "function"),
    (r"^(export\s+)?(default\s+)?(abstract\s+)?class\b", "class"),
    (r"^(export\s+)?(const|let|var)\s+\w+\s*=\s*(async\s*)?(\(|function\b|\w+\s*=>)", "function"),
    (r"^module\.exports\b", "module"),
]

_BOUNDARY_PATTERNS: Final[dict[str, list[tuple[re.Pattern[str], str]]]] = {
    "python": [
        (re.compile(r"^(async\s+)?def\s"), "function"),
        (re.compile(r"^class\s"), "class"),
        (re.compile(r"^if __name__ == "), "module"),
        (re.compile(r"^# ?={3,}"), "comment"),
    ],
    "javascript": [(re.compile(p), k) for p, k in _JS_BOUNDARIES],
    "typescript": [
        (re.compile(p), k)
        for p, k in (
            *_JS_BOUNDARIES,
            (r"^(export\s+)?(declare\s+)?interface\b", "interface"),
            (r"^(export\s+)?type\s+\w+", "type"),
            (r"^(export\s+)?(const\s+)?enum\b", "type"),
            (r"^(export\s+)?namespace\b", "module"),
        )
    ],
    "java": [
        (
            re.compile(r"^\s*(public|private|protected)?\s*(static\s+)?(abstract\s+|final\s+)?(class|interface|enum|record)\s"),
            "class",
        ),
        (
            re.compile(r"^\s*(public|private|protected)\s+(static\s+)?(final\s+)?[\w<>\[\], ]+\s+\w+\s*\("),
            "function",
        ),
    ],
    "go": [
        (re.compile(r"^func\s"), "function"),
        (re.compile(r"^type\s+\w+\s+interface\b"), "interface"),
        (re.compile(r"^type\s"), "type"),
    ],
    "rust": [
        (re.compile(r"^(pub(\([\w:]+\))?\s+)?(async\s+)?(unsafe\s+)?fn\s"), "function"),
        (re.compile(r"^(pub(\([\w:]+\))?\s+)?(struct|enum)\s"), "type"),
        (re.compile(r"^(pub(\([\w:]+\))?\s+)?trait\s"), "interface"),
        (re.compile(r"^impl\b"), "class"),
        (re.compile(r"^(pub\s+)?mod\s"), "module"),
    ],
}

_GENERIC_BOUNDARIES: Final = [
    (re.compile(r"^(class|interface|struct)\b"), "class"),
    (re.compile(r"^(def|function|func|fn|sub|procedure)\b"), "function"),
]

# Languages whose declarations live inside a class body may split at
# member level.
_MAX_INDENT: Final[dict[str, int]] = {"java": 4, "csharp": 4, "kotlin": 4}

_AVOID: Final = re.compile(
    r"^\s*(if|else|elif|for|while|switch|case|try|catch|except|finally|return|with)\b"
)

_ATTACHED_PREFIXES: Final = ("@", "#", "//", "/*", "*", "#[")

_IMPORT_PATTERNS: Final[dict[str, re.Pattern[str]]] = {
    "python": re.compile(r"^(import\s|from\s+\S+\s+import\s)"),
    "javascript": re.compile(r"^(import\s|const\s+\w+\s*=\s*require\()"),
    "typescript": re.compile(r"^(import\s|const\s+\w+\s*=\s*require\()"),
    "java": re.compile(r"^(package|import)\s"),
    "go": re.compile(r"^(package|import)\s"),
    "rust": re.compile(r"^(pub\s+)?use\s"),
}


@dataclass(frozen=True)
class Boundary:
    line: int
    kind: str

    @property
    def priority(self) -> int:
        return BOUNDARY_PRIORITIES.get(self.kind, BOUNDARY_PRIORITIES["other"])


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of a file. Lines are 1-based and inclusive."""

    ordinal: int
    total: int
    start_line: int
    end_line: int
    content: str
    tokens: int
    unsafe_split: bool = False
    context: tuple[str, ...] = field(default_factory=tuple)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def find_boundaries(lines: list[str], language: str) -> list[Boundary]:
    """Return declaration boundaries in *lines*, in line order."""
    patterns = _BOUNDARY_PATTERNS.get(language, _GENERIC_BOUNDARIES)
    max_indent = _MAX_INDENT.get(language, 0)
    found: list[Boundary] = []
    for i, line in enumerate(lines):
        if not line.strip() or _indent(line) > max_indent or _AVOID.match(line):
            continue
        for pattern, kind in patterns:
            if pattern.match(line):
                found.append(Boundary(line=_attach_leading(lines, i, max_indent), kind=kind))
                break
    return found


def _attach_leading(lines: list[str], index: int, max_indent: int) -> int:
    """Move a boundary up over decorators and comments that belong to it."""
    start = index
    while start > 0:
        prev = lines[start - 1]
        if not prev.strip() or _indent(prev) > max_indent:
            break
        if not prev.lstrip().startswith(_ATTACHED_PREFIXES):
            break
        start -= 1
    return start


def extract_imports(lines: list[str], language: str) -> list[str]:
    """Import lines from the file header, used as context for later chunks."""
    pattern = _IMPORT_PATTERNS.get(language)
    if pattern is None:
        return []
    return [line.rstrip("\n") for line in lines if pattern.match(line)]


def _segments(lines: list[str], language: str) -> list[tuple[int, int]]:
    starts = sorted({0, *(b.line for b in find_boundaries(lines, language))})
    ends = [*starts[1:], len(lines)]
    return [(s, e) for s, e in zip(starts, ends, strict=True) if s < e]


def _hard_split(
    lines: list[str], start: int, end: int, language: str, target: int
) -> list[tuple[int, int, str]]:
    """Split lines[start:end] into pieces within *target*, ignoring structure."""
    pieces: list[tuple[int, int, str]] = []
    buf: list[str] = []
    buf_start = start
    used = 0
    for i in range(start, end):
        line = lines[i]
        cost = estimate_tokens(line, language)
        if cost > target:
            if buf:
                pieces.append((buf_start, i, "".join(buf)))
                buf, used = [], 0
            step = max(chars_for_tokens(target, language), 1)
            for offset in range(0, len(line), step):
                pieces.append((i, i + 1, line[offset : offset + step]))
            buf_start = i + 1
            continue
        if buf and used + cost > target:
            pieces.append((buf_start, i, "".join(buf)))
            buf, used, buf_start = [], 0, i
        buf.append(line)
        used += cost
    if buf:
        pieces.append((buf_start, end, "".join(buf)))
    return pieces


def split_into_chunks(
    text: str,
    language: str,
    target_tokens: int,
    *,
    allow_unsafe_split: bool = True,
    path: str = "<text>",
) -> list[Chunk]:
    """Partition *text* into chunks of at most *target_tokens* each.

    Raises BudgetExceededError when a single declaration is larger than the
    target and *allow_unsafe_split* is false.
    """
    lines = text.splitlines(keepends=True)
    if not lines:
        return []

    # (start, end, content, unsafe)
    raw: list[tuple[int, int, str, bool]] = []
    current: list[tuple[int, int]] = []
    current_cost = 0

    def close() -> None:
        nonlocal current, current_cost
        if current:
            s, e = current[0][0], current[-1][1]
            raw.append((s, e, "".join(lines[s:e]), False))
        current, current_cost = [], 0

    for start, end in _segments(lines, language):
        cost = estimate_tokens("".join(lines[start:end]), language)
        if cost > target_tokens:
            close()
            if not allow_unsafe_split:
                raise BudgetExceededError(f"{path}:{start + 1}", cost, target_tokens)
            logger.warning(
                "%s: declaration at line %d exceeds chunk target, splitting unsafely",
                path,
                start + 1,
            )
            for s, e, content in _hard_split(lines, start, end, language, target_tokens):
                raw.append((s, e, content, True))
            continue
        if current and current_cost + cost > target_tokens:
            close()
        current.append((start, end))
        current_cost += cost
    close()

    imports = tuple(extract_imports(lines, language))
    total = len(raw)
    return [
        Chunk(
            ordinal=n,
            total=total,
            start_line=s + 1,
            end_line=max(e, s + 1),
            content=content,
            tokens=estimate_tokens(content, language),
            unsafe_split=unsafe,
            context=imports if n > 1 else (),
        )
        for n, (s, e, content, unsafe) in enumerate(raw, start=1)
    ]
