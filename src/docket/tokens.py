"""Approximate token cost of text.

The estimate is a character-count proxy scaled by a per-language ratio plus
a safety buffer. It is not exact, but it is deterministic and monotonic in
the length of the text, and every sizing decision in docket goes through
:func:`estimate_tokens` so trimming, chunking and batching agree with each
other.
"""

from __future__ import annotations

import math
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Final

TOKENS_PER_CHAR: Final[dict[str, float]] = {
    "python": 0.25,
    "javascript": 0.28,
    "typescript": 0.32,
    "java": 0.35,
    "go": 0.30,
    "rust": 0.33,
    "json": 0.40,
    "markdown": 0.22,
    "yaml": 0.30,
}

DEFAULT_TOKENS_PER_CHAR: Final = 0.28
SAFETY_BUFFER: Final = 1.1

EXTENSION_LANGUAGES: Final[dict[str, str]] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".c": "c",
    ".cs": "csharp",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
    ".md": "markdown",
    ".txt": "text",
    ".sql": "sql",
    ".sh": "shell",
    ".bat": "batch",
    ".vue": "vue",
    ".svelte": "svelte",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".less": "less",
}


def language_for(path: str) -> str:
    """Map a file path to a language hint, ``"text"`` when unknown."""
    return EXTENSION_LANGUAGES.get(PurePosixPath(path).suffix.lower(), "text")


@lru_cache(maxsize=4096)
def estimate_tokens(text: str, language: str = "text") -> int:
    """Estimate the token cost of *text* written in *language*."""
    if not text:
        return 0
    ratio = TOKENS_PER_CHAR.get(language, DEFAULT_TOKENS_PER_CHAR)
    return math.ceil(len(text) * ratio * SAFETY_BUFFER)


def chars_for_tokens(tokens: int, language: str = "text") -> int:
    """Largest character count whose estimate stays within *tokens*."""
    ratio = TOKENS_PER_CHAR.get(language, DEFAULT_TOKENS_PER_CHAR)
    chars = int(tokens / (ratio * SAFETY_BUFFER))
    while chars > 0 and math.ceil(chars * ratio * SAFETY_BUFFER) > tokens:
        chars -= 1
    return max(chars, 0)
