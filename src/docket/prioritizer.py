"""Scan a project tree and rank its files for documentation.

Files are classified into a :class:`~docket.models.Category` by matching
their name and path against an ordered keyword table, then given an
importance score. The result is sorted by importance (descending) with the
category order and path as tie-breakers, so it is deterministic for an
unchanged tree.
"""

from __future__ import annotations

import concurrent.futures
import fnmatch
import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Final

from docket.errors import ScanError
from docket.models import Category, ScanWarning, SourceFile
from docket.tokens import EXTENSION_LANGUAGES, language_for

logger = logging.getLogger(__name__)

RECOGNIZED_FILENAMES: Final = frozenset({"README", "CHANGELOG", "DOCKERFILE", "MAKEFILE"})

# Checked in order; the first match wins.
CATEGORY_KEYWORDS: Final[list[tuple[Category, tuple[str, ...]]]] = [
    (
        Category.ENTRY,
        (
            "main.js",
            "app.js",
            "index.js",
            "server.js",
            "start.js",
            "main.py",
            "app.py",
            "__main__.py",
            "manage.py",
            "wsgi.py",
            "asgi.py",
            "main.go",
            "main.rs",
            "main.ts",
            "index.ts",
        ),
    ),
    (
        Category.CONFIG,
        (
            "package.json",
            "tsconfig.json",
            "webpack.config.js",
            "pyproject.toml",
            "setup.py",
            "setup.cfg",
            "cargo.toml",
            "go.mod",
            "dockerfile",
            "makefile",
            "config",
            "settings",
        ),
    ),
    (Category.ROUTE, ("router", "routes", "endpoint", "api")),
    (Category.CONTROLLER, ("controller", "ctrl", "handler")),
    (Category.SERVICE, ("service", "provider", "manager", "client")),
    (Category.MODEL, ("model", "schema", "entity", "dto")),
    (Category.COMPONENT, ("component", "widget", "view")),
    (Category.UTILITY, ("util", "helper", "lib", "common", "tools")),
    (Category.TEST, ("test", "spec", "__test__", ".test.", ".spec.")),
]

CATEGORY_ORDER: Final[dict[Category, int]] = {
    category: i for i, (category, _) in enumerate(CATEGORY_KEYWORDS)
} | {Category.OTHER: len(CATEGORY_KEYWORDS)}

# Entry keywords must match the file name exactly.
_NAME_MATCH_CATEGORIES: Final = frozenset({Category.ENTRY})

BASE_IMPORTANCE: Final = 10
ENTRY_BONUS: Final = 50
CONFIG_BONUS: Final = 40
DEPTH_PENALTY: Final = 5
TINY_FILE_BYTES: Final = 100
TINY_FILE_PENALTY: Final = 10
GOOD_SIZE_RANGE: Final = (1000, 50000)
GOOD_SIZE_BONUS: Final = 10
HUGE_FILE_BYTES: Final = 500000
HUGE_FILE_PENALTY: Final = 10


@dataclass
class ScanResult:
    root: Path
    files: list[SourceFile]
    warnings: list[ScanWarning] = field(default_factory=list)

    @property
    def by_category(self) -> dict[Category, list[SourceFile]]:
        groups: dict[Category, list[SourceFile]] = defaultdict(list)
        for f in self.files:
            groups[f.category].append(f)
        return dict(groups)

    @property
    def by_language(self) -> dict[str, list[SourceFile]]:
        groups: dict[str, list[SourceFile]] = defaultdict(list)
        for f in self.files:
            groups[f.language].append(f)
        return dict(groups)

    def statistics(self) -> dict[str, object]:
        return {
            "total_files": len(self.files),
            "total_bytes": sum(f.size for f in self.files),
            "categories": {c.value: len(v) for c, v in self.by_category.items()},
            "languages": {lang: len(v) for lang, v in self.by_language.items()},
            "warnings": len(self.warnings),
        }


def is_excluded(name: str, patterns: list[str]) -> bool:
    return any(name == p or fnmatch.fnmatch(name, p) for p in patterns)


def is_recognized(name: str) -> bool:
    stem, ext = os.path.splitext(name)
    if ext.lower() in EXTENSION_LANGUAGES:
        return True
    return stem.upper() in RECOGNIZED_FILENAMES


def categorize(rel_path: str) -> Category:
    name = rel_path.rsplit("/", 1)[-1].lower()
    lowered = rel_path.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if category in _NAME_MATCH_CATEGORIES:
            matched = name in keywords
        else:
            matched = any(k in lowered for k in keywords)
        if matched:
            return category
    return Category.OTHER


def score_importance(category: Category, depth: int, size: int) -> int:
    score = BASE_IMPORTANCE
    if category is Category.ENTRY:
        score += ENTRY_BONUS
    elif category is Category.CONFIG:
        score += CONFIG_BONUS
    score -= depth * DEPTH_PENALTY
    if size < TINY_FILE_BYTES:
        score -= TINY_FILE_PENALTY
    elif GOOD_SIZE_RANGE[0] < size < GOOD_SIZE_RANGE[1]:
        score += GOOD_SIZE_BONUS
    elif size > HUGE_FILE_BYTES:
        score -= HUGE_FILE_PENALTY
    return max(score, 1)


def _walk(
    root: Path,
    max_depth: int,
    exclude: list[str],
    skip: frozenset[str],
    warnings: list[ScanWarning],
) -> list[tuple[str, int]]:
    """Depth-first walk returning (relative path, depth) of candidate files."""
    found: list[tuple[str, int]] = []
    stack: list[tuple[Path, int]] = [(root, 0)]
    while stack:
        directory, depth = stack.pop()
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as exc:
            if directory == root:
                raise ScanError(str(root), str(exc)) from exc
            rel = directory.relative_to(root).as_posix()
            logger.warning("Skipping unreadable directory %s: %s", rel, exc)
            warnings.append(ScanWarning(path=rel, reason=str(exc)))
            continue
        subdirs: list[Path] = []
        for entry in entries:
            if is_excluded(entry.name, exclude):
                continue
            if entry.is_dir(follow_symlinks=False):
                rel_dir = Path(entry.path).relative_to(root).as_posix()
                if depth + 1 <= max_depth and rel_dir not in skip:
                    subdirs.append(Path(entry.path))
            elif entry.is_file() and is_recognized(entry.name):
                rel = Path(entry.path).relative_to(root).as_posix()
                found.append((rel, depth))
        stack.extend((d, depth + 1) for d in reversed(subdirs))
    return found


def _stat(root: Path, rel: str, depth: int) -> SourceFile:
    st = (root / rel).stat()
    category = categorize(rel)
    return SourceFile(
        path=rel,
        size=st.st_size,
        mtime=st.st_mtime,
        category=category,
        language=language_for(rel),
        importance=score_importance(category, depth, st.st_size),
        depth=depth,
    )


def sort_key(f: SourceFile) -> tuple[int, int, str]:
    return (-f.importance, CATEGORY_ORDER[f.category], f.path)


def scan_project(
    root: Path,
    exclude: list[str],
    max_depth: int = 6,
    workers: int = 4,
    skip_dirs: list[str] | None = None,
) -> ScanResult:
    """Scan *root* and return its recognized files ranked by importance.

    *skip_dirs* are paths relative to *root* that are never entered, such
    as the documentation output directory.

    Raises ScanError only when *root* itself cannot be read; unreadable
    files and subdirectories are recorded as warnings.
    """
    if not root.is_dir():
        raise ScanError(str(root), "not a directory")

    warnings: list[ScanWarning] = []
    skip = frozenset(PurePosixPath(d).as_posix().strip("/") for d in skip_dirs or [])
    candidates = _walk(root, max_depth, exclude, skip, warnings)

    files: list[SourceFile] = []
    with concurrent.futures.ThreadPoolExecutor(max_workers=max(workers, 1)) as executor:
        futures = {
            executor.submit(_stat, root, rel, depth): rel for rel, depth in candidates
        }
        for future in concurrent.futures.as_completed(futures):
            rel = futures[future]
            try:
                files.append(future.result())
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", rel, exc)
                warnings.append(ScanWarning(path=rel, reason=str(exc)))

    files.sort(key=sort_key)
    warnings.sort(key=lambda w: w.path)
    logger.info("Scanned %s: %d files, %d warnings", root, len(files), len(warnings))
    return ScanResult(root=root, files=files, warnings=warnings)
