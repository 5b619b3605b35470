"""Pack prioritized source files into token-bounded work units.

Each file is assigned one of three strategies by its estimated cost:

* small files (below ``target_file_tokens``) are packed together into
  *combined* batches up to ``target_batch_tokens``;
* medium files (up to ``max_file_tokens``) get a *single* batch of their
  own, trimmed when they exceed ``target_batch_tokens``;
* large files are *chunked* at structural boundaries, one batch per chunk.

No work unit ever costs more than ``max_batch_tokens``.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from pathlib import Path

from docket.boundaries import split_into_chunks
from docket.config import BudgetConfig, TrimConfig
from docket.defaults import FOCUS_AREAS
from docket.errors import BudgetExceededError
from docket.models import (
    BatchManifest,
    BatchSummary,
    ChunkInfo,
    FileEntry,
    ScanWarning,
    SourceFile,
    Strategy,
    WorkUnit,
)
from docket.tokens import estimate_tokens
from docket.trimmer import trim_content

logger = logging.getLogger(__name__)


def processing_hint(f: SourceFile) -> str:
    areas = FOCUS_AREAS.get(f.category.value, FOCUS_AREAS["other"])
    return f"Document this {f.category.value} file ({f.language}); focus on " + ", ".join(areas)


@dataclass
class BuildResult:
    units: list[WorkUnit]
    manifest: BatchManifest


@dataclass
class _Pending:
    entries: list[FileEntry] = field(default_factory=list)
    tokens: int = 0


class BatchBuilder:
    def __init__(
        self,
        root: Path,
        budget: BudgetConfig,
        trim: TrimConfig,
        read_workers: int = 4,
    ) -> None:
        self._root = root
        self._budget = budget
        self._trim = trim
        self._read_workers = max(read_workers, 1)

    # ── Reading ──────────────────────────────────────────────────────

    def _read(self, f: SourceFile) -> str:
        return (self._root / f.path).read_text(encoding="utf-8")

    def read_all(
        self, files: list[SourceFile]
    ) -> tuple[dict[str, str], list[ScanWarning]]:
        """Read every file concurrently; unreadable files become warnings."""
        contents: dict[str, str] = {}
        warnings: list[ScanWarning] = []
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self._read_workers
        ) as executor:
            futures = {executor.submit(self._read, f): f.path for f in files}
            for future in concurrent.futures.as_completed(futures):
                path = futures[future]
                try:
                    contents[path] = future.result()
                except (OSError, UnicodeDecodeError) as exc:
                    logger.warning("Skipping unreadable file %s: %s", path, exc)
                    warnings.append(ScanWarning(path=path, reason=str(exc)))
        warnings.sort(key=lambda w: w.path)
        return contents, warnings

    # ── Entries ──────────────────────────────────────────────────────

    def _entry(self, f: SourceFile, content: str, **extra: object) -> FileEntry:
        return FileEntry(
            path=f.path,
            category=f.category,
            language=f.language,
            importance=f.importance,
            content=content,
            tokens=estimate_tokens(content, f.language),
            processing_hint=processing_hint(f),
            **extra,  # type: ignore[arg-type]
        )

    def _single(self, f: SourceFile, text: str, cost: int) -> tuple[FileEntry, list[str]]:
        warnings: list[str] = []
        if cost <= self._budget.target_batch_tokens:
            return self._entry(f, text), warnings
        budget = self._budget.target_batch_tokens
        result = trim_content(text, f.language, budget, self._trim.high_value_fraction)
        # The trim marker may push a unit sitting at the maximum over it.
        overshoot = estimate_tokens(result.content, f.language) - self._budget.max_batch_tokens
        if overshoot > 0:
            result = trim_content(
                text, f.language, budget - overshoot - 1, self._trim.high_value_fraction
            )
        if result.info is not None:
            logger.info(
                "Trimmed %s from %d to %d tokens",
                f.path,
                result.info.original_tokens,
                result.info.kept_tokens,
            )
            warnings.append(
                f"{f.path} trimmed to {result.info.kept_tokens} of "
                f"{result.info.original_tokens} tokens"
            )
        return self._entry(f, result.content, trim=result.info), warnings

    def _chunked(self, f: SourceFile, text: str) -> list[FileEntry]:
        chunks = split_into_chunks(
            text,
            f.language,
            self._budget.target_batch_tokens,
            allow_unsafe_split=self._trim.allow_unsafe_split,
            path=f.path,
        )
        entries = []
        for chunk in chunks:
            context = list(chunk.context)
            context_cost = estimate_tokens("\n".join(context), f.language)
            if chunk.tokens + context_cost > self._budget.max_batch_tokens:
                context = []
            entries.append(
                self._entry(
                    f,
                    chunk.content,
                    chunk=ChunkInfo(
                        ordinal=chunk.ordinal,
                        total=chunk.total,
                        start_line=chunk.start_line,
                        end_line=chunk.end_line,
                        unsafe_split=chunk.unsafe_split,
                        context=context,
                    ),
                )
            )
        return entries

    # ── Assembly ─────────────────────────────────────────────────────

    def build(
        self,
        files: list[SourceFile],
        scan_warnings: list[ScanWarning] | None = None,
    ) -> BuildResult:
        """Build work units for *files*, which must already be in priority order."""
        contents, read_warnings = self.read_all(files)
        skipped = sorted([*(scan_warnings or []), *read_warnings], key=lambda w: w.path)

        units: list[WorkUnit] = []
        deferred: list[str] = []
        pending = _Pending()

        def room(n: int = 1) -> bool:
            return len(units) + n <= self._budget.max_batches

        def emit(strategy: Strategy, entries: list[FileEntry], warnings: list[str]) -> None:
            index = len(units) + 1
            tokens = sum(
                e.tokens
                + (estimate_tokens("\n".join(e.chunk.context), e.language) if e.chunk else 0)
                for e in entries
            )
            units.append(
                WorkUnit(
                    batch_id=f"batch_{index:03d}",
                    index=index,
                    strategy=strategy,
                    entries=entries,
                    tokens=tokens,
                    warnings=warnings,
                )
            )

        def flush() -> None:
            nonlocal pending
            if pending.entries:
                if room():
                    emit(Strategy.COMBINED, pending.entries, [])
                else:
                    deferred.extend(e.path for e in pending.entries)
            pending = _Pending()

        for f in files:
            text = contents.get(f.path)
            if text is None:
                continue
            cost = estimate_tokens(text, f.language)

            if cost < self._budget.target_file_tokens:
                if pending.entries and pending.tokens + cost > self._budget.target_batch_tokens:
                    flush()
                pending.entries.append(self._entry(f, text))
                pending.tokens += cost
                continue

            if cost <= self._budget.max_file_tokens:
                if not room():
                    deferred.append(f.path)
                    continue
                entry, warnings = self._single(f, text, cost)
                emit(Strategy.SINGLE, [entry], warnings)
                continue

            try:
                entries = self._chunked(f, text)
            except BudgetExceededError as exc:
                logger.warning("%s; falling back to trimming", exc)
                if not room():
                    deferred.append(f.path)
                    continue
                entry, warnings = self._single(f, text, cost)
                emit(Strategy.SINGLE, [entry], [str(exc), *warnings])
                continue
            if not room(len(entries)):
                deferred.append(f.path)
                continue
            for entry in entries:
                unsafe = entry.chunk is not None and entry.chunk.unsafe_split
                warnings = ["unsafe split"] if unsafe else []
                emit(Strategy.CHUNKED, [entry], warnings)
        flush()

        if deferred:
            logger.warning(
                "Batch limit %d reached; deferred %d files",
                self._budget.max_batches,
                len(deferred),
            )

        manifest = BatchManifest(
            total_files=len(files),
            total_batches=len(units),
            total_tokens=sum(u.tokens for u in units),
            batches=[
                BatchSummary(
                    batch_id=u.batch_id,
                    strategy=u.strategy,
                    tokens=u.tokens,
                    files=[e.path for e in u.entries],
                )
                for u in units
            ],
            deferred=deferred,
            skipped=skipped,
        )
        logger.info(
            "Built %d batches from %d files (%d deferred, %d skipped)",
            len(units),
            len(files),
            len(deferred),
            len(skipped),
        )
        return BuildResult(units=units, manifest=manifest)
