"""Quality gate for submitted task outputs.

The validator only reads files that already exist under the output
directory, so running it twice on the same submission gives the same
result. A submission passes when no check reports a blocking issue and the
aggregate score reaches ``min_quality_score`` percent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Final

from docket.models import (
    CheckIssue,
    CheckOutcome,
    FileProcessingPayload,
    IssueSeverity,
    Submission,
    Task,
    TaskType,
    ValidationResult,
)
from docket.tokens import language_for

logger = logging.getLogger(__name__)

# (max score, min score) per check and task type.
QUALITY_STANDARDS: Final[dict[TaskType, dict[str, tuple[int, int]]]] = {
    TaskType.FILE_PROCESSING: {"completeness": (25, 20), "documentation": (20, 15)},
    TaskType.ANALYSIS: {"completeness": (25, 20), "documentation": (20, 18)},
    TaskType.SUMMARY: {"completeness": (25, 20), "documentation": (20, 18)},
    TaskType.MODULE_CREATION: {
        "completeness": (25, 22),
        "documentation": (20, 18),
        "standards_compliance": (10, 8),
    },
}
DEFAULT_STANDARDS: Final = {"completeness": (25, 20), "documentation": (20, 15)}
CODE_STANDARDS: Final = {"code_quality": (30, 25), "error_handling": (10, 7)}

DOC_SUFFIXES: Final = frozenset({".md", ".markdown", ".rst", ".txt", ".adoc"})
NON_CODE_LANGUAGES: Final = frozenset(
    {"text", "markdown", "json", "yaml", "toml", "xml", "html", "css", "scss", "less"}
)
MIN_OUTPUT_BYTES: Final = 50
COMPREHENSIVE_CHARS: Final = 500
MAX_LINE_LENGTH: Final = 120

_H1 = re.compile(r"^#\s+\S", re.MULTILINE)
_H2 = re.compile(r"^##\s+\S", re.MULTILINE)
_COMMENT = re.compile(r"^\s*(#|//|/\*|\*|\"\"\"|''')", re.MULTILINE)
_ERROR_HANDLING = re.compile(r"\b(try|catch|throw|raise|except|Error|error|exception)\b")
_OUTPUT_NAME = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


@dataclass
class _Check:
    name: str
    max_score: int
    min_score: int
    score: int = 0
    issues: list[CheckIssue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def blocking(self, message: str, suggestion: str) -> None:
        self.issues.append(CheckIssue(message=message, severity=IssueSeverity.BLOCKING))
        self.suggestions.append(suggestion)

    def advisory(self, message: str, suggestion: str) -> None:
        self.issues.append(CheckIssue(message=message, severity=IssueSeverity.ADVISORY))
        self.suggestions.append(suggestion)

    def outcome(self) -> CheckOutcome:
        score = min(self.score, self.max_score)
        has_blocking = any(i.severity is IssueSeverity.BLOCKING for i in self.issues)
        return CheckOutcome(
            name=self.name,
            passed=not has_blocking and score >= self.min_score,
            score=score,
            max_score=self.max_score,
            min_score=self.min_score,
            issues=self.issues,
        )


@dataclass
class _Output:
    claimed: str
    relative: str | None
    path: Path | None
    text: str | None = None
    read_error: str | None = None

    @property
    def exists(self) -> bool:
        return self.path is not None and self.path.is_file()

    def load(self) -> None:
        """Read the file once; a failed read is kept as *read_error*."""
        if self.path is None or not self.exists:
            return
        try:
            self.text = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            self.read_error = exc.strerror or str(exc)


class OutputValidator:
    def __init__(self, output_root: Path, min_quality_score: int = 70) -> None:
        self._root = output_root
        self._threshold = min_quality_score

    @property
    def output_root(self) -> Path:
        return self._root

    def _resolve(self, claimed: str) -> _Output:
        candidate = Path(claimed)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        resolved = candidate.resolve()
        try:
            relative = resolved.relative_to(self._root.resolve()).as_posix()
        except ValueError:
            return _Output(claimed=claimed, relative=None, path=None)
        return _Output(claimed=claimed, relative=relative, path=resolved)

    # ── Checks ───────────────────────────────────────────────────────

    def _completeness(
        self, check: _Check, task: Task, submission: Submission, outputs: list[_Output]
    ) -> None:
        all_present = True
        for out in outputs:
            if out.relative is None:
                all_present = False
                check.blocking(
                    f"Output path is outside the output directory: {out.claimed}",
                    f"Write outputs under {self._root} and submit paths relative to it",
                )
            elif not out.exists:
                all_present = False
                check.blocking(
                    f"Missing output file: {out.claimed}",
                    f"Create {out.relative} under {self._root} before resubmitting",
                )
            elif out.read_error is not None:
                all_present = False
                check.blocking(
                    f"Cannot read output file {out.claimed}: {out.read_error}",
                    f"Make {out.relative} readable before resubmitting",
                )

        # Expected patterns are relative paths built from source paths, so
        # characters such as "[" or "*" are compared literally.
        claimed = {o.relative for o in outputs if o.relative is not None}
        for expected in task.expected_outputs:
            if PurePosixPath(expected.pattern).as_posix() not in claimed:
                all_present = False
                check.blocking(
                    f"No output matches expected pattern {expected.pattern!r}",
                    f"Name the output {expected.pattern!r} relative to {self._root}",
                )

        if all_present:
            check.score += 15
        if submission.notes.strip():
            check.score += 10
        else:
            check.advisory(
                "No implementation notes provided",
                "Summarize what was documented in the submission notes",
            )

        payload = task.payload
        chunk = payload.chunk if isinstance(payload, FileProcessingPayload) else None
        if chunk is not None and chunk.unsafe_split:
            check.advisory(
                f"Source part {chunk.ordinal} was cut without a structural boundary",
                "Check that the document does not describe half of a declaration",
            )

    def _documentation(self, check: _Check, outputs: list[_Output]) -> None:
        docs = [
            o for o in outputs
            if o.text is not None and PurePosixPath(o.claimed).suffix.lower() in DOC_SUFFIXES
        ]
        if not docs:
            check.blocking(
                "No documentation file found among the outputs",
                "Submit at least one markdown document",
            )
            return

        check.score += 10
        contents = []
        for doc in docs:
            text = doc.text or ""
            if len(text.strip()) < MIN_OUTPUT_BYTES:
                check.blocking(
                    f"Output file is trivially short: {doc.claimed}",
                    f"Write real content into {doc.claimed}",
                )
            contents.append(text)
        combined = "\n".join(contents)

        if _H1.search(combined) and _H2.search(combined):
            check.score += 3
        elif _H1.search(combined) or _H2.search(combined):
            check.advisory(
                "Document has only one heading level",
                "Structure the document with '#' and '##' headings",
            )
        else:
            check.advisory(
                "Document has no markdown headings",
                "Add '#' and '##' headings to structure the document",
            )
        if "```" in combined:
            check.score += 4
        else:
            check.advisory("Document has no code examples", "Add a fenced usage example")
        if len(combined) > COMPREHENSIVE_CHARS:
            check.score += 3
        else:
            check.advisory(
                "Document is brief",
                f"Expand the document beyond {COMPREHENSIVE_CHARS} characters",
            )

    def _code_quality(self, check: _Check, code: list[_Output]) -> None:
        combined = "\n".join(o.text or "" for o in code)
        lines = [line for line in combined.splitlines() if line.strip()]
        if _COMMENT.search(combined):
            check.score += 5
        else:
            check.advisory("Code has no comments", "Comment the non-obvious parts of the code")
        if _ERROR_HANDLING.search(combined):
            check.score += 5
        indents = {line[0] for line in lines if line[0] in " \t"}
        if len(indents) <= 1:
            check.score += 10
        else:
            check.advisory(
                "Code mixes tab and space indentation", "Use one indentation style"
            )
        if len(lines) > 5 and sum(map(len, lines)) / len(lines) < MAX_LINE_LENGTH:
            check.score += 10
        else:
            check.advisory(
                "Code is very short or has very long lines",
                f"Keep lines under {MAX_LINE_LENGTH} characters",
            )

    def _error_handling(self, check: _Check, code: list[_Output]) -> None:
        if any(_ERROR_HANDLING.search(o.text or "") for o in code):
            check.score += 10
        else:
            check.advisory("Code has no error handling", "Handle and report failures")

    def _standards(self, check: _Check, task: Task, outputs: list[_Output]) -> None:
        names = [PurePosixPath(o.relative).name for o in outputs if o.relative]
        if names and all(_OUTPUT_NAME.match(n) for n in names):
            check.score += 5
        else:
            check.advisory(
                "Output names are not lowercase kebab or snake case",
                "Use lowercase file names without spaces",
            )
        expected_dirs = {PurePosixPath(e.pattern).parts[0] for e in task.expected_outputs}
        placed = [
            PurePosixPath(o.relative).parts[0] in expected_dirs
            for o in outputs
            if o.relative
        ]
        if placed and all(placed):
            check.score += 5
        else:
            check.advisory(
                "Outputs are outside the expected directories",
                "Place outputs in: " + ", ".join(sorted(expected_dirs)),
            )

    # ── Entry point ──────────────────────────────────────────────────

    def validate(self, task: Task, submission: Submission) -> ValidationResult:
        outputs = [self._resolve(p) for p in submission.outputs]
        for out in outputs:
            out.load()
        code = [
            o for o in outputs
            if o.text is not None and language_for(o.claimed) not in NON_CODE_LANGUAGES
        ]
        standards = dict(QUALITY_STANDARDS.get(task.type, DEFAULT_STANDARDS))
        if code:
            standards.update(CODE_STANDARDS)

        checks: list[_Check] = []
        for name, (max_score, min_score) in standards.items():
            check = _Check(name=name, max_score=max_score, min_score=min_score)
            if name == "completeness":
                self._completeness(check, task, submission, outputs)
            elif name == "documentation":
                self._documentation(check, outputs)
            elif name == "standards_compliance":
                self._standards(check, task, outputs)
            elif name == "code_quality":
                self._code_quality(check, code)
            elif name == "error_handling":
                self._error_handling(check, code)
            checks.append(check)

        outcomes = [c.outcome() for c in checks]
        score = sum(o.score for o in outcomes)
        max_score = sum(o.max_score for o in outcomes)
        quality = round(score / max_score * 100) if max_score else 0
        blocking = any(
            i.severity is IssueSeverity.BLOCKING for o in outcomes for i in o.issues
        )
        passed = not blocking and quality >= self._threshold

        suggestions: list[str] = []
        if not passed:
            for check in checks:
                for suggestion in check.suggestions:
                    if suggestion not in suggestions:
                        suggestions.append(suggestion)
            if quality < self._threshold:
                suggestions.append(
                    f"Raise the quality score from {quality}% to at least {self._threshold}%"
                )

        logger.info(
            "Validated %s: score %d/%d (%d%%) %s",
            task.id,
            score,
            max_score,
            quality,
            "passed" if passed else "failed",
        )
        return ValidationResult(
            task_id=task.id,
            passed=passed,
            score=score,
            max_score=max_score,
            quality_score=quality,
            threshold=self._threshold,
            checks=outcomes,
            suggestions=suggestions,
        )
