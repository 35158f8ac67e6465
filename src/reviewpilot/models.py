"""Review data model."""

from dataclasses import dataclass, field
from typing import Callable, Literal, Optional


Severity = Literal["critical", "major", "minor", "info"]
SEVERITIES: tuple[str, ...] = ("critical", "major", "minor", "info")

MAX_TITLE_CHARS = 50


@dataclass(frozen=True)
class Bug:
    """One finding. Only built by the normalizer or the pipeline."""
    id: str
    severity: Severity
    title: str
    file: str
    start_line: int
    end_line: int
    description: str
    suggestion: str
    fix_diff: str = ""

    def to_dict(self) -> dict:
        """Wire shape, camelCase keys."""
        return {
            "id": self.id,
            "severity": self.severity,
            "title": self.title,
            "file": self.file,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "description": self.description,
            "suggestion": self.suggestion,
            "fixDiff": self.fix_diff,
        }


@dataclass(frozen=True)
class ReviewSummary:
    critical: int = 0
    major: int = 0
    minor: int = 0
    info: int = 0

    @classmethod
    def from_bugs(cls, bugs: list[Bug]) -> "ReviewSummary":
        counts = {s: 0 for s in SEVERITIES}
        for bug in bugs:
            counts[bug.severity] += 1
        return cls(**counts)

    @property
    def total(self) -> int:
        return self.critical + self.major + self.minor + self.info


@dataclass
class ReviewResult:
    """What a review hands back to its caller."""
    bugs: list[Bug]
    summary: ReviewSummary
    files_scanned: int
    lines_analyzed: int

    @classmethod
    def from_bugs(cls, bugs: list[Bug], files_scanned: int, lines_analyzed: int) -> "ReviewResult":
        return cls(
            bugs=bugs,
            summary=ReviewSummary.from_bugs(bugs),
            files_scanned=files_scanned,
            lines_analyzed=lines_analyzed,
        )

    def to_dict(self) -> dict:
        return {
            "bugs": [b.to_dict() for b in self.bugs],
            "summary": {
                "critical": self.summary.critical,
                "major": self.summary.major,
                "minor": self.summary.minor,
                "info": self.summary.info,
            },
            "filesScanned": self.files_scanned,
            "linesAnalyzed": self.lines_analyzed,
        }


# =============================================================================
# Inputs supplied by the diff-extraction collaborator
# =============================================================================

@dataclass(frozen=True)
class FileChange:
    path: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0


@dataclass(frozen=True)
class CommitInfo:
    hash: str
    short_hash: str
    author: str
    date: str
    message: str


@dataclass
class DiffReviewRequest:
    diff: str
    files: list[FileChange] = field(default_factory=list)
    commit_info: Optional[CommitInfo] = None


# =============================================================================
# Progress reporting
# =============================================================================

Stage = Literal["indexing", "mapping", "summarizing", "reviewing"]


@dataclass(frozen=True)
class ReviewProgress:
    stage: Stage
    message: str
    progress: float
    completed: Optional[int] = None
    total: Optional[int] = None


ProgressCallback = Callable[[ReviewProgress], None]
