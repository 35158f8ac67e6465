"""Whole-repository review as map-reduce over file and folder summaries.

Stages: index -> select -> digest (bounded pool) -> file summaries (one call
per batch) -> folder summaries (one call per batch) -> one grounded review
pass -> coverage finding. Summarization calls run one at a time; any failure
aborts the review.
"""

import logging
import posixpath
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from reviewpilot.codebase.digest import FileDigest, digest_files
from reviewpilot.codebase.index import CodebaseIndex, build_codebase_index
from reviewpilot.codebase.selection import select_files
from reviewpilot.config import CodebaseReviewConfig, ToolsConfig
from reviewpilot.llm.client import ChatClient, ProxySupervisor
from reviewpilot.models import Bug, ProgressCallback, ReviewProgress, ReviewResult, Stage
from reviewpilot.review.driver import request_structured
from reviewpilot.review.prompts import (
    CODEBASE_SYSTEM_PROMPT, CODEBASE_SYSTEM_PROMPT_WITH_TOOLS, FILE_SUMMARY_SYSTEM_PROMPT,
    FILE_SUMMARY_TOOL, FOLDER_SUMMARY_SYSTEM_PROMPT, FOLDER_SUMMARY_TOOL,
)
from reviewpilot.review.reviewer import make_driver, with_proxy_recovery
from reviewpilot.workspace import Workspace


logger = logging.getLogger(__name__)

T = TypeVar("T")

BATCH_CHAR_BUDGET = 48000
MAX_CONCERNS = 3
MAX_TOP_CONCERNS = 40
MAX_IMPORT_STATS = 20

# Share of the progress bar each stage ends at
INDEXING_END = 0.1
MAPPING_END = 0.3
FILE_SUMMARY_END = 0.65
FOLDER_SUMMARY_END = 0.8


@dataclass(frozen=True)
class FileSummary:
    path: str
    responsibility: str
    concerns: tuple[str, ...] = ()


@dataclass(frozen=True)
class FolderSummary:
    folder: str
    purpose: str
    key_files: tuple[str, ...] = ()
    risks: tuple[str, ...] = ()


class ProgressReporter:
    """Forwards progress to a callback, never letting it go backwards."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.progress = 0.0

    def report(self, stage: Stage, message: str, progress: float,
               completed: Optional[int] = None, total: Optional[int] = None) -> None:
        self.progress = max(self.progress, min(1.0, max(0.0, progress)))
        logger.debug("[%s %3.0f%%] %s", stage, self.progress * 100, message)
        if self.callback is not None:
            self.callback(ReviewProgress(stage, message, self.progress, completed, total))


def batch_by_budget(items: list[T], render: Callable[[T], str], budget: int = BATCH_CHAR_BUDGET) -> list[list[T]]:
    """Group items so each group's rendered text fits the budget.

    An item bigger than the budget on its own still gets a batch.
    """
    batches: list[list[T]] = []
    current: list[T] = []
    used = 0
    for item in items:
        size = len(render(item))
        if current and used + size > budget:
            batches.append(current)
            current, used = [], 0
        current.append(item)
        used += size
    if current:
        batches.append(current)
    return batches


def folder_key(path: str, depth: int) -> str:
    """First ``depth`` directories of a path, or "." for root files."""
    parts = path.split("/")[:-1]
    if not parts:
        return "."
    return "/".join(parts[:depth])


def _strings(value, limit: Optional[int] = None) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    items = tuple(str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip())
    return items[:limit] if limit is not None else items


def parse_file_summaries(data: dict, allowed: set[str]) -> dict[str, FileSummary]:
    """Accept only summaries for paths in the batch; first one wins."""
    summaries: dict[str, FileSummary] = {}
    for item in data.get("files") or []:
        if not isinstance(item, dict):
            continue
        path = item.get("path")
        if not isinstance(path, str) or path not in allowed or path in summaries:
            continue
        summaries[path] = FileSummary(
            path=path,
            responsibility=str(item.get("responsibility") or ""),
            concerns=_strings(item.get("concerns"), MAX_CONCERNS),
        )
    return summaries


def parse_folder_summaries(data: dict, allowed: set[str]) -> dict[str, FolderSummary]:
    summaries: dict[str, FolderSummary] = {}
    for item in data.get("folders") or []:
        if not isinstance(item, dict):
            continue
        folder = item.get("folder")
        if not isinstance(folder, str) or folder not in allowed or folder in summaries:
            continue
        summaries[folder] = FolderSummary(
            folder=folder,
            purpose=str(item.get("purpose") or ""),
            key_files=_strings(item.get("keyFiles")),
            risks=_strings(item.get("risks")),
        )
    return summaries


def _render_folder(entry: tuple[str, list[FileSummary]]) -> str:
    folder, files = entry
    lines = [f"## {folder}/"]
    for f in files:
        lines.append(f"- {posixpath.basename(f.path)}: {f.responsibility}")
        for concern in f.concerns:
            lines.append(f"  - concern: {concern}")
    return "\n".join(lines)


def build_review_message(
    index: CodebaseIndex,
    folders: list[FolderSummary],
    files: list[FileSummary],
    digests: list[FileDigest],
) -> str:
    """The global prompt for the final review pass."""
    parts = ["Review this repository.\n", "## File tree", index.file_tree, ""]

    parts.append("## Entry points")
    parts.extend(f"- {p}" for p in index.entry_points)
    if not index.entry_points:
        parts.append("- (none detected)")
    parts.append("")

    parts.append("## Folder summaries")
    for f in folders:
        parts.append(f"### {f.folder}")
        parts.append(f.purpose)
        if f.key_files:
            parts.append(f"Key files: {', '.join(f.key_files)}")
        for risk in f.risks:
            parts.append(f"- risk: {risk}")
    parts.append("")

    concerns = [(s.path, c) for s in files for c in s.concerns][:MAX_TOP_CONCERNS]
    parts.append("## Top file concerns")
    parts.extend(f"- {path}: {concern}" for path, concern in concerns)
    if not concerns:
        parts.append("- (none)")
    parts.append("")

    counts = Counter(name for d in digests for name in d.imports)
    parts.append("## Most imported modules")
    parts.extend(f"- {name}: {n}" for name, n in counts.most_common(MAX_IMPORT_STATS))
    if not counts:
        parts.append("- (none)")

    return "\n".join(parts)


def coverage_bug(index: int, summarized: int, total: int, limit: int) -> Bug:
    return Bug(
        id=f"bug-{index}",
        severity="info",
        title=f"Coverage: {summarized}/{total} files summarized",
        file=".",
        start_line=1,
        end_line=1,
        description=(
            f"This review summarized {summarized} of {total} indexed files "
            f"(limit {limit}). Other files were only seen through the file tree."
        ),
        suggestion="Raise codebase_review.max_files_to_summarize to cover more of the repository",
    )


async def review_codebase(
    root: Union[str, Path],
    client: ChatClient,
    tools_config: Optional[ToolsConfig] = None,
    codebase_config: Optional[CodebaseReviewConfig] = None,
    index: Optional[CodebaseIndex] = None,
    on_progress: Optional[ProgressCallback] = None,
    supervisor: Optional[ProxySupervisor] = None,
) -> ReviewResult:
    """Review a whole repository.

    Args:
        root: Repository root.
        client: Chat client for the proxy.
        tools_config: Tool policy for the final pass.
        codebase_config: File and folder limits.
        index: Pre-built index; built here when omitted.
        on_progress: Receives monotonically increasing progress.
        supervisor: Optional proxy supervisor.

    Returns:
        Findings from the final pass plus one coverage finding.
    """
    root = Path(root).resolve()
    tools_config = tools_config or ToolsConfig()
    codebase_config = codebase_config or CodebaseReviewConfig()
    progress = ProgressReporter(on_progress)

    progress.report("indexing", "Indexing repository", 0.0)
    if index is None:
        index = await build_codebase_index(root)
    total_files = len(index.files)
    progress.report("indexing", f"Indexed {total_files} files", INDEXING_END, total_files, total_files)

    selected = select_files(index, codebase_config.max_files_to_summarize)
    sizes = {f.path: f.bytes for f in index.files}
    progress.report("mapping", f"Digesting {len(selected)} files", INDEXING_END, 0, len(selected))
    digests = await digest_files(root, [(p, sizes[p]) for p in selected])
    progress.report("mapping", f"Digested {len(digests)} files", MAPPING_END, len(digests), len(selected))

    async def attempt() -> tuple[list[Bug], int]:
        file_summaries = await _summarize_files(client, digests, progress)
        folder_summaries = await _summarize_folders(
            client, file_summaries, codebase_config.folder_depth, progress,
        )

        progress.report("reviewing", "Reviewing architecture", FOLDER_SUMMARY_END)
        driver = make_driver(client, tools_config, Workspace(root))
        prompt = CODEBASE_SYSTEM_PROMPT_WITH_TOOLS if driver.registry is not None else CODEBASE_SYSTEM_PROMPT
        message = build_review_message(index, folder_summaries, file_summaries, digests)
        return await driver.run(prompt, message), len(file_summaries)

    bugs, summarized = await with_proxy_recovery(supervisor, attempt)
    bugs = bugs + [coverage_bug(len(bugs), summarized, total_files, codebase_config.max_files_to_summarize)]
    progress.report("reviewing", f"Review complete: {len(bugs)} findings", 1.0)

    return ReviewResult.from_bugs(
        bugs,
        files_scanned=total_files,
        lines_analyzed=sum(d.lines for d in digests),
    )


async def _summarize_files(
    client: ChatClient,
    digests: list[FileDigest],
    progress: ProgressReporter,
) -> list[FileSummary]:
    batches = batch_by_budget(digests, FileDigest.render)
    summaries: dict[str, FileSummary] = {}
    span = FILE_SUMMARY_END - MAPPING_END

    for i, batch in enumerate(batches):
        progress.report("summarizing", f"Summarizing files (batch {i + 1}/{len(batches)})",
                        MAPPING_END + span * i / len(batches), i, len(batches))
        message = "Summarize these files:\n\n" + "\n\n".join(d.render() for d in batch)
        data = await request_structured(client, FILE_SUMMARY_SYSTEM_PROMPT, message, FILE_SUMMARY_TOOL, "files")
        for path, summary in parse_file_summaries(data, {d.path for d in batch}).items():
            summaries.setdefault(path, summary)

    progress.report("summarizing", f"Summarized {len(summaries)} files", FILE_SUMMARY_END,
                    len(batches), len(batches))
    # Keep selection order
    return [summaries[d.path] for d in digests if d.path in summaries]


async def _summarize_folders(
    client: ChatClient,
    files: list[FileSummary],
    depth: int,
    progress: ProgressReporter,
) -> list[FolderSummary]:
    grouped: dict[str, list[FileSummary]] = {}
    for summary in files:
        grouped.setdefault(folder_key(summary.path, depth), []).append(summary)

    entries = sorted(grouped.items())
    batches = batch_by_budget(entries, _render_folder)
    summaries: dict[str, FolderSummary] = {}
    span = FOLDER_SUMMARY_END - FILE_SUMMARY_END

    for i, batch in enumerate(batches):
        progress.report("summarizing", f"Summarizing folders (batch {i + 1}/{len(batches)})",
                        FILE_SUMMARY_END + span * i / len(batches), i, len(batches))
        message = "Summarize these folders:\n\n" + "\n\n".join(_render_folder(e) for e in batch)
        data = await request_structured(
            client, FOLDER_SUMMARY_SYSTEM_PROMPT, message, FOLDER_SUMMARY_TOOL, "folders",
        )
        for folder, summary in parse_folder_summaries(data, {folder for folder, _ in batch}).items():
            summaries.setdefault(folder, summary)

    progress.report("summarizing", f"Summarized {len(summaries)} folders", FOLDER_SUMMARY_END,
                    len(batches), len(batches))
    return [summaries[folder] for folder, _ in entries if folder in summaries]
