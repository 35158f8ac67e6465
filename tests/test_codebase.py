"""Tests for whole-repository review."""

import asyncio
import json
import os
import pytest

from reviewpilot.codebase.digest import (
    HEAD_LINES,
    build_snippet,
    digest_file,
    digest_files,
    digest_text,
    extract_identifiers,
)
from reviewpilot.codebase.index import (
    build_codebase_index,
    detect_entry_points,
    is_ignored_path,
    render_file_tree,
)
from reviewpilot.codebase.pipeline import (
    ProgressReporter,
    batch_by_budget,
    build_review_message,
    coverage_bug,
    folder_key,
    parse_file_summaries,
    parse_folder_summaries,
    review_codebase,
)
from reviewpilot.codebase.selection import score_file, select_files
from reviewpilot.config import CodebaseReviewConfig, ToolsConfig
from reviewpilot.llm.base import ChatResponse, ProtocolError, ToolCall
from reviewpilot.pool import map_limit
from reviewpilot.review.prompts import (
    FILE_SUMMARY_TOOL_NAME,
    FOLDER_SUMMARY_TOOL_NAME,
    REPORT_TOOL_NAME,
)

no_symlinks = pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")


# ============================================================================
# Indexing
# ============================================================================

class TestRenderFileTree:
    """Tests for the bounded file tree."""

    def test_nested(self):
        tree = render_file_tree(["README.md", "src/a.py", "src/b/c.py"])
        assert tree == "\n".join([
            ".",
            "├─ src/",
            "│  ├─ b/",
            "│  │  └─ c.py",
            "│  └─ a.py",
            "└─ README.md",
        ])

    def test_depth_limit(self):
        """Test directories past the depth limit collapse to a count."""
        tree = render_file_tree(["src/a.py", "src/b/c.py"], max_depth=1)
        assert tree == "\n".join([".", "└─ src/", "   └─ … (2 files)"])

    def test_width_limit(self):
        """Test wide directories are cut with a remainder line."""
        tree = render_file_tree(["a", "b", "c", "d"], max_entries_per_dir=2)
        assert tree == "\n".join([".", "├─ a", "├─ b", "└─ … (2 more)"])

    def test_ignored_paths_skipped(self):
        tree = render_file_tree(["node_modules/x/index.js", "yarn.lock", "main.py"])
        assert tree == ".\n└─ main.py"

    def test_empty(self):
        assert render_file_tree([]) == "."


class TestIgnoredPaths:
    """Tests for dependency and build path filtering."""

    def test_ignored(self):
        for path in ("node_modules/a.js", "src/__pycache__/a.pyc", ".venv/lib/x.py",
                     "pkg.egg-info/PKG-INFO", "poetry.lock", "Cargo.lock"):
            assert is_ignored_path(path), path

    def test_kept(self):
        for path in ("src/app.py", "build.py", "dist.md"):
            assert not is_ignored_path(path), path


class TestEntryPoints:
    """Tests for entry point detection."""

    def test_candidates_in_order(self):
        paths = ["pkg/__main__.py", "main.py", "src/index.ts", "lib/util.py"]
        assert detect_entry_points(paths) == ["src/index.ts", "main.py", "pkg/__main__.py"]

    def test_pyproject_scripts(self, temp_repo):
        """Test console scripts are resolved to files and listed first."""
        paths = ["pyproject.toml", "src/shop/cli.py", "src/shop/app.py"]
        assert detect_entry_points(paths, temp_repo) == ["src/shop/cli.py"]

    def test_package_json(self, temp_dir):
        (temp_dir / "package.json").write_text(json.dumps({
            "main": "./lib/server.js",
            "bin": {"tool": "bin/tool.js"},
        }))
        paths = ["package.json", "lib/server.js", "bin/tool.js", "index.js"]

        assert detect_entry_points(paths, temp_dir) == ["lib/server.js", "bin/tool.js", "index.js"]

    def test_broken_manifest_ignored(self, temp_dir):
        (temp_dir / "package.json").write_text("{oops")
        assert detect_entry_points(["package.json", "index.js"], temp_dir) == ["index.js"]


class TestBuildIndex:
    """Tests for build_codebase_index()."""

    @pytest.mark.asyncio
    async def test_walk(self, temp_repo):
        """Test indexing a directory outside git."""
        (temp_repo / "node_modules" / "dep").mkdir(parents=True)
        (temp_repo / "node_modules" / "dep" / "index.js").write_text("x")

        index = await build_codebase_index(temp_repo)

        assert "src/shop/app.py" in index.paths
        assert not any(p.startswith("node_modules/") for p in index.paths)
        sizes = {f.path: f.bytes for f in index.files}
        assert sizes["README.md"] == len("# Shop\n")
        assert index.entry_points == ["src/shop/cli.py"]
        assert index.file_tree.startswith(".\n")

    @pytest.mark.asyncio
    async def test_git_respects_ignore(self, git_repo):
        """Test git-ignored files are not indexed."""
        (git_repo / "notes.md").write_text("untracked\n")
        index = await build_codebase_index(git_repo)

        assert ".env" not in index.paths
        assert "notes.md" in index.paths
        assert ".gitignore" in index.paths

    @pytest.mark.asyncio
    async def test_git_tracked_only(self, git_repo):
        (git_repo / "notes.md").write_text("untracked\n")
        index = await build_codebase_index(git_repo, include_untracked=False)
        assert "notes.md" not in index.paths

    @no_symlinks
    @pytest.mark.asyncio
    async def test_symlinks_not_statted(self, git_repo):
        """Test a linked file is listed but never sized or selected."""
        (git_repo / "notes.txt").symlink_to(git_repo / ".env")
        index = await build_codebase_index(git_repo)

        assert "notes.txt" in index.paths
        assert "notes.txt" not in [f.path for f in index.files]

    @pytest.mark.asyncio
    async def test_max_files(self, temp_repo):
        index = await build_codebase_index(temp_repo, max_files=2)
        assert len(index.files) == 2
        assert len(index.paths) > 2


# ============================================================================
# Selection
# ============================================================================

class TestSelection:
    """Tests for file scoring and selection."""

    def test_source_beats_tests_and_docs(self):
        assert score_file("src/shop/app.py") > score_file("tests/test_app.py")
        assert score_file("src/shop/app.py") > score_file("docs/guide.md")

    def test_keywords_raise_score(self):
        assert score_file("src/auth/login.py") > score_file("src/utils/strings.py")

    def test_generated_penalized(self):
        assert score_file("static/app.min.js") < score_file("static/app.js")

    def test_manifest_bonus(self):
        assert score_file("pyproject.toml") > score_file("notes.toml")

    @pytest.mark.asyncio
    async def test_entry_points_first(self, temp_repo):
        index = await build_codebase_index(temp_repo)
        selected = select_files(index, 250)

        assert selected[0] == "src/shop/cli.py"
        assert ".env" not in selected
        assert "logo.png" not in selected
        assert len(selected) == len(index.files) - 2

    @pytest.mark.asyncio
    async def test_limit_and_determinism(self, temp_repo):
        index = await build_codebase_index(temp_repo)
        assert select_files(index, 3) == select_files(index, 3)
        assert len(select_files(index, 3)) == 3
        assert select_files(index, 0) == []


# ============================================================================
# Digests
# ============================================================================

PY_SOURCE = """import os
from shop.auth.login import check_password


class App:
    def run(self):
        return check_password("admin", os.environ.get("PW", ""))


def create_app():
    return App()
"""


class TestDigest:
    """Tests for per-file digests."""

    def test_python_identifiers(self):
        imports, exports, hotspots = extract_identifiers(PY_SOURCE.split("\n"))

        assert imports == ["os", "shop.auth.login"]
        assert exports == ["App", "create_app"]
        assert hotspots == [0, 1, 4, 9]

    def test_javascript_identifiers(self):
        lines = [
            "import { readFile } from 'fs/promises'",
            "const express = require('express')",
            "export async function handler(req) {}",
            "export { a as b, c }",
        ]
        imports, exports, _ = extract_identifiers(lines)

        assert imports == ["fs/promises", "express"]
        assert exports == ["handler", "b", "c"]

    def test_snippet_head_and_hotspots(self):
        """Test the snippet keeps the head plus windows around late hotspots."""
        lines = [f"line {i}" for i in range(100)]
        snippet = build_snippet(lines, [80])

        assert snippet.startswith("1: line 0\n")
        assert f"{HEAD_LINES}: line {HEAD_LINES - 1}" in snippet
        assert f"{HEAD_LINES + 1}: " not in snippet
        assert "\n…\n" in snippet
        assert "78: line 77" in snippet
        assert "84: line 83" in snippet
        assert "85: " not in snippet

    def test_digest_text(self):
        digest = digest_text("src/shop/app.py", len(PY_SOURCE), PY_SOURCE)

        assert digest.lines == len(PY_SOURCE.split("\n"))
        rendered = digest.render()
        assert rendered.startswith(f"### src/shop/app.py ({len(PY_SOURCE)} bytes)\n")
        assert "imports: os, shop.auth.login" in rendered
        assert "exports: App, create_app" in rendered

    @pytest.mark.asyncio
    async def test_digest_file_skips(self, temp_repo):
        """Test secret, binary, NUL-containing and missing files are skipped."""
        (temp_repo / "blob.txt").write_bytes(b"abc\0def")

        assert await digest_file(temp_repo, ".env", 10) is None
        assert await digest_file(temp_repo, "logo.png", 10) is None
        assert await digest_file(temp_repo, "blob.txt", 7) is None
        assert await digest_file(temp_repo, "missing.py", 0) is None

    @pytest.mark.asyncio
    async def test_digest_files_order(self, temp_repo):
        files = [("src/shop/cli.py", 1), (".env", 1), ("README.md", 1), ("src/shop/app.py", 1)]
        digests = await digest_files(temp_repo, files)
        assert [d.path for d in digests] == ["src/shop/cli.py", "README.md", "src/shop/app.py"]

    @no_symlinks
    @pytest.mark.asyncio
    async def test_secret_behind_symlink(self, temp_repo):
        """Test a harmless name linking to a secret file is not read."""
        (temp_repo / "notes.txt").symlink_to(temp_repo / ".env")

        assert await digest_file(temp_repo, "notes.txt", 10) is None
        digests = await digest_files(temp_repo, [("notes.txt", 10), ("README.md", 7)])
        assert [d.path for d in digests] == ["README.md"]
        assert all("hunter2" not in d.snippet for d in digests)

    @no_symlinks
    @pytest.mark.asyncio
    async def test_symlink_out_of_repository(self, temp_repo, temp_dir):
        """Test a link pointing outside the root is not read."""
        (temp_dir / "id_rsa").write_text("PRIVATE KEY\n")
        (temp_repo / "leak.txt").symlink_to(temp_dir / "id_rsa")

        assert await digest_file(temp_repo, "leak.txt", 12) is None

    @no_symlinks
    @pytest.mark.asyncio
    async def test_symlink_inside_repository(self, temp_repo):
        (temp_repo / "readme-link.md").symlink_to(temp_repo / "README.md")

        digest = await digest_file(temp_repo, "readme-link.md", 7)
        assert digest is not None
        assert digest.path == "readme-link.md"


# ============================================================================
# Pipeline helpers
# ============================================================================

class TestPipelineHelpers:
    """Tests for batching, grouping and summary parsing."""

    def test_batch_by_budget(self):
        assert batch_by_budget(["aaaa", "bbbb", "cc"], str, budget=8) == [["aaaa", "bbbb"], ["cc"]]

    def test_oversized_item_gets_own_batch(self):
        assert batch_by_budget(["x" * 20, "y"], str, budget=5) == [["x" * 20], ["y"]]

    def test_batch_empty(self):
        assert batch_by_budget([], str) == []

    def test_folder_key(self):
        assert folder_key("README.md", 2) == "."
        assert folder_key("src/a.py", 2) == "src"
        assert folder_key("src/shop/auth/login.py", 2) == "src/shop"
        assert folder_key("src/shop/auth/login.py", 1) == "src"

    def test_parse_file_summaries(self):
        """Test only batch paths are accepted and the first summary wins."""
        data = {"files": [
            {"path": "a.py", "responsibility": "first", "concerns": ["1", "2", "3", "4", "5"]},
            {"path": "a.py", "responsibility": "second"},
            {"path": "invented.py", "responsibility": "hallucinated"},
            "junk",
        ]}
        summaries = parse_file_summaries(data, {"a.py", "b.py"})

        assert list(summaries) == ["a.py"]
        assert summaries["a.py"].responsibility == "first"
        assert summaries["a.py"].concerns == ("1", "2", "3")

    def test_parse_folder_summaries(self):
        data = {"folders": [
            {"folder": "src", "purpose": "code", "keyFiles": ["app.py"], "risks": ["auth"]},
            {"folder": "elsewhere", "purpose": "?"},
        ]}
        summaries = parse_folder_summaries(data, {"src"})

        assert list(summaries) == ["src"]
        assert summaries["src"].key_files == ("app.py",)
        assert summaries["src"].risks == ("auth",)

    def test_coverage_bug(self):
        bug = coverage_bug(3, 40, 120, 250)

        assert bug.id == "bug-3"
        assert bug.severity == "info"
        assert bug.title == "Coverage: 40/120 files summarized"
        assert bug.file == "."
        assert (bug.start_line, bug.end_line) == (1, 1)

    @pytest.mark.asyncio
    async def test_review_message(self, temp_repo):
        index = await build_codebase_index(temp_repo)
        message = build_review_message(index, [], [], [])

        assert "## File tree\n." in message
        assert "- src/shop/cli.py" in message
        assert "## Top file concerns\n- (none)" in message

    def test_progress_never_goes_back(self):
        seen = []
        reporter = ProgressReporter(seen.append)
        reporter.report("mapping", "a", 0.5)
        reporter.report("mapping", "b", 0.3)
        reporter.report("reviewing", "c", 1.7)

        assert [p.progress for p in seen] == [0.5, 0.5, 1.0]


# ============================================================================
# Bounded concurrency
# ============================================================================

class TestMapLimit:
    """Tests for map_limit()."""

    @pytest.mark.asyncio
    async def test_order_and_limit(self):
        active = 0
        peak = 0

        async def work(item, index):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01 * (5 - item % 5))
            active -= 1
            return item * 10 + index

        results = await map_limit(list(range(12)), 3, work)

        assert results == [i * 10 + i for i in range(12)]
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_empty(self):
        async def work(item, index):
            return item
        assert await map_limit([], 4, work) == []

    @pytest.mark.asyncio
    async def test_error_propagates(self):
        started = []

        async def work(item, index):
            started.append(item)
            if item == 1:
                raise ValueError("bad item")
            await asyncio.sleep(0.05)
            return item

        with pytest.raises(ValueError):
            await map_limit(list(range(10)), 2, work)
        assert len(started) < 10


# ============================================================================
# End to end
# ============================================================================

def scripted_model(final_bugs):
    """Answers each summarization request from its content, then reports."""

    def answer(request):
        user = request["messages"][1].content
        choice = request["tool_choice"]

        if choice == FILE_SUMMARY_TOOL_NAME:
            paths = [line[4:].rsplit(" (", 1)[0] for line in user.split("\n") if line.startswith("### ")]
            files = [{"path": p, "responsibility": f"does {p}", "concerns": []} for p in paths]
            return ChatResponse(tool_calls=[
                ToolCall(id="f", name=FILE_SUMMARY_TOOL_NAME, arguments=json.dumps({"files": files})),
            ])

        if choice == FOLDER_SUMMARY_TOOL_NAME:
            folders = [line[3:].rstrip("/") for line in user.split("\n") if line.startswith("## ")]
            data = {"folders": [{"folder": f, "purpose": "stuff", "keyFiles": [], "risks": []} for f in folders]}
            return ChatResponse(tool_calls=[
                ToolCall(id="d", name=FOLDER_SUMMARY_TOOL_NAME, arguments=json.dumps(data)),
            ])

        return ChatResponse(tool_calls=[
            ToolCall(id="r", name=REPORT_TOOL_NAME, arguments=json.dumps({"bugs": final_bugs})),
        ])

    return answer


class TestReviewCodebase:
    """Tests for review_codebase()."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, temp_repo, fake_client):
        """Test every stage runs and a coverage finding is appended."""
        client = fake_client([scripted_model([
            {"severity": "critical", "title": "MD5 passwords", "file": "src/shop/auth/login.py", "startLine": 6},
        ])], repeat_last=True)
        progress = []

        result = await review_codebase(temp_repo, client, on_progress=progress.append)

        assert [b.title for b in result.bugs] == ["MD5 passwords", "Coverage: 7/9 files summarized"]
        assert result.bugs[-1].id == "bug-1"
        assert result.summary.critical == 1
        assert result.summary.info == 1
        assert result.files_scanned == 9
        assert result.lines_analyzed > 0

        values = [p.progress for p in progress]
        assert values == sorted(values)
        assert values[-1] == 1.0
        assert {p.stage for p in progress} == {"indexing", "mapping", "summarizing", "reviewing"}

        choices = [r["tool_choice"] for r in client.requests]
        assert choices == [FILE_SUMMARY_TOOL_NAME, FOLDER_SUMMARY_TOOL_NAME, None]

    @pytest.mark.asyncio
    async def test_folder_messages_grouped(self, temp_repo, fake_client):
        client = fake_client([scripted_model([])], repeat_last=True)
        await review_codebase(temp_repo, client)

        folder_request = client.requests[1]["messages"][1].content
        for folder in ("## ./", "## src/shop/", "## tests/"):
            assert folder in folder_request

    @pytest.mark.asyncio
    async def test_summary_limit(self, temp_repo, fake_client):
        client = fake_client([scripted_model([])], repeat_last=True)
        result = await review_codebase(
            temp_repo, client, codebase_config=CodebaseReviewConfig(max_files_to_summarize=2),
        )

        assert [b.title for b in result.bugs] == ["Coverage: 2/9 files summarized"]

    @pytest.mark.asyncio
    async def test_final_pass_without_tools(self, temp_repo, fake_client):
        client = fake_client([scripted_model([])], repeat_last=True)
        await review_codebase(temp_repo, client, tools_config=ToolsConfig(enabled=False))

        assert client.requests[-1]["tool_choice"] == REPORT_TOOL_NAME

    @pytest.mark.asyncio
    async def test_summarization_failure_aborts(self, temp_repo, fake_client):
        client = fake_client([ChatResponse()])
        with pytest.raises(ProtocolError):
            await review_codebase(temp_repo, client)
