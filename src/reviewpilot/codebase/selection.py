"""Pick which files get summarized when the repository is too big for all of them."""

import posixpath

from reviewpilot.codebase.index import CodebaseIndex
from reviewpilot.workspace import is_binary_path, is_potential_secret_path


MANIFESTS = frozenset({
    "package.json", "pyproject.toml", "setup.py", "setup.cfg", "requirements.txt",
    "Cargo.toml", "go.mod", "pom.xml", "build.gradle", "Gemfile", "composer.json",
    "Dockerfile", "docker-compose.yml", "docker-compose.yaml", "Makefile",
})

SOURCE_ROOTS = ("src/", "lib/", "app/", "server/", "api/", "core/", "pkg/", "cmd/", "internal/", "backend/")

SOURCE_EXTENSIONS = frozenset({
    ".py", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".go", ".rs", ".java", ".kt",
    ".rb", ".php", ".cs", ".c", ".cc", ".cpp", ".h", ".hpp", ".swift", ".scala",
    ".vue", ".svelte", ".sql", ".sh",
})

KEYWORDS = (
    "auth", "security", "crypto", "password", "secret", "token", "session", "login",
    "permission", "db", "database", "sql", "query", "migration", "api", "route",
    "handler", "middleware", "controller", "server", "config",
)

GENERATED_MARKERS = (".min.", "generated", "vendor/", "third_party/", "dist/", ".pb.", "_pb2.")
TEST_MARKERS = ("test/", "tests/", "__tests__/", "spec/", "test_", "_test.", ".test.", ".spec.", "conftest.py")
DOC_EXTENSIONS = frozenset({".md", ".rst", ".txt", ".adoc"})

MANIFEST_BONUS = 40
ENTRY_POINT_BONUS = 50
SOURCE_ROOT_BONUS = 15
SOURCE_EXTENSION_BONUS = 20
KEYWORD_BONUS = 8
MAX_KEYWORD_BONUS = 24
GENERATED_PENALTY = 60
TEST_PENALTY = 25
DOC_PENALTY = 20
LARGE_FILE_PENALTY = 10
LARGE_FILE_BYTES = 200 * 1024


def is_selectable(path: str) -> bool:
    return not is_potential_secret_path(path) and not is_binary_path(path)


def score_file(path: str, size: int = 0, entry_points: frozenset = frozenset()) -> int:
    """Deterministic importance score; higher is more worth summarizing."""
    lower = path.lower()
    base = posixpath.basename(path)
    ext = posixpath.splitext(base)[1].lower()
    score = 0

    if base in MANIFESTS:
        score += MANIFEST_BONUS
    if path in entry_points:
        score += ENTRY_POINT_BONUS
    if lower.startswith(SOURCE_ROOTS) or "/src/" in f"/{lower}":
        score += SOURCE_ROOT_BONUS
    if ext in SOURCE_EXTENSIONS:
        score += SOURCE_EXTENSION_BONUS

    hits = sum(1 for k in KEYWORDS if k in lower)
    score += min(hits * KEYWORD_BONUS, MAX_KEYWORD_BONUS)

    if any(m in lower for m in GENERATED_MARKERS):
        score -= GENERATED_PENALTY
    if any(m in f"/{lower}" for m in TEST_MARKERS):
        score -= TEST_PENALTY
    if ext in DOC_EXTENSIONS or lower.startswith("docs/"):
        score -= DOC_PENALTY
    if size > LARGE_FILE_BYTES:
        score -= LARGE_FILE_PENALTY

    return score


def select_files(index: CodebaseIndex, max_files: int) -> list[str]:
    """Entry points first, then the highest scores, ties broken by path.

    Secret and binary files are never selected.
    """
    sizes = {f.path: f.bytes for f in index.files}
    entry_points = frozenset(index.entry_points)

    selected = [p for p in index.entry_points if p in sizes and is_selectable(p)]
    chosen = set(selected)

    ranked = sorted(
        (p for p in sizes if p not in chosen and is_selectable(p)),
        key=lambda p: (-score_file(p, sizes[p], entry_points), p),
    )
    selected.extend(ranked)
    return selected[:max(0, max_files)]
