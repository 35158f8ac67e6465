"""Repository boundary enforcement and sensitive-path classification."""

import posixpath
from pathlib import Path
from typing import Union


# Never handed to the model, whatever the tool
SECRET_BASENAMES = frozenset({
    ".env",
    ".npmrc",
    ".pypirc",
    ".netrc",
    ".git-credentials",
    "id_rsa",
    "id_ed25519",
    "id_dsa",
    "id_ecdsa",
})

SECRET_EXTENSIONS = frozenset({".pem", ".key", ".p12", ".pfx", ".jks", ".kdbx"})

BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svg",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".tar", ".gz", ".rar", ".7z",
    ".exe", ".dll", ".so", ".dylib",
    ".wasm", ".bin", ".dat",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
    ".pyc", ".pyo", ".class", ".jar", ".o", ".a",
})


def _normalize(path: Union[str, Path]) -> str:
    return str(path).replace("\\", "/")


def is_potential_secret_path(path: Union[str, Path]) -> bool:
    """Check if a path likely holds credentials.

    Matching is by name only; the file is never opened.
    """
    normalized = _normalize(path)
    base = posixpath.basename(normalized)

    if base in SECRET_BASENAMES:
        return True
    if base.startswith(".env.") and base != ".env.example":
        return True
    if posixpath.splitext(base)[1].lower() in SECRET_EXTENSIONS:
        return True
    if base == "credentials" and "/.aws/" in f"/{normalized}":
        return True
    return False


def is_binary_path(path: Union[str, Path]) -> bool:
    """Check if a path has a known binary extension."""
    return posixpath.splitext(_normalize(path))[1].lower() in BINARY_EXTENSIONS


class WorkspaceError(Exception):
    """Workspace-related errors."""
    pass


class Workspace:
    """The repository root every tool is confined to.

    Passed explicitly instead of relying on the process working directory.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"Workspace({str(self.root)!r})"

    def is_within_bounds(self, path: Union[str, Path]) -> bool:
        """Check if a path, resolved against the root, stays inside it."""
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        try:
            p.resolve().relative_to(self.root)
            return True
        except ValueError:
            return False

    def resolve_path(self, path: Union[str, Path]) -> Path:
        """Resolve a path relative to the repository root.

        Symlinks are followed, so a link pointing out of the repository is
        rejected as well.

        Raises:
            WorkspaceError: If the path is outside the repository.
        """
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        resolved = p.resolve()

        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise WorkspaceError(f"File path is outside the repository: {path}")
        return resolved

    def relative_path(self, path: Union[str, Path]) -> str:
        """Get a POSIX path relative to the root for display.

        Returns the path unchanged if it is outside the root.
        """
        p = Path(path)
        try:
            return p.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)
