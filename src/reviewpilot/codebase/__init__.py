"""Whole-repository review."""

from reviewpilot.codebase.index import CodebaseIndex, FileInfo, build_codebase_index
from reviewpilot.codebase.pipeline import review_codebase

__all__ = ["CodebaseIndex", "FileInfo", "build_codebase_index", "review_codebase"]
