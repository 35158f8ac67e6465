"""Review configuration management."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import sys

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli


logger = logging.getLogger(__name__)

CONFIG_DIR = ".reviewpilot"
CONFIG_FILE = "config.toml"

DEFAULT_PROXY_URL = "http://localhost:4000"

CHECK_KINDS = ("typecheck", "test", "lint", "build")

# Hard ceiling for run_check, whatever the config or the model asks for
RUN_CHECK_MAX_TIMEOUT_MS = 60000

MAX_FILES_TO_SUMMARIZE = 1000
MAX_FOLDER_DEPTH = 6


def _to_int(value: Any, fallback: int) -> int:
    """Coerce to int, returning fallback for anything non-numeric."""
    if isinstance(value, bool):
        return fallback
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return fallback


def clamp_int(value: Any, low: int, high: int, fallback: Optional[int] = None) -> int:
    """Clamp a loosely typed number into [low, high]."""
    n = _to_int(value, low if fallback is None else fallback)
    return max(low, min(high, n))


def _to_bool(value: Any, fallback: bool) -> bool:
    """Only real TOML booleans count; ``"false"`` is not False."""
    return value if isinstance(value, bool) else fallback


def _table(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class RetryPolicy:
    """Transport retry settings."""
    max_retries: int = 3
    timeout_ms: int = 120000
    backoff_ms: int = 1000

    @classmethod
    def from_dict(cls, data: dict) -> "RetryPolicy":
        default = cls()
        return cls(
            max_retries=clamp_int(data.get("max_retries"), 0, 10, default.max_retries),
            timeout_ms=clamp_int(data.get("timeout_ms"), 1000, 600000, default.timeout_ms),
            backoff_ms=clamp_int(data.get("backoff_ms"), 0, 60000, default.backoff_ms),
        )


@dataclass(frozen=True)
class SearchRepoConfig:
    max_results: int = 50
    timeout_ms: int = 10000


@dataclass(frozen=True)
class ReadFileConfig:
    max_bytes: int = 50000


@dataclass(frozen=True)
class RunCheckConfig:
    timeout_ms: int = 30000
    allowed_kinds: tuple[str, ...] = CHECK_KINDS


@dataclass(frozen=True)
class ToolsConfig:
    """Policy for the grounding tools.

    Read-only for the duration of a review. Values supplied by the model in a
    tool call are clamped against these ceilings.
    """
    enabled: bool = True
    max_tool_calls: int = 10
    search_repo: SearchRepoConfig = field(default_factory=SearchRepoConfig)
    read_file: ReadFileConfig = field(default_factory=ReadFileConfig)
    run_check: RunCheckConfig = field(default_factory=RunCheckConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "ToolsConfig":
        """Build from a ``[tools]`` table, falling back to defaults per key."""
        default = cls()
        search = _table(data, "search_repo")
        read = _table(data, "read_file")
        check = _table(data, "run_check")

        kinds = check.get("allowed_kinds")
        if isinstance(kinds, (list, tuple)):
            allowed = tuple(k for k in kinds if k in CHECK_KINDS)
        else:
            allowed = default.run_check.allowed_kinds

        return cls(
            enabled=_to_bool(data.get("enabled"), default.enabled),
            max_tool_calls=clamp_int(data.get("max_tool_calls"), 1, 100, default.max_tool_calls),
            search_repo=SearchRepoConfig(
                max_results=clamp_int(search.get("max_results"), 1, 1000, default.search_repo.max_results),
                timeout_ms=clamp_int(search.get("timeout_ms"), 100, 120000, default.search_repo.timeout_ms),
            ),
            read_file=ReadFileConfig(
                max_bytes=clamp_int(read.get("max_bytes"), 1, 10_000_000, default.read_file.max_bytes),
            ),
            run_check=RunCheckConfig(
                timeout_ms=clamp_int(
                    check.get("timeout_ms"), 100, RUN_CHECK_MAX_TIMEOUT_MS, default.run_check.timeout_ms
                ),
                allowed_kinds=allowed,
            ),
        )


@dataclass(frozen=True)
class CodebaseReviewConfig:
    """Limits for whole-repository reviews."""
    max_files_to_summarize: int = 250
    folder_depth: int = 2

    @classmethod
    def from_dict(cls, data: dict) -> "CodebaseReviewConfig":
        default = cls()
        return cls(
            max_files_to_summarize=clamp_int(
                data.get("max_files_to_summarize"), 1, MAX_FILES_TO_SUMMARIZE,
                default.max_files_to_summarize,
            ),
            folder_depth=clamp_int(data.get("folder_depth"), 1, MAX_FOLDER_DEPTH, default.folder_depth),
        )


@dataclass
class ConfigSource:
    """Track where a config value came from."""
    global_config: Optional[Path] = None
    local_config: Optional[Path] = None
    loaded_from: str = "default"  # "default", "global", "local", "env"
    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        parts = []
        if self.global_config:
            parts.append(f"Global: {self.global_config}")
        if self.local_config:
            parts.append(f"Local: {self.local_config}")
        parts.append(f"Active: {self.loaded_from}")
        if self.errors:
            parts.append(f"Errors: {', '.join(self.errors)}")
        return " | ".join(parts)


@dataclass
class Config:
    """Review configuration."""

    # Endpoint settings
    proxy_url: str = DEFAULT_PROXY_URL
    proxy_key: str = ""
    model: str = ""

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    codebase_review: CodebaseReviewConfig = field(default_factory=CodebaseReviewConfig)

    debug: bool = False

    # Config source tracking (not loaded from file)
    _source: ConfigSource = field(default_factory=ConfigSource)

    @property
    def source(self) -> ConfigSource:
        return self._source

    @staticmethod
    def global_config_path() -> Path:
        """Get the global config path for the current platform."""
        if os.name == 'nt':  # Windows
            appdata = os.environ.get('APPDATA')
            if appdata:
                return Path(appdata) / "reviewpilot" / CONFIG_FILE
        return Path.home() / CONFIG_DIR / CONFIG_FILE

    @classmethod
    def load(cls, repo_root: Optional[Path] = None, global_path: Optional[Path] = None) -> "Config":
        """Load configuration from files and environment.

        Load order (later overrides earlier):
        1. Global config (~/.reviewpilot/config.toml or %APPDATA%/reviewpilot/config.toml)
        2. Local config (.reviewpilot/config.toml in the repository)
        3. Environment variables

        Args:
            repo_root: Repository whose local config should be applied.
            global_path: Override for the global config location.
        """
        config = cls()
        config._source = ConfigSource()

        global_config = global_path or cls.global_config_path()
        if global_config.exists():
            error = config._load_from_file(global_config)
            if not error:
                config._source.global_config = global_config
                config._source.loaded_from = "global"
                logger.debug("Loaded global config: %s", global_config)
            else:
                config._source.errors.append(f"global: {error}")
                logger.warning("Error loading global config %s: %s", global_config, error)

        if repo_root is not None:
            local_config = Path(repo_root) / CONFIG_DIR / CONFIG_FILE
            if local_config.exists():
                error = config._load_from_file(local_config)
                if not error:
                    config._source.local_config = local_config
                    config._source.loaded_from = "local"
                    logger.debug("Loaded local config: %s", local_config)
                else:
                    config._source.errors.append(f"local: {error}")
                    logger.warning("Error loading local config %s: %s", local_config, error)

        env_overrides = config._load_from_env()
        if env_overrides:
            config._source.loaded_from = "env"
            logger.debug("Env overrides: %s", ", ".join(env_overrides))

        return config

    def _load_from_file(self, path: Path) -> str:
        """Load configuration from a TOML file.

        Returns:
            Error message, empty on success.
        """
        try:
            with open(path, "rb") as f:
                data = tomli.load(f)
        except FileNotFoundError:
            return f"File not found: {path}"
        except (OSError, tomli.TOMLDecodeError) as e:
            return str(e)

        for table in ("llm", "transport", "tools", "codebase_review"):
            if table in data and not isinstance(data[table], dict):
                return f"[{table}] must be a table, got {type(data[table]).__name__}"
        if "debug" in data and not isinstance(data["debug"], bool):
            return f"debug must be true or false, got {data['debug']!r}"

        if "llm" in data:
            llm = data["llm"]
            if llm.get("proxy_url"):
                self.proxy_url = str(llm["proxy_url"]).rstrip("/")
            if llm.get("proxy_key"):
                self.proxy_key = str(llm["proxy_key"])
            if llm.get("model"):
                self.model = str(llm["model"])

        if "transport" in data:
            self.retry = RetryPolicy.from_dict(data["transport"])

        if "tools" in data:
            self.tools = ToolsConfig.from_dict(data["tools"])

        if "codebase_review" in data:
            self.codebase_review = CodebaseReviewConfig.from_dict(data["codebase_review"])

        if "debug" in data:
            self.debug = data["debug"]

        return ""

    def _load_from_env(self) -> list[str]:
        """Load configuration from environment variables.

        Returns:
            Names of the variables that were applied.
        """
        applied = []

        if url := os.environ.get("REVIEWPILOT_PROXY_URL"):
            self.proxy_url = url.rstrip("/")
            applied.append("REVIEWPILOT_PROXY_URL")

        if key := os.environ.get("REVIEWPILOT_PROXY_KEY"):
            self.proxy_key = key
            applied.append("REVIEWPILOT_PROXY_KEY")

        if model := os.environ.get("REVIEWPILOT_MODEL"):
            self.model = model
            applied.append("REVIEWPILOT_MODEL")

        if os.environ.get("REVIEWPILOT_DEBUG", "").lower() in ("1", "true", "yes"):
            self.debug = True
            applied.append("REVIEWPILOT_DEBUG")

        return applied


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    root = logging.getLogger("reviewpilot")
    if not any(getattr(h, "_reviewpilot", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        handler._reviewpilot = True
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    return root
