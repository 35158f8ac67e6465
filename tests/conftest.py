"""Pytest fixtures for reviewpilot tests."""

import json
import shutil
import subprocess
import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from reviewpilot.llm.base import ChatResponse, ToolCall


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def temp_repo(temp_dir):
    """A small Python project, including a secret file."""
    (temp_dir / "src" / "shop" / "auth").mkdir(parents=True)
    (temp_dir / "tests").mkdir()

    (temp_dir / "pyproject.toml").write_text("""[project]
name = "shop"
version = "1.0.0"
dependencies = ["httpx>=0.25", "sqlalchemy[asyncio]>=2.0"]

[project.optional-dependencies]
test = ["pytest>=7.0"]

[project.scripts]
shop = "shop.cli:main"
""")
    (temp_dir / "src" / "shop" / "__init__.py").write_text("")
    (temp_dir / "src" / "shop" / "cli.py").write_text("""import argparse

from shop.app import create_app


def main():
    parser = argparse.ArgumentParser()
    parser.parse_args()
    create_app().run()
""")
    (temp_dir / "src" / "shop" / "app.py").write_text("""import os
from shop.auth.login import check_password


class App:
    def run(self):
        return check_password("admin", os.environ.get("PW", ""))


def create_app():
    return App()
""")
    (temp_dir / "src" / "shop" / "auth" / "login.py").write_text("""import hashlib


def check_password(user, password):
    # TODO: constant-time compare
    return hashlib.md5(password.encode()).hexdigest() == "5f4dcc3b5aa765d61d8327deb882cf99"
""")
    (temp_dir / "tests" / "test_app.py").write_text("""from shop.app import create_app


def test_app():
    assert create_app() is not None
""")
    (temp_dir / "README.md").write_text("# Shop\n")
    (temp_dir / ".env").write_text("SECRET_KEY=hunter2\n")
    (temp_dir / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\0\0\0")
    return temp_dir


@pytest.fixture
def workspace(temp_repo):
    """Workspace rooted at the temporary project."""
    from reviewpilot.workspace import Workspace

    return Workspace(temp_repo)


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout


@pytest.fixture
def git_repo(temp_repo):
    """The temporary project committed into a git repository (two commits)."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    _git(temp_repo, "init", "-q")
    _git(temp_repo, "config", "user.email", "dev@example.com")
    _git(temp_repo, "config", "user.name", "Dev Example")
    _git(temp_repo, "config", "commit.gpgsign", "false")
    (temp_repo / ".gitignore").write_text(".env\n")
    _git(temp_repo, "add", "-A")
    _git(temp_repo, "commit", "-q", "-m", "Initial commit")

    login = temp_repo / "src" / "shop" / "auth" / "login.py"
    login.write_text(login.read_text() + "\n\ndef logout(user):\n    return None\n")
    _git(temp_repo, "commit", "-q", "-am", "Add logout")
    return temp_repo


# ============================================================================
# Scripted model
# ============================================================================

def tool_response(name: str, arguments, call_id: str = "call_1", content: str = "") -> ChatResponse:
    """A model turn calling one tool."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ChatResponse(content=content, tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)])


class FakeChatClient:
    """Stands in for ChatClient, replaying scripted responses in order.

    A callable entry is invoked with the request and its return value used,
    which lets tests answer based on what was sent.
    """

    def __init__(self, responses=None, repeat_last: bool = False):
        self.responses = list(responses or [])
        self.repeat_last = repeat_last
        self.requests = []

    async def complete(self, messages, tools=None, tool_choice=None):
        request = {"messages": list(messages), "tools": tools, "tool_choice": tool_choice}
        self.requests.append(request)

        if not self.responses:
            raise AssertionError("FakeChatClient ran out of scripted responses")
        response = self.responses[0] if self.repeat_last and len(self.responses) == 1 else self.responses.pop(0)

        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def fake_client():
    """Factory for scripted chat clients."""
    return FakeChatClient


@pytest.fixture
def make_tool_response():
    return tool_response


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clean environment variables that might affect tests."""
    env_vars = [
        "REVIEWPILOT_PROXY_URL",
        "REVIEWPILOT_PROXY_KEY",
        "REVIEWPILOT_MODEL",
        "REVIEWPILOT_DEBUG",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)
