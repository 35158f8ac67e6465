"""Review entry points: diff review and fix-diff generation."""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from reviewpilot.config import ToolsConfig
from reviewpilot.llm.base import Message, NoChangesError, TransportError
from reviewpilot.llm.client import ChatClient, ProxySupervisor
from reviewpilot.llm.transport import HINT_PROXY_DOWN
from reviewpilot.models import Bug, DiffReviewRequest, ReviewResult
from reviewpilot.review.driver import ConversationDriver
from reviewpilot.review.prompts import (
    FIX_DIFF_SYSTEM_PROMPT, FIX_DIFF_TOOL, FIX_DIFF_TOOL_NAME, SYSTEM_PROMPT,
    SYSTEM_PROMPT_WITH_TOOLS, build_diff_message, build_fix_diff_message,
)
from reviewpilot.tools.registry import ToolRegistry
from reviewpilot.workspace import Workspace


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_proxy_recovery(
    supervisor: Optional[ProxySupervisor],
    action: Callable[[], Awaitable[T]],
) -> T:
    """Run ``action`` against a supervised proxy.

    Checks proxy health first. An authentication failure (401) restarts the
    proxy and runs the action once more; a second failure propagates.

    Raises:
        TransportError: The proxy is unhealthy, or the action failed.
    """
    if supervisor is None:
        return await action()

    if not await supervisor.health():
        raise TransportError("LLM proxy is not healthy", hint=HINT_PROXY_DOWN)

    try:
        return await action()
    except TransportError as e:
        if e.status_code != 401:
            raise
        logger.warning("Proxy rejected credentials, restarting it and retrying once")
        await supervisor.stop()
        await supervisor.start()
        return await action()


def make_driver(
    client: ChatClient,
    tools_config: ToolsConfig,
    workspace: Optional[Workspace],
) -> ConversationDriver:
    """Tool-enabled driver when tools are on and there is a repository, single-shot otherwise."""
    if tools_config.enabled and workspace is not None:
        registry = ToolRegistry.default(workspace, tools_config)
        return ConversationDriver(client, registry, max_tool_calls=tools_config.max_tool_calls)
    return ConversationDriver(client)


async def review_diff(
    request: DiffReviewRequest,
    client: ChatClient,
    tools_config: Optional[ToolsConfig] = None,
    workspace: Optional[Workspace] = None,
    supervisor: Optional[ProxySupervisor] = None,
) -> ReviewResult:
    """Review a diff.

    Args:
        request: Diff text, changed files and optional commit info.
        client: Chat client for the proxy.
        tools_config: Tool policy. Defaults to all tools enabled.
        workspace: Repository the tools may read. Tools are off without one.
        supervisor: Optional proxy supervisor for health checks and restarts.

    Returns:
        Findings with severity counts.

    Raises:
        NoChangesError: The diff is empty.
        TransportError, ProtocolError, BudgetExceededError: See ConversationDriver.
    """
    if not request.diff.strip():
        raise NoChangesError()

    tools_config = tools_config or ToolsConfig()
    user_message = build_diff_message(request)
    lines = len(request.diff.split("\n"))

    async def attempt() -> list[Bug]:
        driver = make_driver(client, tools_config, workspace)
        prompt = SYSTEM_PROMPT_WITH_TOOLS if driver.registry is not None else SYSTEM_PROMPT
        return await driver.run(prompt, user_message)

    logger.info("Reviewing diff: %d file(s), %d line(s)", len(request.files), lines)
    bugs = await with_proxy_recovery(supervisor, attempt)
    return ReviewResult.from_bugs(bugs, files_scanned=len(request.files), lines_analyzed=lines)


async def generate_fix_diff(
    diff: str,
    bug: Bug,
    client: ChatClient,
    supervisor: Optional[ProxySupervisor] = None,
) -> str:
    """Ask for a minimal patch fixing one finding.

    Returns:
        A unified diff, or "" when the model gives no usable answer.

    Raises:
        TransportError: The endpoint failed after retries.
    """
    messages = [
        Message(role="system", content=FIX_DIFF_SYSTEM_PROMPT),
        Message(role="user", content=build_fix_diff_message(diff, bug)),
    ]

    async def attempt():
        return await client.complete(messages, tools=[FIX_DIFF_TOOL], tool_choice=FIX_DIFF_TOOL_NAME)

    response = await with_proxy_recovery(supervisor, attempt)
    call = response.find_tool_call(FIX_DIFF_TOOL_NAME)
    if call is None:
        return ""
    try:
        fix_diff = call.parse_arguments().get("fixDiff")
    except ValueError:
        return ""
    return fix_diff if isinstance(fix_diff, str) else ""
