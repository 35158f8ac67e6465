"""Bounded tool-calling conversation with the model."""

import json
import logging
from typing import Optional

from reviewpilot.llm.base import (
    BudgetExceededError, ChatResponse, Message, ProtocolError, ToolCall,
)
from reviewpilot.llm.client import ChatClient
from reviewpilot.llm.parser import bugs_from_content, extract_json_object, normalize_bugs
from reviewpilot.models import Bug
from reviewpilot.review.prompts import REPORT_TOOL, REPORT_TOOL_NAME, nudge_message
from reviewpilot.tools.base import ToolResult
from reviewpilot.tools.registry import ToolRegistry


logger = logging.getLogger(__name__)

MAX_TOOL_OUTPUT_CHARS = 30000

# Nudge the model to finish once this many calls remain
NUDGE_THRESHOLD = 2


def wrap_tool_output(output: str, max_len: int = MAX_TOOL_OUTPUT_CHARS) -> str:
    """Delimit untrusted tool output and cap its length."""
    if len(output) > max_len:
        output = output[:max_len] + f"\n[OUTPUT TRUNCATED: {len(output) - max_len} more characters]"
    return f"<tool_output>\n{output}\n</tool_output>"


def _tool_name(tool: dict) -> str:
    return tool["function"]["name"]


class ConversationDriver:
    """Runs one review task against the model.

    With a tool registry the model may ask for grounding tools until it calls
    the report tool or the call budget runs out. Without one, a single
    request forces the report tool.

    Attributes:
        tool_calls_used: Tool executions in the last run, never above the budget.
    """

    def __init__(
        self,
        client: ChatClient,
        registry: Optional[ToolRegistry] = None,
        max_tool_calls: int = 10,
    ):
        self.client = client
        self.registry = registry
        self.max_tool_calls = max_tool_calls
        self.tool_calls_used = 0

    async def run(self, system_prompt: str, user_message: str) -> list[Bug]:
        """Drive the conversation to a list of findings.

        Raises:
            TransportError: The endpoint failed after retries.
            ProtocolError: The model's answer had the wrong shape.
            BudgetExceededError: Every tool call was used without a report.
        """
        if self.registry is None:
            return await self.run_single_shot(system_prompt, user_message)

        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]
        tools = self.registry.get_openai_tools() + [REPORT_TOOL]
        self.tool_calls_used = 0
        nudged = False

        while self.tool_calls_used < self.max_tool_calls:
            response = await self.client.complete(messages, tools=tools)

            report = response.find_tool_call(REPORT_TOOL_NAME)
            if report is not None:
                bugs = normalize_bugs(report.arguments)
                logger.info("Review finished after %d tool call(s): %d finding(s)",
                            self.tool_calls_used, len(bugs))
                return bugs

            if response.has_tool_calls:
                messages.append(Message(
                    role="assistant",
                    content=response.content or None,
                    tool_calls=response.tool_calls,
                ))
                await self._execute_batch(response.tool_calls, messages)

                remaining = self.max_tool_calls - self.tool_calls_used
                if not nudged and 0 < remaining <= NUDGE_THRESHOLD:
                    messages.append(Message(
                        role="user",
                        content=nudge_message(self.tool_calls_used, self.max_tool_calls),
                    ))
                    nudged = True
                continue

            return self._bugs_from_plain_answer(response)

        raise BudgetExceededError(self.max_tool_calls)

    async def _execute_batch(self, calls: list[ToolCall], messages: list[Message]) -> None:
        """Run calls in order, stopping when the budget runs out."""
        for call in calls:
            if self.tool_calls_used >= self.max_tool_calls:
                # Every tool_call id needs an answer, even unexecuted ones
                result = ToolResult.fail("Tool call budget exhausted; call was not executed")
            else:
                logger.info("Tool call %d/%d: %s", self.tool_calls_used + 1, self.max_tool_calls, call.name)
                result = await self.registry.dispatch(call)
                self.tool_calls_used += 1

            messages.append(Message(
                role="tool",
                tool_call_id=call.id,
                content=wrap_tool_output(result.to_json()),
            ))

    async def run_single_shot(self, system_prompt: str, user_message: str) -> list[Bug]:
        """One request with the report tool forced."""
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_message),
        ]
        response = await self.client.complete(messages, tools=[REPORT_TOOL], tool_choice=REPORT_TOOL_NAME)

        report = response.find_tool_call(REPORT_TOOL_NAME)
        if report is not None:
            return normalize_bugs(report.arguments)
        return self._bugs_from_plain_answer(response)

    def _bugs_from_plain_answer(self, response: ChatResponse) -> list[Bug]:
        if response.content.strip():
            bugs = bugs_from_content(response.content)
            if bugs is not None:
                logger.info("Recovered %d finding(s) from plain content", len(bugs))
                return bugs
            raise ProtocolError(
                f"AI did not call {REPORT_TOOL_NAME} and content was not parsable",
                preview=response.content.strip(),
            )
        raise ProtocolError("AI response contained no tool calls and no content")


async def request_structured(
    client: ChatClient,
    system_prompt: str,
    user_message: str,
    tool: dict,
    key: str,
) -> dict:
    """Single-shot call whose answer is the arguments of a forced tool.

    Args:
        client: Chat client.
        system_prompt: System prompt.
        user_message: The task.
        tool: OpenAI function schema the model must call.
        key: Top-level key the answer must contain.

    Returns:
        The decoded tool arguments (or an object recovered from content).

    Raises:
        ProtocolError: Neither the tool call nor the content holds an object with ``key``.
    """
    name = _tool_name(tool)
    messages = [
        Message(role="system", content=system_prompt),
        Message(role="user", content=user_message),
    ]
    response = await client.complete(messages, tools=[tool], tool_choice=name)

    call = response.find_tool_call(name)
    if call is not None:
        try:
            data = call.parse_arguments()
        except (json.JSONDecodeError, ValueError):
            raise ProtocolError(f"Failed to parse {name} arguments as JSON", preview=call.arguments)
        if key not in data:
            raise ProtocolError(f'{name} arguments missing "{key}"', preview=call.arguments)
        return data

    if response.content.strip():
        data = extract_json_object(response.content, key)
        if data is not None:
            return data
        raise ProtocolError(f"AI did not call {name} and content was not parsable",
                            preview=response.content.strip())
    raise ProtocolError("AI response contained no tool calls and no content")
