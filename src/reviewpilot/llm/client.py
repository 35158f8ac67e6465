"""Chat-completions client for any OpenAI-compatible proxy."""

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

import httpx

from reviewpilot.config import RetryPolicy
from reviewpilot.llm.base import (
    ChatResponse, Message, ProtocolError, ToolCall, TransportError,
)
from reviewpilot.llm.transport import RequestSpec, send


logger = logging.getLogger(__name__)

ERROR_BODY_CHARS = 500


class ProxySupervisor(Protocol):
    """Whatever keeps the local LLM proxy alive.

    The review code only needs to know whether it is healthy and how to bounce
    it; it never holds the process itself.
    """

    async def start(self) -> None: ...

    async def health(self) -> bool: ...

    async def stop(self) -> None: ...


class ChatClient:
    """Sends chat-completion requests with tool schemas.

    Works with LiteLLM, vLLM, Ollama, LM Studio or any endpoint that accepts
    ``POST /v1/chat/completions`` with OpenAI-style function tools.
    """

    def __init__(
        self,
        proxy_url: str,
        model: str,
        proxy_key: str = "",
        retry: RetryPolicy = RetryPolicy(),
        http_client: Optional[httpx.AsyncClient] = None,
        cancel: Optional[asyncio.Event] = None,
    ):
        """Initialize the client.

        Args:
            proxy_url: Base URL of the proxy, without the ``/v1`` suffix.
            model: Model name to request.
            proxy_key: Optional bearer token for the proxy.
            retry: Transport retry policy.
            http_client: Client to send through. One is created lazily if omitted.
            cancel: Caller cancellation signal shared by every request.
        """
        self.proxy_url = proxy_url.rstrip("/")
        self.model = model
        self.proxy_key = proxy_key
        self.retry = retry
        self.cancel = cancel
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def endpoint(self) -> str:
        return f"{self.proxy_url}/v1/chat/completions"

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the HTTP client. Timeouts are enforced by the transport."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.proxy_key:
            headers["Authorization"] = f"Bearer {self.proxy_key}"
        return headers

    async def complete(
        self,
        messages: list[Message],
        tools: Optional[list[dict]] = None,
        tool_choice: Optional[str] = None,
    ) -> ChatResponse:
        """Send one chat turn.

        Args:
            messages: Full conversation so far.
            tools: OpenAI function tool schemas.
            tool_choice: Name of a tool the model must call, if any.

        Returns:
            The parsed first choice.

        Raises:
            TransportError: Network failure or a non-2xx response.
            ProtocolError: The body is not a chat-completion response.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in messages],
        }
        if tools:
            payload["tools"] = tools
        if tool_choice:
            payload["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}

        logger.debug(
            "Chat request: model=%s messages=%d tools=%d forced=%s",
            self.model, len(messages), len(tools or []), tool_choice,
        )

        response = await send(
            self.client,
            self.endpoint,
            RequestSpec(json=payload, headers=self._headers()),
            policy=self.retry,
            cancel=self.cancel,
        )

        if not response.is_success:
            body = response.text[:ERROR_BODY_CHARS]
            raise TransportError(
                f"AI request failed: {response.status_code} {response.reason_phrase} - {body}",
                hint=_hint_for_status(response.status_code),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise ProtocolError("AI response was not valid JSON", preview=response.text)

        result = parse_chat_response(data)
        logger.debug(
            "Chat response: content=%d chars tool_calls=%s finish=%s",
            len(result.content), [tc.name for tc in result.tool_calls], result.finish_reason,
        )
        return result


def _hint_for_status(status: int) -> str:
    if status in (401, 403):
        return "Check the proxy key and the provider API keys configured in the proxy"
    if status == 404:
        return "Check the model name and that the proxy exposes /v1/chat/completions"
    return ""


def parse_chat_response(data: Any) -> ChatResponse:
    """Parse a chat-completion body into a ChatResponse.

    Raises:
        ProtocolError: If ``choices[0].message`` is missing.
    """
    if not isinstance(data, dict):
        raise ProtocolError("AI response was not a JSON object", preview=json.dumps(data)[:400])

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise ProtocolError("AI response missing choices", preview=json.dumps(data)[:400])

    choice = choices[0]
    message = choice.get("message")
    if not isinstance(message, dict):
        raise ProtocolError("AI response missing choices[0].message", preview=json.dumps(choice)[:400])

    content = message.get("content")
    tool_calls = []
    for index, tc in enumerate(message.get("tool_calls") or []):
        if not isinstance(tc, dict):
            continue
        function = tc.get("function") or {}
        arguments = function.get("arguments")
        if isinstance(arguments, (dict, list)):
            # Some proxies hand back decoded arguments
            arguments = json.dumps(arguments)
        tool_calls.append(ToolCall(
            id=str(tc.get("id") or f"call_{index}"),
            name=str(function.get("name") or ""),
            arguments=arguments if isinstance(arguments, str) else "",
        ))

    return ChatResponse(
        content=content if isinstance(content, str) else "",
        tool_calls=tool_calls,
        finish_reason=choice.get("finish_reason"),
    )
