"""
AgentGate Ollama Driver

Talks to the native Ollama REST API over httpx:

    GET  /api/tags   installed models
    POST /api/chat   chat, optionally streamed as NDJSON

No API key needed. Default URL: http://localhost:11434
Override with the AGENTGATE_OLLAMA_URL environment variable (see Settings).

Tool calling uses Ollama's function format. Ollama does not assign ids
to tool calls, so ids are generated as call_<ms>_<index>.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from agentgate.drivers.base import ModelDriver
from agentgate.drivers.models import (
    Capabilities,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    DriverConfig,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from agentgate.exceptions import (
    DriverAPIError,
    DriverTimeoutError,
    ModelNotFoundError,
    ToolsNotSupportedError,
)


class OllamaDriver(ModelDriver):
    """Local Ollama driver using the native /api endpoints."""

    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        config: DriverConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        self._base_url = (self._config.base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._config.timeout_seconds,
            headers={"Content-Type": "application/json", **self._config.headers},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_capabilities(self) -> Capabilities:
        try:
            response = await self._request("GET", "/api/tags")
            data = response.json()
        except DriverTimeoutError:
            raise
        except (DriverAPIError, ValueError) as e:
            raise DriverAPIError(
                f"Failed to get capabilities: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e

        return Capabilities(
            models=[m.get("name", "") for m in data.get("models", [])],
            supports_tools=True,
            supports_stream=True,
            max_context_tokens=128000,
            api_version="1.0.0",
        )

    async def _chat_impl(self, request: ChatRequest) -> ChatResponse:
        payload = self._build_payload(request, stream=False)
        response = await self._request("POST", "/api/chat", payload=payload, model=payload["model"])
        try:
            data = response.json()
        except ValueError as e:
            raise DriverAPIError(f"Chat request failed: invalid JSON body ({e})") from e
        return self._parse_response(data)

    async def _chat_stream_impl(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        payload = self._build_payload(request, stream=True)
        full_text = ""
        tool_calls: list[ToolCall] = []

        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._raise_for_status(response, payload["model"])

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise DriverAPIError(f"Stream request failed: malformed line ({e})") from e

                    message = data.get("message") or {}
                    delta = message.get("content")
                    if delta:
                        full_text += delta
                        yield StreamChunk(delta=delta)

                    for call in self._parse_tool_calls(message, offset=len(tool_calls)):
                        tool_calls.append(call)
                        yield StreamChunk(tool_call_delta=call)

                    if data.get("done"):
                        final = {**data, "message": {"content": full_text}}
                        yield StreamChunk(
                            done=True,
                            response=self._parse_response(final, tool_calls=tool_calls),
                        )
                        return
        except httpx.TimeoutException as e:
            raise DriverTimeoutError(
                f"Request timed out after {self._config.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise DriverAPIError(f"Stream request failed: {e}") from e

        # Stream closed without a done marker.
        yield StreamChunk(
            done=True,
            response=ChatResponse(
                text=full_text,
                tool_calls=tool_calls or None,
                incomplete=True,
                finish_reason="tool_calls" if tool_calls else "length",
            ),
        )

    # ─── Wire translation ──────────────────────────────────

    def _build_payload(self, request: ChatRequest, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.get_model_name(request),
            "messages": [self._convert_message(m) for m in request.messages],
            "stream": stream,
        }

        if request.temperature is not None or request.max_tokens is not None:
            options: dict[str, Any] = {}
            if request.temperature is not None:
                options["temperature"] = request.temperature
            if request.max_tokens is not None:
                options["num_predict"] = request.max_tokens
            payload["options"] = options

        if request.stop:
            payload.setdefault("options", {})["stop"] = request.stop

        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in request.tools
            ]

        return payload

    @staticmethod
    def _convert_message(message: ChatMessage) -> dict[str, Any]:
        converted: dict[str, Any] = {"role": message.role, "content": message.content}
        if message.role == "tool" and message.tool_name:
            converted["tool_name"] = message.tool_name
        if message.tool_calls:
            converted["tool_calls"] = [
                {"function": {"name": tc.name, "arguments": tc.arguments}}
                for tc in message.tool_calls
            ]
        return converted

    @staticmethod
    def _parse_tool_calls(message: dict[str, Any], offset: int = 0) -> list[ToolCall]:
        calls = []
        stamp = int(time.time() * 1000)
        for idx, raw in enumerate(message.get("tool_calls") or []):
            function = raw.get("function") or {}
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"_raw": arguments}
            calls.append(
                ToolCall(
                    id=f"call_{stamp}_{offset + idx}",
                    name=function.get("name", ""),
                    arguments=arguments,
                )
            )
        return calls

    def _parse_response(
        self,
        data: dict[str, Any],
        tool_calls: list[ToolCall] | None = None,
    ) -> ChatResponse:
        message = data.get("message") or {}
        if tool_calls is None:
            tool_calls = self._parse_tool_calls(message)
        done = bool(data.get("done"))
        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0

        if tool_calls:
            finish_reason = "tool_calls"
        elif done:
            finish_reason = "stop"
        else:
            finish_reason = "length"

        return ChatResponse(
            text=message.get("content") or "",
            tool_calls=tool_calls or None,
            incomplete=not done,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=finish_reason,
        )

    # ─── HTTP ──────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        model: str | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise DriverTimeoutError(
                f"Request timed out after {self._config.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise DriverAPIError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response, model)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, model: str | None) -> None:
        body = response.text
        lowered = body.lower()
        if model and response.status_code == 404 and "not found" in lowered:
            raise ModelNotFoundError(model)
        if response.status_code == 400 and "does not support tools" in lowered:
            raise ToolsNotSupportedError()
        raise DriverAPIError(
            f"HTTP {response.status_code}: {response.reason_phrase}",
            status_code=response.status_code,
            response=body,
        )
