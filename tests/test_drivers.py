"""Tests for the model drivers.

Ollama runs against httpx.MockTransport; the OpenAI and Anthropic drivers
get stub SDK clients so only the wire translation is exercised.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from agentgate.drivers import (
    ChatMessage,
    ChatRequest,
    MockDriver,
    MockResponse,
    OllamaDriver,
    ToolCall,
    ToolSpec,
    create_driver,
)
from agentgate.drivers.anthropic import AnthropicDriver
from agentgate.drivers.models import DriverConfig
from agentgate.drivers.openai import OpenAIDriver
from agentgate.exceptions import (
    DriverAPIError,
    DriverTimeoutError,
    DriverValidationError,
    ModelNotFoundError,
    ToolsNotSupportedError,
)


def _request(**overrides):
    fields = {
        "session_id": "s-1",
        "messages": [ChatMessage(role="user", content="hello")],
    }
    fields.update(overrides)
    return ChatRequest(**fields)


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response=None, *, raise_exc=None):
        self.requests = []
        self._response = response
        self._raise = raise_exc

    def __call__(self, request):
        self.requests.append(request)
        if self._raise is not None:
            raise self._raise(request)
        return self._response

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def _ollama(handler, **config):
    return OllamaDriver(
        DriverConfig(default_model="llama3.1", **config),
        transport=httpx.MockTransport(handler),
    )


# ─── Validation ────────────────────────────────────────────


class TestValidation:
    @pytest.mark.asyncio
    async def test_temperature_out_of_range_never_hits_network(self):
        handler = _Recorder(httpx.Response(200, json={}))
        driver = _ollama(handler)
        with pytest.raises(DriverValidationError, match="Temperature"):
            await driver.chat(_request(temperature=3.0))
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_empty_messages(self):
        with pytest.raises(DriverValidationError, match="Messages"):
            await MockDriver().chat(_request(messages=[]))

    @pytest.mark.asyncio
    async def test_missing_session_id(self):
        with pytest.raises(DriverValidationError, match="Session ID"):
            await MockDriver().chat(_request(session_id=""))

    @pytest.mark.asyncio
    async def test_stream_validates_too(self):
        with pytest.raises(DriverValidationError):
            async for _ in MockDriver().chat_stream(_request(temperature=-1)):
                pass

    def test_model_name_resolution(self):
        driver = MockDriver(config=DriverConfig(default_model="base"))
        assert driver.get_model_name(_request()) == "base"
        assert driver.get_model_name(_request(model_hints={"model": "hinted"})) == "hinted"
        assert MockDriver().get_model_name(_request()) == "default"

    def test_config_copy_and_update(self):
        driver = MockDriver(config=DriverConfig(default_model="a"))
        copy = driver.get_config()
        copy.headers["X"] = "y"
        assert driver.get_config().headers == {}
        driver.update_config(default_model="b")
        assert driver.get_config().default_model == "b"


# ─── Ollama ────────────────────────────────────────────────


class TestOllamaDriver:
    @pytest.mark.asyncio
    async def test_chat(self):
        handler = _Recorder(
            httpx.Response(
                200,
                json={
                    "message": {"role": "assistant", "content": "Hi there"},
                    "done": True,
                    "prompt_eval_count": 10,
                    "eval_count": 4,
                },
            )
        )
        driver = _ollama(handler)
        response = await driver.chat(_request(temperature=0.2, max_tokens=64))

        assert response.text == "Hi there"
        assert response.finish_reason == "stop"
        assert response.incomplete is False
        assert response.usage.total_tokens == 14

        sent = handler.last_json
        assert handler.requests[-1].url.path == "/api/chat"
        assert sent["model"] == "llama3.1"
        assert sent["stream"] is False
        assert sent["options"] == {"temperature": 0.2, "num_predict": 64}

    @pytest.mark.asyncio
    async def test_tools_and_tool_messages_on_the_wire(self):
        handler = _Recorder(httpx.Response(200, json={"message": {"content": "ok"}, "done": True}))
        driver = _ollama(handler)
        messages = [
            ChatMessage(role="user", content="read it"),
            ChatMessage(
                role="assistant",
                tool_calls=[ToolCall(id="c1", name="mcp__fs__read", arguments={"path": "a"})],
            ),
            ChatMessage(role="tool", content='{"ok": true}', tool_call_id="c1", tool_name="mcp__fs__read"),
        ]
        tools = [ToolSpec(name="mcp__fs__read", description="Read a file", parameters={"type": "object"})]
        await driver.chat(_request(messages=messages, tools=tools))

        sent = handler.last_json
        assert sent["tools"][0] == {
            "type": "function",
            "function": {
                "name": "mcp__fs__read",
                "description": "Read a file",
                "parameters": {"type": "object"},
            },
        }
        assert sent["messages"][1]["tool_calls"] == [
            {"function": {"name": "mcp__fs__read", "arguments": {"path": "a"}}}
        ]
        assert sent["messages"][2]["tool_name"] == "mcp__fs__read"

    @pytest.mark.asyncio
    async def test_tool_calls_parsed(self):
        handler = _Recorder(
            httpx.Response(
                200,
                json={
                    "message": {
                        "content": "",
                        "tool_calls": [
                            {"function": {"name": "mcp__fs__read", "arguments": {"path": "a"}}},
                            {"function": {"name": "mcp__fs__list", "arguments": '{"dir": "."}'}},
                        ],
                    },
                    "done": True,
                },
            )
        )
        response = await _ollama(handler).chat(_request())

        assert response.finish_reason == "tool_calls"
        assert [c.name for c in response.tool_calls] == ["mcp__fs__read", "mcp__fs__list"]
        assert response.tool_calls[1].arguments == {"dir": "."}
        assert all(c.id.startswith("call_") for c in response.tool_calls)
        assert response.tool_calls[0].id != response.tool_calls[1].id

    @pytest.mark.asyncio
    async def test_not_done_is_incomplete(self):
        handler = _Recorder(httpx.Response(200, json={"message": {"content": "cut"}, "done": False}))
        response = await _ollama(handler).chat(_request())
        assert response.incomplete is True
        assert response.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_model_not_found(self):
        handler = _Recorder(
            httpx.Response(404, json={"error": 'model "nope" not found, try pulling it first'})
        )
        with pytest.raises(ModelNotFoundError) as exc_info:
            await _ollama(handler).chat(_request(model_hints={"model": "nope"}))
        assert exc_info.value.model == "nope"

    @pytest.mark.asyncio
    async def test_tools_not_supported(self):
        handler = _Recorder(
            httpx.Response(400, json={"error": "registry.ollama.ai/library/gemma does not support tools"})
        )
        with pytest.raises(ToolsNotSupportedError):
            await _ollama(handler).chat(_request(tools=[ToolSpec(name="t")]))

    @pytest.mark.asyncio
    async def test_server_error(self):
        handler = _Recorder(httpx.Response(500, text="boom"))
        with pytest.raises(DriverAPIError) as exc_info:
            await _ollama(handler).chat(_request())
        assert exc_info.value.status_code == 500
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        handler = _Recorder(raise_exc=lambda req: httpx.ReadTimeout("slow", request=req))
        with pytest.raises(DriverTimeoutError, match="timed out after 5.0s"):
            await _ollama(handler, timeout_seconds=5.0).chat(_request())

    @pytest.mark.asyncio
    async def test_connection_error(self):
        handler = _Recorder(raise_exc=lambda req: httpx.ConnectError("refused", request=req))
        with pytest.raises(DriverAPIError, match="failed"):
            await _ollama(handler).chat(_request())

    @pytest.mark.asyncio
    async def test_stream(self):
        lines = [
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True, "prompt_eval_count": 3, "eval_count": 2},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        handler = _Recorder(httpx.Response(200, content=body.encode()))

        chunks = [c async for c in _ollama(handler).chat_stream(_request())]

        assert [c.delta for c in chunks if c.delta] == ["Hel", "lo"]
        final = chunks[-1]
        assert final.done is True
        assert final.response.text == "Hello"
        assert final.response.incomplete is False
        assert final.response.usage.total_tokens == 5
        assert handler.last_json["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_without_done_marker(self):
        body = json.dumps({"message": {"content": "partial"}, "done": False}) + "\n"
        handler = _Recorder(httpx.Response(200, content=body.encode()))

        chunks = [c async for c in _ollama(handler).chat_stream(_request())]

        assert chunks[-1].done is True
        assert chunks[-1].response.incomplete is True
        assert chunks[-1].response.text == "partial"

    @pytest.mark.asyncio
    async def test_capabilities(self):
        handler = _Recorder(httpx.Response(200, json={"models": [{"name": "llama3.1"}, {"name": "qwen"}]}))
        caps = await _ollama(handler).get_capabilities()
        assert caps.models == ["llama3.1", "qwen"]
        assert caps.supports_tools is True
        assert handler.requests[-1].url.path == "/api/tags"

    def test_default_base_url(self):
        assert OllamaDriver().base_url == "http://localhost:11434"
        assert OllamaDriver(DriverConfig(base_url="http://gpu:11434/")).base_url == "http://gpu:11434"


# ─── OpenAI ────────────────────────────────────────────────


def _openai_client(response=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return client


def _openai_completion(content="", tool_calls=None, finish_reason="stop"):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content, tool_calls=tool_calls),
                finish_reason=finish_reason,
            )
        ],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
    )


class TestOpenAIDriver:
    @pytest.mark.asyncio
    async def test_chat(self):
        client = _openai_client(_openai_completion("Hello"))
        driver = OpenAIDriver(DriverConfig(default_model="gpt-4o"), client=client)

        response = await driver.chat(_request(temperature=0.5, stop=["END"]))

        assert response.text == "Hello"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 10
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.5
        assert kwargs["stop"] == ["END"]

    @pytest.mark.asyncio
    async def test_tool_calls(self):
        tool_call = SimpleNamespace(
            id="call_abc",
            function=SimpleNamespace(name="mcp__fs__read", arguments='{"path": "a"}'),
        )
        client = _openai_client(_openai_completion(tool_calls=[tool_call], finish_reason="tool_calls"))
        driver = OpenAIDriver(client=client)

        response = await driver.chat(_request(tools=[ToolSpec(name="mcp__fs__read")]))

        assert response.finish_reason == "tool_calls"
        assert response.tool_calls == [
            ToolCall(id="call_abc", name="mcp__fs__read", arguments={"path": "a"})
        ]
        sent_tool = client.chat.completions.create.call_args.kwargs["tools"][0]
        assert sent_tool["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_message_conversion(self):
        assistant = ChatMessage(
            role="assistant",
            tool_calls=[ToolCall(id="c1", name="t", arguments={"x": 1})],
        )
        converted = OpenAIDriver._convert_message(assistant)
        assert converted["content"] is None
        assert converted["tool_calls"][0]["function"] == {"name": "t", "arguments": '{"x": 1}'}

        tool = ChatMessage(role="tool", content="result", tool_call_id="c1")
        assert OpenAIDriver._convert_message(tool) == {
            "role": "tool",
            "tool_call_id": "c1",
            "content": "result",
        }

    @pytest.mark.asyncio
    async def test_length_is_incomplete(self):
        client = _openai_client(_openai_completion("cut", finish_reason="length"))
        response = await OpenAIDriver(client=client).chat(_request())
        assert response.incomplete is True

    @pytest.mark.asyncio
    async def test_not_found(self):
        raw = httpx.Response(404, request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        client = _openai_client(side_effect=openai.NotFoundError("no such model", response=raw, body=None))
        with pytest.raises(ModelNotFoundError):
            await OpenAIDriver(client=client).chat(_request(model_hints={"model": "gpt-missing"}))

    @pytest.mark.asyncio
    async def test_status_error(self):
        raw = httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        client = _openai_client(
            side_effect=openai.RateLimitError("slow down", response=raw, body={"error": "rate"})
        )
        with pytest.raises(DriverAPIError) as exc_info:
            await OpenAIDriver(client=client).chat(_request())
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_timeout(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = _openai_client(side_effect=openai.APITimeoutError(request=request))
        with pytest.raises(DriverTimeoutError):
            await OpenAIDriver(client=client).chat(_request())

    @pytest.mark.asyncio
    async def test_stream_accumulates_tool_call_fragments(self):
        def chunk(content=None, tool_calls=None, finish_reason=None):
            return SimpleNamespace(
                usage=None,
                choices=[
                    SimpleNamespace(
                        delta=SimpleNamespace(content=content, tool_calls=tool_calls),
                        finish_reason=finish_reason,
                    )
                ],
            )

        def fragment(id=None, name=None, arguments=None):
            return SimpleNamespace(
                index=0,
                id=id,
                function=SimpleNamespace(name=name, arguments=arguments),
            )

        async def stream():
            yield chunk(content="Let me look")
            yield chunk(tool_calls=[fragment(id="call_1", name="mcp__fs__read", arguments='{"pa')])
            yield chunk(tool_calls=[fragment(arguments='th": "a"}')])
            yield chunk(finish_reason="tool_calls")

        client = _openai_client(stream())
        chunks = [c async for c in OpenAIDriver(client=client).chat_stream(_request())]

        assert chunks[0].delta == "Let me look"
        final = chunks[-1].response
        assert final.finish_reason == "tool_calls"
        assert final.tool_calls == [
            ToolCall(id="call_1", name="mcp__fs__read", arguments={"path": "a"})
        ]
        assert client.chat.completions.create.call_args.kwargs["stream"] is True


# ─── Anthropic ─────────────────────────────────────────────


def _anthropic_client(message=None, side_effect=None):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=message, side_effect=side_effect)
    return client


def _anthropic_message(blocks, stop_reason="end_turn"):
    return SimpleNamespace(
        content=blocks,
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=5, output_tokens=7),
    )


class TestAnthropicDriver:
    @pytest.mark.asyncio
    async def test_chat_with_tool_use(self):
        message = _anthropic_message(
            [
                SimpleNamespace(type="text", text="Reading."),
                SimpleNamespace(type="tool_use", id="tu_1", name="mcp__fs__read", input={"path": "a"}),
            ],
            stop_reason="tool_use",
        )
        client = _anthropic_client(message)
        driver = AnthropicDriver(client=client)

        response = await driver.chat(_request(temperature=1.8))

        assert response.text == "Reading."
        assert response.finish_reason == "tool_calls"
        assert response.tool_calls == [ToolCall(id="tu_1", name="mcp__fs__read", arguments={"path": "a"})]
        assert response.usage.total_tokens == 12

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == AnthropicDriver.DEFAULT_MODEL
        assert kwargs["temperature"] == 1.0
        assert kwargs["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_max_tokens_is_incomplete(self):
        client = _anthropic_client(
            _anthropic_message([SimpleNamespace(type="text", text="cut")], stop_reason="max_tokens")
        )
        response = await AnthropicDriver(client=client).chat(_request())
        assert response.finish_reason == "length"
        assert response.incomplete is True

    def test_message_conversion(self):
        request = _request(
            messages=[
                ChatMessage(role="system", content="Be brief."),
                ChatMessage(role="user", content="read a and b"),
                ChatMessage(
                    role="assistant",
                    content="Sure.",
                    tool_calls=[
                        ToolCall(id="c1", name="read", arguments={"path": "a"}),
                        ToolCall(id="c2", name="read", arguments={"path": "b"}),
                    ],
                ),
                ChatMessage(role="tool", content="A", tool_call_id="c1"),
                ChatMessage(role="tool", content="B", tool_call_id="c2"),
            ],
            tools=[ToolSpec(name="read", description="Read a file")],
        )
        kwargs = AnthropicDriver(client=MagicMock())._build_kwargs(request)

        assert kwargs["system"] == "Be brief."
        messages = kwargs["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert [b["type"] for b in messages[1]["content"]] == ["text", "tool_use", "tool_use"]
        assert messages[2]["content"] == [
            {"type": "tool_result", "tool_use_id": "c1", "content": "A"},
            {"type": "tool_result", "tool_use_id": "c2", "content": "B"},
        ]
        assert kwargs["tools"][0]["input_schema"] == {"type": "object", "properties": {}}

    @pytest.mark.asyncio
    async def test_not_found(self):
        raw = httpx.Response(404, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        client = _anthropic_client(side_effect=anthropic.NotFoundError("missing", response=raw, body=None))
        with pytest.raises(ModelNotFoundError):
            await AnthropicDriver(client=client).chat(_request())

    @pytest.mark.asyncio
    async def test_timeout(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = _anthropic_client(side_effect=anthropic.APITimeoutError(request=request))
        with pytest.raises(DriverTimeoutError):
            await AnthropicDriver(client=client).chat(_request())


# ─── Mock driver ───────────────────────────────────────────


class TestMockDriver:
    @pytest.mark.asyncio
    async def test_cycles_responses(self):
        driver = MockDriver([MockResponse(text="a"), MockResponse(text="b")])
        texts = [(await driver.chat(_request())).text for _ in range(3)]
        assert texts == ["a", "b", "a"]
        assert len(driver.requests) == 3

    @pytest.mark.asyncio
    async def test_tool_call_response(self):
        call = ToolCall(id="c1", name="mcp__fs__read")
        driver = MockDriver([MockResponse(tool_calls=[call])])
        response = await driver.chat(_request())
        assert response.finish_reason == "tool_calls"
        assert response.tool_calls == [call]

    @pytest.mark.asyncio
    async def test_stream_character_by_character(self):
        driver = MockDriver([MockResponse(text="hey")])
        chunks = [c async for c in driver.chat_stream(_request())]
        assert [c.delta for c in chunks[:-1]] == ["h", "e", "y"]
        assert chunks[-1].done is True
        assert chunks[-1].response.text == "hey"

    @pytest.mark.asyncio
    async def test_reset(self):
        driver = MockDriver()
        await driver.chat(_request())
        driver.reset()
        assert driver.requests == []
        assert (await driver.chat(_request())).text == "Mock response 1"


# ─── Factory ───────────────────────────────────────────────


class TestCreateDriver:
    def test_ollama(self):
        driver = create_driver("ollama", model="llama3.1", base_url="http://gpu:11434")
        assert isinstance(driver, OllamaDriver)
        assert driver.base_url == "http://gpu:11434"
        assert driver.get_config().default_model == "llama3.1"

    def test_openai_default_model(self):
        driver = create_driver("openai", api_key="sk-test")
        assert isinstance(driver, OpenAIDriver)
        assert driver.get_config().default_model == OpenAIDriver.DEFAULT_MODEL

    def test_claude_alias(self):
        driver = create_driver("Claude", api_key="sk-ant-test")
        assert isinstance(driver, AnthropicDriver)

    def test_mock(self):
        assert isinstance(create_driver("mock"), MockDriver)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown driver"):
            create_driver("gemini")


# ─── Closing ───────────────────────────────────────────────


class TestAclose:
    @pytest.mark.asyncio
    async def test_ollama_closes_http_client(self):
        driver = _ollama(_Recorder(httpx.Response(200, json={})))
        await driver.aclose()
        assert driver._client.is_closed

    @pytest.mark.asyncio
    async def test_injected_sdk_client_left_open(self):
        client = _openai_client()
        client.close = AsyncMock()
        await OpenAIDriver(client=client).aclose()
        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_sdk_client_closed(self, monkeypatch):
        driver = AnthropicDriver(DriverConfig(api_key="sk-test"))
        close = AsyncMock()
        monkeypatch.setattr(driver._client, "close", close)
        await driver.aclose()
        close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mock_driver_noop(self):
        await MockDriver().aclose()
