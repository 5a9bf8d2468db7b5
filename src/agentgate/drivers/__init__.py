"""
AgentGate Model Drivers

Backend-neutral chat interface over heterogeneous model APIs
(Ollama, OpenAI-compatible, Anthropic, plus a mock for tests).

Usage:
    from agentgate.drivers import create_driver, ChatRequest, ChatMessage

    driver = create_driver("ollama", model="llama3.1")
    response = await driver.chat(ChatRequest(
        session_id="s-1",
        messages=[ChatMessage(role="user", content="hello")],
    ))
"""

from agentgate.drivers.base import ModelDriver
from agentgate.drivers.mock import MockDriver, MockResponse
from agentgate.drivers.models import (
    Capabilities,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ConversationMessage,
    DriverConfig,
    StreamChunk,
    TokenUsage,
    ToolCall,
    ToolSpec,
)
from agentgate.drivers.ollama import OllamaDriver

__all__ = [
    "ModelDriver",
    "MockDriver",
    "MockResponse",
    "OllamaDriver",
    "Capabilities",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ConversationMessage",
    "DriverConfig",
    "StreamChunk",
    "TokenUsage",
    "ToolCall",
    "ToolSpec",
    "create_driver",
]


def create_driver(
    name: str = "ollama",
    *,
    model: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    timeout_seconds: float = 120.0,
) -> ModelDriver:
    """Factory function to create a model driver by name.

    Args:
        name: Driver name ("ollama", "openai", "anthropic"/"claude", "mock").
        model: Default model for requests without a model hint.
        base_url: Backend URL override.
        api_key: API key (cloud backends).
        timeout_seconds: Per-request timeout.

    Returns:
        Configured ModelDriver instance.
    """
    name_lower = name.lower()
    config = DriverConfig(
        base_url=base_url,
        api_key=api_key,
        default_model=model,
        timeout_seconds=timeout_seconds,
    )

    if name_lower == "ollama":
        return OllamaDriver(config)
    elif name_lower == "openai":
        from agentgate.drivers.openai import OpenAIDriver

        if not config.default_model:
            config = config.model_copy(update={"default_model": OpenAIDriver.DEFAULT_MODEL})
        return OpenAIDriver(config)
    elif name_lower in ("anthropic", "claude"):
        from agentgate.drivers.anthropic import AnthropicDriver

        if not config.default_model:
            config = config.model_copy(update={"default_model": AnthropicDriver.DEFAULT_MODEL})
        return AnthropicDriver(config)
    elif name_lower == "mock":
        return MockDriver(config=config)
    else:
        raise ValueError(f"Unknown driver: {name}. Supported: ollama, openai, anthropic, mock")
