"""
Family Assistant — LLM Provider Abstraction.

Public function `stream()` routes to the configured provider.
Provider is selected on first use via the LLM_PROVIDER env var.
Supports: openai (default), anthropic, gemini, cohere.

Messages are provider-neutral dicts: {"role": "user" | "assistant", "content": str}.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)

# Type alias for provider implementations
_ProviderFn = Callable[[str, str, str, list[dict], int], AsyncIterator[str]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _stream_gemini(
    api_key: str, model: str, system: str, messages: list[dict], max_tokens: int,
) -> AsyncIterator[str]:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
    )
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
        for m in messages
    ]
    response = await gm.generate_content_async(
        contents,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
        stream=True,
    )
    async for chunk in response:
        if chunk.text:
            yield chunk.text


async def _stream_anthropic(
    api_key: str, model: str, system: str, messages: list[dict], max_tokens: int,
) -> AsyncIterator[str]:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    async with client.messages.stream(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=messages,
    ) as response:
        async for text in response.text_stream:
            yield text


async def _stream_openai(
    api_key: str, model: str, system: str, messages: list[dict], max_tokens: int,
) -> AsyncIterator[str]:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        stream=True,
        messages=[{"role": "system", "content": system}, *messages],
    )
    async for chunk in response:
        if chunk.choices and chunk.choices[0].delta.content:
            yield chunk.choices[0].delta.content


async def _stream_cohere(
    api_key: str, model: str, system: str, messages: list[dict], max_tokens: int,
) -> AsyncIterator[str]:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    async for event in client.chat_stream(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "system", "content": system}, *messages],
    ):
        if event.type == "content-delta":
            yield event.delta.message.content.text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_stream_gemini,    "gemini-2.0-flash"),
    "anthropic": (_stream_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_stream_openai,    "gpt-4o-mini"),
    "cohere":    (_stream_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from family_assistant.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton — populated on first call to stream()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def stream(system: str, messages: list[dict], max_tokens: int = 2048) -> AsyncIterator[str]:
    """Stream the model's reply to a conversation as text deltas.

    Raises on API errors while iterating — callers should handle exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return _provider_fn(_api_key, _model, system, messages, max_tokens)
