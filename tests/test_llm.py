"""Tests for family_assistant.core.llm — provider selection and streaming."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import family_assistant.core.llm as llm


@pytest.fixture(autouse=True)
def reset_provider():
    """Clear the lazy provider singleton around each test."""
    llm._provider_fn = None
    yield
    llm._provider_fn = None


async def _chunks(*texts):
    for text in texts:
        yield text


class TestSelectProvider:
    def test_unknown_provider(self):
        fake = SimpleNamespace(LLM_PROVIDER="mistral", LLM_MODEL="", LLM_API_KEY="k")
        with patch("family_assistant.config.settings", fake):
            with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
                llm._select_provider()

    def test_default_model_per_provider(self):
        fake = SimpleNamespace(LLM_PROVIDER="Anthropic", LLM_MODEL="", LLM_API_KEY="k")
        with patch("family_assistant.config.settings", fake):
            fn, model, api_key = llm._select_provider()
        assert fn is llm._stream_anthropic
        assert model == "claude-haiku-4-5-20251001"
        assert api_key == "k"

    def test_model_override(self):
        fake = SimpleNamespace(LLM_PROVIDER="openai", LLM_MODEL="gpt-4o", LLM_API_KEY="k")
        with patch("family_assistant.config.settings", fake):
            _, model, _ = llm._select_provider()
        assert model == "gpt-4o"


class TestStream:
    @pytest.mark.asyncio
    async def test_routes_to_provider_once(self):
        provider = MagicMock(side_effect=lambda *args: _chunks("ciao", " Anna"))
        with patch.object(llm, "_select_provider", return_value=(provider, "m", "key")) as select:
            first = "".join([c async for c in llm.stream("sys", [{"role": "user", "content": "hi"}], 100)])
            second = "".join([c async for c in llm.stream("sys", [], 100)])

        assert first == "ciao Anna"
        assert second == "ciao Anna"
        select.assert_called_once()
        provider.assert_any_call("key", "m", "sys", [{"role": "user", "content": "hi"}], 100)


class TestOpenAIStream:
    @pytest.mark.asyncio
    async def test_yields_non_empty_deltas(self):
        def _chunk(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        async def _response():
            yield _chunk("Ciao")
            yield _chunk(None)
            yield SimpleNamespace(choices=[])
            yield _chunk("!")

        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=_response())

        with patch("openai.AsyncOpenAI", return_value=client):
            parts = [
                p async for p in llm._stream_openai(
                    "key", "gpt-4o-mini", "sys", [{"role": "user", "content": "hi"}], 50,
                )
            ]

        assert parts == ["Ciao", "!"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}
