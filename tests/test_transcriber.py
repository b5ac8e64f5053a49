"""Tests for family_assistant.core.transcriber — Whisper wrapper."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from family_assistant.core.transcriber import transcribe_audio


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "voice.ogg"
    path.write_bytes(b"OggS")
    return str(path)


class TestTranscribeAudio:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self, audio_file):
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="  compra il pane \n"))

        with patch("family_assistant.core.transcriber._get_client", return_value=client):
            text = await transcribe_audio(audio_file, "it")

        assert text == "compra il pane"
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "it"

    @pytest.mark.asyncio
    async def test_language_defaults(self, audio_file):
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="ok"))

        with patch("family_assistant.core.transcriber._get_client", return_value=client):
            await transcribe_audio(audio_file)

        assert client.audio.transcriptions.create.call_args.kwargs["language"] == "it"

    @pytest.mark.asyncio
    async def test_api_error_propagates(self, audio_file):
        client = MagicMock()
        client.audio.transcriptions.create = AsyncMock(side_effect=RuntimeError("quota"))

        with patch("family_assistant.core.transcriber._get_client", return_value=client):
            with pytest.raises(RuntimeError, match="quota"):
                await transcribe_audio(audio_file)
