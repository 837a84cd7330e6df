from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from callstream.bot.ai_stream import GeminiStream, build_system_prompt, gemini_stream_factory
from callstream.config.constants import FALLBACK_EMPTY_RESPONSE, FALLBACK_GENERATION_ERROR
from callstream.config.settings import StreamSettings
from callstream.errors import InitializationError
from callstream.services.personalities import PersonalityStore

from conftest import FakeAIStream


@pytest.fixture
def personality():
    return PersonalityStore().get("professional")


class FakeGeminiResponse:
    def __init__(self, texts, error=None):
        self.texts = texts
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for text in self.texts:
            chunk = MagicMock()
            chunk.text = text
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_stream_response_delivers_chunks_in_order(personality):
    stream = FakeAIStream(personality, [], chunks=["Hi", " there"])
    on_chunk = AsyncMock()

    response = await stream.stream_response("hello", on_chunk)

    assert response == "Hi there"
    assert [c.args[0] for c in on_chunk.await_args_list] == ["Hi", " there"]
    assert stream.failed is False


@pytest.mark.asyncio
async def test_empty_generation_emits_single_fallback(personality):
    stream = FakeAIStream(personality, [], chunks=[])
    on_chunk = AsyncMock()

    response = await stream.stream_response("hello", on_chunk)

    on_chunk.assert_awaited_once_with(FALLBACK_EMPTY_RESPONSE)
    assert response == FALLBACK_EMPTY_RESPONSE


@pytest.mark.asyncio
async def test_generation_error_emits_apology_without_raising(personality):
    stream = FakeAIStream(personality, [], chunks=["Hi"], error=RuntimeError("quota"))
    on_chunk = AsyncMock()

    response = await stream.stream_response("hello", on_chunk)

    assert [c.args[0] for c in on_chunk.await_args_list] == ["Hi", FALLBACK_GENERATION_ERROR]
    assert response.endswith(FALLBACK_GENERATION_ERROR)
    assert stream.failed is True


@pytest.mark.asyncio
async def test_close_is_idempotent(personality):
    stream = FakeAIStream(personality, [])
    await stream.close()
    await stream.close()
    assert stream.closed is True
    assert stream.release_count == 1


def test_update_context_replaces_history(personality):
    stream = FakeAIStream(personality, ["User: hi"])
    stream.update_context(["User: hello", "User: how are you"])
    assert stream.context == ["User: hello", "User: how are you"]


def test_build_system_prompt_includes_traits(personality):
    prompt = build_system_prompt(personality)
    assert personality.system_prompt in prompt
    assert "Professional, Formal, Efficient" in prompt


@pytest.mark.asyncio
async def test_gemini_create_requires_api_key(personality):
    with pytest.raises(InitializationError):
        await GeminiStream.create(personality, [], api_key=None)


@pytest.mark.asyncio
async def test_gemini_create_wraps_model_errors(personality):
    with patch("callstream.bot.ai_stream.genai") as mock_genai:
        mock_genai.GenerativeModel.side_effect = ValueError("unknown model")
        with pytest.raises(InitializationError):
            await GeminiStream.create(personality, [], api_key="key", model_name="nope")


@pytest.mark.asyncio
async def test_gemini_stream_response(personality):
    with patch("callstream.bot.ai_stream.genai") as mock_genai:
        model = mock_genai.GenerativeModel.return_value
        chat = model.start_chat.return_value
        chat.send_message_async = AsyncMock(return_value=FakeGeminiResponse(["Hello", "", " caller"]))

        stream = await GeminiStream.create(personality, ["User: hi"], api_key="key")
        on_chunk = AsyncMock()
        response = await stream.stream_response("hi", on_chunk)

    mock_genai.configure.assert_called_once_with(api_key="key")
    kwargs = mock_genai.GenerativeModel.call_args.kwargs
    assert kwargs["model_name"] == "gemini-1.5-flash"
    assert kwargs["generation_config"]["temperature"] == personality.temperature
    assert kwargs["system_instruction"] == build_system_prompt(personality)

    history = model.start_chat.call_args.kwargs["history"]
    assert history[0] == {"role": "user", "parts": [personality.examples[0].input]}
    assert "User: hi" in history[-2]["parts"][0]

    chat.send_message_async.assert_awaited_once_with("hi", stream=True)
    assert response == "Hello caller"
    assert [c.args[0] for c in on_chunk.await_args_list] == ["Hello", " caller"]


@pytest.mark.asyncio
async def test_gemini_mid_stream_failure_flags_stream(personality):
    with patch("callstream.bot.ai_stream.genai") as mock_genai:
        chat = mock_genai.GenerativeModel.return_value.start_chat.return_value
        chat.send_message_async = AsyncMock(
            return_value=FakeGeminiResponse(["Partial"], error=ConnectionError("reset"))
        )

        stream = await GeminiStream.create(personality, [], api_key="key")
        on_chunk = AsyncMock()
        await stream.stream_response("hi", on_chunk)

    assert stream.failed is True
    on_chunk.assert_awaited_with(FALLBACK_GENERATION_ERROR)


@pytest.mark.asyncio
async def test_gemini_update_context_restarts_chat(personality):
    with patch("callstream.bot.ai_stream.genai") as mock_genai:
        model = mock_genai.GenerativeModel.return_value
        model.start_chat.return_value.send_message_async = AsyncMock(
            return_value=FakeGeminiResponse(["ok"])
        )

        stream = await GeminiStream.create(personality, [], api_key="key")
        stream.update_context(["User: new context"])
        await stream.stream_response("hi", AsyncMock())

    assert model.start_chat.call_count == 2
    history = model.start_chat.call_args.kwargs["history"]
    assert "User: new context" in history[-2]["parts"][0]


@pytest.mark.asyncio
async def test_gemini_stream_factory_uses_settings(personality):
    settings = StreamSettings(google_api_key="key", gemini_model="gemini-test", max_output_tokens=64)
    factory = gemini_stream_factory(settings)

    with patch("callstream.bot.ai_stream.genai") as mock_genai:
        stream = await factory(personality, [])

    assert isinstance(stream, GeminiStream)
    kwargs = mock_genai.GenerativeModel.call_args.kwargs
    assert kwargs["model_name"] == "gemini-test"
    assert kwargs["generation_config"]["max_output_tokens"] == 64
