"""Tests for the OpenAI chunk translator."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from common.cancellation import CancellationToken
from common.errors import (
    MalformedResponseError,
    ModelOverloadedError,
    QuotaExceededError,
    TaskCancelledError,
)
from common.schemas import Segment
from translator.schemas import ChunkContext
from translator.translation_service import GPTChunkTranslator, is_reasoning_model

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def _response(content, finish_reason="stop", prompt=100, completion=50, reasoning=20):
    response = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response.choices = [choice]
    response.usage.prompt_tokens = prompt
    response.usage.completion_tokens = completion
    response.usage.completion_tokens_details.reasoning_tokens = reasoning
    return response


def _status_error(error_class, status_code: int, message: str):
    request = httpx.Request("POST", OPENAI_URL)
    return error_class(
        message,
        response=httpx.Response(status_code, request=request),
        body=None,
    )


@pytest.fixture
def chunk():
    return [
        Segment(start="0:01", text="Hello."),
        Segment(start="0:04", text="Goodbye."),
    ]


@pytest.fixture
def context():
    return ChunkContext(target_lang="Korean", source_lang="English", chunk_index=0, total_chunks=2)


@pytest.fixture
def live_translator():
    """Translator with a real key whose client is replaced by a mock."""
    translator = GPTChunkTranslator(api_key="sk-test", model="gpt-4o-mini")
    translator.client = MagicMock()
    translator.client.chat.completions.create = AsyncMock()
    return translator


class TestIsReasoningModel:
    @pytest.mark.parametrize(
        "model,expected",
        [
            ("gpt-5-nano", True),
            ("gpt-5", True),
            ("o3-mini", True),
            ("gpt-4.1-nano", True),
            ("gpt-4o-mini", False),
            ("gpt-4o", False),
        ],
    )
    def test_detects_reasoning_models(self, model, expected):
        assert is_reasoning_model(model) is expected


class TestMockMode:
    """Test behavior without an API key."""

    @pytest.fixture
    def mock_translator(self, monkeypatch):
        monkeypatch.setattr(
            "translator.translation_service.settings.openai_api_key", None
        )
        return GPTChunkTranslator()

    @pytest.mark.asyncio
    async def test_prefixes_texts(self, mock_translator, chunk, context):
        result = await mock_translator.translate_chunk(chunk, context, CancellationToken())

        assert mock_translator.is_mock is True
        assert [s.text for s in result.segments] == [
            "[TRANSLATED to Korean] Hello.",
            "[TRANSLATED to Korean] Goodbye.",
        ]
        assert [s.start for s in result.segments] == ["0:01", "0:04"]

    @pytest.mark.asyncio
    async def test_refine_distributes_draft_words(self, mock_translator, chunk):
        result = await mock_translator.refine(
            chunk, "one two three four five", CancellationToken()
        )

        assert [s.text for s in result.segments] == ["one two three", "four five"]
        assert [s.start for s in result.segments] == ["0:01", "0:04"]

    @pytest.mark.asyncio
    async def test_cancelled_token_raises(self, mock_translator, chunk, context):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TaskCancelledError):
            await mock_translator.translate_chunk(chunk, context, token)


class TestTranslateChunk:
    """Test requests against a mocked OpenAI client."""

    @pytest.mark.asyncio
    async def test_parses_segments_and_usage(self, live_translator, chunk, context):
        # Arrange
        payload = json.dumps(
            [{"start": "0:01", "text": "안녕."}, {"start": "0:04", "text": "잘 가."}],
            ensure_ascii=False,
        )
        live_translator.client.chat.completions.create.return_value = _response(payload)

        # Act
        result = await live_translator.translate_chunk(chunk, context, CancellationToken())

        # Assert
        assert [s.text for s in result.segments] == ["안녕.", "잘 가."]
        assert result.usage.input_tokens == 100
        assert result.usage.output_tokens == 30
        assert result.usage.thinking_tokens == 20

    @pytest.mark.asyncio
    async def test_builds_request_with_context(self, live_translator, chunk, context):
        context.previous_context = "earlier lines"
        live_translator.client.chat.completions.create.return_value = _response("[]")

        await live_translator.translate_chunk(chunk, context, CancellationToken())

        kwargs = live_translator.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert "temperature" in kwargs
        assert "reasoning_effort" not in kwargs
        assert "from English to Korean" in kwargs["messages"][0]["content"]
        assert "earlier lines" in kwargs["messages"][1]["content"]
        assert '"start": "0:04"' in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_reasoning_model_uses_thinking_level(self, chunk, context):
        translator = GPTChunkTranslator(api_key="sk-test", model="gpt-5-nano")
        translator.client = MagicMock()
        translator.client.chat.completions.create = AsyncMock(return_value=_response("[]"))
        context.thinking_level = "low"

        await translator.translate_chunk(chunk, context, CancellationToken())

        kwargs = translator.client.chat.completions.create.call_args.kwargs
        assert kwargs["reasoning_effort"] == "low"
        assert "temperature" not in kwargs

    @pytest.mark.asyncio
    async def test_no_choices_is_malformed(self, live_translator, chunk, context):
        response = _response("[]")
        response.choices = []
        live_translator.client.chat.completions.create.return_value = response

        with pytest.raises(MalformedResponseError):
            await live_translator.translate_chunk(chunk, context, CancellationToken())

    @pytest.mark.asyncio
    async def test_unparseable_content_is_malformed(self, live_translator, chunk, context):
        live_translator.client.chat.completions.create.return_value = _response(
            "Sorry, I cannot help with that."
        )

        with pytest.raises(MalformedResponseError):
            await live_translator.translate_chunk(chunk, context, CancellationToken())

    @pytest.mark.asyncio
    async def test_rate_limit_is_overloaded(self, live_translator, chunk, context):
        live_translator.client.chat.completions.create.side_effect = _status_error(
            openai.RateLimitError, 429, "Rate limit reached"
        )

        with pytest.raises(ModelOverloadedError):
            await live_translator.translate_chunk(chunk, context, CancellationToken())

    @pytest.mark.asyncio
    async def test_authentication_error_is_quota(self, live_translator, chunk, context):
        live_translator.client.chat.completions.create.side_effect = _status_error(
            openai.AuthenticationError, 401, "Incorrect API key provided"
        )

        with pytest.raises(QuotaExceededError):
            await live_translator.translate_chunk(chunk, context, CancellationToken())

    @pytest.mark.asyncio
    async def test_connection_error_is_overloaded(self, live_translator, chunk, context):
        live_translator.client.chat.completions.create.side_effect = (
            openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        )

        with pytest.raises(ModelOverloadedError):
            await live_translator.translate_chunk(chunk, context, CancellationToken())


class TestRefine:
    @pytest.mark.asyncio
    async def test_sends_original_and_draft(self, live_translator, chunk):
        live_translator.client.chat.completions.create.return_value = _response(
            '[{"start": "0:01", "text": "안녕."}]'
        )

        result = await live_translator.refine(chunk, "안녕. 잘 가.", CancellationToken())

        kwargs = live_translator.client.chat.completions.create.call_args.kwargs
        user_payload = json.loads(kwargs["messages"][1]["content"])
        assert user_payload["draft"] == "안녕. 잘 가."
        assert [item["start"] for item in user_payload["original"]] == ["0:01", "0:04"]
        assert result.segments[0].text == "안녕."
