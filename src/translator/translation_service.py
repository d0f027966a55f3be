"""Chunk translation and refinement using the OpenAI Chat Completions API."""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from common.cancellation import CancellationToken
from common.config import settings
from common.errors import MalformedResponseError, ModelOverloadedError, classify_http_error
from common.gpt_utils import parse_segments_payload
from common.schemas import Segment, TokenUsage
from translator.schemas import ChunkContext, ChunkTranslationResult

logger = logging.getLogger(__name__)

REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")

TRANSLATE_SYSTEM_PROMPT = (
    "You are a professional transcript translator. "
    "You will receive a JSON object with timed transcript segments to translate "
    "from {source} to {target}.\n\n"
    "OUTPUT FORMAT:\n"
    "Return ONLY a JSON array: "
    '[{{"id": "1", "start": "0:01", "text": "translation"}}, ...]\n\n'
    "TRANSLATION RULES:\n"
    "- Keep every segment's start timecode exactly as given\n"
    "- You may merge fragments of one sentence into the segment where it starts\n"
    "- Translate naturally and idiomatically, not word-by-word\n"
    "- Keep the original meaning, tone, and style\n"
    "- Return ONLY the JSON array, no explanations or markdown fences\n"
)

REFINE_SYSTEM_PROMPT = (
    "You are a transcript editor. You will receive the original timed segments and "
    "a draft translation of the whole text. Split the draft so that each piece "
    "lines up with the original segment it translates.\n\n"
    "OUTPUT FORMAT:\n"
    "Return ONLY a JSON array: "
    '[{"start": "0:01", "text": "refined translation"}, ...]\n\n'
    "RULES:\n"
    "- Use only start timecodes from the original segments, in order\n"
    "- Keep the draft's wording; fix only obvious errors\n"
    "- Return ONLY the JSON array, no explanations or markdown fences\n"
)


def is_reasoning_model(model: str) -> bool:
    """Reasoning models reject custom temperature and take a reasoning effort."""
    lowered = model.lower()
    return "nano" in lowered or lowered.startswith(REASONING_MODEL_PREFIXES)


class GPTChunkTranslator:
    """
    Translates one chunk per request and re-segments draft translations.

    The API key is bound at construction. Without a key the translator runs in
    mock mode and never touches the network.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Initialize the translator with an OpenAI async client.

        Args:
            api_key: OpenAI API key (defaults to settings)
            model: Model name (defaults to settings)
        """
        self.client: Optional[AsyncOpenAI] = None
        self.model = model or settings.openai_model
        api_key = api_key or settings.openai_api_key

        if api_key:
            # Retries are handled by RetryExecutor in the orchestrator
            self.client = AsyncOpenAI(
                api_key=api_key,
                timeout=settings.openai_timeout,
                max_retries=0,
            )
            logger.info(f"Initialized OpenAI async client with model: {self.model}")
        else:
            logger.warning(
                "OpenAI API key not configured - translator will run in mock mode"
            )

    @property
    def is_mock(self) -> bool:
        return self.client is None

    async def translate_chunk(
        self,
        chunk: List[Segment],
        context: ChunkContext,
        cancellation_token: CancellationToken,
    ) -> ChunkTranslationResult:
        """
        Translate one chunk of segments.

        Args:
            chunk: Source segments of the chunk
            context: Languages, thinking level and rolling context
            cancellation_token: Token aborting the in-flight request

        Returns:
            Translated segments and token usage

        Raises:
            TaskCancelledError: If cancelled while the request is in flight
            ModelOverloadedError: Upstream rate limited or unreachable
            QuotaExceededError: Authorization or billing failure
            MalformedResponseError: Response could not be parsed
        """
        cancellation_token.raise_if_cancelled()

        if self.is_mock:
            logger.warning(
                "Mock mode: Returning original texts with [TRANSLATED] prefix"
            )
            return ChunkTranslationResult(
                segments=[
                    Segment(
                        start=segment.start,
                        text=f"[TRANSLATED to {context.target_lang}] {segment.text}",
                        id=segment.id,
                    )
                    for segment in chunk
                ]
            )

        logger.info(
            f"Translating chunk {context.chunk_index + 1}/{context.total_chunks} "
            f"({len(chunk)} segments) to {context.target_lang}"
        )

        messages = [
            {
                "role": "system",
                "content": TRANSLATE_SYSTEM_PROMPT.format(
                    source=context.source_lang, target=context.target_lang
                ),
            },
            {"role": "user", "content": self._build_translation_prompt(chunk, context)},
        ]
        return await self._complete(messages, context.thinking_level, cancellation_token)

    async def refine(
        self,
        original_segments: List[Segment],
        draft_text: str,
        cancellation_token: CancellationToken,
        thinking_level: Optional[str] = None,
    ) -> ChunkTranslationResult:
        """
        Re-segment a draft translation against the original timing.

        Args:
            original_segments: Source segments carrying the timing
            draft_text: Draft translation of the whole text
            cancellation_token: Token aborting the in-flight request
            thinking_level: Reasoning effort for reasoning models

        Returns:
            Refined segments and token usage
        """
        cancellation_token.raise_if_cancelled()

        if self.is_mock:
            logger.warning("Mock mode: Distributing draft words over original timing")
            return ChunkTranslationResult(
                segments=self._distribute_draft(original_segments, draft_text)
            )

        payload = {
            "original": [
                {"start": segment.start, "text": segment.text}
                for segment in original_segments
            ],
            "draft": draft_text,
        }
        messages = [
            {"role": "system", "content": REFINE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": json.dumps(payload, ensure_ascii=False, indent=2),
            },
        ]
        return await self._complete(
            messages,
            thinking_level or settings.translation_thinking_level,
            cancellation_token,
        )

    def _build_translation_prompt(
        self, chunk: List[Segment], context: ChunkContext
    ) -> str:
        json_input: Dict[str, Any] = {
            "segments": [
                {"id": segment.id or str(index), "start": segment.start, "text": segment.text}
                for index, segment in enumerate(chunk, 1)
            ],
            "source": context.source_lang,
            "target": context.target_lang,
        }
        prompt = ""
        if context.previous_context:
            prompt += (
                f"PREVIOUS CONTEXT (already translated, do not repeat):\n"
                f"{context.previous_context}\n\n"
            )
        prompt += f"INPUT:\n{json.dumps(json_input, ensure_ascii=False, indent=2)}\n"
        return prompt

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        thinking_level: str,
        cancellation_token: CancellationToken,
    ) -> ChunkTranslationResult:
        api_params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_completion_tokens": settings.openai_max_tokens,
        }
        if is_reasoning_model(self.model):
            api_params["reasoning_effort"] = thinking_level
        else:
            api_params["temperature"] = settings.openai_temperature

        try:
            response = await cancellation_token.guard(
                self.client.chat.completions.create(**api_params)
            )
        except APIConnectionError as e:
            # Also covers APITimeoutError
            logger.warning(f"⚠️  OpenAI connection failed: {e}")
            raise ModelOverloadedError() from e
        except APIStatusError as e:
            message = f"{e.code}: {e.message}" if e.code else e.message
            raise classify_http_error(e.status_code, message) from e

        if not response.choices:
            raise MalformedResponseError("OpenAI API returned no choices in response")

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning(
                "⚠️  Response was truncated (finish_reason=length). "
                "Attempting to repair the partial payload."
            )

        segments = parse_segments_payload(choice.message.content)
        usage = self._extract_usage(response)
        logger.info(
            f"✅ Received {len(segments)} segments "
            f"(in: {usage.input_tokens}, out: {usage.output_tokens}, "
            f"thinking: {usage.thinking_tokens})"
        )
        return ChunkTranslationResult(segments=segments, usage=usage)

    @staticmethod
    def _extract_usage(response: Any) -> TokenUsage:
        usage = getattr(response, "usage", None)
        if usage is None:
            return TokenUsage()

        details = getattr(usage, "completion_tokens_details", None)
        reasoning_tokens = getattr(details, "reasoning_tokens", None) or 0
        completion_tokens = usage.completion_tokens or 0
        return TokenUsage(
            input_tokens=usage.prompt_tokens or 0,
            output_tokens=max(0, completion_tokens - reasoning_tokens),
            thinking_tokens=reasoning_tokens,
        )

    @staticmethod
    def _distribute_draft(
        original_segments: List[Segment], draft_text: str
    ) -> List[Segment]:
        words = draft_text.split()
        count = len(original_segments)
        if count == 0:
            return []

        per_segment, remainder = divmod(len(words), count)
        segments: List[Segment] = []
        position = 0
        for index, original in enumerate(original_segments):
            size = per_segment + (1 if index < remainder else 0)
            segments.append(
                Segment(start=original.start, text=" ".join(words[position : position + size]))
            )
            position += size
        return segments
