"""Transcript timecodes, fingerprints and token-aware chunk planning."""

import logging
import math
import re
from typing import Iterable, List, Optional, Sequence, Union

from common.schemas import Segment
from common.token_counter import estimate_tokens

logger = logging.getLogger(__name__)

# A segment ending with terminal punctuation closes a sentence
SENTENCE_END_PATTERN = re.compile(r"[.?!。？！]\s*$")

# 32-bit FNV-1a parameters
FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

Timecode = Union[str, int, float, None]


def parse_timecode(value: Timecode) -> float:
    """
    Parse a timecode into seconds.

    Accepts ``H:MM:SS``, ``M:SS`` and ``S`` strings as well as plain numbers.
    Never raises: empty, malformed or non-finite input parses to 0.

    Args:
        value: Timecode text or number

    Returns:
        Offset in seconds

    Example:
        >>> parse_timecode("1:02:03")
        3723.0
        >>> parse_timecode("oops")
        0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        seconds = float(value)
        return seconds if math.isfinite(seconds) else 0.0

    text = str(value).strip()
    if not text:
        return 0.0

    try:
        parts = [float(part) for part in text.split(":")]
    except ValueError:
        return 0.0

    if len(parts) == 3:
        seconds = parts[0] * 3600 + parts[1] * 60 + parts[2]
    elif len(parts) == 2:
        seconds = parts[0] * 60 + parts[1]
    elif len(parts) == 1:
        seconds = parts[0]
    else:
        return 0.0

    return seconds if math.isfinite(seconds) else 0.0


def format_timecode(seconds: float) -> str:
    """
    Format seconds as ``H:MM:SS`` or ``M:SS``.

    Example:
        >>> format_timecode(754)
        '12:34'
    """
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def normalize_text(text: Optional[str]) -> str:
    """Collapse whitespace runs and trim the ends."""
    if not text:
        return ""
    return " ".join(text.split())


def _fnv1a_32(data: bytes) -> int:
    hash_value = FNV_OFFSET_BASIS
    for byte in data:
        hash_value ^= byte
        hash_value = (hash_value * FNV_PRIME) & 0xFFFFFFFF
    return hash_value


def build_transcript_fingerprint(segments: Iterable[Segment]) -> str:
    """
    Build a deterministic fingerprint over an ordered segment sequence.

    The fingerprint is sensitive to segment order and text, and insensitive to
    whitespace run lengths and leading/trailing whitespace.

    Args:
        segments: Ordered segments (a whole transcript or one chunk)

    Returns:
        8 lowercase hex digits
    """
    lines = [
        f"{normalize_text(segment.start)}|{normalize_text(segment.text)}"
        for segment in segments
    ]
    payload = "\n".join(lines).encode("utf-8")
    return f"{_fnv1a_32(payload):08x}"


def ends_sentence(text: str) -> bool:
    """Check whether text ends with terminal punctuation."""
    return bool(SENTENCE_END_PATTERN.search(text or ""))


def plan_chunks(
    segments: Sequence[Segment],
    soft_limit: int,
    hard_limit: int,
) -> List[List[Segment]]:
    """
    Split segments into token-bounded chunks, preferring sentence boundaries.

    A chunk is closed when the running estimate has reached ``soft_limit`` and
    the last segment ends a sentence, when it has reached ``hard_limit``, or
    at the last segment. Segments are never split or reordered, so the chunks
    concatenate back to the input exactly. The result is a pure function of
    the inputs.

    Args:
        segments: Ordered source segments
        soft_limit: Token count after which a sentence end closes the chunk
        hard_limit: Token count that closes the chunk unconditionally

    Returns:
        List of non-empty segment chunks

    Raises:
        ValueError: If segments is None or the limits are invalid
    """
    if segments is None:
        raise ValueError("Segments list cannot be None")

    if soft_limit <= 0:
        raise ValueError(f"soft_limit must be positive, got {soft_limit}")

    if hard_limit <= 0:
        raise ValueError(f"hard_limit must be positive, got {hard_limit}")

    if soft_limit > hard_limit:
        raise ValueError(
            f"soft_limit ({soft_limit}) cannot exceed hard_limit ({hard_limit})"
        )

    if not segments:
        return []

    chunks: List[List[Segment]] = []
    current_chunk: List[Segment] = []
    current_token_count = 0
    last_index = len(segments) - 1

    for index, segment in enumerate(segments):
        current_chunk.append(segment)
        current_token_count += estimate_tokens(segment.text)

        at_sentence_end = current_token_count >= soft_limit and ends_sentence(
            segment.text
        )
        at_hard_limit = current_token_count >= hard_limit

        if at_sentence_end or at_hard_limit or index == last_index:
            chunks.append(current_chunk)
            logger.debug(
                f"Created chunk with {len(current_chunk)} segments, "
                f"~{current_token_count} tokens"
            )
            current_chunk = []
            current_token_count = 0

    logger.info(
        f"Split {len(segments)} segments into {len(chunks)} token-aware chunks "
        f"(soft: {soft_limit}, hard: {hard_limit} tokens)"
    )
    return chunks


def filter_new_segments(
    accumulated: Sequence[Segment], incoming: Iterable[Segment]
) -> List[Segment]:
    """
    Keep only incoming segments that start strictly after everything so far.

    Guards against overlap from retried or partial upstream responses.

    Args:
        accumulated: Segments already collected, in order
        incoming: Newly returned segments

    Returns:
        Segments from ``incoming`` with strictly later timecodes, in order
    """
    last_seconds = parse_timecode(accumulated[-1].start) if accumulated else None

    fresh: List[Segment] = []
    for segment in incoming:
        seconds = parse_timecode(segment.start)
        if last_seconds is None or seconds > last_seconds:
            fresh.append(segment)
            last_seconds = seconds
    return fresh
