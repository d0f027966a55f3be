"""
Resume point resolution for partially translated transcripts.

Given a stale snapshot and a fresh chunk plan of possibly edited source
content, decide which chunk to resume from and which cached translations
remain valid. Strategies are tried in order, first match wins:

1. whole-transcript fingerprint unchanged;
2. fingerprint of the last completed chunk found in the new plan, then the
   chunk time range as a coarse anchor;
3. timecode of the last cached translation, or a full reset when nothing
   lines up.

Everything here is pure and performs no I/O.
"""

import logging
import math
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from common.schemas import JobSnapshot, Segment, SourceChunkCheckpoint
from common.transcript_parser import (
    build_transcript_fingerprint,
    format_timecode,
    parse_timecode,
)
from translator.checkpoint_builder import (
    FingerprintFn,
    TimecodeParser,
    build_source_chunk_checkpoints,
)
from translator.schemas import ResumeResolution

logger = logging.getLogger(__name__)


class ResumeReason(str, Enum):
    """Reason codes explaining a resume decision."""

    FINGERPRINT_SAME = "fingerprint-same"
    NO_CACHED_CHECKPOINTS = "no-cached-checkpoints"
    ZERO_COMPLETED_COUNT = "zero-completed-count"
    MISSING_LAST_CHECKPOINT = "missing-last-checkpoint"
    FINGERPRINT_MATCH = "fingerprint-match"
    SOURCE_TIME_FALLBACK = "source-time-fallback"
    CHECKPOINT_FALLBACK_FAILED = "checkpoint-fallback-failed"
    TIMESTAMP_FALLBACK = "timestamp-fallback"
    TIMESTAMP_RESET = "timestamp-reset"


def clamp_chunk_index(value, total_chunks: int) -> int:
    """
    Floor ``value`` and bound it to ``[0, total_chunks]``.

    Non-numeric and non-finite values map to 0.

    Example:
        >>> clamp_chunk_index(7.9, 5)
        5
        >>> clamp_chunk_index("x", 5)
        0
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, min(math.floor(number), total_chunks))


def find_resume_start_chunk_by_timestamp(
    chunks: Sequence[Sequence[Segment]],
    last_saved_start_sec: float,
    parse: TimecodeParser = parse_timecode,
) -> Optional[int]:
    """
    Find the first chunk containing a segment later than the last saved one.

    Args:
        chunks: Current chunk plan
        last_saved_start_sec: Start time of the last cached translation
        parse: Timecode parser

    Returns:
        Chunk index, 0 when there is nothing to compare against, or None when
        no chunk reaches past the saved time
    """
    if not chunks or not math.isfinite(last_saved_start_sec):
        return 0

    for chunk_index, chunk in enumerate(chunks):
        if not chunk:
            continue
        max_start_sec = max(parse(segment.start) for segment in chunk)
        if max_start_sec > last_saved_start_sec:
            return chunk_index

    return None


def resolve_resume_from_source_checkpoints(
    cached_checkpoints: Sequence[SourceChunkCheckpoint],
    current_checkpoints: Sequence[SourceChunkCheckpoint],
    completed_chunk_count: Optional[int],
    current_total_chunks: int,
) -> Tuple[Optional[int], ResumeReason]:
    """
    Locate the resume chunk by matching per-chunk checkpoints.

    Args:
        cached_checkpoints: Checkpoints stored with the snapshot
        current_checkpoints: Checkpoints of the fresh plan
        completed_chunk_count: Completed chunk count stored with the snapshot
        current_total_chunks: Number of chunks in the fresh plan

    Returns:
        (start chunk index or None when no match, reason)
    """
    if not cached_checkpoints:
        return None, ResumeReason.NO_CACHED_CHECKPOINTS

    completed = clamp_chunk_index(completed_chunk_count or 0, len(cached_checkpoints))
    if completed == 0:
        return 0, ResumeReason.ZERO_COMPLETED_COUNT

    last_completed = cached_checkpoints[completed - 1]
    if last_completed is None:
        return None, ResumeReason.MISSING_LAST_CHECKPOINT

    for index, checkpoint in enumerate(current_checkpoints):
        if (
            checkpoint.chunk_fingerprint
            and checkpoint.chunk_fingerprint == last_completed.chunk_fingerprint
        ):
            return (
                clamp_chunk_index(index + 1, current_total_chunks),
                ResumeReason.FINGERPRINT_MATCH,
            )

    last_source_end = last_completed.last_start_sec
    if last_source_end is not None and math.isfinite(last_source_end):
        for index, checkpoint in enumerate(current_checkpoints):
            if (
                checkpoint.last_start_sec is not None
                and checkpoint.last_start_sec > last_source_end
            ):
                return (
                    clamp_chunk_index(index, current_total_chunks),
                    ResumeReason.SOURCE_TIME_FALLBACK,
                )

    return None, ResumeReason.CHECKPOINT_FALLBACK_FAILED


def resolve_resume_state(
    cached: Optional[JobSnapshot],
    chunks: Sequence[Sequence[Segment]],
    transcript_fingerprint: str,
    parse: TimecodeParser = parse_timecode,
    fingerprint: FingerprintFn = build_transcript_fingerprint,
) -> ResumeResolution:
    """
    Decide where a job resumes given a cached snapshot and a fresh plan.

    Args:
        cached: Previously saved snapshot (possibly partial), or None
        chunks: Fresh chunk plan of the current source
        transcript_fingerprint: Fingerprint of the current source
        parse: Timecode parser
        fingerprint: Fingerprint function for per-chunk checkpoints

    Returns:
        ResumeResolution with the start index, the still-valid cached
        translations, the reason code and the fresh checkpoints
    """
    checkpoints = build_source_chunk_checkpoints(chunks, parse, fingerprint)
    total_chunks = len(chunks)
    cached_translations: List[Segment] = list(cached.translations) if cached else []

    if (
        cached is not None
        and cached.transcript_fingerprint
        and cached.transcript_fingerprint == transcript_fingerprint
    ):
        return ResumeResolution(
            start_chunk_index=clamp_chunk_index(
                cached.completed_chunk_count, total_chunks
            ),
            initial_translations=cached_translations,
            reason=ResumeReason.FINGERPRINT_SAME.value,
            source_chunk_checkpoints=checkpoints,
        )

    start_index, reason = resolve_resume_from_source_checkpoints(
        cached.source_chunk_checkpoints if cached else [],
        checkpoints,
        cached.completed_chunk_count if cached else 0,
        total_chunks,
    )
    if start_index is not None:
        if reason == ResumeReason.ZERO_COMPLETED_COUNT:
            cached_translations = []
        logger.info(
            f"🔄 Source changed, resuming at chunk {start_index} ({reason.value})"
        )
        return ResumeResolution(
            start_chunk_index=start_index,
            initial_translations=cached_translations,
            reason=reason.value,
            used_checkpoint_fallback=True,
            source_chunk_checkpoints=checkpoints,
        )

    logger.debug(f"Checkpoint resume not possible ({reason.value})")

    fallback_index: Optional[int] = None
    if cached_translations and cached_translations[-1].start.strip():
        fallback_index = find_resume_start_chunk_by_timestamp(
            chunks, parse(cached_translations[-1].start), parse
        )

    if fallback_index is None:
        logger.warning(
            "⚠️  No safe resume point found, discarding cached translations"
        )
        return ResumeResolution(
            start_chunk_index=0,
            initial_translations=[],
            reason=ResumeReason.TIMESTAMP_RESET.value,
            used_timestamp_fallback=True,
            source_chunk_checkpoints=checkpoints,
        )

    logger.info(
        f"🔄 Resuming after last cached translation at "
        f"{format_timecode(parse(cached_translations[-1].start))} "
        f"(chunk {fallback_index})"
    )
    return ResumeResolution(
        start_chunk_index=clamp_chunk_index(fallback_index, total_chunks),
        initial_translations=cached_translations,
        reason=ResumeReason.TIMESTAMP_FALLBACK.value,
        used_timestamp_fallback=True,
        source_chunk_checkpoints=checkpoints,
    )
