"""Per-chunk checkpoints used to re-locate progress after the source changes."""

import math
from typing import Callable, List, Optional, Sequence

from common.schemas import Segment, SourceChunkCheckpoint
from common.transcript_parser import build_transcript_fingerprint, parse_timecode

TimecodeParser = Callable[[str], float]
FingerprintFn = Callable[[Sequence[Segment]], str]


def build_source_chunk_checkpoints(
    chunks: Optional[Sequence[Sequence[Segment]]],
    parse: TimecodeParser = parse_timecode,
    fingerprint: FingerprintFn = build_transcript_fingerprint,
) -> List[SourceChunkCheckpoint]:
    """
    Summarize every planned chunk as a checkpoint.

    Args:
        chunks: Planned chunks in order
        parse: Timecode parser
        fingerprint: Fingerprint function applied to each chunk's segments

    Returns:
        One checkpoint per chunk, in order
    """
    checkpoints: List[SourceChunkCheckpoint] = []

    for index, chunk in enumerate(chunks or []):
        chunk = list(chunk or [])
        times = [parse(segment.start) for segment in chunk]
        times = [t for t in times if isinstance(t, (int, float)) and math.isfinite(t)]

        checkpoints.append(
            SourceChunkCheckpoint(
                chunk_index=index,
                chunk_fingerprint=fingerprint(chunk),
                first_start_sec=min(times) if times else None,
                last_start_sec=max(times) if times else None,
                segment_count=len(chunk),
            )
        )

    return checkpoints
