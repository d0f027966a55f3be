"""Utilities for turning model responses into translated segments."""

import json
import logging
import re
from typing import Any, List, Optional

from common.errors import MalformedResponseError
from common.schemas import Segment

logger = logging.getLogger(__name__)


def clean_markdown_code_fences(response: str) -> str:
    """
    Remove markdown code fences from a model response.

    Models often wrap JSON in a fenced block such as ```json ... ```.

    Args:
        response: Raw response text

    Returns:
        Response without fences and language tag

    Examples:
        >>> clean_markdown_code_fences('```json\\n[{"start": "0:01"}]\\n```')
        '[{"start": "0:01"}]'
        >>> clean_markdown_code_fences('[]')
        '[]'
    """
    cleaned_response = response.strip()

    if cleaned_response.startswith("```"):
        lines = cleaned_response.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned_response = "\n".join(lines).strip()

    if cleaned_response.startswith("json"):
        cleaned_response = cleaned_response[4:].strip()

    return cleaned_response


def repair_truncated_json(text: str) -> str:
    """
    Close a JSON array whose stream was cut off mid-object.

    Everything after the last complete object is dropped and the array is
    closed. Text without any complete object becomes an empty array.

    Example:
        >>> repair_truncated_json('[{"start": "0:01", "text": "a"}, {"sta')
        '[{"start": "0:01", "text": "a"}]'
    """
    last_brace = text.rfind("}")
    if last_brace < 0:
        return "[]"

    repaired = text[: last_brace + 1].rstrip()
    if not repaired.lstrip().startswith("["):
        repaired = "[" + repaired
    return repaired + "]"


def _load_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"Standard JSON parsing failed: {e}. Trying recovery...")

    # Missing commas between objects
    try:
        return json.loads(re.sub(r"\}\s*\{", "},{", text))
    except json.JSONDecodeError:
        logger.debug("Comma insertion strategy failed")

    if text.lstrip().startswith("[") and not text.rstrip().endswith("]"):
        try:
            return json.loads(repair_truncated_json(text))
        except json.JSONDecodeError:
            logger.debug("Truncation repair strategy failed")

    return None


def parse_segments_payload(content: Optional[str]) -> List[Segment]:
    """
    Parse a model response into segments.

    Accepts a JSON array of ``{"start", "text"[, "id"]}`` objects, or an object
    holding such an array under ``segments``. Recovery covers code fences,
    missing commas and a truncated trailing object.

    Args:
        content: Response text

    Returns:
        Parsed segments in response order

    Raises:
        MalformedResponseError: If no valid segment list can be recovered
    """
    if not content or not content.strip():
        raise MalformedResponseError("Empty response from model")

    data = _load_json(clean_markdown_code_fences(content))

    if isinstance(data, dict):
        data = data.get("segments")

    if not isinstance(data, list):
        preview = content[:200]
        logger.warning(f"⚠️  Could not parse segment payload: {preview!r}")
        raise MalformedResponseError("Response is not a JSON array of segments")

    segments: List[Segment] = []
    for item in data:
        if not isinstance(item, dict) or "start" not in item or "text" not in item:
            raise MalformedResponseError(f"Invalid segment entry: {item!r}")
        segment_id = item.get("id")
        segments.append(
            Segment(
                start=str(item["start"]),
                text=str(item["text"]),
                id=str(segment_id) if segment_id is not None else None,
            )
        )

    return segments
