"""Token estimation for mixed narrow/CJK text.

Chunk planning only needs a cheap, deterministic estimate. Wide characters
(Hangul, CJK ideographs, kana, full-width forms) tokenize roughly twice as
densely as Latin text, so they are weighted accordingly.
"""

import logging
import math
import re

logger = logging.getLogger(__name__)

# Characters per token for each character class
NARROW_CHARS_PER_TOKEN = 4
WIDE_CHARS_PER_TOKEN = 2

WIDE_CHAR_PATTERN = re.compile(
    "["
    "\u1100-\u11ff"  # Hangul Jamo
    "\u2e80-\u2fdf"  # CJK radicals
    "\u3000-\u303f"  # CJK symbols and punctuation
    "\u3040-\u30ff"  # Hiragana, Katakana
    "\u3130-\u318f"  # Hangul compatibility Jamo
    "\u3400-\u4dbf"  # CJK extension A
    "\u4e00-\u9fff"  # CJK unified ideographs
    "\uac00-\ud7af"  # Hangul syllables
    "\uf900-\ufaff"  # CJK compatibility ideographs
    "\uff00-\uffef"  # Half-width and full-width forms
    "]"
)


def count_wide_characters(text: str) -> int:
    """Count characters in the wide (CJK) ranges."""
    return len(WIDE_CHAR_PATTERN.findall(text))


def estimate_tokens(text: str) -> int:
    """
    Estimate token count using a language-aware heuristic.

    Narrow characters count 1/4 token each, wide characters 1/2 token each,
    and the total is rounded up.

    Args:
        text: Text to estimate tokens for

    Returns:
        Estimated number of tokens

    Example:
        >>> estimate_tokens("abcde")
        2
        >>> estimate_tokens("한글테스트")
        3
    """
    if not text:
        return 0

    wide = count_wide_characters(text)
    narrow = len(text) - wide
    return math.ceil(narrow / NARROW_CHARS_PER_TOKEN + wide / WIDE_CHARS_PER_TOKEN)
