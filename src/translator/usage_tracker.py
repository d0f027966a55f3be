"""Token usage accounting with per-day history and cost estimates."""

import logging
from datetime import datetime
from typing import Dict, Optional

from common.config import settings
from common.schemas import TokenUsage, UsageTotals
from common.utils import DateTimeUtils

logger = logging.getLogger(__name__)

# USD per token
INPUT_PRICE_PER_TOKEN = 0.5 / 1_000_000
OUTPUT_PRICE_PER_TOKEN = 3.0 / 1_000_000


def estimate_cost(usage: UsageTotals) -> float:
    """
    Estimate the USD cost of a usage total.

    Example:
        >>> estimate_cost(UsageTotals(input_tokens=1_000_000, output_tokens=1_000_000))
        3.5
    """
    return (
        usage.input_tokens * INPUT_PRICE_PER_TOKEN
        + usage.output_tokens * OUTPUT_PRICE_PER_TOKEN
    )


def format_token_number(value) -> str:
    """
    Format a token count for display.

    Example:
        >>> format_token_number(1_234_567)
        '1.23M'
        >>> format_token_number(4_500)
        '4.5K'
        >>> format_token_number(999)
        '999'
    """
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        number = 0
    if number >= 1_000_000:
        return f"{number / 1_000_000:.2f}M"
    if number >= 1_000:
        return f"{number / 1_000:.1f}K"
    return f"{int(number)}"


class UsageTracker:
    """
    Usage sink recording token counts per UTC day.

    Reasoning tokens are billed as output. Days older than the retention
    window are pruned on every record.
    """

    def __init__(self, retention_days: Optional[int] = None):
        self.retention_days = (
            retention_days
            if retention_days is not None
            else settings.usage_retention_days
        )
        self.history: Dict[str, UsageTotals] = {}

    async def record(self, usage: TokenUsage, now: Optional[datetime] = None) -> None:
        """
        Add a usage record to today's totals.

        Args:
            usage: Usage reported for one request
            now: Reference time, defaults to the current UTC time
        """
        day = DateTimeUtils.get_iso_date(now)
        totals = self.history.setdefault(day, UsageTotals())
        totals.input_tokens += usage.input_tokens
        totals.output_tokens += usage.billable_output_tokens

        cutoff = DateTimeUtils.get_cutoff_date(self.retention_days, now)
        for stale_day in [d for d in self.history if d < cutoff]:
            del self.history[stale_day]

        logger.debug(
            f"Recorded usage for {day}: +{usage.input_tokens} in, "
            f"+{usage.billable_output_tokens} out"
        )

    def today(self, now: Optional[datetime] = None) -> UsageTotals:
        totals = self.history.get(DateTimeUtils.get_iso_date(now))
        return totals.model_copy() if totals else UsageTotals()

    def monthly(self, now: Optional[datetime] = None) -> UsageTotals:
        """Sum usage over the retention window."""
        cutoff = DateTimeUtils.get_cutoff_date(self.retention_days, now)
        result = UsageTotals()
        for day, totals in self.history.items():
            if day >= cutoff:
                result.input_tokens += totals.input_tokens
                result.output_tokens += totals.output_tokens
        return result
