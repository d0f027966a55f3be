"""Utility functions for common operations across the application."""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class MathUtils:
    """Mathematical utility functions."""

    @staticmethod
    def calculate_percentage(completed: int, total: int) -> float:
        """
        Calculate the percentage of completed items out of total items.

        Args:
            completed: Number of completed items
            total: Total number of items

        Returns:
            Percentage as a float between 0 and 100

        Example:
            >>> MathUtils.calculate_percentage(5, 10)
            50.0
        """
        if total <= 0:
            return 0.0
        return (completed / total) * 100


class StringUtils:
    """String manipulation utility functions."""

    @staticmethod
    def generate_session_key(content_id: str, target_language: str) -> str:
        """
        Generate the session key for a content id and target language.

        Args:
            content_id: Identifier of the source document (e.g. a video id)
            target_language: Target language of the translation

        Returns:
            Session key string

        Example:
            >>> StringUtils.generate_session_key("abc123", "Korean")
            'abc123_Korean'
        """
        return f"{content_id}_{target_language}"

    @staticmethod
    def to_safe_filename(key: str) -> str:
        """
        Replace characters that are unsafe in file names.

        Example:
            >>> StringUtils.to_safe_filename("a/b c")
            'a_b_c'
        """
        return _UNSAFE_KEY_CHARS.sub("_", key)


class TaskIdUtils:
    """Task identifier utilities."""

    @staticmethod
    def generate_task_id(prefix: str = "task") -> str:
        """
        Generate a unique task identifier.

        Args:
            prefix: Task kind prefix (e.g. 'translate', 'refine')

        Returns:
            Identifier in the form '<prefix>-<uuid4>'
        """
        return f"{prefix}-{uuid4()}"


class DateTimeUtils:
    """Date and time utility functions."""

    @staticmethod
    def get_current_utc_datetime() -> datetime:
        """
        Get the current UTC datetime.

        Returns:
            Current datetime in UTC timezone
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def get_date_string_for_log_file() -> str:
        """
        Get a date string suitable for log file names.

        Returns:
            Date string in YYYYMMDD format
        """
        return datetime.now().strftime("%Y%m%d")

    @staticmethod
    def get_iso_date(now: Optional[datetime] = None) -> str:
        """
        Get the ISO calendar date (YYYY-MM-DD) for a UTC datetime.

        Args:
            now: Datetime to format, defaults to the current UTC time

        Returns:
            ISO date string
        """
        current = now or DateTimeUtils.get_current_utc_datetime()
        return current.date().isoformat()

    @staticmethod
    def get_cutoff_date(days: int, now: Optional[datetime] = None) -> str:
        """
        Get the ISO date that lies ``days`` before ``now``.

        Args:
            days: Number of days to go back
            now: Reference datetime, defaults to the current UTC time

        Returns:
            ISO date string of the cutoff day
        """
        current = now or DateTimeUtils.get_current_utc_datetime()
        cutoff: date = current.date() - timedelta(days=days)
        return cutoff.isoformat()

    @staticmethod
    def is_older_than(dt: datetime, days: int, now: Optional[datetime] = None) -> bool:
        """
        Check whether a datetime lies more than ``days`` before ``now``.

        Naive datetimes are treated as UTC.
        """
        current = now or DateTimeUtils.get_current_utc_datetime()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return current - dt > timedelta(days=days)
