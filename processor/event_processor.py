"""Event processor for normalizing candidate events parsed from the feed."""
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from processor.models import Event

logger = logging.getLogger(__name__)


class InvalidDateError(ValueError):
    """Raised when a feed entry carries a date that cannot be normalized."""


class EventProcessor:
    """Processor for normalizing feed candidates before reconciliation."""

    # Discord embed limits
    MAX_NAME_LENGTH = 256
    MAX_DESCRIPTION_LENGTH = 4000

    PLATFORM_NAMES = {
        'pc': 'PC',
        'playstation': 'PlayStation',
        'xbox': 'Xbox',
        'nintendo': 'Nintendo',
        'vr': 'VR',
    }

    def normalize_events(self, candidates: List[Event]) -> List[Event]:
        """
        Normalize candidate events into a new list.

        A bad date aborts the whole batch, since the store is ordered and
        queried by date. A bad time only drops that candidate.

        Args:
            candidates: Events parsed from the feed

        Returns:
            List of normalized Event objects

        Raises:
            InvalidDateError: If any candidate has a malformed date
        """
        normalized = []

        for event in candidates:
            normalized_date = self._normalize_date(event.date)
            if not normalized_date:
                raise InvalidDateError(
                    f"Invalid date for stream '{event.name}': {event.date!r}"
                )

            normalized_time = self._normalize_time(event.time)
            if normalized_time is None:
                logger.warning(
                    f"Invalid time for stream '{event.name}': {event.time!r}"
                )
                continue

            normalized.append(replace(
                event,
                name=event.name.strip()[:self.MAX_NAME_LENGTH],
                platform=self.normalize_platforms(event.platform),
                date=normalized_date,
                time=normalized_time,
                description=event.description.strip()[:self.MAX_DESCRIPTION_LENGTH],
                url=event.url.strip(),
            ))

        logger.info(
            f"Normalized {len(normalized)} of {len(candidates)} feed entries"
        )
        return normalized

    def normalize_platforms(self, platform: str) -> str:
        """
        Give known platform tags their display capitalisation.

        Args:
            platform: Comma-separated tags (e.g. "playstation,pc")

        Returns:
            Tags joined with ", " (e.g. "PlayStation, PC")
        """
        tags = [tag.strip() for tag in platform.split(',') if tag.strip()]
        return ', '.join(
            self.PLATFORM_NAMES.get(tag.lower(), tag) for tag in tags
        )

    def _normalize_date(self, date_str: str) -> Optional[str]:
        """
        Normalize date to ISO 8601 format (YYYY-MM-DD).

        The feed writes dates as DD/MM/YYYY; ISO dates are accepted as-is.

        Args:
            date_str: Date string from the feed

        Returns:
            ISO 8601 formatted date string or None if parsing fails
        """
        date_formats = [
            '%d/%m/%Y',      # Feed format
            '%Y-%m-%d',      # ISO 8601
        ]

        for fmt in date_formats:
            try:
                date_obj = datetime.strptime(date_str.strip(), fmt)
                return date_obj.strftime('%Y-%m-%d')
            except ValueError:
                continue

        return None

    def _normalize_time(self, time_str: str) -> Optional[str]:
        """
        Normalize time to 24-hour format (HH:MM).

        Args:
            time_str: Time string, empty when the time is not known yet

        Returns:
            24-hour formatted time, "" for an unknown time,
            or None if parsing fails
        """
        time_str = time_str.strip()
        if not time_str:
            return ''

        time_formats = [
            '%H:%M',         # 24-hour format
            '%I:%M %p',      # 12-hour format with AM/PM
            '%I:%M%p',       # 12-hour format without space
            '%H:%M:%S',      # 24-hour with seconds
        ]

        for fmt in time_formats:
            try:
                time_obj = datetime.strptime(time_str, fmt)
                return time_obj.strftime('%H:%M')
            except ValueError:
                continue

        return None
