"""Client for the GitHub-hosted streams.toml feed."""
import datetime as dt
import logging
import tomllib
from typing import List, Tuple

import requests

from processor.models import Event

logger = logging.getLogger(__name__)


class FeedParseError(ValueError):
    """Raised when the feed body is not a valid streams document."""


class StreamsFeed:
    """Fetches the streams feed and its latest commit from GitHub."""

    def __init__(
        self,
        feed_url: str,
        api_url: str,
        feed_filename: str = 'streams.toml',
        timeout: int = 30
    ):
        """
        Initialize the feed client.

        Args:
            feed_url: Raw URL of the streams.toml file
            api_url: GitHub API URL returning the latest commit of the repository
            feed_filename: File name looked for in the commit's changed files
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.feed_url = feed_url
        self.api_url = api_url
        self.feed_filename = feed_filename
        self.timeout = timeout

    def get_upstream_revision(self) -> Tuple[bool, dt.datetime]:
        """
        Read the latest upstream commit.

        Returns:
            Tuple of (commit touches the feed file, commit time)

        Raises:
            requests.RequestException: On network or HTTP errors
            FeedParseError: If the commit payload has no usable date
        """
        response = requests.get(self.api_url, timeout=self.timeout)
        response.raise_for_status()

        try:
            payload = response.json()
            filenames = [f.get('filename', '') for f in payload.get('files', [])]
            commit_date = payload['commit']['author']['date']
            commit_time = self._parse_timestamp(commit_date)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise FeedParseError(f"Unexpected commit payload: {e}") from e

        touches_feed = any(self.feed_filename in name for name in filenames)
        return touches_feed, commit_time

    def has_new_revision(self, last_commit_time: str) -> Tuple[bool, str]:
        """
        Check whether the feed changed since the last applied revision.

        Args:
            last_commit_time: RFC 3339 time of the last applied commit,
                empty if the feed was never applied

        Returns:
            Tuple of (newer revision available, upstream commit time)
        """
        touches_feed, commit_time = self.get_upstream_revision()
        commit_str = commit_time.isoformat()

        if not last_commit_time:
            logger.info("No feed revision applied yet")
            return True, commit_str

        if not touches_feed:
            logger.debug("Latest commit does not touch the feed")
            return False, commit_str

        last_time = self._parse_timestamp(last_commit_time)
        return commit_time > last_time, commit_str

    def fetch_feed_body(self) -> str:
        """
        Fetch the raw feed document.

        Raises:
            requests.RequestException: On network or HTTP errors
        """
        logger.info(f"Fetching streams feed from {self.feed_url}")
        response = requests.get(self.feed_url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    def fetch_feed(self) -> List[Event]:
        """
        Fetch and parse the feed into candidate events.

        Returns:
            List of Event objects in feed order

        Raises:
            requests.RequestException: On network or HTTP errors
            FeedParseError: If the document cannot be parsed
        """
        events = self.parse_feed(self.fetch_feed_body())
        logger.info(f"Parsed {len(events)} streams from feed")
        return events

    def parse_feed(self, body: str) -> List[Event]:
        """
        Parse a streams.toml document.

        Args:
            body: TOML text with a [[streams]] array of tables

        Returns:
            List of Event objects
        """
        try:
            document = tomllib.loads(body)
        except tomllib.TOMLDecodeError as e:
            raise FeedParseError(f"Invalid streams TOML: {e}") from e

        entries = document.get('streams', [])
        if not isinstance(entries, list):
            raise FeedParseError("'streams' must be an array of tables")

        events = []
        for position, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict):
                raise FeedParseError(f"Stream entry {position} is not a table")
            events.append(self._parse_entry(entry, position))
        return events

    def _parse_entry(self, entry: dict, position: int) -> Event:
        try:
            event_id = int(entry.get('id', 0) or 0)
        except (TypeError, ValueError) as e:
            raise FeedParseError(
                f"Stream entry {position} has an invalid id: {entry.get('id')!r}"
            ) from e

        return Event(
            event_id=event_id,
            name=str(entry.get('name', '')),
            platform=str(entry.get('platform', '')),
            date=self._as_text(entry.get('date', '')),
            time=self._as_text(entry.get('time', '')),
            description=str(entry.get('description', '')),
            url=str(entry.get('url', '')),
            delete=bool(entry.get('delete', False)),
        )

    def _as_text(self, value) -> str:
        """Convert native TOML dates and times to feed strings."""
        if isinstance(value, dt.datetime):
            return value.strftime('%Y-%m-%d')
        if isinstance(value, dt.date):
            return value.isoformat()
        if isinstance(value, dt.time):
            return value.strftime('%H:%M')
        return str(value)

    def _parse_timestamp(self, value: str) -> dt.datetime:
        return dt.datetime.fromisoformat(value)
