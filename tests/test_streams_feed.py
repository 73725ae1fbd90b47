"""Unit tests for StreamsFeed."""
import pytest
import responses
from requests.exceptions import HTTPError

from feed.streams_feed import FeedParseError, StreamsFeed

FEED_URL = "https://raw.githubusercontent.com/example/flat-files/main/streams.toml"
API_URL = "https://api.github.com/repos/example/flat-files/commits/main"

FEED_BODY = """
[[streams]]
name = "Big Reveal"
platform = "playstation, pc"
date = "10/06/2024"
time = "18:00"
description = "All the trailers"
url = "https://example/x"

[[streams]]
id = 4
name = "Nintendo Direct"
platform = "nintendo"
date = 2024-06-18
time = 15:00:00

[[streams]]
id = 9
name = "Cancelled Showcase"
platform = "xbox"
date = "01/06/2024"
delete = true
"""


def commit_payload(date="2024-06-01T12:00:00Z", files=("streams.toml",)):
    return {
        "commit": {"author": {"date": date}},
        "files": [{"filename": name} for name in files]
    }


@pytest.fixture
def feed():
    return StreamsFeed(feed_url=FEED_URL, api_url=API_URL, timeout=5)


class TestStreamsFeed:
    """Test cases for StreamsFeed class."""

    @responses.activate
    def test_fetch_feed_success(self, feed):
        """Test fetching and parsing the streams document."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        events = feed.fetch_feed()

        assert len(events) == 3

        assert events[0].name == "Big Reveal"
        assert events[0].platform == "playstation, pc"
        assert events[0].date == "10/06/2024"
        assert events[0].time == "18:00"
        assert events[0].url == "https://example/x"
        assert events[0].event_id == 0
        assert events[0].delete is False

        # Native TOML date and time values
        assert events[1].event_id == 4
        assert events[1].date == "2024-06-18"
        assert events[1].time == "15:00"
        assert events[1].description == ""

        assert events[2].event_id == 9
        assert events[2].delete is True

    @responses.activate
    def test_fetch_feed_empty_document(self, feed):
        """Test that a document without streams yields no events."""
        responses.add(responses.GET, FEED_URL, body="", status=200)

        assert feed.fetch_feed() == []

    @responses.activate
    def test_fetch_feed_invalid_toml(self, feed):
        """Test that malformed TOML raises FeedParseError."""
        responses.add(responses.GET, FEED_URL, body="[[streams]\nname = ", status=200)

        with pytest.raises(FeedParseError):
            feed.fetch_feed()

    def test_parse_feed_rejects_non_table_streams(self, feed):
        with pytest.raises(FeedParseError):
            feed.parse_feed('streams = "not a list"')

    def test_parse_feed_rejects_invalid_id(self, feed):
        with pytest.raises(FeedParseError, match="invalid id"):
            feed.parse_feed('[[streams]]\nid = "abc"\nname = "x"')

    @responses.activate
    def test_fetch_feed_http_error(self, feed):
        """Test that HTTP errors propagate without retries."""
        responses.add(responses.GET, FEED_URL, status=503)

        with pytest.raises(HTTPError):
            feed.fetch_feed()

        assert len(responses.calls) == 1

    @responses.activate
    def test_has_new_revision_without_marker(self, feed):
        """Test that the first run always applies the feed."""
        responses.add(responses.GET, API_URL, json=commit_payload(files=("README.md",)))

        is_new, commit_time = feed.has_new_revision("")

        assert is_new is True
        assert commit_time == "2024-06-01T12:00:00+00:00"

    @responses.activate
    def test_has_new_revision_newer_commit(self, feed):
        responses.add(responses.GET, API_URL, json=commit_payload(date="2024-06-02T08:30:00Z"))

        is_new, commit_time = feed.has_new_revision("2024-06-01T12:00:00+00:00")

        assert is_new is True
        assert commit_time == "2024-06-02T08:30:00+00:00"

    @responses.activate
    def test_has_new_revision_same_commit(self, feed):
        responses.add(responses.GET, API_URL, json=commit_payload())

        is_new, _ = feed.has_new_revision("2024-06-01T12:00:00+00:00")

        assert is_new is False

    @responses.activate
    def test_has_new_revision_commit_not_touching_feed(self, feed):
        """Test that newer commits to other files are ignored."""
        responses.add(
            responses.GET, API_URL,
            json=commit_payload(date="2024-06-05T00:00:00Z", files=("README.md",))
        )

        is_new, _ = feed.has_new_revision("2024-06-01T12:00:00+00:00")

        assert is_new is False

    @responses.activate
    def test_get_upstream_revision_bad_payload(self, feed):
        responses.add(responses.GET, API_URL, json={"message": "Not Found"})

        with pytest.raises(FeedParseError):
            feed.get_upstream_revision()

    @responses.activate
    def test_get_upstream_revision_http_error(self, feed):
        responses.add(responses.GET, API_URL, status=500)

        with pytest.raises(HTTPError):
            feed.get_upstream_revision()
