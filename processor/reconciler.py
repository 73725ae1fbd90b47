"""Reconciles the streams feed with the event store."""
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

from processor.event_processor import EventProcessor
from processor.models import Event, FeedRevisionMarker, ReconcileResult

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Applies new feed revisions to the event store.

    Entries with an id overwrite that stored event, entries flagged
    ``delete`` remove it, and entries without an id are inserted unless an
    event with the same name, platforms, date and time already exists.
    Store errors propagate and leave the revision marker untouched, so the
    next call repeats the whole pass.
    """

    def __init__(self, feed, store, processor: Optional[EventProcessor] = None):
        """
        Args:
            feed: StreamsFeed (or compatible) client
            store: DynamoDBManager (or compatible) event store
            processor: EventProcessor used to normalize feed entries
        """
        self.feed = feed
        self.store = store
        self.processor = processor or EventProcessor()
        self._lock = threading.Lock()

    def reconcile(self, marker: Optional[FeedRevisionMarker] = None) -> ReconcileResult:
        """
        Run one reconciliation pass.

        Args:
            marker: Last applied revision, read from the store if omitted

        Returns:
            ReconcileResult, changed is False when the feed had nothing new
            to insert or delete

        Raises:
            requests.RequestException: If the feed cannot be fetched
            FeedParseError: If the feed cannot be parsed
            InvalidDateError: If a feed entry has a malformed date
            ClientError: If a store operation fails
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Reconciliation already running, skipping")
            return ReconcileResult(changed=False)

        try:
            return self._reconcile(marker)
        finally:
            self._lock.release()

    def _reconcile(self, marker: Optional[FeedRevisionMarker]) -> ReconcileResult:
        if marker is None:
            marker = self.store.get_marker()

        is_new, commit_time = self.feed.has_new_revision(marker.commit_time)
        if not is_new:
            logger.info("No new feed revision")
            return ReconcileResult(changed=False, commit_time=marker.commit_time)
        logger.info(f"Found new feed revision from {commit_time}")

        candidates = self.processor.normalize_events(self.feed.fetch_feed())
        result = ReconcileResult(changed=False, commit_time=commit_time)

        deletions = [c for c in candidates if c.delete and c.event_id]
        updates = [c for c in candidates if c.event_id and not c.delete]
        fresh = [c for c in candidates if not c.event_id and not c.delete]
        for event in candidates:
            if event.delete and not event.event_id:
                logger.warning(f"Delete flag without id ignored for '{event.name}'")
                result.skipped += 1

        result.updated = self._apply_updates(updates)

        fresh = self._drop_duplicates(fresh, result)
        if not fresh and not deletions:
            logger.info("No new streams in feed")
            self._advance_marker(commit_time)
            return result

        result.inserted = self._insert(fresh, result)
        result.deleted = self._delete(deletions)

        self._advance_marker(commit_time)
        result.changed = bool(result.inserted or result.deleted)
        logger.info(
            f"Reconciliation complete: {result.inserted} inserted, "
            f"{result.updated} updated, {result.deleted} deleted, "
            f"{result.duplicates} duplicates"
        )
        return result

    def _apply_updates(self, updates: List[Event]) -> int:
        updated = 0
        for event in updates:
            logger.info(f"Updating stream {event.event_id}: {event.name}")
            if self.store.update_event_by_id(event.event_id, event):
                updated += 1
            else:
                logger.warning(
                    f"Stream {event.event_id} not found, update for "
                    f"'{event.name}' ignored"
                )
        return updated

    def _drop_duplicates(self, fresh: List[Event], result: ReconcileResult) -> List[Event]:
        if not fresh:
            return []

        seen = {event.natural_key for event in self.store.list_all_events()}
        unique = []
        for event in fresh:
            if event.natural_key in seen:
                result.duplicates += 1
                continue
            seen.add(event.natural_key)
            unique.append(event)
        return unique

    def _insert(self, fresh: List[Event], result: ReconcileResult) -> int:
        inserted = 0
        for event in fresh:
            if not event.name:
                result.skipped += 1
                continue
            self.store.insert_event(event)
            inserted += 1
        return inserted

    def _delete(self, deletions: List[Event]) -> int:
        deleted = 0
        for event in deletions:
            logger.info(f"Deleting stream {event.event_id}: {event.name}")
            if self.store.delete_event_by_id(event.event_id):
                deleted += 1
            else:
                logger.info(f"Stream {event.event_id} already deleted")
        return deleted

    def _advance_marker(self, commit_time: str) -> None:
        applied = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.store.set_marker(
            FeedRevisionMarker(commit_time=commit_time, last_applied=applied)
        )
