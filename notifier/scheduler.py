"""Schedules the day's stream announcements."""
import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from processor.models import Event, ScheduleReport

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """
    Runs one suspended asyncio task per upcoming event.

    Each task sleeps until ``lead_time_minutes`` before its event starts and
    then hands the event to the dispatcher. Tasks are independent: a slow or
    failing delivery never delays another event. Pending tasks live only in
    memory and are lost on shutdown.
    """

    def __init__(
        self,
        store,
        dispatcher,
        lead_time_minutes: int,
        daily_hour: int = 0,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            store: DynamoDBManager (or compatible) event store
            dispatcher: FanoutDispatcher called when an event's time comes
            lead_time_minutes: Minutes before the start to announce
            daily_hour: UTC hour of the daily scheduling pass
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.dispatcher = dispatcher
        self.lead_time = timedelta(minutes=lead_time_minutes)
        self.daily_hour = daily_hour
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending: Dict[Tuple[int, str, str], asyncio.Task] = {}
        self._fired: Set[Tuple[int, str, str]] = set()
        self._shutdown = asyncio.Event()

    def fire_time(self, event: Event) -> Optional[datetime]:
        """Instant the event's announcement is due, None without a start time."""
        start = event.start_instant()
        return start - self.lead_time if start else None

    def next_daily_pass(self, now: datetime) -> datetime:
        run = now.replace(hour=self.daily_hour, minute=0, second=0, microsecond=0)
        return run if run > now else run + timedelta(days=1)

    def pending_count(self) -> int:
        return len(self._pending)

    async def schedule_today(self) -> ScheduleReport:
        """
        Schedule announcements for today's remaining events.

        Events dated tomorrow whose announcement is due before the next
        daily pass are included so they are not missed between passes. An
        event is never scheduled again once its announcement has fired.

        Returns:
            ScheduleReport with the scheduled and the timeless events

        Raises:
            ClientError: If the events cannot be read, nothing is scheduled
        """
        now = self.clock()
        today = now.date()
        today_events, tomorrow_events = await asyncio.to_thread(
            self._read_events, today, today + timedelta(days=1)
        )

        due, timeless = self.select_events(today_events, tomorrow_events, now)
        report = ScheduleReport(timeless=timeless)
        self._fired = {key for key in self._fired if key[1] >= today.isoformat()}

        for position, event in enumerate(due, start=1):
            key = (event.event_id, event.date, event.time)
            if key in self._pending or key in self._fired:
                report.already_pending += 1
                continue

            delay = (self.fire_time(event) - now).total_seconds()
            task = asyncio.create_task(self._notify(key, event, delay))
            self._pending[key] = task
            task.add_done_callback(lambda _, key=key: self._pending.pop(key, None))
            report.scheduled.append(event)

            logger.info(
                f"Scheduled stream {position}/{len(due)}: '{event.name}' at {event.time}",
                extra={'event_id': event.event_id, 'delay_seconds': round(max(delay, 0))}
            )

        logger.info(f"Scheduled {len(report.scheduled)} streams for {today.isoformat()}")
        if timeless:
            logger.warning(
                f"{len(timeless)} streams today have no start time",
                extra={'streams': {e.event_id: e.name for e in timeless}}
            )
        return report

    def select_events(
        self,
        today_events: List[Event],
        tomorrow_events: List[Event],
        now: datetime
    ) -> Tuple[List[Event], List[Event]]:
        """
        Pick the events to schedule.

        Returns:
            Tuple of (events to schedule in start order, today's events
            without a start time)
        """
        timeless = [e for e in today_events if not e.time]
        due = [
            e for e in today_events
            if e.time and e.start_instant() >= now.replace(second=0, microsecond=0)
        ]

        next_pass = self.next_daily_pass(now)
        due.extend(
            e for e in tomorrow_events
            if e.time and self.fire_time(e) < next_pass
        )
        return sorted(due, key=lambda e: e.start_instant()), timeless

    async def check_timeless(self, days: int = 5) -> List[Event]:
        """
        Find upcoming events that still have no start time.

        Args:
            days: How many days ahead of today to look

        Returns:
            Events dated tomorrow to today + days without a time
        """
        today = self.clock().date()
        events = await asyncio.to_thread(
            self.store.list_events_between,
            (today + timedelta(days=1)).isoformat(),
            (today + timedelta(days=days)).isoformat()
        )
        timeless = [e for e in events if not e.time]
        if timeless:
            logger.warning(
                "Upcoming streams with no time",
                extra={'streams': {e.event_id: e.name for e in timeless}}
            )
        return timeless

    def shutdown(self) -> None:
        """Stop all pending announcements."""
        self._shutdown.set()
        for task in list(self._pending.values()):
            task.cancel()
        self.dispatcher.shutdown()

    def _read_events(self, today: date, tomorrow: date) -> Tuple[List[Event], List[Event]]:
        return (
            self.store.list_events_on_date(today.isoformat()),
            self.store.list_events_on_date(tomorrow.isoformat())
        )

    async def _notify(self, key: Tuple[int, str, str], event: Event, delay: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=max(delay, 0))
            return
        except asyncio.TimeoutError:
            pass

        self._fired.add(key)

        try:
            await self.dispatcher.deliver(event)
        except Exception as e:
            logger.error(
                f"Failed to announce stream '{event.name}': {e}",
                extra={'event_id': event.event_id, 'error_type': type(e).__name__},
                exc_info=True
            )
