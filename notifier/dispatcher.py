"""Fan-out of stream announcements to every interested recipient group."""
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Set, Tuple

from feed.stream_links import get_video_thumbnail, make_url_direct
from processor.models import Announcement, DeliveryReport, Event, MessageHandle

logger = logging.getLogger(__name__)

DEFAULT_COLOUR = 0x5865F2


def render_announcement(
    event: Event,
    started: bool = False,
    url: Optional[str] = None,
    thumbnail_url: str = '',
    colour: int = DEFAULT_COLOUR
) -> Announcement:
    """
    Render the announcement for an event.

    The description opens with a Discord relative timestamp, e.g.
    "**Stream starting <t:1718042400:R>.**", which clients show as
    "in 10 minutes".

    Args:
        event: Event being announced
        started: Use the "started" wording of the follow-up edit
        url: Link to use instead of event.url
        thumbnail_url: Image shown beside the embed
        colour: Embed colour

    Returns:
        Announcement
    """
    start = event.start_instant()
    if start is None:
        start = datetime.strptime(event.date, '%Y-%m-%d').replace(tzinfo=timezone.utc)

    wording = 'started' if started else 'starting'
    headline = f"**Stream {wording} <t:{int(start.timestamp())}:R>.**"
    description = f"{headline}\n\n{event.description}" if event.description else headline

    return Announcement(
        title=event.name,
        url=event.url if url is None else url,
        description=description,
        platforms=event.platform,
        thumbnail_url=thumbnail_url,
        colour=colour
    )


def mark_started(payload: Announcement) -> Announcement:
    """Switch an announcement's wording from "starting" to "started"."""
    return replace(
        payload,
        description=payload.description.replace('**Stream starting', '**Stream started', 1)
    )


class FanoutDispatcher:
    """Delivers one event's announcement to every group following its platforms."""

    def __init__(
        self,
        groups,
        messenger,
        lead_time_minutes: int,
        colour: int = DEFAULT_COLOUR,
        link_resolver: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable = asyncio.sleep
    ):
        """
        Args:
            groups: GroupManager (or compatible) recipient store
            messenger: Messenger posting to the chat platform
            lead_time_minutes: Minutes between the announcement and the start
            colour: Embed colour
            link_resolver: Look up direct links and thumbnails for stream URLs
            clock: Returns the current aware UTC time
            sleep: Coroutine function used to wait for the follow-up edit
        """
        self.groups = groups
        self.messenger = messenger
        self.lead_time_minutes = lead_time_minutes
        self.colour = colour
        self.link_resolver = link_resolver
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.sleep = sleep
        self._followups: Set[asyncio.Task] = set()

    async def deliver(self, event: Event) -> DeliveryReport:
        """
        Announce an event to every interested group.

        Args:
            event: Event whose notification time has come

        Returns:
            DeliveryReport

        Raises:
            ClientError: If the recipient groups cannot be resolved
        """
        logger.info(
            f"Posting stream announcement for '{event.name}'",
            extra={'event_id': event.event_id, 'platforms': event.platform}
        )
        group_ids = await asyncio.to_thread(self.resolve_recipients, event)
        report = DeliveryReport(recipients=len(group_ids))
        logger.info(f"Resolved {len(group_ids)} recipient groups for '{event.name}'")
        if not group_ids:
            return report

        payload = await self.render(event)
        outcomes = await asyncio.gather(
            *(self._deliver_to(group_id, payload) for group_id in sorted(group_ids))
        )

        for status, handle in outcomes:
            if status == 'delivered':
                report.delivered += 1
                self._schedule_followup(event, handle, payload)
            elif status == 'skipped':
                report.skipped += 1
            else:
                report.failed += 1

        logger.info(
            f"Finished posting '{event.name}': {report.delivered} delivered, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report

    def resolve_recipients(self, event: Event) -> Set[str]:
        """IDs of groups following at least one of the event's platforms."""
        group_ids = set()
        for platform in event.platforms():
            group_ids.update(self.groups.list_group_ids_by_platform(platform))
        return group_ids

    async def render(self, event: Event) -> Announcement:
        url, thumbnail_url = event.url, ''
        if self.link_resolver and event.url:
            url, thumbnail_url = await asyncio.to_thread(self._resolve_links, event.url)
        return render_announcement(
            event, url=url, thumbnail_url=thumbnail_url, colour=self.colour
        )

    async def drain(self) -> None:
        """Wait for all pending follow-up edits."""
        if self._followups:
            await asyncio.gather(*list(self._followups), return_exceptions=True)

    def shutdown(self) -> None:
        for task in list(self._followups):
            task.cancel()

    def _resolve_links(self, url: str) -> Tuple[str, str]:
        direct_url = make_url_direct(url)
        return direct_url, get_video_thumbnail(direct_url)

    async def _deliver_to(self, group_id: str, payload: Announcement) -> Tuple[str, Optional[MessageHandle]]:
        try:
            group = await asyncio.to_thread(self.groups.get_group, group_id)
            if group is None or not group.can_receive:
                return 'skipped', None
            handle = await self.messenger.send_message(
                group.announce_channel, payload, mention=group.announce_role
            )
            return 'delivered', handle
        except Exception as e:
            name = await self._display_name(group_id)
            logger.error(
                f"Failed to post announcement to {name}: {e}",
                extra={'group_id': group_id, 'error_type': type(e).__name__},
                exc_info=True
            )
            return 'failed', None

    async def _display_name(self, group_id: str) -> str:
        try:
            return await self.messenger.resolve_display_name(group_id)
        except Exception:
            return group_id

    def _schedule_followup(self, event: Event, handle: MessageHandle, payload: Announcement) -> None:
        task = asyncio.create_task(self._edit_when_started(event, handle, payload))
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    async def _edit_when_started(self, event: Event, handle: MessageHandle, payload: Announcement) -> None:
        start = event.start_instant()
        if start is not None:
            delay = (start - self.clock()).total_seconds()
        else:
            delay = self.lead_time_minutes * 60
        await self.sleep(max(delay, 0))

        try:
            await self.messenger.edit_message(handle, mark_started(payload))
        except Exception as e:
            logger.error(
                f"Failed to edit announcement: {e}",
                extra={'channel_id': handle.channel_id, 'message_id': handle.message_id},
                exc_info=True
            )
