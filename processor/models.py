"""Data models for stream events, recipient groups and sync results."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple

PLATFORMS = ('playstation', 'xbox', 'nintendo', 'pc', 'vr')


@dataclass
class Event:
    """A scheduled stream, either parsed from the feed or read from the store."""
    name: str
    platform: str
    date: str
    time: str = ''
    description: str = ''
    url: str = ''
    event_id: int = 0
    delete: bool = False

    @property
    def natural_key(self) -> Tuple[str, str, str, str]:
        """Fields used to detect duplicate events."""
        return (self.name, self.platform, self.date, self.time)

    def platforms(self) -> List[str]:
        """Split the platform tag set on commas, trimming each tag."""
        return [p.strip() for p in self.platform.split(',') if p.strip()]

    def start_instant(self) -> Optional[datetime]:
        """
        Start of the stream as an aware UTC datetime.

        Returns:
            datetime or None when no time has been set
        """
        if not self.time:
            return None
        start = datetime.strptime(f"{self.date} {self.time}", '%Y-%m-%d %H:%M')
        return start.replace(tzinfo=timezone.utc)


@dataclass
class FeedRevisionMarker:
    """Last feed revision applied to the store."""
    commit_time: str = ''
    last_applied: str = ''


@dataclass
class GroupSettingsUpdate:
    """
    Partial change to a recipient group's settings.

    None means the field was not specified. An empty string for the
    channel or role clears it.
    """
    announce_channel: Optional[str] = None
    announce_role: Optional[str] = None
    playstation: Optional[bool] = None
    xbox: Optional[bool] = None
    nintendo: Optional[bool] = None
    pc: Optional[bool] = None
    vr: Optional[bool] = None
    reset: bool = False

    def specified(self) -> dict:
        """Fields that carry a value."""
        names = ('announce_channel', 'announce_role') + PLATFORMS
        return {
            name: getattr(self, name) for name in names
            if getattr(self, name) is not None
        }

    def is_empty(self) -> bool:
        return not self.reset and not self.specified()


@dataclass
class RecipientGroup:
    """Announcement settings for one Discord server."""
    group_id: str
    announce_channel: str = ''
    announce_role: str = ''
    playstation: bool = False
    xbox: bool = False
    nintendo: bool = False
    pc: bool = False
    vr: bool = False

    def merge(self, update: GroupSettingsUpdate) -> 'RecipientGroup':
        """Return a copy with the specified fields of update applied."""
        base = RecipientGroup(group_id=self.group_id) if update.reset else self
        return replace(base, **update.specified())

    def follows(self, platform: str) -> bool:
        platform = platform.strip().lower()
        return platform in PLATFORMS and getattr(self, platform)

    @property
    def can_receive(self) -> bool:
        return bool(self.announce_channel)


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation pass."""
    changed: bool
    updated: int = 0
    inserted: int = 0
    deleted: int = 0
    duplicates: int = 0
    skipped: int = 0
    commit_time: str = ''


@dataclass
class ScheduleReport:
    """Events handled by one scheduling pass."""
    scheduled: List[Event] = field(default_factory=list)
    timeless: List[Event] = field(default_factory=list)
    already_pending: int = 0


@dataclass
class DeliveryReport:
    """Outcome of announcing one event."""
    recipients: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass(frozen=True)
class MessageHandle:
    """Reference to a posted announcement."""
    channel_id: str
    message_id: str


@dataclass(frozen=True)
class Announcement:
    """Rendered announcement, shared by every recipient of an event."""
    title: str
    url: str
    description: str
    platforms: str
    thumbnail_url: str = ''
    colour: int = 0
