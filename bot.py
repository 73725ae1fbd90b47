"""Discord bot process for game stream announcements."""
import asyncio
import json
import logging
import sys
import time
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Dict, Optional

import discord
from dateutil.relativedelta import relativedelta
from discord.ext import tasks

from config import BotConfig
from feed.streams_feed import StreamsFeed
from notifier.dispatcher import FanoutDispatcher
from notifier.messaging import DiscordMessenger
from notifier.scheduler import NotificationScheduler
from processor.reconciler import Reconciler
from storage.dynamodb_manager import DynamoDBManager
from storage.group_manager import GroupManager

logger = logging.getLogger(__name__)

_RECORD_ATTRIBUTES = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def run_feed_sync(reconciler: Reconciler) -> Dict[str, Any]:
    """
    Run one feed reconciliation and summarise it.

    Failures are logged and reported; the next scheduled run retries
    from the same feed revision.

    Returns:
        Summary dict with a status of "ok" or "error"
    """
    start_time = time.time()
    logger.info("Checking for stream updates")

    try:
        result = reconciler.reconcile()
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Error updating streams: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return {
            'status': 'error',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        }

    duration = time.time() - start_time
    summary = {
        'status': 'ok',
        'changed': result.changed,
        'streams_inserted': result.inserted,
        'streams_updated': result.updated,
        'streams_deleted': result.deleted,
        'duplicates_skipped': result.duplicates,
        'duration_seconds': round(duration, 2)
    }
    logger.info("Stream update completed", extra=summary)
    return summary


def retention_cutoff(today: date, retention_months: int) -> str:
    """Oldest event date kept by the maintenance sweep."""
    return (today - relativedelta(months=retention_months)).isoformat()


def run_maintenance(store: DynamoDBManager, retention_months: int, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Remove events older than the retention horizon.

    Returns:
        Summary dict with a status of "ok" or "error"
    """
    today = today or datetime.now(timezone.utc).date()
    cutoff = retention_cutoff(today, retention_months)
    logger.info(f"Removing streams dated before {cutoff}")

    try:
        deleted = store.delete_events_older_than(cutoff)
    except Exception as e:
        logger.error(
            f"Error removing old streams: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return {'status': 'error', 'error': str(e), 'error_type': type(e).__name__}

    return {'status': 'ok', 'cutoff': cutoff, 'streams_deleted': deleted}


class StreamBot(discord.Client):
    """Discord client driving feed sync, daily scheduling and maintenance."""

    def __init__(self, config: BotConfig, store: DynamoDBManager, groups: GroupManager):
        super().__init__(intents=discord.Intents.default())
        self.config = config
        self.store = store
        self.groups = groups

        feed = StreamsFeed(
            feed_url=config.feed_url,
            api_url=config.api_url,
            feed_filename=config.feed_filename,
            timeout=config.timeout_seconds
        )
        self.reconciler = Reconciler(feed, store)
        self.dispatcher = FanoutDispatcher(
            groups,
            DiscordMessenger(self),
            lead_time_minutes=config.lead_time_minutes,
            colour=config.embed_colour
        )
        self.scheduler = NotificationScheduler(
            store,
            self.dispatcher,
            lead_time_minutes=config.lead_time_minutes,
            daily_hour=config.daily_schedule_hour
        )
        self._initial_schedule_done = False

    async def setup_hook(self) -> None:
        self.feed_sync.change_interval(minutes=self.config.feed_poll_minutes)
        self.daily_schedule.change_interval(
            time=dt_time(hour=self.config.daily_schedule_hour, tzinfo=timezone.utc)
        )
        self.maintenance.change_interval(
            time=dt_time(hour=self.config.maintenance_hour, tzinfo=timezone.utc)
        )
        self.feed_sync.start()
        self.daily_schedule.start()
        self.maintenance.start()

    async def on_ready(self) -> None:
        logger.info(f"Logged in as {self.user}", extra={'guilds': len(self.guilds)})
        if not self._initial_schedule_done:
            self._initial_schedule_done = True
            await self.sync_groups()
            await self.schedule_notifications()

    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info(f"Joined server {guild.name}", extra={'group_id': guild.id})
        await asyncio.to_thread(self.groups.add_group, str(guild.id))

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info(f"Removed from server {guild.name}", extra={'group_id': guild.id})
        await asyncio.to_thread(self.groups.delete_group, str(guild.id))

    async def sync_groups(self) -> None:
        """Register servers joined and drop servers left while offline."""
        guild_ids = [str(guild.id) for guild in self.guilds]
        try:
            await asyncio.to_thread(self.groups.sync_groups, guild_ids)
        except Exception as e:
            logger.error(
                f"Error synchronizing recipient groups: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )

    async def schedule_notifications(self) -> None:
        logger.info("Scheduling stream notifications")
        try:
            await self.scheduler.schedule_today()
        except Exception as e:
            logger.error(
                f"Error scheduling today's streams: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )

    @tasks.loop(minutes=15)
    async def feed_sync(self) -> None:
        await asyncio.to_thread(run_feed_sync, self.reconciler)

    @tasks.loop(time=dt_time(hour=0, tzinfo=timezone.utc))
    async def daily_schedule(self) -> None:
        await self.schedule_notifications()

    @tasks.loop(time=dt_time(hour=3, tzinfo=timezone.utc))
    async def maintenance(self) -> None:
        await asyncio.to_thread(run_maintenance, self.store, self.config.retention_months)
        await self.sync_groups()
        try:
            await self.scheduler.check_timeless(self.config.timeless_lookahead_days)
        except Exception as e:
            logger.error(f"Error checking streams without time: {e}", exc_info=True)

    @feed_sync.before_loop
    @daily_schedule.before_loop
    @maintenance.before_loop
    async def before_loops(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        self.scheduler.shutdown()
        await super().close()


def main() -> int:
    """Start the bot. Returns the process exit status."""
    try:
        config = BotConfig.from_env()
    except ValueError as e:
        setup_logging()
        logger.critical(
            f"Invalid configuration: {e}",
            extra={'error_type': type(e).__name__}
        )
        return 1

    setup_logging(config.log_level)

    if not config.discord_token:
        logger.critical("DISCORD_TOKEN is not set")
        return 1

    try:
        store = DynamoDBManager(config.events_table, config.meta_table, region_name=config.aws_region)
        groups = GroupManager(config.groups_table, region_name=config.aws_region)
        store.check_tables()
        groups.check_table()
    except Exception as e:
        logger.critical(
            f"Cannot open stream store: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return 1

    bot = StreamBot(config, store, groups)
    bot.run(config.discord_token, log_handler=None)
    return 0


if __name__ == '__main__':
    sys.exit(main())
