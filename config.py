"""Configuration for the game streams bot, read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


@dataclass
class BotConfig:
    """Runtime settings."""
    discord_token: str
    events_table: str = 'game-streams-events'
    groups_table: str = 'game-streams-groups'
    meta_table: str = 'game-streams-meta'
    feed_url: str = ''
    api_url: str = ''
    feed_filename: str = 'streams.toml'
    lead_time_minutes: int = 10
    daily_schedule_hour: int = 0
    retention_months: int = 12
    feed_poll_minutes: int = 15
    maintenance_hour: int = 3
    timeless_lookahead_days: int = 5
    embed_colour: int = 0x5865F2
    timeout_seconds: int = 30
    log_level: str = 'INFO'
    aws_region: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'BotConfig':
        """
        Build the configuration from environment variables.

        A .env file in the working directory is loaded first when reading
        the process environment.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            BotConfig

        Raises:
            ValueError: If a numeric setting is malformed or out of range
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        config = cls(
            discord_token=environ.get('DISCORD_TOKEN', ''),
            events_table=environ.get('EVENTS_TABLE', cls.events_table),
            groups_table=environ.get('GROUPS_TABLE', cls.groups_table),
            meta_table=environ.get('META_TABLE', cls.meta_table),
            feed_url=environ.get('STREAMS_FEED_URL', ''),
            api_url=environ.get('STREAMS_API_URL', ''),
            feed_filename=environ.get('STREAMS_FEED_FILENAME', cls.feed_filename),
            lead_time_minutes=int(environ.get('LEAD_TIME_MINUTES', '10')),
            daily_schedule_hour=int(environ.get('DAILY_SCHEDULE_HOUR', '0')),
            retention_months=int(environ.get('RETENTION_MONTHS', '12')),
            feed_poll_minutes=int(environ.get('FEED_POLL_MINUTES', '15')),
            maintenance_hour=int(environ.get('MAINTENANCE_HOUR', '3')),
            timeless_lookahead_days=int(environ.get('TIMELESS_LOOKAHEAD_DAYS', '5')),
            embed_colour=int(environ.get('EMBED_COLOUR', '5865F2').lstrip('#'), 16),
            timeout_seconds=int(environ.get('TIMEOUT_SECONDS', '30')),
            log_level=environ.get('LOG_LEVEL', 'INFO'),
            aws_region=environ.get('AWS_REGION') or None,
        )
        config.validate()
        return config

    def validate(self) -> None:
        for name in ('daily_schedule_hour', 'maintenance_hour'):
            if not 0 <= getattr(self, name) <= 23:
                raise ValueError(f"{name} must be between 0 and 23")
        for name in ('lead_time_minutes', 'retention_months', 'timeless_lookahead_days'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.feed_poll_minutes < 1:
            raise ValueError("feed_poll_minutes must be at least 1")
