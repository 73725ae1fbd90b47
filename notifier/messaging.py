"""Messaging collaborator used to post and edit stream announcements."""
import logging
from typing import Protocol

import discord

from processor.models import Announcement, MessageHandle

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    """Operations the dispatcher needs from a chat platform."""

    async def send_message(
        self, destination: str, payload: Announcement, mention: str = ''
    ) -> MessageHandle:
        ...

    async def edit_message(self, handle: MessageHandle, payload: Announcement) -> None:
        ...

    async def resolve_display_name(self, group_id: str) -> str:
        ...


def build_embed(payload: Announcement) -> discord.Embed:
    """Convert a rendered announcement into a Discord embed."""
    embed = discord.Embed(
        title=payload.title,
        url=payload.url or None,
        description=payload.description,
        colour=payload.colour
    )
    if payload.thumbnail_url:
        embed.set_thumbnail(url=payload.thumbnail_url)
    embed.add_field(name="\u200b\nPlatforms", value=payload.platforms or "-", inline=False)
    return embed


class DiscordMessenger:
    """Messenger backed by a connected discord.Client."""

    def __init__(self, client: discord.Client):
        self.client = client

    async def send_message(
        self, destination: str, payload: Announcement, mention: str = ''
    ) -> MessageHandle:
        """
        Post an announcement embed to a channel.

        Args:
            destination: Channel ID
            payload: Rendered announcement
            mention: Role ID to ping, "" for none

        Returns:
            MessageHandle of the posted message

        Raises:
            discord.HTTPException: If the channel cannot be fetched or posted to
        """
        channel = await self._get_channel(destination)
        content = f"<@&{mention}>" if mention else None
        message = await channel.send(
            content=content,
            embed=build_embed(payload),
            allowed_mentions=discord.AllowedMentions(roles=True, users=False, everyone=False)
        )
        return MessageHandle(channel_id=str(message.channel.id), message_id=str(message.id))

    async def edit_message(self, handle: MessageHandle, payload: Announcement) -> None:
        channel = await self._get_channel(handle.channel_id)
        message = channel.get_partial_message(int(handle.message_id))
        await message.edit(embed=build_embed(payload))

    async def resolve_display_name(self, group_id: str) -> str:
        """Server name for logs, falling back to the ID."""
        try:
            guild = self.client.get_guild(int(group_id))
        except ValueError:
            return group_id
        return guild.name if guild is not None else group_id

    async def _get_channel(self, channel_id: str):
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            channel = await self.client.fetch_channel(int(channel_id))
        return channel
