"""DynamoDB manager for recipient group announcement settings."""
import logging
from typing import Iterable, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr

from processor.models import PLATFORMS, GroupSettingsUpdate, RecipientGroup

logger = logging.getLogger(__name__)


class GroupManager:
    """Manager for per-server announcement settings."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Table keyed by string group_id
            region_name: AWS region, defaults to the environment's
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized GroupManager for table: {table_name}")

    def check_table(self) -> None:
        self.table.load()

    def add_group(self, group_id: str) -> RecipientGroup:
        """
        Register a group with default, non-subscribed settings.

        An already registered group keeps its settings.
        """
        existing = self.get_group(group_id)
        if existing is not None:
            return existing

        group = RecipientGroup(group_id=group_id)
        self.save_group(group)
        logger.info(f"Registered recipient group {group_id}")
        return group

    def get_group(self, group_id: str) -> Optional[RecipientGroup]:
        """Read a group's settings, None if the group is not registered."""
        response = self.table.get_item(Key={'group_id': group_id})
        item = response.get('Item')
        return self._item_to_group(item) if item else None

    def get_group_settings(self, group_id: str) -> RecipientGroup:
        """
        Read a group's settings, registering the group if it is unknown.

        Args:
            group_id: Discord server ID

        Returns:
            RecipientGroup
        """
        group = self.get_group(group_id)
        if group is None:
            return self.add_group(group_id)
        return group

    def update_group(self, group_id: str, update: GroupSettingsUpdate) -> RecipientGroup:
        """
        Apply the specified fields of update to a group.

        Args:
            group_id: Discord server ID
            update: Partial settings, unspecified fields are left as they are

        Returns:
            The stored RecipientGroup
        """
        group = self.get_group_settings(group_id)
        if update.is_empty():
            return group

        merged = group.merge(update)
        self.save_group(merged)
        logger.info(
            f"Updated settings for group {group_id}",
            extra={'fields': sorted(update.specified()), 'reset': update.reset}
        )
        return merged

    def save_group(self, group: RecipientGroup) -> None:
        self.table.put_item(Item=self._group_to_item(group))

    def delete_group(self, group_id: str) -> None:
        self.table.delete_item(Key={'group_id': group_id})
        logger.info(f"Removed recipient group {group_id}")

    def list_group_ids(self) -> List[str]:
        return [item['group_id'] for item in self._scan(ProjectionExpression='group_id')]

    def sync_groups(self, current_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Make the stored groups match the servers the bot is a member of.

        Servers joined while the bot was offline are registered with default
        settings, and records of servers it left are removed.

        Args:
            current_ids: IDs of the servers the bot is currently in

        Returns:
            Tuple of (added group IDs, removed group IDs)
        """
        current = set(current_ids)
        stored = set(self.list_group_ids())

        added = sorted(current - stored)
        removed = sorted(stored - current)
        for group_id in added:
            self.add_group(group_id)
        for group_id in removed:
            self.delete_group(group_id)

        logger.info(
            f"Synchronized recipient groups: {len(added)} added, {len(removed)} removed",
            extra={'groups_added': added, 'groups_removed': removed}
        )
        return added, removed

    def list_group_ids_by_platform(self, platform: str) -> List[str]:
        """
        IDs of groups following a platform.

        Args:
            platform: Platform tag, case-insensitive (e.g. "PlayStation")

        Returns:
            Group IDs, empty for an unknown platform
        """
        platform = platform.strip().lower()
        if platform not in PLATFORMS:
            logger.warning(f"Unknown platform tag: {platform!r}")
            return []

        items = self._scan(
            FilterExpression=Attr(platform).eq(True),
            ProjectionExpression='group_id'
        )
        return [item['group_id'] for item in items]

    def _scan(self, **kwargs) -> List[dict]:
        response = self.table.scan(**kwargs)
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _item_to_group(self, item: dict) -> RecipientGroup:
        return RecipientGroup(
            group_id=item['group_id'],
            announce_channel=item.get('announce_channel', ''),
            announce_role=item.get('announce_role', ''),
            **{platform: bool(item.get(platform, False)) for platform in PLATFORMS}
        )

    def _group_to_item(self, group: RecipientGroup) -> dict:
        item = {
            'group_id': group.group_id,
            'announce_channel': group.announce_channel,
            'announce_role': group.announce_role,
        }
        for platform in PLATFORMS:
            item[platform] = getattr(group, platform)
        return item
