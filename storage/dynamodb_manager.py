"""DynamoDB manager for stream events and the feed revision marker."""
import logging
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import Event, FeedRevisionMarker

logger = logging.getLogger(__name__)


class DynamoDBManager:
    """Manager for event and feed marker storage in DynamoDB."""

    DATE_INDEX = 'date-index'
    MARKER_KEY = 'feed_revision'
    COUNTER_KEY = 'event_id_counter'

    def __init__(self, events_table: str, meta_table: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table references.

        Args:
            events_table: Table keyed by numeric event_id, with a
                date-index GSI on event_date
            meta_table: Table keyed by string meta_key holding the feed
                marker and the event id counter
            region_name: AWS region, defaults to the environment's
        """
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.events = self.dynamodb.Table(events_table)
        self.meta = self.dynamodb.Table(meta_table)
        logger.info(
            f"Initialized DynamoDBManager for tables: {events_table}, {meta_table}"
        )

    def check_tables(self) -> None:
        """
        Verify both tables exist and are reachable.

        Raises:
            ClientError: If a table cannot be described
        """
        self.events.load()
        self.meta.load()

    def insert_event(self, event: Event) -> int:
        """
        Persist a new event under a freshly allocated identifier.

        Args:
            event: Event to store, its event_id is ignored

        Returns:
            The assigned event_id
        """
        event_id = self._next_event_id()
        self.events.put_item(
            Item=self._event_to_item(event, event_id),
            ConditionExpression='attribute_not_exists(event_id)'
        )
        logger.info(f"Inserted stream {event_id}: {event.name}")
        return event_id

    def update_event_by_id(self, event_id: int, event: Event) -> bool:
        """
        Overwrite the stored fields of an existing event.

        Args:
            event_id: Identifier of the stored event
            event: New field values

        Returns:
            True if the event was updated, False if no such event exists
        """
        try:
            self.events.put_item(
                Item=self._event_to_item(event, event_id),
                ConditionExpression='attribute_exists(event_id)'
            )
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                return False
            raise
        logger.info(f"Updated stream {event_id}: {event.name}")
        return True

    def delete_event_by_id(self, event_id: int) -> bool:
        """
        Delete an event.

        Returns:
            True if a stored event was removed, False if none existed
        """
        response = self.events.delete_item(
            Key={'event_id': event_id},
            ReturnValues='ALL_OLD'
        )
        if 'Attributes' not in response:
            return False
        logger.info(f"Deleted stream {event_id}")
        return True

    def get_event(self, event_id: int) -> Optional[Event]:
        response = self.events.get_item(Key={'event_id': event_id})
        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def list_events_on_date(self, date: str) -> List[Event]:
        """
        Query all events on a calendar date.

        Args:
            date: ISO 8601 date (YYYY-MM-DD)

        Returns:
            Events ordered by start time, timeless events first
        """
        response = self.events.query(
            IndexName=self.DATE_INDEX,
            KeyConditionExpression=Key('event_date').eq(date)
        )
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self.events.query(
                IndexName=self.DATE_INDEX,
                KeyConditionExpression=Key('event_date').eq(date),
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))

        events = [self._item_to_event(item) for item in items]
        return sorted(events, key=lambda e: e.time)

    def list_events_between(self, start_date: str, end_date: str) -> List[Event]:
        """Events dated from start_date to end_date inclusive, in date order."""
        items = self._scan(FilterExpression=Attr('event_date').between(start_date, end_date))
        events = [self._item_to_event(item) for item in items]
        return sorted(events, key=lambda e: (e.date, e.time))

    def list_all_events(self) -> List[Event]:
        """
        Retrieve all events using a Scan operation.

        Returns:
            List of Event objects
        """
        logger.info("Scanning DynamoDB table for all streams")
        events = [self._item_to_event(item) for item in self._scan()]
        logger.info(f"Retrieved {len(events)} streams from DynamoDB")
        return events

    def delete_events_older_than(self, cutoff_date: str) -> int:
        """
        Delete every event dated before cutoff_date.

        Args:
            cutoff_date: ISO 8601 date, events on this date are kept

        Returns:
            Count of deleted events
        """
        items = self._scan(
            FilterExpression=Attr('event_date').lt(cutoff_date),
            ProjectionExpression='event_id'
        )
        if not items:
            return 0

        with self.events.batch_writer() as writer:
            for item in items:
                writer.delete_item(Key={'event_id': item['event_id']})

        logger.info(f"Deleted {len(items)} streams dated before {cutoff_date}")
        return len(items)

    def get_marker(self) -> FeedRevisionMarker:
        """
        Read the feed revision marker, creating the default on first use.

        Returns:
            FeedRevisionMarker
        """
        response = self.meta.get_item(Key={'meta_key': self.MARKER_KEY})
        item = response.get('Item')
        if item is None:
            logger.info("No feed marker found, setting default")
            marker = FeedRevisionMarker()
            self.set_marker(marker)
            return marker

        return FeedRevisionMarker(
            commit_time=item.get('commit_time', ''),
            last_applied=item.get('last_applied', '')
        )

    def set_marker(self, marker: FeedRevisionMarker) -> None:
        self.meta.put_item(Item={
            'meta_key': self.MARKER_KEY,
            'commit_time': marker.commit_time,
            'last_applied': marker.last_applied
        })

    def _next_event_id(self) -> int:
        response = self.meta.update_item(
            Key={'meta_key': self.COUNTER_KEY},
            UpdateExpression='ADD next_id :one',
            ExpressionAttributeValues={':one': 1},
            ReturnValues='UPDATED_NEW'
        )
        return int(response['Attributes']['next_id'])

    def _scan(self, **kwargs) -> List[dict]:
        response = self.events.scan(**kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.events.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _item_to_event(self, item: dict) -> Event:
        """
        Convert DynamoDB item to Event object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Event object
        """
        return Event(
            event_id=int(item['event_id']),
            name=item.get('stream_name', ''),
            platform=item.get('platform', ''),
            date=item['event_date'],
            time=item.get('start_time', ''),
            description=item.get('description', ''),
            url=item.get('url', '')
        )

    def _event_to_item(self, event: Event, event_id: int) -> dict:
        """
        Convert Event object to DynamoDB item.

        The deletion flag is transient and never stored.

        Args:
            event: Event object
            event_id: Identifier to store the event under

        Returns:
            DynamoDB item dictionary
        """
        return {
            'event_id': event_id,
            'stream_name': event.name,
            'platform': event.platform,
            'event_date': event.date,
            'start_time': event.time,
            'description': event.description,
            'url': event.url
        }
