"""Unit tests for DynamoDB manager."""
import pytest
from botocore.exceptions import ClientError

from processor.models import Event, FeedRevisionMarker


@pytest.fixture
def sample_event():
    """Create a sample Event for testing."""
    return Event(
        name='Big Reveal',
        platform='PlayStation, PC',
        date='2024-06-10',
        time='18:00',
        description='All the trailers',
        url='https://example/x'
    )


def test_list_all_events_empty_table(store):
    """Test list_all_events returns empty list for empty table."""
    assert store.list_all_events() == []


def test_insert_event_assigns_increasing_ids(store, sample_event):
    """Test that each insert gets a new non-zero identifier."""
    first = store.insert_event(sample_event)
    second = store.insert_event(Event(name='Other', platform='PC', date='2024-06-11'))

    assert first == 1
    assert second == 2


def test_insert_event_round_trip(store, sample_event):
    """Test that stored fields are read back and the delete flag is not."""
    sample_event.delete = True
    event_id = store.insert_event(sample_event)

    stored = store.get_event(event_id)

    assert stored.event_id == event_id
    assert stored.name == 'Big Reveal'
    assert stored.platform == 'PlayStation, PC'
    assert stored.date == '2024-06-10'
    assert stored.time == '18:00'
    assert stored.description == 'All the trailers'
    assert stored.url == 'https://example/x'
    assert stored.delete is False


def test_insert_event_without_time(store):
    """Test that events with an unknown time can be stored."""
    event_id = store.insert_event(Event(name='TBC', platform='VR', date='2024-06-10'))

    assert store.get_event(event_id).time == ''


def test_update_event_by_id(store, sample_event):
    """Test that an update overwrites the stored event in place."""
    event_id = store.insert_event(sample_event)

    updated = store.update_event_by_id(
        event_id,
        Event(name='Big Reveal', platform='PC', date='2024-06-10', time='19:00')
    )

    assert updated is True
    events = store.list_all_events()
    assert len(events) == 1
    assert events[0].event_id == event_id
    assert events[0].time == '19:00'
    assert events[0].platform == 'PC'


def test_update_event_by_id_missing(store, sample_event):
    """Test that updating an unknown id creates nothing."""
    assert store.update_event_by_id(42, sample_event) is False
    assert store.list_all_events() == []


def test_delete_event_by_id(store, sample_event):
    event_id = store.insert_event(sample_event)

    assert store.delete_event_by_id(event_id) is True

    assert store.get_event(event_id) is None


def test_delete_event_by_id_missing(store, sample_event):
    """Test that deleting an absent event reports nothing removed."""
    event_id = store.insert_event(sample_event)
    store.delete_event_by_id(event_id)

    assert store.delete_event_by_id(event_id) is False
    assert store.delete_event_by_id(999) is False


def test_list_events_on_date(store):
    """Test date query returns only that date's events, ordered by time."""
    store.insert_event(Event(name='Late', platform='PC', date='2024-06-10', time='21:00'))
    store.insert_event(Event(name='Early', platform='PC', date='2024-06-10', time='09:00'))
    store.insert_event(Event(name='Timeless', platform='PC', date='2024-06-10'))
    store.insert_event(Event(name='Tomorrow', platform='PC', date='2024-06-11', time='10:00'))

    events = store.list_events_on_date('2024-06-10')

    assert [e.name for e in events] == ['Timeless', 'Early', 'Late']


def test_list_events_between(store):
    store.insert_event(Event(name='Before', platform='PC', date='2024-06-09'))
    store.insert_event(Event(name='Second', platform='PC', date='2024-06-12'))
    store.insert_event(Event(name='First', platform='PC', date='2024-06-10'))
    store.insert_event(Event(name='After', platform='PC', date='2024-06-13'))

    events = store.list_events_between('2024-06-10', '2024-06-12')

    assert [e.name for e in events] == ['First', 'Second']


def test_delete_events_older_than(store):
    """Test the retention sweep keeps events on or after the cutoff."""
    store.insert_event(Event(name='Ancient', platform='PC', date='2023-01-01'))
    store.insert_event(Event(name='Old', platform='PC', date='2023-06-09'))
    store.insert_event(Event(name='Boundary', platform='PC', date='2023-06-10'))
    store.insert_event(Event(name='Recent', platform='PC', date='2024-06-01'))

    deleted = store.delete_events_older_than('2023-06-10')

    assert deleted == 2
    assert sorted(e.name for e in store.list_all_events()) == ['Boundary', 'Recent']


def test_delete_events_older_than_nothing_to_delete(store):
    assert store.delete_events_older_than('2023-06-10') == 0


def test_list_all_events_many(store):
    """Test scanning returns every stored event."""
    for i in range(30):
        store.insert_event(Event(name=f'Stream {i}', platform='PC', date='2024-06-10'))

    assert len(store.list_all_events()) == 30


def test_get_marker_creates_default(store, dynamodb):
    """Test that the first marker read stores empty defaults."""
    marker = store.get_marker()

    assert marker == FeedRevisionMarker(commit_time='', last_applied='')
    item = dynamodb.Table('test-meta').get_item(Key={'meta_key': 'feed_revision'})
    assert 'Item' in item


def test_set_marker(store):
    store.set_marker(FeedRevisionMarker(
        commit_time='2024-06-01T12:00:00+00:00',
        last_applied='2024-06-01 12:05:00 UTC'
    ))

    marker = store.get_marker()

    assert marker.commit_time == '2024-06-01T12:00:00+00:00'
    assert marker.last_applied == '2024-06-01 12:05:00 UTC'


def test_check_tables(store):
    store.check_tables()


def test_check_tables_missing(dynamodb):
    from storage.dynamodb_manager import DynamoDBManager

    manager = DynamoDBManager('missing-events', 'test-meta', region_name='us-east-1')

    with pytest.raises(ClientError):
        manager.check_tables()
