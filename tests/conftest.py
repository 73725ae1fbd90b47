"""Shared fixtures for the mocked DynamoDB tables."""
import boto3
import pytest
from moto import mock_aws

from storage.dynamodb_manager import DynamoDBManager
from storage.group_manager import GroupManager

REGION = 'us-east-1'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def dynamodb(aws_credentials):
    """Create mock events, meta and groups tables."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name=REGION)

        resource.create_table(
            TableName='test-events',
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'N'},
                {'AttributeName': 'event_date', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': 'date-index',
                    'KeySchema': [
                        {'AttributeName': 'event_date', 'KeyType': 'HASH'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        resource.create_table(
            TableName='test-meta',
            KeySchema=[{'AttributeName': 'meta_key', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'meta_key', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )
        resource.create_table(
            TableName='test-groups',
            KeySchema=[{'AttributeName': 'group_id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'group_id', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )

        yield resource


@pytest.fixture
def store(dynamodb):
    return DynamoDBManager('test-events', 'test-meta', region_name=REGION)


@pytest.fixture
def groups(dynamodb):
    return GroupManager('test-groups', region_name=REGION)
