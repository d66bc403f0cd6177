"""
Module: test_dynamodb.py
Description: Unit tests for the DynamoDB key-value store.

Uses moto to mock DynamoDB.
"""

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws
from unittest.mock import patch

from formhooks.models.webhook import WebhookEvent
from formhooks.storage.dynamodb import DynamoDBKeyValueStore
from formhooks.storage.registry import WebhookRegistry

TABLE_NAME = "test-form-webhooks"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Mock DynamoDB table keyed by ``key``."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{'AttributeName': 'key', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'key', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


@pytest.fixture
def kv(dynamodb_table):
    return DynamoDBKeyValueStore(TABLE_NAME, region_name='us-east-1')


class TestDynamoDBKeyValueStore:
    """Test cases for DynamoDBKeyValueStore."""

    def test_initialization_invalid_table_name(self):
        with pytest.raises(ValueError, match="table_name must be a non-empty string"):
            DynamoDBKeyValueStore(table_name="")

    @pytest.mark.asyncio
    async def test_put_and_get(self, kv, dynamodb_table):
        value = [{"id": "whk_1", "retryPolicy": {"backoffMultiplier": 1.5}, "isActive": True}]

        await kv.put("webhooks", value)

        item = dynamodb_table.get_item(Key={'key': 'webhooks'})['Item']
        assert isinstance(item['value'], str)
        assert await kv.get("webhooks") == value

    @pytest.mark.asyncio
    async def test_get_missing_key(self, kv):
        assert await kv.get("absent") is None

    @pytest.mark.asyncio
    async def test_invalid_key(self, kv):
        with pytest.raises(ValueError):
            await kv.get("")
        with pytest.raises(ValueError):
            await kv.put("", [])

    @pytest.mark.asyncio
    async def test_put_client_error_reraised(self, kv):
        error = ClientError(
            error_response={'Error': {'Code': 'ValidationException', 'Message': 'Test error'}},
            operation_name='PutItem'
        )
        with patch.object(kv.table, 'put_item', side_effect=error):
            with pytest.raises(ClientError):
                await kv.put("webhooks", [])

    @pytest.mark.asyncio
    async def test_registry_round_trip(self, kv):
        registry = WebhookRegistry(kv)
        config = await registry.create(
            "form_1",
            "https://example.test/hook",
            [WebhookEvent.SUBMISSION_CREATED],
            headers={"X-Team": "forms"}
        )

        reloaded = WebhookRegistry(kv)
        await reloaded.load()

        assert reloaded.get(config.id) == config
