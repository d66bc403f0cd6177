"""
Module: dynamodb.py
Description: DynamoDB-backed key-value store.

Implements the KeyValueStore contract on a single DynamoDB table keyed
by ``key``. Values are stored as JSON strings so every JSON type
survives the round trip unchanged.

Key Components:
- DynamoDBKeyValueStore: get()/put() with JSON serialization
- Error handling: ClientError logged with AWS error codes, then re-raised

Dependencies: boto3, botocore, datetime, json, typing
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from formhooks.utils.logger import get_logger

logger = get_logger(__name__)


class DynamoDBKeyValueStore:
    """
    DynamoDB client for JSON documents.

    Attributes:
        table_name: Name of the DynamoDB table
        dynamodb: boto3 DynamoDB resource
        table: boto3 DynamoDB table resource

    Example:
        >>> store = DynamoDBKeyValueStore(table_name="form-webhooks")
        >>> await store.put("webhooks", [])
        >>> await store.get("webhooks")
        []
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB key-value store.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, boto3 default resolution when omitted

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info(
            "DynamoDB key-value store initialized",
            table_name=table_name
        )

    async def get(self, key: str) -> Optional[Any]:
        """
        Retrieve and decode the JSON document stored under ``key``.

        Returns:
            Decoded value, or None if the key is absent

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If key is invalid
        """
        if not key or not isinstance(key, str):
            raise ValueError("key must be a non-empty string")

        try:
            response = self.table.get_item(Key={'key': key})

            if 'Item' not in response:
                logger.info(
                    "Key not found in DynamoDB",
                    key=key,
                    table_name=self.table_name
                )
                return None

            return json.loads(response['Item']['value'])

        except ClientError as e:
            logger.error(
                "Failed to retrieve key from DynamoDB",
                key=key,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

    async def put(self, key: str, value: Any) -> None:
        """
        Store ``value`` as a JSON string under ``key``.

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If key is invalid
            TypeError: If value is not JSON-serializable
        """
        if not key or not isinstance(key, str):
            raise ValueError("key must be a non-empty string")

        item = {
            'key': key,
            'value': json.dumps(value),
            'updated_at': datetime.now(timezone.utc).isoformat()
        }

        try:
            self.table.put_item(Item=item)

            logger.info(
                "Value stored in DynamoDB",
                key=key,
                table_name=self.table_name
            )

        except ClientError as e:
            logger.error(
                "Failed to store value in DynamoDB",
                key=key,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise
