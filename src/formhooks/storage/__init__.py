"""
Module: storage
Description: Package initialization for the persistence layer.

This package contains:
- kv: key-value store contract and in-memory implementation
- dynamodb: DynamoDB key-value store
- registry: webhook configuration registry
- deliveries: in-memory delivery log with state machine checks
"""

__all__ = []
