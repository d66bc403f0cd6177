"""
Module: kv.py
Description: Key-value persistence contract for webhook configurations.

The registry persists its full config set as one JSON document through
this contract and reloads it at process start.

Key Components:
- KeyValueStore: Protocol with async get()/put()
- InMemoryKeyValueStore: Process-local implementation for tests and local runs
"""

import copy
from typing import Any, Dict, Optional, Protocol

from formhooks.utils.logger import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """External JSON document store."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def put(self, key: str, value: Any) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def put(self, key: str, value: Any) -> None:
        if not key or not isinstance(key, str):
            raise ValueError("key must be a non-empty string")
        self._data[key] = copy.deepcopy(value)
        logger.debug("Value stored in memory", key=key)
