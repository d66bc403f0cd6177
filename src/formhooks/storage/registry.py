"""
Module: registry.py
Description: Registry of webhook configurations.

Owns the set of WebhookConfig records, answers subscriber lookups for
the delivery engine and persists the full set to the key-value store
after every mutation.

Key Components:
- WebhookRegistry: CRUD, subscriber lookup, change listeners
- WebhookNotFoundError: Raised when updating an unknown webhook

Lookups are synchronous and read an immutable snapshot of the config
map; writers build a new map and swap it in under an asyncio lock, so
concurrent readers never observe a half-applied change.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from formhooks.auth.signing import generate_webhook_secret
from formhooks.models.webhook import RetryPolicy, WebhookConfig, WebhookEvent, utcnow
from formhooks.storage.kv import KeyValueStore
from formhooks.utils.logger import get_logger

logger = get_logger(__name__)

RegistryListener = Callable[[str, WebhookConfig], Any]

UPSERTED = "upserted"
REMOVED = "removed"

_IMMUTABLE_FIELDS = {'id', 'form_id', 'created_at'}


class WebhookNotFoundError(LookupError):
    """No webhook with the requested id."""


class WebhookRegistry:
    """
    Process-wide set of webhook configurations.

    Owned by the application's composition root; never a module global.
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str = "webhooks",
        default_retry_policy: Optional[RetryPolicy] = None
    ):
        self._store = store
        self._storage_key = storage_key
        self._default_retry_policy = default_retry_policy or RetryPolicy()
        self._configs: Dict[str, WebhookConfig] = {}
        self._write_lock = asyncio.Lock()
        self._listeners: List[RegistryListener] = []

    async def load(self) -> int:
        """
        Repopulate the registry from the key-value store.

        Invalid records are logged and skipped.

        Returns:
            Number of configs loaded
        """
        raw = await self._store.get(self._storage_key) or []
        configs: Dict[str, WebhookConfig] = {}

        for item in raw:
            try:
                config = WebhookConfig.model_validate(item)
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid stored webhook",
                    webhook_id=item.get('id') if isinstance(item, dict) else None,
                    error=str(e)
                )
                continue
            configs[config.id] = config

        async with self._write_lock:
            self._configs = configs

        logger.info("Webhook registry loaded", count=len(configs))
        return len(configs)

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """
        Register ``listener(action, config)`` for every mutation.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, action: str, config: WebhookConfig) -> None:
        for listener in list(self._listeners):
            try:
                listener(action, config)
            except Exception:
                logger.exception(
                    "Registry listener failed",
                    action=action,
                    webhook_id=config.id
                )

    async def _persist(self, configs: Dict[str, WebhookConfig]) -> None:
        await self._store.put(
            self._storage_key,
            [c.model_dump(mode='json', by_alias=True) for c in configs.values()]
        )

    async def _commit(self, action: str, config: WebhookConfig, configs: Dict[str, WebhookConfig]) -> None:
        # Persist before swapping so a storage failure leaves memory untouched
        await self._persist(configs)
        self._configs = configs
        self._notify(action, config)

    async def create(
        self,
        form_id: str,
        url: str,
        events: List[WebhookEvent],
        secret: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        is_active: bool = True,
        retry_policy: Optional[RetryPolicy] = None
    ) -> WebhookConfig:
        """
        Register a new webhook for a form.

        Generates the id, a signing secret when none is given and applies
        the default retry policy when none is given.
        """
        config = WebhookConfig(
            form_id=form_id,
            url=url,
            events=events,
            secret=secret or generate_webhook_secret(),
            headers=headers,
            is_active=is_active,
            retry_policy=retry_policy or self._default_retry_policy
        )
        await self.upsert(config)

        logger.info(
            "Webhook created",
            webhook_id=config.id,
            form_id=form_id,
            events=[e.value for e in config.events]
        )
        return config

    async def upsert(self, config: WebhookConfig) -> WebhookConfig:
        """Insert or replace by id. Replacing stamps ``updated_at``."""
        async with self._write_lock:
            if config.id in self._configs:
                config = config.model_copy(update={'updated_at': utcnow()})

            configs = dict(self._configs)
            configs[config.id] = config
            await self._commit(UPSERTED, config, configs)

        return config

    async def update(self, webhook_id: str, **changes: Any) -> WebhookConfig:
        """
        Apply a partial update and validate the result.

        Raises:
            WebhookNotFoundError: If the webhook does not exist
            ValueError: If an immutable field is changed
            ValidationError: If the merged config is invalid
        """
        blocked = _IMMUTABLE_FIELDS.intersection(changes)
        if blocked:
            raise ValueError(f"cannot update immutable fields: {', '.join(sorted(blocked))}")

        async with self._write_lock:
            current = self._configs.get(webhook_id)
            if current is None:
                raise WebhookNotFoundError(f"Webhook {webhook_id} not found")

            merged = {**current.model_dump(), **changes, 'updated_at': utcnow()}
            config = WebhookConfig.model_validate(merged)

            configs = dict(self._configs)
            configs[webhook_id] = config
            await self._commit(UPSERTED, config, configs)

        logger.info("Webhook updated", webhook_id=webhook_id, fields=sorted(changes))
        return config

    async def remove(self, webhook_id: str) -> bool:
        """
        Remove a webhook. Idempotent.

        Returns:
            True if a webhook was removed
        """
        async with self._write_lock:
            if webhook_id not in self._configs:
                return False

            configs = dict(self._configs)
            config = configs.pop(webhook_id)
            await self._commit(REMOVED, config, configs)

        logger.info("Webhook removed", webhook_id=webhook_id)
        return True

    def get(self, webhook_id: str) -> Optional[WebhookConfig]:
        return self._configs.get(webhook_id)

    def list_all(self) -> List[WebhookConfig]:
        return list(self._configs.values())

    def list_by_form(self, form_id: str, active_only: bool = False) -> List[WebhookConfig]:
        """Webhooks registered on a form, optionally only active ones."""
        return [
            c for c in self._configs.values()
            if c.form_id == form_id and (c.is_active or not active_only)
        ]

    def find_active_subscribers(self, form_id: str, event: WebhookEvent) -> List[WebhookConfig]:
        """
        Active webhooks on ``form_id`` subscribed to ``event``.

        Order is unspecified.
        """
        event = WebhookEvent(event)
        return [
            c for c in self._configs.values()
            if c.form_id == form_id and c.subscribes_to(event)
        ]
