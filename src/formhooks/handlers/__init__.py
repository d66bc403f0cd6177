"""
Module: handlers
Description: Package initialization for API endpoint handlers.

This package contains FastAPI route handlers for the webhook service:
- webhooks: webhook configuration, test sends and delivery log
- events: domain event trigger entry point

All handlers use dependency injection for the registry and the
delivery service.
"""

__all__ = []
