"""
formhooks: webhook delivery engine for form events.

Delivers signed form events to registered webhooks with bounded,
exponentially increasing retries.
"""

__version__ = "0.1.0"
