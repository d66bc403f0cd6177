"""
Module: utils
Description: Package initialization for utility functions.

Current utilities:
- logger: Structured logging configuration and helpers
- metrics: CloudWatch counters for delivery outcomes
"""

__all__ = []
