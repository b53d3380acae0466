"""Subscription lifecycle, billing cycle and usage entitlement service."""

__version__ = "0.1.0"
