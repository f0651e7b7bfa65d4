"""Sync-driven waiting."""

from .poller import wait_for_consumable_notes  # noqa: F401
