"""
Concurrency accounting for throttlekit

Tracks in-flight operations for one context, optionally summed across
contexts sharing a store.
"""

from .counter import ConcurrencyCounter, read_entries, sweep_stale_entries

__all__ = [
    "ConcurrencyCounter",
    "read_entries",
    "sweep_stale_entries",
]
