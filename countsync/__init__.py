"""
Count Reconciliation Engine

Keeps locally observed per-category event counts in sync with a rate-limited,
unreliable remote counter store.
"""

__version__ = "0.1.0"
