"""
Puzzle Forge - History
Recent puzzle history used for duplicate suppression.
"""

from .store import (
    HistoryStore,
    InMemoryHistoryStore,
    JsonHistoryStore,
    PersistedCandidateSummary,
)

__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "PersistedCandidateSummary",
]
