"""
Puzzle Forge - History Store
Read access to recently published puzzles for duplicate suppression.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Any, Protocol, Tuple
from dataclasses import dataclass, field

from ..models.candidate import Candidate
from ..utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class PersistedCandidateSummary:
    """What the pipeline needs to know about one published puzzle."""
    label: str
    symbols: Tuple[str, ...]
    category: str
    created_at: datetime
    fingerprint: Optional[str] = None
    pattern_type: Optional[str] = None
    content: str = ""
    kind: str = "rebus"

    @classmethod
    def from_candidate(
        cls,
        candidate: Candidate,
        fingerprint: Optional[str] = None,
        pattern_type: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> "PersistedCandidateSummary":
        return cls(
            label=candidate.answer,
            symbols=tuple(candidate.symbols),
            category=candidate.category,
            created_at=created_at or utcnow(),
            fingerprint=fingerprint,
            pattern_type=pattern_type,
            content=candidate.content,
            kind=candidate.kind
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "symbols": list(self.symbols),
            "category": self.category,
            "created_at": self.created_at.isoformat(),
            "fingerprint": self.fingerprint,
            "pattern_type": self.pattern_type,
            "content": self.content,
            "kind": self.kind
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedCandidateSummary":
        return cls(
            label=data["label"],
            symbols=tuple(data.get("symbols", [])),
            category=data.get("category", ""),
            created_at=_parse_timestamp(data["created_at"]),
            fingerprint=data.get("fingerprint"),
            pattern_type=data.get("pattern_type"),
            content=data.get("content", ""),
            kind=data.get("kind", "rebus")
        )


class HistoryStore(Protocol):
    """Read side used by the uniqueness engine."""

    def query_recent(self, window_days: int, max_items: int) -> List[PersistedCandidateSummary]:
        ...


def _select_recent(
    items: List[PersistedCandidateSummary],
    window_days: int,
    max_items: int,
    now: Optional[datetime] = None
) -> List[PersistedCandidateSummary]:
    cutoff = (now or utcnow()) - timedelta(days=window_days)
    recent = [item for item in items if item.created_at >= cutoff]
    recent.sort(key=lambda item: item.created_at, reverse=True)
    return recent[:max_items]


@dataclass
class InMemoryHistoryStore:
    """History kept in a list; used for batches and tests."""
    items: List[PersistedCandidateSummary] = field(default_factory=list)

    def query_recent(
        self,
        window_days: int,
        max_items: int,
        now: Optional[datetime] = None
    ) -> List[PersistedCandidateSummary]:
        return _select_recent(self.items, window_days, max_items, now)

    def record(self, summary: PersistedCandidateSummary):
        self.items.append(summary)


class JsonHistoryStore:
    """
    History stored in a single JSON file.

    The file is re-read on every query so concurrent writers are picked
    up eventually. Writes replace the file atomically.
    """

    def __init__(self, history_file: Path):
        """
        Initialize history store.

        Args:
            history_file: Path to the JSON history file.
        """
        self.history_file = Path(history_file)
        self.history_file.parent.mkdir(parents=True, exist_ok=True)

    def _load(self, strict: bool = False) -> List[PersistedCandidateSummary]:
        if not self.history_file.exists():
            return []
        with open(self.history_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict) or not isinstance(data.get("puzzles", []), list):
            message = f"History file {self.history_file} is not an object with a \"puzzles\" list"
            if strict:
                # Refuse to overwrite a file we cannot read back
                raise ValueError(message)
            logger.warning("Ignoring history: %s", message)
            return []

        items = []
        for entry in data.get("puzzles", []):
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed history entry: %r", entry)
                continue
            try:
                items.append(PersistedCandidateSummary.from_dict(entry))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping malformed history entry: %s", e)
        return items

    def _save(self, items: List[PersistedCandidateSummary]):
        tmp_file = self.history_file.with_suffix(".tmp")
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump({"puzzles": [item.to_dict() for item in items]}, f, indent=2, ensure_ascii=False)
        tmp_file.replace(self.history_file)

    def query_recent(
        self,
        window_days: int,
        max_items: int,
        now: Optional[datetime] = None
    ) -> List[PersistedCandidateSummary]:
        """
        Recent puzzles, newest first.

        Args:
            window_days: Only puzzles created within this many days.
            max_items: Upper bound on returned items.
            now: Reference time (defaults to current UTC time).

        Returns:
            List of summaries.
        """
        return _select_recent(self._load(), window_days, max_items, now)

    def record(self, summary: PersistedCandidateSummary):
        """Append an accepted puzzle to the history file."""
        items = self._load(strict=True)
        items.append(summary)
        self._save(items)
        logger.info("Recorded puzzle %r in %s", summary.label, self.history_file)

    def count(self) -> int:
        return len(self._load())
