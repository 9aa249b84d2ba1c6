"""
Puzzle Forge - Uniqueness Tracker
Near-duplicate detection, component overlap and pattern diversity against recent history.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any, Sequence, Tuple
from dataclasses import dataclass, asdict

from ..config import UniquenessConfig
from ..history.store import HistoryStore, PersistedCandidateSummary, utcnow
from ..models.candidate import Candidate
from ..utils.logging import get_logger
from ..utils.text import extract_components
from .fingerprint import compute_fingerprint, fingerprint, jaccard_similarity, similarity

logger = get_logger(__name__)

UNKNOWN_PATTERN = "unknown"


@dataclass(frozen=True)
class PatternMatch:
    """Structural pattern identified for a puzzle."""
    pattern_type: str
    confidence: float
    sub_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Conflict:
    """A history item the candidate is too close to."""
    label: str
    similarity: float
    fingerprint: Optional[str] = None


@dataclass(frozen=True)
class UniquenessResult:
    """Outcome of validating a candidate against history."""
    is_unique: bool
    max_similarity: float
    conflicts: Tuple[Conflict, ...] = ()
    notes: Tuple[str, ...] = ()
    fingerprint: str = ""
    pattern_type: str = UNKNOWN_PATTERN
    exact_match: bool = False
    component_overlap: bool = False
    pattern_overused: bool = False
    pattern_usage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def identify_pattern(content: str, answer: str, explanation: str = "") -> PatternMatch:
    """
    Identify the structural pattern of a puzzle.

    Heuristics are checked in a fixed order and the first match is the
    primary pattern. All matches are kept as sub-patterns.
    """
    components = extract_components(content)
    symbols, numbers = components["symbols"], components["numbers"]
    arrows, text = components["arrows"], components["text"]
    lowered_explanation = explanation.lower()

    patterns = []
    if len(symbols) >= 2 and not text:
        patterns.append("pure_emoji_compound")
    if numbers and any(ch.isdigit() for ch in explanation):
        patterns.append("numeric_wordplay")
    if arrows:
        patterns.append("positional")
    if "sounds like" in lowered_explanation or "phonetic" in lowered_explanation:
        patterns.append("phonetic")
    if any(t != t.lower() and t != t.upper() for t in text):
        patterns.append("mixed_case")
    if len(answer.split()) > 2:
        patterns.append("phrase")

    return PatternMatch(
        pattern_type=patterns[0] if patterns else UNKNOWN_PATTERN,
        confidence=0.8 if patterns else 0.3,
        sub_patterns=tuple(patterns)
    )


def candidate_pattern(candidate: Candidate) -> PatternMatch:
    return identify_pattern(candidate.content, candidate.answer, candidate.explanation)


def _history_pattern(item: PersistedCandidateSummary) -> str:
    if item.pattern_type:
        return item.pattern_type
    return identify_pattern(item.content, item.label).pattern_type


def _history_fingerprint(item: PersistedCandidateSummary) -> Optional[str]:
    if item.fingerprint:
        return item.fingerprint
    if item.content:
        return compute_fingerprint(item.content, item.label, item.category)
    return None


def pattern_usage(
    pattern_type: str,
    history: Sequence[PersistedCandidateSummary],
    diversity_window_days: int,
    now: Optional[datetime] = None
) -> int:
    """How often a pattern appears in the diversity window."""
    cutoff = (now or utcnow()) - timedelta(days=diversity_window_days)
    return sum(
        1 for item in history
        if item.created_at >= cutoff and _history_pattern(item) == pattern_type
    )


def validate_uniqueness(
    candidate: Candidate,
    history: Sequence[PersistedCandidateSummary],
    config: Optional[UniquenessConfig] = None,
    now: Optional[datetime] = None
) -> UniquenessResult:
    """
    Validate a candidate against a recent-history window.

    An exact fingerprint match short-circuits with similarity 1.0. Otherwise
    every history item is scored. The candidate is not unique when it has a
    conflict above the rejection threshold, shares most of its symbols with
    a single recent item, or repeats an overused pattern.

    Args:
        candidate: Candidate to check.
        history: Recent summaries (already bounded by the caller).
        config: Thresholds and weights.
        now: Reference time for the diversity window.

    Returns:
        UniquenessResult.
    """
    config = config or UniquenessConfig()
    candidate_fp = fingerprint(candidate)
    pattern = candidate_pattern(candidate)

    for item in history:
        if _history_fingerprint(item) == candidate_fp:
            return UniquenessResult(
                is_unique=False,
                max_similarity=1.0,
                conflicts=(Conflict(label=item.label, similarity=1.0, fingerprint=candidate_fp),),
                notes=("This exact puzzle already exists. Generate a completely new one.",),
                fingerprint=candidate_fp,
                pattern_type=pattern.pattern_type,
                exact_match=True
            )

    conflicts: List[Conflict] = []
    max_similarity = 0.0
    component_overlap = False
    candidate_symbols = set(candidate.symbols)

    for item in history:
        score = similarity(candidate, item, config.label_weight, config.symbol_weight)
        if score > config.conflict_threshold:
            conflicts.append(Conflict(label=item.label, similarity=round(score, 4), fingerprint=item.fingerprint))
            max_similarity = max(max_similarity, score)
        if jaccard_similarity(candidate_symbols, item.symbols) > config.component_overlap_threshold:
            component_overlap = True

    usage = pattern_usage(pattern.pattern_type, history, config.diversity_window_days, now)
    max_usage = math.ceil(config.diversity_window_days / 3)
    pattern_overused = pattern.pattern_type != UNKNOWN_PATTERN and usage >= max_usage

    notes = []
    if component_overlap:
        notes.append("Symbol combination recently used. Try different visual elements.")
    if pattern_overused:
        notes.append(
            f"Pattern \"{pattern.pattern_type}\" overused ({usage}/{max_usage}). Try a different pattern."
        )
    if conflicts:
        notes.append(f"Too similar to {len(conflicts)} existing puzzles. Make it more unique.")

    near_duplicate = bool(conflicts) and max_similarity > config.rejection_threshold
    is_unique = not (near_duplicate or component_overlap or pattern_overused)

    return UniquenessResult(
        is_unique=is_unique,
        max_similarity=round(max_similarity, 4),
        conflicts=tuple(sorted(conflicts, key=lambda c: c.similarity, reverse=True)),
        notes=tuple(notes),
        fingerprint=candidate_fp,
        pattern_type=pattern.pattern_type,
        component_overlap=component_overlap,
        pattern_overused=pattern_overused,
        pattern_usage=usage
    )


def uniqueness_score(result: UniquenessResult) -> float:
    """100 minus similarity and conflict penalties; 0 when not unique."""
    if not result.is_unique:
        return 0.0
    penalty = result.max_similarity * 30 + 10 * len(result.conflicts)
    return max(0.0, 100.0 - penalty)


class UniquenessTracker:
    """
    Checks candidates against a history store.

    History is read once per check and never written here. Recording an
    accepted puzzle is the caller's job.
    """

    def __init__(self, store: HistoryStore, config: Optional[UniquenessConfig] = None):
        """
        Initialize tracker.

        Args:
            store: History store with query_recent().
            config: Thresholds and window sizes.
        """
        self.store = store
        self.config = config or UniquenessConfig()

    def recent_history(self) -> List[PersistedCandidateSummary]:
        return self.store.query_recent(self.config.window_days, self.config.max_items)

    def check(self, candidate: Candidate, now: Optional[datetime] = None) -> UniquenessResult:
        """Validate a candidate against the configured history window."""
        history = self.recent_history()
        result = validate_uniqueness(candidate, history, self.config, now)
        if not result.is_unique:
            logger.info(
                "Candidate %r not unique (similarity %.2f, %d conflicts): %s",
                candidate.answer, result.max_similarity, len(result.conflicts), "; ".join(result.notes)
            )
        return result
