"""
Puzzle Forge - Difficulty Calibrator
Turns weighted complexity sub-factors into the published difficulty value.
"""

from typing import Dict, List, Optional, Any, Sequence
from dataclasses import dataclass, asdict

from ..config import DifficultyConfig
from ..models.candidate import (
    Candidate,
    ComplexityProfile,
    RebusCandidate,
    WordCandidate,
    coerce_score,
)
from ..utils.logging import get_logger
from ..utils.numbers import round_half_up
from ..utils.text import extract_symbols, word_count

logger = get_logger(__name__)

# Explanation phrases that each count as one reasoning step
STEP_INDICATORS = ("+", "→", "=", "sounds like", "positioned", "represents")

RARE_REBUS_CATEGORIES = ("positional", "mathematical", "lateral_thinking", "multi_layer")

CATEGORY_MULTIPLIERS = {
    "cryptogram": 1.5,
}

DEFAULT_REBUS_WEIGHTS = {
    "visual_ambiguity": 0.2,
    "cognitive_steps": 0.3,
    "cultural_knowledge": 0.2,
    "vocabulary_level": 0.15,
    "pattern_novelty": 0.15,
}

DEFAULT_WORD_WEIGHTS = {
    "word_length": 0.2,
    "manipulation_complexity": 0.25,
    "vocabulary_level": 0.2,
    "pattern_obscurity": 0.2,
    "cognitive_steps": 0.15,
}


@dataclass(frozen=True)
class Calibration:
    """Calibrated difficulty and where it came from."""
    difficulty: int
    proposed: int
    profile: Optional[ComplexityProfile]
    source: str  # profile, heuristic, proposed
    raw_score: float = 0.0
    recommendation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["profile"] = self.profile.as_dict() if self.profile else None
        return data


def rebus_heuristic_profile(candidate: Candidate) -> ComplexityProfile:
    """Estimate rebus sub-factors from the puzzle text alone."""
    symbol_count = len(extract_symbols(candidate.content))
    explanation = candidate.explanation.lower()
    answer_words = word_count(candidate.answer)

    steps = sum(1 for indicator in STEP_INDICATORS if indicator in explanation)
    is_idiom = "idiom" in candidate.category or "phrase" in candidate.category

    return ComplexityProfile.from_mapping({
        "visual_ambiguity": symbol_count * 1.5,
        "cognitive_steps": min(10, steps * 2),
        "cultural_knowledge": 7 if is_idiom else answer_words * 2,
        "vocabulary_level": len(candidate.answer) / 3 + (answer_words - 1) * 2,
        "pattern_novelty": 8 if candidate.category in RARE_REBUS_CATEGORIES else 5,
    })


def word_heuristic_profile(candidate: Candidate) -> ComplexityProfile:
    """Word puzzles only expose answer length; everything else is neutral."""
    return ComplexityProfile.from_mapping({
        "word_length": min(10, len(candidate.answer) / 2),
        "manipulation_complexity": 5,
        "vocabulary_level": 5,
        "pattern_obscurity": 5,
        "cognitive_steps": 5,
    })


def calibration_recommendation(proposed: int, calibrated: int) -> str:
    """Describe how far the backend's own estimate was off."""
    delta = abs(proposed - calibrated)
    if delta > 2:
        return f"Significant mismatch: proposed {proposed}, calibrated {calibrated}. Using calibrated value."
    if delta > 1:
        return f"Minor adjustment from {proposed} to {calibrated}."
    return "Proposed difficulty is accurate."


def adaptive_difficulty(
    current: int,
    recent_results: Sequence[bool],
    min_difficulty: int = 1,
    max_difficulty: int = 10
) -> int:
    """
    Nudge a target difficulty from recent solve outcomes.

    Args:
        current: Current target difficulty.
        recent_results: True for solved, False for failed.
        min_difficulty: Lower bound.
        max_difficulty: Upper bound.

    Returns:
        Adjusted target; unchanged with fewer than 3 results.
    """
    if len(recent_results) < 3:
        return current
    success_rate = sum(1 for solved in recent_results if solved) / len(recent_results)
    if success_rate > 0.8:
        return min(max_difficulty, current + 1)
    if success_rate < 0.3:
        return max(min_difficulty, current - 1)
    return current


class DifficultyCalibrator:
    """
    Calibrates difficulty from complexity profiles.

    The calibrated value always supersedes the backend's proposed
    difficulty. The proposed value is only used when a candidate kind has
    no heuristic to fall back on.
    """

    def __init__(self, config: Optional[DifficultyConfig] = None):
        """
        Initialize calibrator.

        Args:
            config: Band and per-kind factor weights.
        """
        self.config = config or DifficultyConfig()

    @property
    def band(self) -> List[int]:
        return [self.config.min_difficulty, self.config.max_difficulty]

    def clamp(self, value: float) -> int:
        return max(self.config.min_difficulty, min(self.config.max_difficulty, round_half_up(value)))

    def weights_for(self, kind: str) -> Dict[str, float]:
        weights = self.config.weights_for(kind)
        if weights:
            return weights
        if kind == WordCandidate.kind:
            return dict(DEFAULT_WORD_WEIGHTS)
        return dict(DEFAULT_REBUS_WEIGHTS)

    def weighted_score(self, profile: ComplexityProfile, weights: Dict[str, float]) -> float:
        """Σ value * weight over factors present in both; weights are not normalized."""
        values = profile.as_dict()
        shared = [name for name in weights if name in values]
        if not shared:
            # Nothing to weight: treat the profile as equally weighted
            return sum(values.values()) / len(values) if values else 0.0
        return sum(values[name] * weights[name] for name in shared)

    def calibrate(
        self,
        profile: Optional[ComplexityProfile],
        weights: Optional[Dict[str, float]] = None,
        fallback: Optional[int] = None
    ) -> int:
        """
        Calibrated difficulty for a profile.

        Args:
            profile: Complexity sub-factors (already coerced to [1, 10]).
            weights: Factor weights; defaults to the rebus table.
            fallback: Value used when the profile is missing or empty.

        Returns:
            Integer difficulty inside the configured band.
        """
        if not profile:
            return self.clamp(fallback if fallback is not None else self.config.default_target)
        score = self.weighted_score(profile, weights or self.weights_for(RebusCandidate.kind))
        return self.clamp(score)

    def calibrate_candidate(self, candidate: Candidate) -> Calibration:
        """
        Calibrate a candidate, falling back to heuristics when it has no profile.

        Args:
            candidate: Validated candidate.

        Returns:
            Calibration with the profile that was actually used.
        """
        weights = self.weights_for(candidate.kind)
        profile = candidate.complexity
        source = "profile"
        raw_score = 0.0

        if profile:
            raw_score = self.weighted_score(profile, weights)
            difficulty = self.clamp(raw_score)
        elif candidate.kind == RebusCandidate.kind:
            profile = rebus_heuristic_profile(candidate)
            source = "heuristic"
            raw_score = self.weighted_score(profile, weights)
            difficulty = self.clamp(raw_score)
        elif candidate.kind == WordCandidate.kind:
            profile = word_heuristic_profile(candidate)
            source = "heuristic"
            raw_score = len(candidate.answer) / 5 * CATEGORY_MULTIPLIERS.get(candidate.category, 1.0)
            difficulty = self.clamp(raw_score)
        else:
            source = "proposed"
            raw_score = float(candidate.proposed_difficulty)
            difficulty = self.clamp(coerce_score(candidate.proposed_difficulty))

        recommendation = calibration_recommendation(candidate.proposed_difficulty, difficulty)
        logger.debug(
            "Calibrated %r from %s: %.2f -> %d (proposed %d)",
            candidate.answer, source, raw_score, difficulty, candidate.proposed_difficulty
        )
        return Calibration(
            difficulty=difficulty,
            proposed=candidate.proposed_difficulty,
            profile=profile,
            source=source,
            raw_score=round(raw_score, 3),
            recommendation=recommendation
        )
