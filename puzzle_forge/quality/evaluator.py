"""
Puzzle Forge - Quality Evaluator
Scores candidates along quality dimensions and renders a publish verdict.
"""

from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Any, Tuple
from dataclasses import dataclass
from enum import Enum

from ..config import QualityConfig
from ..models.candidate import (
    Candidate,
    ComplexityProfile,
    WordCandidate,
    HINTS_MIN,
    HINTS_MAX,
    EXPLANATION_MIN_LENGTH,
    EXPLANATION_MAX_LENGTH,
)
from ..utils.logging import get_logger
from ..utils.numbers import round_half_up
from ..utils.text import extract_symbols, normalize_label

logger = get_logger(__name__)


class Verdict(Enum):
    """Publishing decision for a candidate."""
    PUBLISH = "publish"
    REVISE = "revise"
    REJECT = "reject"


@dataclass(frozen=True)
class QualityThresholds:
    """Score bars for one evaluation."""
    publish: int = 70
    revision: int = 60

    def relieved(self, points: int) -> "QualityThresholds":
        """Both bars lowered by `points`, never below zero."""
        return QualityThresholds(
            publish=max(0, self.publish - points),
            revision=max(0, self.revision - points)
        )


@dataclass(frozen=True)
class QualityReport:
    """Per-dimension scores, aggregate, verdict and feedback. Read-only once built."""
    dimension_scores: Mapping[str, int]
    overall: int
    verdict: Verdict
    final_score: int
    thresholds: QualityThresholds
    action_items: Tuple[str, ...] = ()
    robustness_score: Optional[int] = None
    robustness_issues: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "dimension_scores", MappingProxyType(dict(self.dimension_scores)))
        object.__setattr__(self, "action_items", tuple(self.action_items))
        object.__setattr__(self, "robustness_issues", tuple(self.robustness_issues))

    @property
    def robustness_checked(self) -> bool:
        return self.robustness_score is not None

    @property
    def robustness_passed(self) -> bool:
        return self.robustness_score is None or self.robustness_score >= self.thresholds.revision

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension_scores": dict(self.dimension_scores),
            "overall": self.overall,
            "verdict": self.verdict.value,
            "final_score": self.final_score,
            "thresholds": {"publish": self.thresholds.publish, "revision": self.thresholds.revision},
            "action_items": list(self.action_items),
            "robustness_score": self.robustness_score,
            "robustness_issues": list(self.robustness_issues)
        }


ACTION_TEMPLATES = {
    "clarity": "Rewrite the explanation so it walks through the solution in 20-200 characters.",
    "creativity": "Use a less common wordplay pattern or a more surprising combination of elements.",
    "solvability": "Make the puzzle fairer: lower the difficulty or add progressive hints.",
    "appropriateness": "Remove anything that is not family-friendly.",
    "visual_appeal": "Use more expressive symbols so the puzzle reads visually.",
    "educational_value": "Base the puzzle on an idiom, phrase or compound word the solver can learn from.",
    "fun_factor": "Aim for a solution with 5-8 reasoning steps for a satisfying aha moment.",
}

EDUCATIONAL_REBUS_CATEGORIES = ("idioms", "phrases", "compound_words")
COMPLEX_WORD_CATEGORIES = ("cryptogram", "word_ladder", "crossword_clue")

DimensionScorer = Callable[[Candidate, int, ComplexityProfile], float]


def _clarity(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    length = len(candidate.explanation)
    return 80 if EXPLANATION_MIN_LENGTH < length < EXPLANATION_MAX_LENGTH else 60


def _creativity(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return profile.get("pattern_novelty", 5) * 10


def _solvability(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return min(100, ((11 - difficulty) * 10 + len(candidate.hints) * 15) / 2)


def _appropriateness(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    # Content safety is screened before candidates reach the pipeline
    return 100


def _visual_appeal(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return min(100, len(extract_symbols(candidate.content)) * 20)


def _educational_value(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return 85 if candidate.category in EDUCATIONAL_REBUS_CATEGORIES else 70


def _fun_factor(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    steps = profile.get("cognitive_steps", 5)
    return 85 if 5 <= steps <= 8 else 70


def _word_clarity(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return 80 if len(candidate.explanation) > EXPLANATION_MIN_LENGTH else 60


def _word_creativity(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return 80 if candidate.category in COMPLEX_WORD_CATEGORIES else 75


def _word_solvability(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return min(100, (11 - difficulty) * 10)


def _word_educational_value(candidate: Candidate, difficulty: int, profile: ComplexityProfile) -> float:
    return 80


REBUS_DIMENSIONS: Dict[str, DimensionScorer] = {
    "clarity": _clarity,
    "creativity": _creativity,
    "solvability": _solvability,
    "appropriateness": _appropriateness,
    "visual_appeal": _visual_appeal,
    "educational_value": _educational_value,
    "fun_factor": _fun_factor,
}

WORD_DIMENSIONS: Dict[str, DimensionScorer] = {
    "clarity": _word_clarity,
    "creativity": _word_creativity,
    "solvability": _word_solvability,
    "appropriateness": _appropriateness,
    "educational_value": _word_educational_value,
}

DEFAULT_WEIGHTS = {
    "rebus": {
        "clarity": 0.15,
        "creativity": 0.2,
        "solvability": 0.2,
        "appropriateness": 0.1,
        "visual_appeal": 0.15,
        "educational_value": 0.1,
        "fun_factor": 0.1,
    },
    "word": {
        "clarity": 0.2,
        "creativity": 0.2,
        "solvability": 0.3,
        "appropriateness": 0.1,
        "educational_value": 0.2,
    },
}


def weighted_overall(scores: Dict[str, float], weights: Dict[str, float]) -> int:
    """
    Weighted average of dimension scores, rounded.

    Dimensions without a weight count with weight 0.

    Args:
        scores: Dimension name to 0-100 score.
        weights: Dimension name to weight.

    Returns:
        Overall score (0 when no dimension carries weight).
    """
    total = 0.0
    total_weight = 0.0
    for dimension, score in scores.items():
        weight = weights.get(dimension, 0.0)
        total += score * weight
        total_weight += weight
    return round_half_up(total / total_weight) if total_weight > 0 else 0


def verdict_for(overall: int, thresholds: QualityThresholds) -> Verdict:
    if overall >= thresholds.publish:
        return Verdict.PUBLISH
    if overall >= thresholds.revision:
        return Verdict.REVISE
    return Verdict.REJECT


class QualityEvaluator:
    """
    Evaluates candidates with weighted quality dimensions.

    Evaluation workflow:
    1. Score each dimension for the candidate kind (0-100)
    2. Combine with the configured weight table
    3. Run the robustness self-check (skipped on the first attempt)
    4. Blend overall and robustness into the final score
    5. Derive the verdict and action items
    """

    def __init__(self, config: Optional[QualityConfig] = None):
        """
        Initialize evaluator.

        Args:
            config: Thresholds, robustness settings and dimension weights.
        """
        self.config = config or QualityConfig()

    @property
    def default_thresholds(self) -> QualityThresholds:
        return QualityThresholds(
            publish=self.config.publish_threshold,
            revision=self.config.revision_threshold
        )

    def weights_for(self, kind: str) -> Dict[str, float]:
        return self.config.weights_for(kind) or dict(DEFAULT_WEIGHTS.get(kind, DEFAULT_WEIGHTS["rebus"]))

    def score_dimensions(
        self,
        candidate: Candidate,
        calibrated_difficulty: int,
        profile: Optional[ComplexityProfile] = None
    ) -> Dict[str, int]:
        """Score every dimension for the candidate's kind."""
        profile = profile or candidate.complexity or ComplexityProfile()
        scorers = WORD_DIMENSIONS if candidate.kind == WordCandidate.kind else REBUS_DIMENSIONS
        return {
            name: round_half_up(max(0, min(100, scorer(candidate, calibrated_difficulty, profile))))
            for name, scorer in scorers.items()
        }

    def check_robustness(self, candidate: Candidate) -> Tuple[int, List[str]]:
        """
        Deterministic self-check for answer leaks and weak hints.

        Returns:
            (score 0-100, list of issues found)
        """
        issues = []
        penalty = 0
        answer = normalize_label(candidate.answer)

        if answer and answer in normalize_label(candidate.content):
            penalty += 40
            issues.append("The answer is spelled out in the puzzle itself.")
        if answer and candidate.hints and answer in normalize_label(candidate.hints[0]):
            penalty += 25
            issues.append("The first hint gives the answer away.")
        normalized_hints = [h.strip().lower() for h in candidate.hints]
        if len(set(normalized_hints)) < len(normalized_hints):
            penalty += 15
            issues.append("Hints repeat each other.")
        if not HINTS_MIN <= len(candidate.hints) <= HINTS_MAX:
            penalty += 15
            issues.append(f"Provide {HINTS_MIN}-{HINTS_MAX} progressive hints.")
        if not EXPLANATION_MIN_LENGTH <= len(candidate.explanation) <= EXPLANATION_MAX_LENGTH:
            penalty += 10
            issues.append("Explanation length is outside the readable range.")

        return max(0, 100 - penalty), issues

    def action_items(self, scores: Dict[str, int], thresholds: QualityThresholds, verdict: Verdict) -> List[str]:
        """Feedback for the weakest dimensions, lowest score first."""
        ranked = sorted(scores.items(), key=lambda item: (item[1], item[0]))
        weak = [name for name, score in ranked if score < thresholds.revision]
        if not weak and verdict is not Verdict.PUBLISH and ranked:
            weak = [ranked[0][0]]
        return [
            ACTION_TEMPLATES.get(name, f"Improve {name.replace('_', ' ')}.")
            for name in weak
        ]

    def evaluate(
        self,
        candidate: Candidate,
        calibrated_difficulty: int,
        profile: Optional[ComplexityProfile] = None,
        thresholds: Optional[QualityThresholds] = None,
        attempt: int = 1
    ) -> QualityReport:
        """
        Evaluate a candidate.

        Args:
            candidate: Validated candidate.
            calibrated_difficulty: Output of the difficulty calibrator.
            profile: Profile used for calibration (heuristic or backend).
            thresholds: Per-attempt thresholds; defaults to configuration.
            attempt: 1-based attempt index (controls the robustness check).

        Returns:
            QualityReport.
        """
        thresholds = thresholds or self.default_thresholds
        scores = self.score_dimensions(candidate, calibrated_difficulty, profile)
        overall = weighted_overall(scores, self.weights_for(candidate.kind))
        verdict = verdict_for(overall, thresholds)

        robustness_score = None
        issues: List[str] = []
        final_score = overall
        if not (attempt <= 1 and self.config.skip_robustness_on_first_attempt):
            robustness_score, issues = self.check_robustness(candidate)
            weight = self.config.robustness_weight
            final_score = round_half_up(overall * (1 - weight) + robustness_score * weight)
            if verdict is Verdict.PUBLISH and robustness_score < thresholds.revision:
                verdict = Verdict.REVISE

        action_items = self.action_items(scores, thresholds, verdict) + issues

        logger.info(
            "Quality for %r: overall %d, final %d, verdict %s",
            candidate.answer, overall, final_score, verdict.value
        )
        return QualityReport(
            dimension_scores=scores,
            overall=overall,
            verdict=verdict,
            final_score=final_score,
            thresholds=thresholds,
            action_items=action_items,
            robustness_score=robustness_score,
            robustness_issues=issues
        )
