"""
Puzzle Forge - Quality
Multi-dimension quality scoring and verdicts.
"""

from .evaluator import QualityEvaluator, QualityReport, QualityThresholds, Verdict, weighted_overall, verdict_for

__all__ = [
    "QualityEvaluator",
    "QualityReport",
    "QualityThresholds",
    "Verdict",
    "weighted_overall",
    "verdict_for",
]
