"""
Puzzle Forge - Uniqueness
Fingerprinting, similarity scoring and history-based duplicate suppression.
"""

from .fingerprint import fingerprint, compute_fingerprint, similarity, levenshtein_similarity, jaccard_similarity
from .tracker import (
    UniquenessTracker,
    UniquenessResult,
    PatternMatch,
    identify_pattern,
    validate_uniqueness,
    uniqueness_score,
)

__all__ = [
    "fingerprint",
    "compute_fingerprint",
    "similarity",
    "levenshtein_similarity",
    "jaccard_similarity",
    "UniquenessTracker",
    "UniquenessResult",
    "PatternMatch",
    "identify_pattern",
    "validate_uniqueness",
    "uniqueness_score",
]
