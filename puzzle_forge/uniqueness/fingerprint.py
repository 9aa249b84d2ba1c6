"""
Puzzle Forge - Fingerprints and Similarity
Exact-duplicate identity hashes and pairwise similarity between puzzles.
"""

import hashlib
from typing import Iterable, Protocol, Sequence

from ..utils.text import extract_symbols, normalize_label, text_tokens


class Comparable(Protocol):
    """Anything with a label and a symbol sequence (candidates and history summaries)."""

    @property
    def label(self) -> str: ...

    @property
    def symbols(self) -> Sequence[str]: ...


def compute_fingerprint(content: str, label: str, category: str) -> str:
    """
    Deterministic sha256 identity of a puzzle.

    The composite is normalized label, sorted symbol set, sorted token set
    and category, joined with '::'.
    """
    symbols = ",".join(sorted(set(extract_symbols(content))))
    tokens = "_".join(sorted(set(text_tokens(content))))
    composite = f"{normalize_label(label)}::{symbols}::{tokens}::{category}"
    return hashlib.sha256(composite.encode("utf-8")).hexdigest()


def fingerprint(candidate) -> str:
    """Fingerprint of a candidate (or any object with content, answer and category)."""
    return compute_fingerprint(candidate.content, candidate.answer, candidate.category)


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (c1 != c2)
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """1 - distance / longer length; two empty strings are identical."""
    longer = max(len(s1), len(s2))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(s1, s2)) / longer


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Set overlap; 0 when both sets are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def similarity(
    a: Comparable,
    b: Comparable,
    label_weight: float = 0.6,
    symbol_weight: float = 0.4
) -> float:
    """
    Weighted blend of label edit similarity and symbol-set Jaccard.

    Args:
        a: First puzzle.
        b: Second puzzle.
        label_weight: Weight of the label component.
        symbol_weight: Weight of the symbol component.

    Returns:
        Similarity in [0, 1] for weights summing to 1.
    """
    label_sim = levenshtein_similarity(a.label.lower(), b.label.lower())
    symbol_sim = jaccard_similarity(a.symbols, b.symbols)
    return label_sim * label_weight + symbol_sim * symbol_weight
