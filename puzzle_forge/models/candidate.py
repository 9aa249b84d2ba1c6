"""
Puzzle Forge - Candidate Data Model
Immutable generated puzzles, their complexity profiles and ingestion validation.
"""

import math
from typing import Dict, List, Optional, Any, Tuple, Type, ClassVar
from dataclasses import dataclass, field

from ..errors import CandidateValidationError
from ..utils.numbers import round_half_up
from ..utils.text import extract_symbols, has_symbolic_content


SCORE_MIN = 1
SCORE_MAX = 10
SCORE_DEFAULT = 5

HINTS_MIN = 3
HINTS_MAX = 5
ANSWER_MAX_LENGTH = 50
EXPLANATION_MIN_LENGTH = 20
EXPLANATION_MAX_LENGTH = 200

REBUS_CATEGORIES = (
    "compound_words",
    "phonetic",
    "positional",
    "mathematical",
    "visual_wordplay",
    "idioms",
    "phrases",
    "lateral_thinking",
    "multi_layer",
)

WORD_CATEGORIES = (
    "anagram",
    "word_search",
    "crossword_clue",
    "word_ladder",
    "cryptogram",
)

REBUS_FACTORS = (
    "visual_ambiguity",
    "cognitive_steps",
    "cultural_knowledge",
    "vocabulary_level",
    "pattern_novelty",
)

WORD_FACTORS = (
    "word_length",
    "manipulation_complexity",
    "vocabulary_level",
    "pattern_obscurity",
    "cognitive_steps",
)

# Backend field names (camelCase) mapped onto profile factor names
_FACTOR_ALIASES = {
    "visualAmbiguity": "visual_ambiguity",
    "cognitiveSteps": "cognitive_steps",
    "culturalKnowledge": "cultural_knowledge",
    "vocabularyLevel": "vocabulary_level",
    "patternNovelty": "pattern_novelty",
    "wordLength": "word_length",
    "manipulationComplexity": "manipulation_complexity",
    "patternObscurity": "pattern_obscurity",
}


def coerce_score(value: Any, default: int = SCORE_DEFAULT) -> int:
    """
    Round and clamp an untrusted sub-factor value into [1, 10].

    Non-numeric values (and NaN) fall back to the default instead of
    failing, because backend output is never trusted.
    """
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    if math.isinf(number):
        return SCORE_MAX if number > 0 else SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, round_half_up(number)))


@dataclass(frozen=True)
class ComplexityProfile:
    """Named sub-factor scores, each an integer in [1, 10]."""
    scores: Tuple[Tuple[str, int], ...] = ()

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], factors: Optional[Tuple[str, ...]] = None) -> "ComplexityProfile":
        """
        Build a profile from a loosely-typed mapping.

        Args:
            data: Raw factor mapping (snake_case or camelCase keys).
            factors: If given, only these factor names are kept.

        Returns:
            ComplexityProfile with coerced values, sorted by name.
        """
        coerced: Dict[str, int] = {}
        for key, value in (data or {}).items():
            name = _FACTOR_ALIASES.get(key, key)
            if factors is not None and name not in factors:
                continue
            coerced[name] = coerce_score(value)
        return cls(scores=tuple(sorted(coerced.items())))

    def get(self, name: str, default: Optional[int] = None) -> Optional[int]:
        for key, value in self.scores:
            if key == name:
                return value
        return default

    def as_dict(self) -> Dict[str, int]:
        return dict(self.scores)

    def __len__(self) -> int:
        return len(self.scores)


@dataclass(frozen=True)
class Candidate:
    """
    A generated puzzle before acceptance.

    Shared required fields for every content kind. Subclasses set `kind`
    and their own category vocabulary.
    """
    content: str
    answer: str
    explanation: str
    hints: Tuple[str, ...]
    category: str
    proposed_difficulty: int
    complexity: Optional[ComplexityProfile] = None
    model_used: Optional[str] = field(default=None, compare=False)

    kind: ClassVar[str] = "generic"
    categories: ClassVar[Tuple[str, ...]] = ()
    factors: ClassVar[Tuple[str, ...]] = ()

    @property
    def label(self) -> str:
        return self.answer

    @property
    def symbols(self) -> List[str]:
        return extract_symbols(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "content": self.content,
            "answer": self.answer,
            "explanation": self.explanation,
            "hints": list(self.hints),
            "category": self.category,
            "proposed_difficulty": self.proposed_difficulty,
            "complexity": self.complexity.as_dict() if self.complexity else None,
            "model_used": self.model_used
        }


@dataclass(frozen=True)
class RebusCandidate(Candidate):
    """Emoji/symbol rebus puzzle."""
    kind: ClassVar[str] = "rebus"
    categories: ClassVar[Tuple[str, ...]] = REBUS_CATEGORIES
    factors: ClassVar[Tuple[str, ...]] = REBUS_FACTORS
    content_keys: ClassVar[Tuple[str, ...]] = ("rebusPuzzle", "rebus_puzzle", "content")


@dataclass(frozen=True)
class WordCandidate(Candidate):
    """Anagram, cryptogram and other word manipulation puzzles."""
    kind: ClassVar[str] = "word"
    categories: ClassVar[Tuple[str, ...]] = WORD_CATEGORIES
    factors: ClassVar[Tuple[str, ...]] = WORD_FACTORS
    content_keys: ClassVar[Tuple[str, ...]] = ("puzzle", "content")


CANDIDATE_TYPES: Dict[str, Type[Candidate]] = {
    RebusCandidate.kind: RebusCandidate,
    WordCandidate.kind: WordCandidate,
}


def _first_present(data: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return None


def _normalize_category(value: Any) -> str:
    return str(value).strip().lower().replace(" ", "_").replace("-", "_")


def parse_candidate(data: Dict[str, Any], kind: str = "rebus", model_used: Optional[str] = None) -> Candidate:
    """
    Validate a raw backend record and build an immutable candidate.

    Required fields are checked first. Out-of-range numeric fields are
    coerced (difficulty and complexity scores), extra hints are truncated,
    and unknown keys are ignored. Anything that cannot be coerced raises.

    Args:
        data: Parsed JSON object from the backend.
        kind: Content kind ("rebus" or "word").
        model_used: Model that produced the record.

    Returns:
        RebusCandidate or WordCandidate.

    Raises:
        CandidateValidationError: Missing or unusable required fields.
    """
    if kind not in CANDIDATE_TYPES:
        raise CandidateValidationError(f"Unknown content kind: {kind}")
    if not isinstance(data, dict):
        raise CandidateValidationError("Candidate payload is not a JSON object")

    candidate_cls = CANDIDATE_TYPES[kind]

    content = _first_present(data, candidate_cls.content_keys)
    fields = {
        "content": content,
        "answer": data.get("answer"),
        "explanation": data.get("explanation"),
        "hints": data.get("hints"),
        "category": data.get("category"),
        "difficulty": data.get("difficulty", data.get("proposed_difficulty")),
    }
    missing = [name for name, value in fields.items() if value in (None, "", [])]
    if missing:
        raise CandidateValidationError(
            f"Candidate missing required fields: {', '.join(missing)}",
            missing_fields=missing
        )

    content = str(content).strip()
    answer = str(fields["answer"]).strip()
    explanation = str(fields["explanation"]).strip()

    if len(answer) > ANSWER_MAX_LENGTH:
        raise CandidateValidationError(f"Answer longer than {ANSWER_MAX_LENGTH} characters")

    category = _normalize_category(fields["category"])
    if category not in candidate_cls.categories:
        raise CandidateValidationError(f"Unknown {kind} category: {category}")

    raw_hints = fields["hints"]
    if isinstance(raw_hints, str):
        raw_hints = [raw_hints]
    if not isinstance(raw_hints, (list, tuple)):
        raise CandidateValidationError("Hints must be a list of strings", missing_fields=["hints"])
    hints = tuple(str(h).strip() for h in raw_hints if str(h).strip())[:HINTS_MAX]
    if not hints:
        raise CandidateValidationError("Candidate has no usable hints", missing_fields=["hints"])

    if kind == RebusCandidate.kind and not has_symbolic_content(content):
        raise CandidateValidationError("Rebus content must contain at least one symbol")

    raw_profile = data.get("complexityScore", data.get("complexity"))
    complexity = None
    if isinstance(raw_profile, dict) and raw_profile:
        complexity = ComplexityProfile.from_mapping(raw_profile, candidate_cls.factors)
        if not len(complexity):
            complexity = None

    return candidate_cls(
        content=content,
        answer=answer,
        explanation=explanation,
        hints=hints,
        category=category,
        proposed_difficulty=coerce_score(fields["difficulty"]),
        complexity=complexity,
        model_used=model_used
    )
