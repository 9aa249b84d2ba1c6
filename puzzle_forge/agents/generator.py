"""
Puzzle Forge - Puzzle Generator Agent
Builds generation prompts and turns backend output into raw candidate records.
"""

import json
import re
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from ..errors import CandidateValidationError
from ..models.client import FallbackClient, GenerationSpec, GenerationOutcome
from ..models.candidate import (
    REBUS_CATEGORIES,
    WORD_CATEGORIES,
    HINTS_MIN,
    HINTS_MAX,
    WordCandidate,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", flags=re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```$", flags=re.MULTILINE)


def extract_json_object(raw: str) -> Dict[str, Any]:
    """
    Pull the first JSON object out of a model response.

    Markdown code fences and chatter around the object are ignored.

    Raises:
        CandidateValidationError: No parseable JSON object present.
    """
    text = _FENCE_OPEN.sub("", raw.strip())
    text = _FENCE_CLOSE.sub("", text)
    start = text.find("{")
    end = text.rfind("}") + 1
    if start == -1 or end == 0:
        raise CandidateValidationError(f"No JSON object in backend response: {raw[:200]}")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise CandidateValidationError(f"Malformed JSON in backend response: {e}") from e
    if not isinstance(data, dict):
        raise CandidateValidationError("Backend response JSON is not an object")
    return data


@dataclass
class GenerationRequest:
    """Everything the generator needs for one attempt."""
    target_difficulty: int
    kind: str = "rebus"
    category: Optional[str] = None
    require_novelty: bool = False
    tier: str = "smart"
    temperature: float = 0.7
    feedback: List[str] = field(default_factory=list)
    avoid_answers: List[str] = field(default_factory=list)
    avoid_patterns: List[str] = field(default_factory=list)


@dataclass
class GeneratedDraft:
    """Raw record parsed from the backend plus call metadata."""
    data: Dict[str, Any]
    outcome: GenerationOutcome
    prompt: str = ""


class PuzzleGenerator:
    """
    Generates raw puzzle records through the fallback client.

    The generator only asks and parses. Field validation happens in
    parse_candidate() and every judgement happens downstream.
    """

    REBUS_SYSTEM_PROMPT = """You are an expert puzzle designer who creates clever, fair rebus puzzles.
A rebus combines emojis, symbols, numbers and short words so that together they spell a word or phrase.

Rules:
- Family-friendly content only
- The puzzle must be solvable from the visual elements and hints alone
- Never spell the answer out in the puzzle
- Respond with a single JSON object and nothing else"""

    WORD_SYSTEM_PROMPT = """You are an expert puzzle designer who creates clever, fair word puzzles:
anagrams, word searches, crossword clues, word ladders and cryptograms.

Rules:
- Family-friendly content only
- One unambiguous answer
- Respond with a single JSON object and nothing else"""

    REBUS_PROMPT = """Create one rebus puzzle.

TARGET DIFFICULTY: {difficulty}/10
CATEGORY: {category}{novelty}{avoid}{feedback}

Respond with JSON:
{{
    "rebusPuzzle": "emoji/symbol puzzle",
    "answer": "the answer",
    "explanation": "how the pieces combine into the answer (20-200 characters)",
    "category": "one of: {categories}",
    "difficulty": {difficulty},
    "hints": ["{hint_count} hints, from subtle to obvious"],
    "complexityScore": {{
        "visualAmbiguity": 1-10,
        "cognitiveSteps": 1-10,
        "culturalKnowledge": 1-10,
        "vocabularyLevel": 1-10,
        "patternNovelty": 1-10
    }}
}}"""

    WORD_PROMPT = """Create one word puzzle.

TARGET DIFFICULTY: {difficulty}/10
CATEGORY: {category}{novelty}{avoid}{feedback}

Respond with JSON:
{{
    "puzzle": "the puzzle text",
    "answer": "the answer",
    "explanation": "how to solve it",
    "category": "one of: {categories}",
    "difficulty": {difficulty},
    "hints": ["{hint_count} hints, from subtle to obvious"],
    "complexityScore": {{
        "wordLength": 1-10,
        "manipulationComplexity": 1-10,
        "vocabularyLevel": 1-10,
        "patternObscurity": 1-10,
        "cognitiveSteps": 1-10
    }}
}}"""

    def __init__(self, client: FallbackClient, use_retry: bool = True):
        """
        Initialize generator.

        Args:
            client: Model fallback client.
            use_retry: Wrap each call in exponential backoff.
        """
        self.client = client
        self.use_retry = use_retry

    def build_prompt(self, request: GenerationRequest) -> str:
        """Render the user prompt for a request."""
        is_word = request.kind == WordCandidate.kind
        categories = WORD_CATEGORIES if is_word else REBUS_CATEGORIES
        template = self.WORD_PROMPT if is_word else self.REBUS_PROMPT

        novelty = ""
        if request.require_novelty:
            novelty = "\nNOVELTY: Use an unusual structure you have not used before."
            if request.avoid_patterns:
                novelty += f" Avoid these patterns: {', '.join(request.avoid_patterns)}."

        avoid = ""
        if request.avoid_answers:
            avoid = "\nDO NOT USE THESE ANSWERS: " + ", ".join(request.avoid_answers[:30])

        feedback = ""
        if request.feedback:
            lines = "\n".join(f"- {item}" for item in request.feedback)
            feedback = f"\n\nFEEDBACK FROM THE PREVIOUS ATTEMPT:\n{lines}"

        return template.format(
            difficulty=request.target_difficulty,
            category=request.category or "any",
            novelty=novelty,
            avoid=avoid,
            feedback=feedback,
            categories=", ".join(categories),
            hint_count=f"{HINTS_MIN}-{HINTS_MAX}"
        )

    def generate(self, request: GenerationRequest) -> GeneratedDraft:
        """
        Ask the backend for one puzzle.

        Args:
            request: Target difficulty, category, tier and feedback.

        Returns:
            GeneratedDraft with the parsed JSON object.

        Raises:
            BackendError: Backend failure surfaced by the fallback client.
            CandidateValidationError: Response was not a JSON object.
        """
        prompt = self.build_prompt(request)
        spec = GenerationSpec(
            user_prompt=prompt,
            system_prompt=self.WORD_SYSTEM_PROMPT if request.kind == WordCandidate.kind else self.REBUS_SYSTEM_PROMPT,
            temperature=request.temperature,
            tier=request.tier,
            format_json=True
        )

        if self.use_retry:
            outcome = self.client.generate_with_retry(spec)
        else:
            outcome = self.client.generate(spec)

        logger.debug("Model %s returned %d characters", outcome.model_used, len(outcome.content))
        data = extract_json_object(outcome.content)
        return GeneratedDraft(data=data, outcome=outcome, prompt=prompt)
