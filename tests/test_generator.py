"""Tests for prompt building and response parsing in the generator agent."""

import json

import pytest

from puzzle_forge.agents.generator import GenerationRequest, PuzzleGenerator, extract_json_object
from puzzle_forge.errors import CandidateValidationError
from puzzle_forge.models.client import FallbackClient

from mocks import MockBackend, rebus_record


@pytest.mark.parametrize("raw", [
    '{"answer": "Sunflower"}',
    '```json\n{"answer": "Sunflower"}\n```',
    'Here you go:\n{"answer": "Sunflower"}\nEnjoy!',
])
def test_extract_json_object(raw):
    assert extract_json_object(raw) == {"answer": "Sunflower"}


@pytest.mark.parametrize("raw", ["no json here", '{"answer": ', "[1, 2, 3]"])
def test_extract_json_object_rejects_garbage(raw):
    with pytest.raises(CandidateValidationError):
        extract_json_object(raw)


def make_generator(registry, backend=None):
    backend = backend or MockBackend(default=json.dumps(rebus_record()))
    return PuzzleGenerator(FallbackClient(backend, registry, sleep=lambda s: None)), backend


def test_prompt_includes_feedback_and_avoid_lists(registry):
    generator, _ = make_generator(registry)
    request = GenerationRequest(
        target_difficulty=6,
        category="phonetic",
        require_novelty=True,
        feedback=["Use more expressive symbols."],
        avoid_answers=["Sunflower", "Rainbow"],
        avoid_patterns=["pure_emoji_compound"],
    )

    prompt = generator.build_prompt(request)

    assert "TARGET DIFFICULTY: 6/10" in prompt
    assert "CATEGORY: phonetic" in prompt
    assert "DO NOT USE THESE ANSWERS: Sunflower, Rainbow" in prompt
    assert "Avoid these patterns: pure_emoji_compound." in prompt
    assert "- Use more expressive symbols." in prompt
    assert '"rebusPuzzle"' in prompt


def test_word_prompt_uses_word_schema(registry):
    generator, _ = make_generator(registry)

    prompt = generator.build_prompt(GenerationRequest(target_difficulty=3, kind="word"))

    assert '"puzzle"' in prompt
    assert "cryptogram" in prompt
    assert "NOVELTY" not in prompt


def test_generate_returns_parsed_draft(registry):
    generator, backend = make_generator(registry)

    draft = generator.generate(GenerationRequest(target_difficulty=5, temperature=0.4))

    assert draft.data["answer"] == "Sunflower"
    assert draft.outcome.model_used == "model-a"
    assert backend.call_history[0]["temperature"] == 0.4
    assert draft.prompt == backend.call_history[0]["prompt"]
