"""
Puzzle Forge - Agents
Prompt-driven puzzle generation.
"""

from .generator import PuzzleGenerator, GenerationRequest, GeneratedDraft, extract_json_object

__all__ = ["PuzzleGenerator", "GenerationRequest", "GeneratedDraft", "extract_json_object"]
