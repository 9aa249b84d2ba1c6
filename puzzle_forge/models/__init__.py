"""
Puzzle Forge - Model Components
Backend runtime, model registry, fallback client and candidate types.
"""

from .runtime import OllamaRuntime, BackendRequest, BackendResponse, GenerativeBackend
from .registry import ModelRegistry
from .client import FallbackClient, GenerationSpec, GenerationOutcome, with_retry
from .candidate import (
    Candidate,
    RebusCandidate,
    WordCandidate,
    ComplexityProfile,
    parse_candidate,
)

__all__ = [
    "OllamaRuntime",
    "BackendRequest",
    "BackendResponse",
    "GenerativeBackend",
    "ModelRegistry",
    "FallbackClient",
    "GenerationSpec",
    "GenerationOutcome",
    "with_retry",
    "Candidate",
    "RebusCandidate",
    "WordCandidate",
    "ComplexityProfile",
    "parse_candidate",
]
