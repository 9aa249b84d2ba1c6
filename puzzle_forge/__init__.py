"""
Puzzle Forge
Daily puzzle generation with model fallback, uniqueness checks,
difficulty calibration and quality gating.
"""

from .config import ConfigManager, AppConfig, DifficultyMode
from .errors import (
    PuzzleForgeError,
    ConfigError,
    BackendError,
    ErrorKind,
    CandidateValidationError,
    GenerationFailure,
)
from .orchestrator import (
    MasterOrchestrator,
    GenerationResult,
    GenerationAttempt,
    BatchResult,
    PipelineStage,
    Progression,
    record_result,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigManager",
    "AppConfig",
    "DifficultyMode",
    "PuzzleForgeError",
    "ConfigError",
    "BackendError",
    "ErrorKind",
    "CandidateValidationError",
    "GenerationFailure",
    "MasterOrchestrator",
    "GenerationResult",
    "GenerationAttempt",
    "BatchResult",
    "PipelineStage",
    "Progression",
    "record_result",
]
