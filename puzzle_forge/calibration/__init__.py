"""
Puzzle Forge - Calibration
Difficulty calibration from complexity profiles.
"""

from .difficulty import (
    DifficultyCalibrator,
    Calibration,
    adaptive_difficulty,
    calibration_recommendation,
)

__all__ = [
    "DifficultyCalibrator",
    "Calibration",
    "adaptive_difficulty",
    "calibration_recommendation",
]
