"""
Puzzle Forge - Configuration Management
Handles difficulty mode detection and configuration loading.
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum

from .errors import ConfigError


class DifficultyMode(Enum):
    """Available difficulty modes."""
    STANDARD = "standard"
    CHALLENGING = "challenging"


@dataclass
class BackendConfig:
    """Generative backend connection configuration."""
    base_url: str = "http://localhost:11434"
    timeout: int = 30


@dataclass
class TierConfig:
    """Model chain for one capability tier."""
    primary: str
    fallbacks: List[str] = field(default_factory=list)
    temperature: float = 0.7
    max_output_tokens: int = 1024


@dataclass
class RetryConfig:
    """Exponential backoff settings for single operations."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


@dataclass
class UniquenessConfig:
    """Duplicate suppression thresholds."""
    conflict_threshold: float = 0.7
    rejection_threshold: float = 0.8
    component_overlap_threshold: float = 0.7
    window_days: int = 30
    max_items: int = 100
    diversity_window_days: int = 7
    label_weight: float = 0.6
    symbol_weight: float = 0.4


@dataclass
class DifficultyConfig:
    """Calibration band and sub-factor weights per content kind."""
    min_difficulty: int = 1
    max_difficulty: int = 10
    default_target: int = 5
    factor_weights: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def weights_for(self, kind: str) -> Dict[str, float]:
        return dict(self.factor_weights.get(kind, {}))


@dataclass
class QualityConfig:
    """Quality gate settings."""
    publish_threshold: int = 70
    revision_threshold: int = 60
    first_attempt_relief: int = 10
    robustness_weight: float = 0.3
    skip_robustness_on_first_attempt: bool = True
    dimension_weights: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def weights_for(self, kind: str) -> Dict[str, float]:
        return dict(self.dimension_weights.get(kind, {}))


@dataclass
class PipelineConfig:
    """Attempt loop configuration."""
    max_attempts: int = 3
    minimum_acceptable_score: int = 55
    strong_candidate_score: int = 70
    tier: str = "smart"
    escalation_tier: Optional[str] = "creative"
    temperature_step: float = 0.1
    batch_max_attempts: int = 2


@dataclass
class ContentConfig:
    """Which content kind and categories a mode generates."""
    kind: str = "rebus"
    categories: List[str] = field(default_factory=list)


@dataclass
class ModeConfig:
    """Complete mode-specific configuration."""
    mode_name: str
    description: str
    difficulty: DifficultyConfig
    content: ContentConfig
    quality_overrides: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Complete application configuration."""
    mode: DifficultyMode
    mode_config: ModeConfig
    backend: BackendConfig
    tiers: Dict[str, TierConfig]
    retry: RetryConfig
    uniqueness: UniquenessConfig
    quality: QualityConfig
    pipeline: PipelineConfig
    history_file: str = "data/history/puzzles.json"
    base_path: Path = field(default_factory=lambda: Path.cwd())

    @property
    def data_dir(self) -> Path:
        return self.base_path / "data"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    @property
    def history_path(self) -> Path:
        return self.base_path / self.history_file

    @property
    def difficulty(self) -> DifficultyConfig:
        return self.mode_config.difficulty


class ConfigManager:
    """
    Manages configuration loading and difficulty mode detection.

    Priority for difficulty mode:
    1. Explicit argument (--mode)
    2. Environment variable (PUZZLE_FORGE_MODE)
    3. Standard mode
    """

    ENV_VAR = "PUZZLE_FORGE_MODE"

    def __init__(self, base_path: Optional[Path] = None):
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.config_dir = self.base_path / "config"
        self._config: Optional[AppConfig] = None

    def detect_mode(self) -> DifficultyMode:
        """Detect the difficulty mode from the environment."""
        env_mode = os.environ.get(self.ENV_VAR, "").strip().lower()
        if not env_mode:
            return DifficultyMode.STANDARD
        try:
            return DifficultyMode(env_mode)
        except ValueError:
            raise ConfigError(f"Unknown difficulty mode in {self.ENV_VAR}: {env_mode!r}")

    def load_yaml(self, filepath: Path) -> Dict[str, Any]:
        """Load a YAML configuration file."""
        if not filepath.exists():
            raise ConfigError(f"Configuration file not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def load_mode_config(self, mode: DifficultyMode) -> ModeConfig:
        """Load mode-specific configuration."""
        mode_file = self.config_dir / "modes" / f"{mode.value}.yaml"
        data = self.load_yaml(mode_file)

        try:
            return ModeConfig(
                mode_name=data["mode_name"],
                description=data.get("description", ""),
                difficulty=DifficultyConfig(**data.get("difficulty", {})),
                content=ContentConfig(**data.get("content", {})),
                quality_overrides=data.get("quality", {}) or {}
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Invalid mode configuration in {mode_file}: {e}") from e

    def load_default_config(self) -> Dict[str, Any]:
        """Load default configuration."""
        return self.load_yaml(self.config_dir / "default.yaml")

    def load(self, mode: Optional[DifficultyMode] = None) -> AppConfig:
        """
        Load complete application configuration.

        Args:
            mode: Optional difficulty mode override. If not provided, detects.

        Returns:
            Complete AppConfig instance.
        """
        if mode is None:
            mode = self.detect_mode()

        default = self.load_default_config()
        mode_config = self.load_mode_config(mode)

        # Mode-level quality settings win over defaults
        quality_data = {**default.get("quality", {}), **mode_config.quality_overrides}

        try:
            tiers = {
                name: TierConfig(**tier)
                for name, tier in default.get("tiers", {}).items()
            }
            self._config = AppConfig(
                mode=mode,
                mode_config=mode_config,
                backend=BackendConfig(**default.get("backend", {})),
                tiers=tiers,
                retry=RetryConfig(**default.get("retry", {})),
                uniqueness=UniquenessConfig(**default.get("uniqueness", {})),
                quality=QualityConfig(**quality_data),
                pipeline=PipelineConfig(**default.get("pipeline", {})),
                history_file=default.get("history", {}).get("file", "data/history/puzzles.json"),
                base_path=self.base_path
            )
        except TypeError as e:
            raise ConfigError(f"Invalid default configuration: {e}") from e

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def get_mode_summary(self) -> Dict[str, Any]:
        """Get a summary of the current mode configuration."""
        config = self.config
        return {
            "mode": config.mode.value,
            "description": config.mode_config.description,
            "difficulty_band": [config.difficulty.min_difficulty, config.difficulty.max_difficulty],
            "content_kind": config.mode_config.content.kind,
            "categories": list(config.mode_config.content.categories),
            "publish_threshold": config.quality.publish_threshold,
            "max_attempts": config.pipeline.max_attempts,
            "tier": config.pipeline.tier
        }

    def switch_mode(self, new_mode: DifficultyMode) -> AppConfig:
        """Switch to a different difficulty mode."""
        return self.load(mode=new_mode)
