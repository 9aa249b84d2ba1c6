"""
Puzzle Forge - Model Registry
Maps capability tiers to ordered model fallback chains.
"""

from typing import Dict, Optional, List

from ..config import TierConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)


class ModelRegistry:
    """
    Registry for model selection by capability tier.

    Handles:
    - Tier to model chain lookup (primary first, then fallbacks)
    - Deduplication of chains
    - Filtering by models known to be installed
    """

    # Generic chains used when a tier is not configured
    MODELS_BY_TIER = {
        "fast": [
            "qwen2.5:3b",
            "llama3.2:3b",
            "phi3:mini"
        ],
        "smart": [
            "qwen2.5:7b",
            "llama3.1:8b",
            "mistral:7b"
        ],
        "creative": [
            "llama3.1:8b",
            "qwen2.5:7b",
            "gemma2:9b"
        ]
    }

    DEFAULT_TEMPERATURES = {
        "fast": 0.3,
        "smart": 0.7,
        "creative": 0.9
    }

    def __init__(self, tiers: Optional[Dict[str, TierConfig]] = None):
        """
        Initialize model registry.

        Args:
            tiers: Tier configuration from AppConfig.tiers.
        """
        self.tiers: Dict[str, TierConfig] = dict(tiers or {})
        self._available_models: Optional[List[str]] = None

    def set_available_models(self, models: List[str]):
        """Set the list of available models (from the backend)."""
        self._available_models = models

    def tier_config(self, tier: str) -> TierConfig:
        """Configured tier, or a generic one built from MODELS_BY_TIER."""
        if tier in self.tiers:
            return self.tiers[tier]
        if tier not in self.MODELS_BY_TIER:
            raise KeyError(f"Unknown capability tier: {tier}")
        models = self.MODELS_BY_TIER[tier]
        return TierConfig(
            primary=models[0],
            fallbacks=models[1:],
            temperature=self.DEFAULT_TEMPERATURES.get(tier, 0.7)
        )

    def get_chain(self, tier: str) -> List[str]:
        """
        Ordered, deduplicated model names for a tier.

        Args:
            tier: Capability tier name.

        Returns:
            Model names, primary first.
        """
        config = self.tier_config(tier)
        chain: List[str] = []
        for name in [config.primary, *config.fallbacks]:
            if name and name not in chain:
                chain.append(name)

        if self._available_models is not None:
            installed = [m for m in chain if self._is_installed(m)]
            if installed:
                return installed
            logger.warning("No model of tier %s is installed, keeping configured chain", tier)
        return chain

    def _is_installed(self, model_name: str) -> bool:
        # "qwen2.5:7b" also matches "qwen2.5:7b-instruct"
        return any(m == model_name or m.startswith(model_name) for m in self._available_models or [])
