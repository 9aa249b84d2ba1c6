"""
Puzzle Forge - Model Fallback Client
Tries each model of a capability tier in order and retries transient failures.
"""

import time
from typing import Any, Callable, Dict, List, Optional, TypeVar
from dataclasses import dataclass, field, asdict

from ..config import RetryConfig
from ..errors import BackendError, ErrorKind, classify_error
from ..utils.logging import get_logger
from .registry import ModelRegistry
from .runtime import BackendRequest, GenerativeBackend

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class GenerationSpec:
    """What to ask the backend for."""
    user_prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    tier: str = "smart"
    timeout: Optional[float] = None
    max_tokens: Optional[int] = None
    format_json: bool = True

    def messages(self) -> List[Dict[str, str]]:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.user_prompt})
        return messages


@dataclass
class GenerationOutcome:
    """Successful backend output and which model produced it."""
    content: str
    model_used: str
    models_tried: List[str] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number `attempt` (1-based), capped at max_delay."""
    delay = config.initial_delay * (config.backoff_multiplier ** (attempt - 1))
    return min(delay, config.max_delay)


def with_retry(
    operation: Callable[[], T],
    max_attempts: Optional[int] = None,
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Run an idempotent operation with exponential backoff.

    Errors whose kind can never succeed on repetition (quota exhausted,
    invalid request, authentication) are raised on first sight.

    Args:
        operation: Zero-argument callable.
        max_attempts: Override for config.max_attempts.
        config: Backoff settings.
        sleep: Sleep function (injected in tests).

    Returns:
        Whatever the operation returns.
    """
    config = config or RetryConfig()
    attempts = max(1, max_attempts or config.max_attempts)

    for attempt in range(1, attempts):
        try:
            return operation()
        except Exception as e:
            error = classify_error(e)
            if not error.backoff_allowed:
                logger.warning("Not retrying %s error: %s", error.kind.value, error.message)
                raise
            delay = backoff_delay(attempt, config)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt, attempts, error.kind.value, delay
            )
            sleep(delay)

    # Final attempt propagates whatever it raises
    return operation()


class FallbackClient:
    """
    Calls the generative backend through a per-tier model chain.

    Workflow per call:
    1. Look up the ordered chain for the requested tier
    2. Call each model with the request timeout
    3. Retryable failure (not found, quota, rate limit, gateway, 503): next model
    4. Any other failure: raise immediately
    5. Chain exhausted: raise the last error
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        registry: ModelRegistry,
        retry_config: Optional[RetryConfig] = None,
        default_timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize fallback client.

        Args:
            backend: Object implementing complete(BackendRequest).
            registry: Tier to model chain registry.
            retry_config: Backoff settings for generate_with_retry.
            default_timeout: Per-call timeout when the spec sets none.
            sleep: Sleep function used between retries.
        """
        self.backend = backend
        self.registry = registry
        self.retry_config = retry_config or RetryConfig()
        self.default_timeout = default_timeout
        self.sleep = sleep

    def generate(self, spec: GenerationSpec) -> GenerationOutcome:
        """
        Generate content, falling back across the tier's models.

        Args:
            spec: Prompt payload, temperature, tier and timeout.

        Returns:
            GenerationOutcome from the first model that succeeded.

        Raises:
            BackendError: Fatal error, or the last retryable error once
                every model has failed.
        """
        chain = self.registry.get_chain(spec.tier)
        tier_config = self.registry.tier_config(spec.tier)
        if not chain:
            raise BackendError(ErrorKind.MODEL_NOT_FOUND, f"No models configured for tier {spec.tier}")

        last_error: Optional[BackendError] = None
        tried: List[str] = []

        for model in chain:
            tried.append(model)
            request = BackendRequest(
                model=model,
                messages=spec.messages(),
                temperature=spec.temperature,
                max_tokens=spec.max_tokens or tier_config.max_output_tokens,
                timeout=spec.timeout or self.default_timeout,
                format_json=spec.format_json
            )
            try:
                response = self.backend.complete(request)
            except Exception as e:
                error = classify_error(e, model=model)
                if not error.retryable:
                    logger.error("Model %s failed with fatal %s error: %s", model, error.kind.value, error.message)
                    if error is e:
                        raise
                    raise error from e
                logger.warning("Model %s unavailable (%s), trying next model", model, error.kind.value)
                last_error = error
                continue

            if len(tried) > 1:
                logger.info("Fell back to model %s after %d failures", model, len(tried) - 1)
            return GenerationOutcome(
                content=response.content,
                model_used=model,
                models_tried=tried,
                usage=dict(response.usage),
                duration_ms=response.duration_ms
            )

        logger.error("All %d models of tier %s failed", len(chain), spec.tier)
        raise last_error

    def generate_with_retry(self, spec: GenerationSpec, max_attempts: Optional[int] = None) -> GenerationOutcome:
        """generate() wrapped in exponential backoff."""
        return with_retry(
            lambda: self.generate(spec),
            max_attempts=max_attempts,
            config=self.retry_config,
            sleep=self.sleep
        )
