"""
Puzzle Forge - Generative Backend Runtime
Backend call shape and the Ollama implementation.
"""

import time
import requests
from typing import Dict, Any, Optional, List, Protocol
from dataclasses import dataclass, field, asdict

from ..config import BackendConfig
from ..errors import BackendError, ErrorKind, classify_error
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BackendRequest:
    """A single call to a generative backend."""
    model: str
    messages: List[Dict[str, str]]
    temperature: float = 0.7
    max_tokens: int = 1024
    timeout: Optional[float] = None
    format_json: bool = True


@dataclass
class BackendResponse:
    """Result from a backend call."""
    content: str
    model: str
    duration_ms: float = 0.0
    usage: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GenerativeBackend(Protocol):
    """Anything that can complete a BackendRequest."""

    def complete(self, request: BackendRequest) -> BackendResponse:
        ...


class OllamaRuntime:
    """
    Interface to Ollama for chat completions.

    Every failure is raised as a classified BackendError so the fallback
    client can decide whether to move on to the next model. This class
    never retries on its own.
    """

    def __init__(self, config: BackendConfig, session: Optional[requests.Session] = None):
        """
        Initialize Ollama runtime.

        Args:
            config: Backend configuration.
            session: Optional requests session (injected in tests).
        """
        self.base_url = config.base_url.rstrip('/')
        self.timeout = config.timeout
        self.session = session or requests.Session()

    def check_health(self) -> bool:
        """Check if Ollama is running and accessible."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.debug("Health check failed: %s", e)
            return False

    def list_models(self) -> List[str]:
        """List available models."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=10)
        except requests.exceptions.RequestException as e:
            logger.warning("Could not list models: %s", e)
            return []
        if response.status_code != 200:
            return []
        return [m["name"] for m in response.json().get("models", [])]

    def complete(self, request: BackendRequest) -> BackendResponse:
        """
        Send a chat completion request.

        Args:
            request: Model, messages and sampling settings.

        Returns:
            BackendResponse with the generated text and token usage.

        Raises:
            BackendError: Classified transport or HTTP failure.
        """
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "stream": False,
            "options": {
                "num_predict": request.max_tokens,
                "temperature": request.temperature
            }
        }
        if request.format_json:
            payload["format"] = "json"

        timeout = request.timeout or self.timeout
        start_time = time.time()
        try:
            response = self.session.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=timeout
            )
        except requests.exceptions.Timeout as e:
            raise BackendError(ErrorKind.TIMEOUT, f"Request timed out after {timeout}s", model=request.model) from e
        except requests.exceptions.ConnectionError as e:
            raise BackendError(ErrorKind.GATEWAY, f"Connection error - is Ollama running? {e}", model=request.model) from e
        except requests.exceptions.RequestException as e:
            raise classify_error(e, model=request.model) from e

        duration_ms = (time.time() - start_time) * 1000

        if response.status_code != 200:
            error = classify_error(
                _HTTPStatusError(response.status_code, _error_text(response)),
                model=request.model
            )
            raise error

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(ErrorKind.OTHER, "Backend returned a non-JSON body", model=request.model) from e

        output_tokens = data.get("eval_count", 0)
        prompt_tokens = data.get("prompt_eval_count", 0)

        return BackendResponse(
            content=data.get("message", {}).get("content", ""),
            model=request.model,
            duration_ms=duration_ms,
            usage={
                "prompt_tokens": prompt_tokens,
                "output_tokens": output_tokens,
                "total_tokens": prompt_tokens + output_tokens
            }
        )


class _HTTPStatusError(Exception):
    """Carrier for a non-200 status so classify_error sees the code."""

    def __init__(self, status_code: int, text: str):
        super().__init__(f"HTTP {status_code}: {text}")
        self.status_code = status_code


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])[:500]
    return str(body)[:500]
