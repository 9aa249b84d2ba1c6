"""Tests for the backend runtime, model registry and fallback client."""

from unittest.mock import MagicMock

import pytest
import requests

from puzzle_forge.config import BackendConfig, RetryConfig
from puzzle_forge.errors import BackendError, ErrorKind, classify_error
from puzzle_forge.models.client import FallbackClient, GenerationSpec, backoff_delay, with_retry
from puzzle_forge.models.registry import ModelRegistry
from puzzle_forge.models.runtime import BackendRequest, OllamaRuntime

from mocks import MockBackend


class StatusError(Exception):
    """Exception carrying an HTTP status code, like SDK errors do."""

    def __init__(self, status_code, message):
        super().__init__(message)
        self.status_code = status_code


def make_client(backend, registry, retry=None, sleeps=None):
    sleep = sleeps.append if sleeps is not None else (lambda s: None)
    return FallbackClient(backend, registry, retry_config=retry or RetryConfig(max_attempts=1), sleep=sleep)


# Registry

def test_chain_is_deduplicated_primary_first(registry):
    assert registry.get_chain("smart") == ["model-a", "model-b", "model-c"]


def test_chain_filtered_by_installed_models(registry):
    registry.set_available_models(["model-c:latest", "model-b"])

    assert registry.get_chain("smart") == ["model-b", "model-c"]


def test_chain_kept_when_nothing_installed(registry):
    registry.set_available_models(["something-else"])

    assert registry.get_chain("smart") == ["model-a", "model-b", "model-c"]


def test_unconfigured_tier_uses_generic_chain():
    registry = ModelRegistry()

    assert registry.get_chain("fast")[0] == "qwen2.5:3b"
    with pytest.raises(KeyError):
        registry.get_chain("galaxy-brain")


# Fallback client

def test_primary_model_answers(registry):
    backend = MockBackend(default='{"ok": true}')

    outcome = make_client(backend, registry).generate(GenerationSpec(user_prompt="hi"))

    assert outcome.model_used == "model-a"
    assert outcome.models_tried == ["model-a"]
    assert backend.call_count == 1


def test_retryable_errors_walk_the_chain_in_order(registry):
    backend = MockBackend(script={
        "model-a": [None],
        "model-b": [BackendError(ErrorKind.RATE_LIMITED, "slow down")],
        "model-c": ['{"ok": true}'],
    })

    outcome = make_client(backend, registry).generate(GenerationSpec(user_prompt="hi"))

    assert backend.models_called == ["model-a", "model-b", "model-c"]
    assert outcome.model_used == "model-c"
    assert outcome.models_tried == ["model-a", "model-b", "model-c"]


def test_fatal_error_aborts_the_chain(registry):
    backend = MockBackend(script={
        "model-a": [BackendError(ErrorKind.AUTHENTICATION, "bad key")],
    }, default='{"ok": true}')

    with pytest.raises(BackendError) as excinfo:
        make_client(backend, registry).generate(GenerationSpec(user_prompt="hi"))

    assert excinfo.value.kind is ErrorKind.AUTHENTICATION
    assert backend.models_called == ["model-a"]


def test_unclassified_exception_is_wrapped_and_fatal(registry):
    backend = MockBackend(script={"model-a": [RuntimeError("kaboom")]}, default='{"ok": true}')

    with pytest.raises(BackendError) as excinfo:
        make_client(backend, registry).generate(GenerationSpec(user_prompt="hi"))

    assert excinfo.value.kind is ErrorKind.OTHER
    assert excinfo.value.model == "model-a"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_exhausted_chain_raises_last_error(registry):
    backend = MockBackend(script={
        "model-a": [None],
        "model-b": [None],
        "model-c": [BackendError(ErrorKind.PROVIDER_UNAVAILABLE, "overloaded")],
    })

    with pytest.raises(BackendError) as excinfo:
        make_client(backend, registry).generate(GenerationSpec(user_prompt="hi"))

    assert excinfo.value.kind is ErrorKind.PROVIDER_UNAVAILABLE
    assert excinfo.value.model == "model-c"
    assert backend.call_count == 3


def test_request_carries_temperature_and_timeout(registry):
    backend = MockBackend(default='{"ok": true}')
    spec = GenerationSpec(user_prompt="hi", system_prompt="be terse", temperature=0.2, timeout=12)

    make_client(backend, registry).generate(spec)

    call = backend.call_history[0]
    assert call["temperature"] == 0.2
    assert call["timeout"] == 12
    assert spec.messages()[0] == {"role": "system", "content": "be terse"}


def test_generate_with_retry_backs_off_on_timeout(registry, sleeps):
    backend = MockBackend(script={
        "model-a": [BackendError(ErrorKind.TIMEOUT, "timed out"), '{"ok": true}'],
    })
    client = make_client(backend, registry, retry=RetryConfig(max_attempts=2), sleeps=sleeps)

    outcome = client.generate_with_retry(GenerationSpec(user_prompt="hi"))

    assert outcome.model_used == "model-a"
    assert backend.models_called == ["model-a", "model-a"]
    assert sleeps == [1.0]


# Retry helper

def test_with_retry_exponential_backoff(sleeps):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise BackendError(ErrorKind.TIMEOUT, "timed out")
        return "done"

    assert with_retry(flaky, config=RetryConfig(), sleep=sleeps.append) == "done"
    assert sleeps == [1.0, 2.0]


def test_with_retry_gives_up_after_max_attempts(sleeps):
    calls = []

    def always_fails():
        calls.append(1)
        raise BackendError(ErrorKind.GATEWAY, "bad gateway")

    with pytest.raises(BackendError):
        with_retry(always_fails, max_attempts=3, sleep=sleeps.append)

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize("kind", [ErrorKind.QUOTA_EXCEEDED, ErrorKind.INVALID_REQUEST, ErrorKind.AUTHENTICATION])
def test_with_retry_never_repeats_hopeless_errors(kind, sleeps):
    calls = []

    def hopeless():
        calls.append(1)
        raise BackendError(kind, "no")

    with pytest.raises(BackendError):
        with_retry(hopeless, max_attempts=5, sleep=sleeps.append)

    assert len(calls) == 1
    assert sleeps == []


def test_backoff_delay_is_capped():
    config = RetryConfig(initial_delay=1.0, max_delay=10.0, backoff_multiplier=2.0)

    assert [backoff_delay(n, config) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]


# Error classification

@pytest.mark.parametrize("status, message, expected", [
    (404, "HTTP 404", ErrorKind.MODEL_NOT_FOUND),
    (429, "HTTP 429", ErrorKind.RATE_LIMITED),
    (429, "RESOURCE_EXHAUSTED: daily quota", ErrorKind.QUOTA_EXCEEDED),
    (502, "HTTP 502", ErrorKind.GATEWAY),
    (504, "HTTP 504", ErrorKind.GATEWAY),
    (503, "HTTP 503", ErrorKind.PROVIDER_UNAVAILABLE),
    (401, "HTTP 401", ErrorKind.AUTHENTICATION),
    (400, "model 'x' not found", ErrorKind.MODEL_NOT_FOUND),
    (400, "bad field", ErrorKind.INVALID_REQUEST),
    (500, "HTTP 500", ErrorKind.OTHER),
])
def test_classify_by_status(status, message, expected):
    assert classify_error(StatusError(status, message)).kind is expected


@pytest.mark.parametrize("message, expected", [
    ("Connection refused", ErrorKind.GATEWAY),
    ("Request timed out", ErrorKind.TIMEOUT),
    ("Too Many Requests", ErrorKind.RATE_LIMITED),
    ("service overloaded", ErrorKind.PROVIDER_UNAVAILABLE),
    ("something odd", ErrorKind.OTHER),
])
def test_classify_by_message(message, expected):
    assert classify_error(RuntimeError(message)).kind is expected


@pytest.mark.parametrize("kind, aborts", [
    (ErrorKind.AUTHENTICATION, True),
    (ErrorKind.INVALID_REQUEST, True),
    (ErrorKind.OTHER, True),
    (ErrorKind.TIMEOUT, False),
    (ErrorKind.RATE_LIMITED, False),
])
def test_only_fatal_errors_abort_the_run(kind, aborts):
    assert BackendError(kind, "boom").aborts_run is aborts


def test_classified_errors_pass_through():
    error = BackendError(ErrorKind.GATEWAY, "down")

    assert classify_error(error, model="m") is error
    assert error.model == "m"


# Ollama runtime

def make_runtime():
    session = MagicMock()
    return OllamaRuntime(BackendConfig(base_url="http://ollama:11434/", timeout=30), session=session), session


def test_ollama_complete_success():
    runtime, session = make_runtime()
    session.post.return_value.status_code = 200
    session.post.return_value.json.return_value = {
        "message": {"content": '{"answer": "x"}'},
        "eval_count": 5,
        "prompt_eval_count": 7,
    }

    response = runtime.complete(BackendRequest(model="m", messages=[{"role": "user", "content": "hi"}]))

    assert response.content == '{"answer": "x"}'
    assert response.usage["total_tokens"] == 12
    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == "http://ollama:11434/api/chat"
    assert payload["format"] == "json"
    assert session.post.call_args.kwargs["timeout"] == 30


def test_ollama_http_error_is_classified():
    runtime, session = make_runtime()
    session.post.return_value.status_code = 404
    session.post.return_value.json.return_value = {"error": "model 'm' not found"}

    with pytest.raises(BackendError) as excinfo:
        runtime.complete(BackendRequest(model="m", messages=[], timeout=5))

    assert excinfo.value.kind is ErrorKind.MODEL_NOT_FOUND
    assert excinfo.value.status_code == 404
    assert excinfo.value.model == "m"


@pytest.mark.parametrize("exc, expected", [
    (requests.exceptions.Timeout("slow"), ErrorKind.TIMEOUT),
    (requests.exceptions.ConnectionError("refused"), ErrorKind.GATEWAY),
])
def test_ollama_transport_errors(exc, expected):
    runtime, session = make_runtime()
    session.post.side_effect = exc

    with pytest.raises(BackendError) as excinfo:
        runtime.complete(BackendRequest(model="m", messages=[]))

    assert excinfo.value.kind is expected


def test_ollama_health_and_models():
    runtime, session = make_runtime()
    session.get.return_value.status_code = 200
    session.get.return_value.json.return_value = {"models": [{"name": "qwen2.5:7b"}]}

    assert runtime.check_health()
    assert runtime.list_models() == ["qwen2.5:7b"]

    session.get.side_effect = requests.exceptions.ConnectionError("down")
    assert runtime.check_health() is False
    assert runtime.list_models() == []
