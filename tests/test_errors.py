import asyncio
import subprocess

import pytest

from themetree.llm_client.errors import (
    ConfigError,
    FailureKind,
    PermanentModelError,
    QueueClearedError,
    ResponseShapeError,
    TransientModelError,
    classify_failure,
    is_rate_limit_message,
    to_model_error,
)


class _StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class _Response:
    def __init__(self, status_code):
        self.status_code = status_code


class _ResponseError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.response = _Response(status_code)


class APITimeoutError(Exception):
    pass


@pytest.mark.parametrize(
    "error",
    [
        TransientModelError("timed out"),
        _StatusError("server error", 503),
        _StatusError("too many", 429),
        _StatusError("request timeout", 408),
        _ResponseError("bad gateway", 502),
        asyncio.TimeoutError(),
        TimeoutError("slow"),
        ConnectionResetError("reset by peer"),
        subprocess.TimeoutExpired(cmd="claude", timeout=5),
        APITimeoutError("provider timeout"),
        RuntimeError("Rate limit reached for requests"),
        RuntimeError("Service overloaded, try later"),
    ],
)
def test_retryable_failures(error):
    assert classify_failure(error) == FailureKind.RETRYABLE


@pytest.mark.parametrize(
    "error",
    [
        PermanentModelError("invalid api key", status_code=401),
        _StatusError("forbidden", 403),
        _StatusError("bad request", 400),
        ResponseShapeError("no object found"),
        QueueClearedError("cleared"),
        ConfigError("bad config"),
        ValueError("malformed"),
        TypeError("wrong type"),
        KeyError("unknown"),
    ],
)
def test_permanent_failures(error):
    assert classify_failure(error) == FailureKind.PERMANENT


def test_explicit_type_wins_over_message():
    # the message mentions a rate limit but the type says permanent
    assert classify_failure(PermanentModelError("rate limit policy violated")) == FailureKind.PERMANENT


def test_rate_limit_markers():
    assert is_rate_limit_message("HTTP 429 Too Many Requests")
    assert is_rate_limit_message("quota exceeded for project")
    assert not is_rate_limit_message("invalid request body")


def test_to_model_error_wraps_by_kind():
    transient = to_model_error(_StatusError("unavailable", 503))
    assert isinstance(transient, TransientModelError)
    assert transient.status_code == 503
    assert "_StatusError" in str(transient)

    permanent = to_model_error(_StatusError("unauthorized", 401))
    assert isinstance(permanent, PermanentModelError)
    assert permanent.status_code == 401

    already = TransientModelError("x")
    assert to_model_error(already) is already
