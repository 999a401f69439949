"""
Tests for error classification
"""

import pytest

from skiprate.errors import (
    AuthError,
    AuthErrorType,
    ConfigurationError,
    ErrorCategory,
    HttpStatusError,
    InvalidSlotRangeError,
    MalformedResponseError,
    NoDataError,
    RateLimitError,
    RequestTimeoutError,
    RetriesExhaustedError,
    RpcError,
    TimeoutType,
    TransportError,
    error_for_rpc,
    error_for_status,
    parse_retry_after,
)


def all_kinds():
    return [
        TransportError("connection refused"),
        RequestTimeoutError(5.0, "POST", TimeoutType.CONNECTION),
        RequestTimeoutError(5.0, "POST", TimeoutType.READ),
        RateLimitError(retry_after=3),
        RateLimitError(),
        HttpStatusError(503),
        HttpStatusError(404),
        RpcError(-32603, "Internal error"),
        RpcError(-32602, "Invalid params"),
        MalformedResponseError("bad json"),
        NoDataError(),
        AuthError("HTTP 401", AuthErrorType.INVALID_API_KEY),
        ConfigurationError("bad endpoint", field="rpc_endpoint"),
        InvalidSlotRangeError("reversed", provided_range=(2, 1)),
    ]


def test_success_statuses_have_no_error():
    for status in (200, 201, 204, 299):
        assert error_for_status(status) is None


def test_429_reads_retry_after():
    error = error_for_status(429, {"Retry-After": "1"})
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 1.0
    assert error.retry_delay() == 1.0


def test_429_header_lookup_is_case_insensitive():
    error = error_for_status(429, {"retry-after": "7"})
    assert error.retry_after == 7.0


def test_429_without_header_uses_default_delay():
    error = error_for_status(429, {})
    assert error.retry_after is None
    assert error.retry_delay() == 60.0


def test_auth_statuses():
    unauthorized = error_for_status(401)
    forbidden = error_for_status(403)
    assert isinstance(unauthorized, AuthError)
    assert unauthorized.auth_type == AuthErrorType.INVALID_API_KEY
    assert isinstance(forbidden, AuthError)
    assert forbidden.auth_type == AuthErrorType.QUOTA_EXCEEDED
    assert not unauthorized.is_retryable()
    assert unauthorized.category() == ErrorCategory.AUTHENTICATION


@pytest.mark.parametrize("status", [500, 502, 503, 599])
def test_server_errors_are_retryable(status):
    error = error_for_status(status)
    assert isinstance(error, HttpStatusError)
    assert error.status == status
    assert error.is_retryable()


@pytest.mark.parametrize("status", [301, 400, 404, 418])
def test_other_statuses_fall_back_to_http_status(status):
    error = error_for_status(status)
    assert isinstance(error, HttpStatusError)
    assert error.status == status
    assert not error.is_retryable()


def test_parse_retry_after():
    assert parse_retry_after(None) is None
    assert parse_retry_after(" 2.5 ") == 2.5
    assert parse_retry_after("abc") is None
    assert parse_retry_after("-1") is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


def test_rpc_error_mapping():
    error = error_for_rpc({"code": -32603, "message": "Internal error"}, method="getBlockProduction")
    assert error.code == -32603
    assert error.rpc_message == "Internal error"
    assert error.method == "getBlockProduction"
    assert error.is_retryable()
    assert error.category() == ErrorCategory.RPC

    not_retryable = error_for_rpc({"code": -32602, "message": "Invalid params"})
    assert not not_retryable.is_retryable()


def test_rpc_error_mapping_tolerates_odd_shapes():
    missing = error_for_rpc({})
    assert missing.code == -1
    assert missing.rpc_message == "Unknown RPC error"

    text = error_for_rpc("node is behind")
    assert text.code == -1
    assert text.rpc_message == "node is behind"


def test_no_kind_is_both_retryable_and_config_error():
    for error in all_kinds():
        assert not (error.is_retryable() and error.is_config_error()), type(error).__name__


def test_terminal_kinds():
    assert not ConfigurationError("x").is_retryable()
    assert ConfigurationError("x").is_config_error()
    assert not NoDataError().is_retryable()
    assert InvalidSlotRangeError("x").is_config_error()
    assert InvalidSlotRangeError("x").category() == ErrorCategory.VALIDATION


def test_default_retry_delays():
    assert RequestTimeoutError(1.0, "op").retry_delay() == 5.0
    assert TransportError("down").retry_delay() == 2.0
    assert RateLimitError(retry_after=4).retry_delay() == 4
    assert HttpStatusError(503).retry_delay() is None
    assert RpcError(-32603, "x").retry_delay() is None
    assert ConfigurationError("x").retry_delay() is None


def test_categories():
    assert TransportError("x").category() == ErrorCategory.NETWORK
    assert RequestTimeoutError(1.0, "op").category() == ErrorCategory.NETWORK
    assert RateLimitError().category() == ErrorCategory.RATE_LIMIT
    assert ConfigurationError("x").category() == ErrorCategory.CONFIGURATION
    assert NoDataError().category() == ErrorCategory.RPC
    assert MalformedResponseError("x").category() == ErrorCategory.RPC


def test_timeout_hints_depend_on_phase():
    connect = RequestTimeoutError(5.0, "POST", TimeoutType.CONNECTION)
    read = RequestTimeoutError(5.0, "POST", TimeoutType.READ)
    assert "Check network connectivity" in connect.debug_hints()
    assert "RPC server is not responding" in read.debug_hints()


def test_retries_exhausted_wraps_last_error():
    last = RateLimitError(retry_after=2)
    error = RetriesExhaustedError(3, 4.5, last, ["attempt 1: a", "attempt 2: b", "attempt 3: c"])
    assert error.last_error is last
    assert error.attempts == 3
    assert error.category() == ErrorCategory.RATE_LIMIT
    assert error.debug_hints() == last.debug_hints()
    data = error.to_dict()
    assert data["type"] == "RetriesExhaustedError"
    assert data["error_history"] == ["attempt 1: a", "attempt 2: b", "attempt 3: c"]
    assert data["last_error"]["type"] == "RateLimitError"


def test_configuration_error_hints_use_suggestion():
    error = ConfigurationError("bad", field="timeout", suggestion="Use a positive timeout")
    assert error.field == "timeout"
    assert error.debug_hints() == ["Use a positive timeout"]
    assert error.to_dict()["config_error"] is True
