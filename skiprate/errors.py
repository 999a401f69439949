"""
Error types for block production RPC operations.

Every failure raised by the library is a BlockProductionError subclass that
carries its own retry and category metadata, so callers never need to match
on message text.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

# JSON-RPC codes worth retrying at the caller level (internal / generic server error)
RETRYABLE_RPC_CODES = frozenset({-32603, -32000})

DEFAULT_RATE_LIMIT_DELAY = 60.0
DEFAULT_TIMEOUT_DELAY = 5.0
DEFAULT_TRANSPORT_DELAY = 2.0


class ErrorCategory(str, Enum):
    """Error categories for filtering and handling."""
    NETWORK = "network"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    RPC = "rpc"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"


class TimeoutType(str, Enum):
    """Phase in which a timeout occurred."""
    CONNECTION = "connection"
    READ = "read"
    REQUEST = "request"


class AuthErrorType(str, Enum):
    """Types of authentication failures."""
    MISSING_API_KEY = "missing_api_key"
    INVALID_API_KEY = "invalid_api_key"
    QUOTA_EXCEEDED = "quota_exceeded"
    IP_BLOCKED = "ip_blocked"


class BlockProductionError(Exception):
    """Base class for all block production errors."""

    category_value = ErrorCategory.NETWORK

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def is_retryable(self) -> bool:
        """Whether retrying the same request may succeed."""
        return False

    def is_transient(self) -> bool:
        """Whether the condition is expected to clear by itself."""
        return False

    def is_config_error(self) -> bool:
        """Whether the error points at caller configuration."""
        return False

    def retry_delay(self) -> Optional[float]:
        """Suggested delay in seconds before retrying, or None."""
        return None

    def category(self) -> ErrorCategory:
        return self.category_value

    def debug_hints(self) -> List[str]:
        """Remediation hints for developers and operators."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "category": self.category().value,
            "retryable": self.is_retryable(),
            "transient": self.is_transient(),
            "config_error": self.is_config_error(),
            "retry_delay": self.retry_delay(),
        }


class TransportError(BlockProductionError):
    """Raised when the endpoint cannot be reached (network, DNS, connect)."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(f"Failed to connect to RPC endpoint: {message}")
        self.endpoint = endpoint

    def is_retryable(self) -> bool:
        return True

    def is_transient(self) -> bool:
        return True

    def retry_delay(self) -> Optional[float]:
        return DEFAULT_TRANSPORT_DELAY

    def debug_hints(self) -> List[str]:
        return [
            "Verify RPC endpoint URL is correct",
            "Check if RPC service is running",
        ]


class RequestTimeoutError(BlockProductionError):
    """Raised when a request does not complete in time."""

    def __init__(self, duration: float, operation: str,
                 timeout_type: TimeoutType = TimeoutType.REQUEST):
        super().__init__(f"Request timeout after {duration:.1f}s ({timeout_type.value}): {operation}")
        self.duration = duration
        self.operation = operation
        self.timeout_type = timeout_type

    def is_retryable(self) -> bool:
        return True

    def is_transient(self) -> bool:
        return True

    def retry_delay(self) -> Optional[float]:
        return DEFAULT_TIMEOUT_DELAY

    def debug_hints(self) -> List[str]:
        hints = [f"Request timed out after {self.duration:.1f}s"]
        if self.timeout_type == TimeoutType.CONNECTION:
            hints += ["Check network connectivity", "Verify RPC endpoint is reachable"]
        elif self.timeout_type == TimeoutType.READ:
            hints += ["RPC server is not responding", "Try a different RPC endpoint"]
        else:
            hints += ["Consider increasing request timeout", "Check network latency to RPC endpoint"]
        return hints


class RateLimitError(BlockProductionError):
    """Raised when the endpoint reports that the rate limit is exceeded."""

    category_value = ErrorCategory.RATE_LIMIT

    def __init__(self, retry_after: Optional[float] = None, message: Optional[str] = None):
        super().__init__(message or (
            f"Rate limit exceeded, retry after {retry_after:g}s" if retry_after is not None
            else "Rate limit exceeded"
        ))
        self.retry_after = retry_after

    def is_retryable(self) -> bool:
        return True

    def is_transient(self) -> bool:
        return True

    def retry_delay(self) -> Optional[float]:
        if self.retry_after is not None:
            return self.retry_after
        return DEFAULT_RATE_LIMIT_DELAY

    def debug_hints(self) -> List[str]:
        return [
            "Reduce request frequency or configure a client-side rate limit",
            "Consider using a private RPC endpoint for higher limits",
        ]


class HttpStatusError(BlockProductionError):
    """Raised for non-success HTTP statuses that have no dedicated kind."""

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"HTTP request failed with status {status}")
        self.status = status

    def is_server_error(self) -> bool:
        return 500 <= self.status <= 599

    def is_retryable(self) -> bool:
        return self.is_server_error()

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class RpcError(BlockProductionError):
    """Raised when the JSON-RPC response carries an error object."""

    category_value = ErrorCategory.RPC

    def __init__(self, code: int, message: str, method: str = "unknown",
                 raw_response: Optional[str] = None):
        super().__init__(f"RPC error ({code}): {message}")
        self.code = code
        self.rpc_message = message
        self.method = method
        self.raw_response = raw_response

    def is_retryable(self) -> bool:
        return self.code in RETRYABLE_RPC_CODES

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"code": self.code, "method": self.method})
        return data


class MalformedResponseError(BlockProductionError):
    """Raised when the response body cannot be parsed into the expected shape."""

    category_value = ErrorCategory.RPC

    def __init__(self, reason: str, response_sample: Optional[str] = None,
                 expected_structure: Optional[str] = None):
        super().__init__(f"Failed to parse RPC response: {reason}")
        self.reason = reason
        self.response_sample = response_sample
        self.expected_structure = expected_structure


class NoDataError(BlockProductionError):
    """Raised when the endpoint returned no block production records."""

    category_value = ErrorCategory.RPC

    def __init__(self, requested_range: Optional[Tuple[int, int]] = None,
                 reason: Optional[str] = None):
        super().__init__("No block production data available for the requested range")
        self.requested_range = requested_range
        self.reason = reason


class AuthError(BlockProductionError):
    """Raised when the endpoint rejects the credentials."""

    category_value = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str, auth_type: AuthErrorType):
        super().__init__(f"Authentication failed: {message}")
        self.auth_type = auth_type

    def debug_hints(self) -> List[str]:
        return {
            AuthErrorType.MISSING_API_KEY: ["Add API key to request headers"],
            AuthErrorType.INVALID_API_KEY: ["Verify API key is correct and not expired"],
            AuthErrorType.QUOTA_EXCEEDED: ["Upgrade RPC plan or wait for quota reset"],
            AuthErrorType.IP_BLOCKED: ["Contact RPC provider to unblock IP address"],
        }[self.auth_type]


class ConfigurationError(BlockProductionError):
    """Raised for invalid client configuration."""

    category_value = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, field: Optional[str] = None,
                 suggestion: Optional[str] = None):
        super().__init__(f"Configuration error: {message}")
        self.field = field
        self.suggestion = suggestion

    def is_config_error(self) -> bool:
        return True

    def debug_hints(self) -> List[str]:
        return [self.suggestion] if self.suggestion else []


class InvalidSlotRangeError(BlockProductionError):
    """Raised before any request when a slot range is not strictly increasing."""

    category_value = ErrorCategory.VALIDATION

    def __init__(self, message: str, provided_range: Optional[Tuple[int, int]] = None):
        super().__init__(f"Invalid slot range: {message}")
        self.provided_range = provided_range

    def is_config_error(self) -> bool:
        return True

    def debug_hints(self) -> List[str]:
        return ["first_slot must be strictly less than last_slot"]


class RetriesExhaustedError(BlockProductionError):
    """Attempt history chained as the cause of the final error when every attempt failed."""

    def __init__(self, attempts: int, total_duration: float,
                 last_error: BlockProductionError, error_history: List[str]):
        super().__init__(
            f"Operation failed after {attempts} attempts over {total_duration:.2f}s: {last_error.message}"
        )
        self.attempts = attempts
        self.total_duration = total_duration
        self.last_error = last_error
        self.error_history = list(error_history)

    def category(self) -> ErrorCategory:
        return self.last_error.category()

    def debug_hints(self) -> List[str]:
        return self.last_error.debug_hints()

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "attempts": self.attempts,
            "last_error": self.last_error.to_dict(),
            "error_history": self.error_history,
        })
        return data


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except (ValueError, AttributeError):
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    return seconds


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def error_for_status(status: int,
                     headers: Optional[Mapping[str, str]] = None) -> Optional[BlockProductionError]:
    """
    Map an HTTP status to an error kind.

    Args:
        status: HTTP status code
        headers: Response headers, consulted for Retry-After on 429

    Returns:
        None for 2xx statuses, otherwise the classified error
    """
    if 200 <= status <= 299:
        return None
    if status == 429:
        return RateLimitError(retry_after=parse_retry_after(_header(headers, "Retry-After")))
    if status == 401:
        return AuthError(f"HTTP {status}", AuthErrorType.INVALID_API_KEY)
    if status == 403:
        return AuthError(f"HTTP {status}", AuthErrorType.QUOTA_EXCEEDED)
    if 500 <= status <= 599:
        return HttpStatusError(status, f"Server error: HTTP {status}")
    return HttpStatusError(status)


def error_for_rpc(error: Any, method: str = "unknown",
                  raw_response: Optional[str] = None) -> RpcError:
    """Map a JSON-RPC error object to an RpcError."""
    if isinstance(error, Mapping):
        code = error.get("code")
        message = error.get("message")
    else:
        code, message = None, None
    if not isinstance(code, int) or isinstance(code, bool):
        code = -1
    if not isinstance(message, str):
        message = "Unknown RPC error" if error is None or isinstance(error, Mapping) else str(error)
    return RpcError(code, message, method=method, raw_response=raw_response)


__all__ = [
    'ErrorCategory',
    'TimeoutType',
    'AuthErrorType',
    'BlockProductionError',
    'TransportError',
    'RequestTimeoutError',
    'RateLimitError',
    'HttpStatusError',
    'RpcError',
    'MalformedResponseError',
    'NoDataError',
    'AuthError',
    'ConfigurationError',
    'InvalidSlotRangeError',
    'RetriesExhaustedError',
    'RETRYABLE_RPC_CODES',
    'parse_retry_after',
    'error_for_status',
    'error_for_rpc',
]
