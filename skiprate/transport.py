"""
Resilient JSON-RPC transport.

RpcTransport executes one JSON-RPC call with bounded retries. Each attempt
goes through the rate limiter, is sent under the per-attempt timeout and is
classified into success or a BlockProductionError; decide() then moves the
attempt loop to its next state.
"""

import asyncio
import itertools
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import aiohttp

from .config import ClientConfig
from .errors import (
    BlockProductionError,
    HttpStatusError,
    MalformedResponseError,
    RateLimitError,
    RequestTimeoutError,
    RetriesExhaustedError,
    TimeoutType,
    TransportError,
    error_for_rpc,
    error_for_status,
)
from .models import ResponseMetadata
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
HEALTH_PROBE_ID = 1
RATE_LIMIT_STEP = 0.1  # seconds per attempt when no Retry-After is given


@dataclass
class HttpResponse:
    """Status, headers and raw body of one HTTP exchange."""
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class AiohttpSender:
    """
    HTTP sender backed by a single aiohttp ClientSession.

    Network failures are translated into TransportError / RequestTimeoutError
    so nothing aiohttp-specific escapes this class.
    """

    def __init__(self, headers: Optional[Dict[str, str]] = None,
                 max_connections: int = 10, user_agent: Optional[str] = None):
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        if user_agent:
            self.headers.setdefault("User-Agent", user_agent)
        self.max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: ClientConfig) -> "AiohttpSender":
        return cls(headers=config.headers, max_connections=config.max_concurrent_requests,
                   user_agent=config.user_agent)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.max_connections)
            self._session = aiohttp.ClientSession(connector=connector, headers=self.headers)
        return self._session

    async def post(self, url: str, payload: Dict[str, Any], timeout: float) -> HttpResponse:
        session = self._get_session()
        try:
            async with asyncio.timeout(timeout):
                async with session.post(url, json=payload,
                                        timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                    body = await response.read()
                    return HttpResponse(status=response.status, headers=dict(response.headers), body=body)
        except aiohttp.ConnectionTimeoutError:
            raise RequestTimeoutError(timeout, f"connect to {url}", TimeoutType.CONNECTION)
        except aiohttp.ServerTimeoutError:
            raise RequestTimeoutError(timeout, f"read from {url}", TimeoutType.READ)
        except TimeoutError:
            raise RequestTimeoutError(timeout, f"POST {url}", TimeoutType.REQUEST)
        except aiohttp.ClientError as e:
            raise TransportError(str(e) or type(e).__name__, endpoint=url)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class AttemptOutcome(str, Enum):
    """States the attempt loop can move to after one attempt."""
    SUCCESS = "success"
    RETRY = "retry"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryDecision:
    outcome: AttemptOutcome
    delay: float = 0.0
    error: Optional[BlockProductionError] = None


def is_retried_by_transport(error: BlockProductionError) -> bool:
    """
    Whether the transport retries this error itself.

    Only transport-level failures qualify: connect/timeout, 429 and 5xx.
    RPC errors, malformed bodies and auth failures are terminal here even if
    the error reports itself as retryable to callers.
    """
    if isinstance(error, (TransportError, RequestTimeoutError, RateLimitError)):
        return True
    return isinstance(error, HttpStatusError) and error.is_server_error()


def decide(error: Optional[BlockProductionError], attempt: int, max_attempts: int,
           backoff: float = 0.0) -> RetryDecision:
    """
    Next state of the attempt loop.

    Args:
        error: Classified failure of this attempt, None on success
        attempt: 1-based number of the attempt that just finished
        max_attempts: Configured attempt count
        backoff: Delay between timeout/connect/5xx retries
    """
    if error is None:
        return RetryDecision(AttemptOutcome.SUCCESS)
    if not is_retried_by_transport(error):
        return RetryDecision(AttemptOutcome.FAILED, error=error)
    if attempt >= max_attempts:
        return RetryDecision(AttemptOutcome.EXHAUSTED, error=error)
    if isinstance(error, RateLimitError):
        delay = error.retry_after if error.retry_after is not None else RATE_LIMIT_STEP * attempt
    else:
        delay = backoff
    return RetryDecision(AttemptOutcome.RETRY, delay=delay, error=error)


@dataclass
class RpcResult:
    """Parsed body of a successful call with its request and metadata."""
    body: Dict[str, Any]
    metadata: ResponseMetadata
    request: Dict[str, Any]


class RpcTransport:
    """Executes JSON-RPC calls against one endpoint."""

    def __init__(self, config: ClientConfig, rate_limiter: Optional[RateLimiter] = None,
                 sender=None, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the transport.

        Args:
            config: Validated client configuration
            rate_limiter: Shared limiter; one is built from config.rate_limit when omitted
            sender: Object with ``async post(url, payload, timeout) -> HttpResponse``
            sleep: Coroutine used between retries
            clock: Monotonic clock for elapsed time
        """
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter.per_second(config.rate_limit)
        self.sender = sender or AiohttpSender.from_config(config)
        self._sleep = sleep
        self._clock = clock
        self._ids = itertools.count(HEALTH_PROBE_ID + 1)

    @property
    def endpoint(self) -> str:
        return self.config.rpc_endpoint

    def next_id(self) -> int:
        return next(self._ids)

    def build_request(self, method: str, params: Optional[List[Any]] = None,
                      request_id: Optional[int] = None) -> Dict[str, Any]:
        """Build a JSON-RPC 2.0 envelope; params is left out when None."""
        request: Dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id if request_id is not None else self.next_id(),
            "method": method,
        }
        if params is not None:
            request["params"] = params
        return request

    async def call(self, method: str, params: Optional[List[Any]] = None,
                   request_id: Optional[int] = None) -> RpcResult:
        """
        Execute one JSON-RPC call.

        Returns:
            RpcResult with the parsed body

        Raises:
            BlockProductionError: the classified failure of the last attempt; after
                more than one attempt it is chained from a RetriesExhaustedError
                holding the per-attempt history
        """
        request = self.build_request(method, params, request_id)
        overall = self.config.overall_timeout
        if overall is None:
            return await self._execute(method, request)
        try:
            async with asyncio.timeout(overall):
                return await self._execute(method, request)
        except TimeoutError:
            logger.error(f"{method} did not complete within {overall}s")
            raise RequestTimeoutError(overall, method, TimeoutType.REQUEST)

    async def _execute(self, method: str, request: Dict[str, Any]) -> RpcResult:
        max_attempts = self.config.retry_attempts
        start = self._clock()
        history: List[str] = []
        rate_limited = False
        attempt = 0

        while True:
            attempt += 1
            if await self.rate_limiter.acquire() > 0:
                rate_limited = True

            response: Optional[HttpResponse] = None
            logger.debug(f"{method} attempt {attempt}/{max_attempts} to {self.endpoint}")
            try:
                response = await self.sender.post(self.endpoint, request, self.config.timeout)
                error = error_for_status(response.status, response.headers)
            except BlockProductionError as e:
                error = e

            decision = decide(error, attempt, max_attempts, self.config.retry_backoff)

            if decision.outcome == AttemptOutcome.SUCCESS:
                body = self._parse_body(method, response)
                elapsed = self._clock() - start
                logger.info(f"{method} succeeded after {attempt} attempt(s) in {elapsed * 1000:.0f}ms")
                metadata = ResponseMetadata(
                    endpoint=self.endpoint,
                    response_time_ms=elapsed * 1000.0,
                    attempts=attempt,
                    rate_limited=rate_limited,
                )
                return RpcResult(body=body, metadata=metadata, request=request)

            history.append(f"attempt {attempt}: {type(error).__name__}: {error.message}")

            if decision.outcome == AttemptOutcome.FAILED:
                logger.error(f"{method} failed: {error.message}")
                raise error

            if decision.outcome == AttemptOutcome.EXHAUSTED:
                if attempt == 1:
                    logger.error(f"{method} failed: {error.message}")
                    raise error
                elapsed = self._clock() - start
                logger.error(f"{method} failed after {attempt} attempts: {error.message}")
                raise error from RetriesExhaustedError(attempt, elapsed, error, history)

            if isinstance(error, RateLimitError):
                rate_limited = True
            logger.warning(
                f"{method} attempt {attempt}/{max_attempts} failed ({error.message}), "
                f"retrying in {decision.delay:.2f}s"
            )
            if decision.delay > 0:
                await self._sleep(decision.delay)

    def _parse_body(self, method: str, response: HttpResponse) -> Dict[str, Any]:
        try:
            body = json.loads(response.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedResponseError(
                f"invalid JSON: {e}",
                response_sample=response.body[:200].decode("utf-8", errors="replace")
            )
        if not isinstance(body, dict):
            raise MalformedResponseError(f"expected a JSON object, got {type(body).__name__}")
        if body.get("error") is not None:
            error = error_for_rpc(body["error"], method=method, raw_response=json.dumps(body)[:1000])
            logger.error(f"RPC error in {method}: {error.message}")
            raise error
        return body

    async def health_check(self) -> bool:
        """Issue getHealth and report whether the endpoint answered with a result."""
        try:
            rpc = await self.call("getHealth", request_id=HEALTH_PROBE_ID)
        except BlockProductionError as e:
            logger.error(f"Health check against {self.endpoint} failed: {e.message}")
            return False
        if "result" not in rpc.body:
            logger.error(f"Health check against {self.endpoint} returned no result")
            return False
        return True

    async def close(self) -> None:
        close = getattr(self.sender, "close", None)
        if close is not None:
            await close()
