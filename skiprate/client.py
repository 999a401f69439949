"""
Block production client.

Composes the RPC transport and the analytics functions into named
operations and derived validator views.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import analytics
from .config import ClientConfig
from .errors import ConfigurationError
from .models import (
    BlockProductionRequest,
    DebugFetchResult,
    FetchResult,
    ValidatorRecord,
)
from .rate_limiter import RateLimiter
from .transport import RpcTransport

logger = logging.getLogger(__name__)

METHOD = "getBlockProduction"


def _by_rate(records: Iterable[ValidatorRecord], descending: bool = False) -> List[ValidatorRecord]:
    return sorted(records, key=lambda r: r.skip_rate_percent, reverse=descending)


def concerning_view(result: FetchResult) -> List[ValidatorRecord]:
    return [r for r in result.validators if r.is_concerning()]


def perfect_view(result: FetchResult) -> List[ValidatorRecord]:
    return [r for r in result.validators if r.is_perfect()]


def offline_view(result: FetchResult) -> List[ValidatorRecord]:
    return [r for r in result.validators if r.is_offline()]


def significant_view(result: FetchResult) -> List[ValidatorRecord]:
    return _by_rate(r for r in result.validators if r.is_significant())


def moderate_view(result: FetchResult) -> List[ValidatorRecord]:
    return _by_rate(r for r in result.validators if 0.0 < r.skip_rate_percent <= 5.0)


def high_activity_view(result: FetchResult) -> List[ValidatorRecord]:
    return _by_rate(r for r in result.validators if r.is_high_stake())


def worst_percentile_view(result: FetchResult) -> List[ValidatorRecord]:
    """Validators at or above the 95th percentile, worst first; offline ones are excluded."""
    threshold = result.statistics.skip_rate_95th_percentile
    return _by_rate(
        (r for r in result.validators if threshold <= r.skip_rate_percent < 100.0),
        descending=True,
    )


VIEWS: Dict[str, Callable[[FetchResult], List[ValidatorRecord]]] = {
    "concerning": concerning_view,
    "perfect": perfect_view,
    "offline": offline_view,
    "significant": significant_view,
    "moderate": moderate_view,
    "high_activity": high_activity_view,
    "worst_percentile": worst_percentile_view,
}


def resolve_view(name: str) -> Callable[[FetchResult], List[ValidatorRecord]]:
    key = name.lower().replace("-", "_")
    if key == "high_stake":
        key = "high_activity"
    if key not in VIEWS:
        raise ConfigurationError(
            f"Unknown view '{name}'",
            field="view",
            suggestion=f"Available views: {', '.join(VIEWS)}"
        )
    return VIEWS[key]


def select_view(result: FetchResult, name: str) -> List[ValidatorRecord]:
    """Apply a named view to an already fetched result."""
    return resolve_view(name)(result)


class BlockProductionClient:
    """
    Client for getBlockProduction analytics.

    Usage:
        async with BlockProductionClient(ClientConfig.auto(url)) as client:
            result = await client.fetch_block_production()
    """

    def __init__(self, config: Optional[ClientConfig] = None,
                 transport: Optional[RpcTransport] = None,
                 rate_limiter: Optional[RateLimiter] = None):
        self.config = config or ClientConfig()
        self.rate_limiter = rate_limiter or RateLimiter.per_second(self.config.rate_limit)
        self.transport = transport or RpcTransport(self.config, rate_limiter=self.rate_limiter)

    @classmethod
    def for_endpoint(cls, endpoint: str) -> "BlockProductionClient":
        return cls(ClientConfig.auto(endpoint))

    async def __aenter__(self) -> "BlockProductionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def test_connection(self) -> bool:
        """Liveness probe; never runs analytics."""
        return await self.transport.health_check()

    async def _fetch(self, request: BlockProductionRequest):
        request.validate_range()
        logger.info(
            f"Fetching block production from {self.transport.endpoint}"
            + (f" for slots {request.first_slot}-{request.last_slot}" if request.first_slot is not None else "")
        )
        rpc = await self.transport.call(METHOD, request.to_params())
        result = analytics.analyze_response(rpc.body)
        return result, rpc

    async def fetch_block_production(self, commitment: Optional[str] = None) -> FetchResult:
        request = BlockProductionRequest.build(commitment=commitment)
        return await self.fetch_block_production_with_params(request)

    async def fetch_block_production_with_params(self, request: BlockProductionRequest) -> FetchResult:
        result, _ = await self._fetch(request)
        return result

    async def fetch_block_production_range(self, first_slot: int, last_slot: int,
                                           commitment: Optional[str] = None) -> FetchResult:
        """
        Fetch block production for an explicit slot range.

        Raises:
            InvalidSlotRangeError: if first_slot >= last_slot, before any request is sent
        """
        request = BlockProductionRequest.build(first_slot, last_slot, commitment)
        return await self.fetch_block_production_with_params(request)

    async def fetch_block_production_debug(
            self, request: Optional[BlockProductionRequest] = None) -> DebugFetchResult:
        """Fetch with the raw request/response and call metadata attached."""
        result, rpc = await self._fetch(request or BlockProductionRequest())
        return DebugFetchResult(
            result=result,
            request=rpc.request,
            raw_response=rpc.body,
            metadata=rpc.metadata,
        )

    async def fetch_validator_skip_rates(self, identities: Iterable[str]) -> List[ValidatorRecord]:
        """Records for the given identities; the RPC has no server-side identity filter."""
        wanted = set(identities)
        result = await self.fetch_block_production()
        return [r for r in result.validators if r.identity in wanted]

    async def fetch_ranges(self, ranges: Sequence[Tuple[int, int]]) -> List[FetchResult]:
        """Fetch several slot ranges concurrently; results follow the input order."""
        requests = [BlockProductionRequest.build(first, last) for first, last in ranges]
        for request in requests:
            request.validate_range()

        semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

        async def bounded(request: BlockProductionRequest) -> FetchResult:
            async with semaphore:
                return await self.fetch_block_production_with_params(request)

        return list(await asyncio.gather(*(bounded(r) for r in requests)))

    async def view(self, name: str) -> List[ValidatorRecord]:
        view = resolve_view(name)
        return view(await self.fetch_block_production())

    async def get_concerning_validators(self) -> List[ValidatorRecord]:
        return await self.view("concerning")

    async def get_perfect_validators(self) -> List[ValidatorRecord]:
        return await self.view("perfect")

    async def get_offline_validators(self) -> List[ValidatorRecord]:
        return await self.view("offline")

    async def get_significant_validators(self) -> List[ValidatorRecord]:
        return await self.view("significant")

    async def get_moderate_performers(self) -> List[ValidatorRecord]:
        return await self.view("moderate")

    async def get_high_activity_validators(self) -> List[ValidatorRecord]:
        return await self.view("high_activity")

    async def get_worst_percentile_validators(self) -> List[ValidatorRecord]:
        return await self.view("worst_percentile")
