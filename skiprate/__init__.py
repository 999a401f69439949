"""
skiprate - Solana validator skip rate analytics from getBlockProduction
"""

__version__ = "1.0.0"

from .client import BlockProductionClient, select_view
from .config import ClientConfig
from .errors import (
    AuthError,
    BlockProductionError,
    ConfigurationError,
    HttpStatusError,
    InvalidSlotRangeError,
    MalformedResponseError,
    NoDataError,
    RateLimitError,
    RequestTimeoutError,
    RetriesExhaustedError,
    RpcError,
    TransportError,
)
from .models import (
    AggregateStatistics,
    BlockProductionRequest,
    Distribution,
    FetchResult,
    HealthAssessment,
    NetworkStatus,
    PerformanceCategory,
    PerformanceSnapshot,
    SlotRange,
    ValidatorRecord,
)
from .rate_limiter import RateLimitConfig, RateLimiter

__all__ = [
    '__version__',
    'BlockProductionClient',
    'select_view',
    'ClientConfig',
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
    'AggregateStatistics',
    'BlockProductionRequest',
    'Distribution',
    'FetchResult',
    'HealthAssessment',
    'NetworkStatus',
    'PerformanceCategory',
    'PerformanceSnapshot',
    'SlotRange',
    'ValidatorRecord',
    'RateLimitConfig',
    'RateLimiter',
]
