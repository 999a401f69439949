"""
Models for block production data and validator analytics.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, model_validator

from .errors import ConfigurationError, InvalidSlotRangeError

SIGNIFICANT_SLOTS = 50
HIGH_STAKE_SLOTS = 1000
LOW_ACTIVITY_SLOTS = 10
CONCERNING_SKIP_RATE = 5.0

GREEN = "#22c55e"
YELLOW = "#eab308"
ORANGE = "#f97316"
RED = "#ef4444"


class FrozenModel(BaseModel):
    """Immutable value object base."""
    model_config = ConfigDict(frozen=True)


class Commitment(str, Enum):
    """Commitment levels accepted by getBlockProduction."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @classmethod
    def parse(cls, value: Any) -> "Commitment":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown commitment level '{value}'",
                field="commitment",
                suggestion="Use one of: processed, confirmed, finalized"
            )


class SlotRange(FrozenModel):
    """Inclusive slot range reported for (or requested from) getBlockProduction."""
    first_slot: int = Field(ge=0)
    last_slot: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "SlotRange":
        if self.last_slot < self.first_slot:
            raise InvalidSlotRangeError(
                f"last_slot {self.last_slot} is before first_slot {self.first_slot}",
                provided_range=(self.first_slot, self.last_slot)
            )
        return self

    @property
    def count(self) -> int:
        return self.last_slot - self.first_slot

    def to_rpc(self) -> Dict[str, int]:
        return {"firstSlot": self.first_slot, "lastSlot": self.last_slot}


class BlockProductionRequest(FrozenModel):
    """Optional parameters for a getBlockProduction call."""
    first_slot: Optional[int] = Field(default=None, ge=0)
    last_slot: Optional[int] = Field(default=None, ge=0)
    commitment: Optional[Commitment] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_commitment(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("commitment") is not None:
            data = {**data, "commitment": Commitment.parse(data["commitment"])}
        return data

    @classmethod
    def build(cls, first_slot: Optional[int] = None, last_slot: Optional[int] = None,
              commitment: Optional[Any] = None) -> "BlockProductionRequest":
        """Construct a request, reporting bad slot values as InvalidSlotRangeError."""
        try:
            return cls(first_slot=first_slot, last_slot=last_slot, commitment=commitment)
        except ValidationError as e:
            raise InvalidSlotRangeError(
                f"slots must be non-negative integers ({e.error_count()} invalid value(s))",
                provided_range=(first_slot, last_slot)
            )

    def validate_range(self) -> None:
        """Reject ranges that are not strictly increasing, before any request is sent."""
        if self.first_slot is None and self.last_slot is None:
            return
        if self.first_slot is None or self.last_slot is None:
            raise InvalidSlotRangeError(
                "both first_slot and last_slot must be provided",
                provided_range=(self.first_slot or 0, self.last_slot or 0)
            )
        if self.first_slot >= self.last_slot:
            raise InvalidSlotRangeError(
                f"first_slot ({self.first_slot}) must be less than last_slot ({self.last_slot})",
                provided_range=(self.first_slot, self.last_slot)
            )

    def to_params(self) -> List[Dict[str, Any]]:
        """Build the JSON-RPC params array; empty when nothing is set."""
        options: Dict[str, Any] = {}
        if self.first_slot is not None and self.last_slot is not None:
            options["range"] = SlotRange(first_slot=self.first_slot, last_slot=self.last_slot).to_rpc()
        if self.commitment is not None:
            options["commitment"] = self.commitment.value
        return [options] if options else []


class ValidatorRecord(FrozenModel):
    """Block production counts for one validator identity."""
    identity: str
    assigned_slots: int = Field(ge=0)
    produced_blocks: int = Field(ge=0)

    @computed_field
    @property
    def missed_slots(self) -> int:
        return max(0, self.assigned_slots - self.produced_blocks)

    @computed_field
    @property
    def skip_rate_percent(self) -> float:
        if self.assigned_slots == 0:
            return 0.0
        return 100.0 * self.missed_slots / self.assigned_slots

    def is_perfect(self) -> bool:
        return self.skip_rate_percent == 0.0 and self.assigned_slots > 0

    def is_concerning(self) -> bool:
        return self.skip_rate_percent > CONCERNING_SKIP_RATE

    def is_offline(self) -> bool:
        return self.skip_rate_percent >= 100.0

    def is_significant(self) -> bool:
        return self.assigned_slots >= SIGNIFICANT_SLOTS

    def is_high_stake(self) -> bool:
        return self.assigned_slots > HIGH_STAKE_SLOTS

    def is_low_activity(self) -> bool:
        return self.assigned_slots < LOW_ACTIVITY_SLOTS

    def significance_weight(self) -> float:
        """Logarithmic weight so very large validators do not dominate averages."""
        if self.assigned_slots == 0:
            return 0.0
        if self.assigned_slots < SIGNIFICANT_SLOTS:
            return 0.1
        return math.log(self.assigned_slots) / 10.0


class PerformanceCategory(str, Enum):
    """Per-validator performance category used for time-series and colour coding."""
    PERFECT = "Perfect"
    EXCELLENT = "Excellent"
    GOOD = "Good"
    AVERAGE = "Average"
    CONCERNING = "Concerning"
    POOR = "Poor"
    CRITICAL = "Critical"
    OFFLINE = "Offline"
    INSUFFICIENT = "Insufficient"

    @classmethod
    def from_skip_rate(cls, skip_rate: float, assigned_slots: int) -> "PerformanceCategory":
        if assigned_slots < LOW_ACTIVITY_SLOTS:
            return cls.INSUFFICIENT
        if skip_rate >= 100.0:
            return cls.OFFLINE
        if skip_rate >= 25.0:
            return cls.CRITICAL
        if skip_rate >= 10.0:
            return cls.POOR
        if skip_rate >= 5.0:
            return cls.CONCERNING
        if skip_rate >= 3.0:
            return cls.AVERAGE
        if skip_rate >= 1.0:
            return cls.GOOD
        if skip_rate > 0.0:
            return cls.EXCELLENT
        return cls.PERFECT

    @classmethod
    def for_record(cls, record: ValidatorRecord) -> "PerformanceCategory":
        return cls.from_skip_rate(record.skip_rate_percent, record.assigned_slots)

    def color_hex(self) -> str:
        return _CATEGORY_COLORS[self]

    def display_label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_COLORS = {
    PerformanceCategory.PERFECT: GREEN,
    PerformanceCategory.EXCELLENT: "#84cc16",
    PerformanceCategory.GOOD: YELLOW,
    PerformanceCategory.AVERAGE: ORANGE,
    PerformanceCategory.CONCERNING: RED,
    PerformanceCategory.POOR: "#dc2626",
    PerformanceCategory.CRITICAL: "#991b1b",
    PerformanceCategory.OFFLINE: "#374151",
    PerformanceCategory.INSUFFICIENT: "#9ca3af",
}

_CATEGORY_LABELS = {
    PerformanceCategory.PERFECT: "Perfect (0%)",
    PerformanceCategory.EXCELLENT: "Excellent (0-1%)",
    PerformanceCategory.GOOD: "Good (1-3%)",
    PerformanceCategory.AVERAGE: "Average (3-5%)",
    PerformanceCategory.CONCERNING: "Concerning (5-10%)",
    PerformanceCategory.POOR: "Poor (10-25%)",
    PerformanceCategory.CRITICAL: "Critical (25%+)",
    PerformanceCategory.OFFLINE: "Offline (100%)",
    PerformanceCategory.INSUFFICIENT: "Insufficient Data",
}


class NetworkStatus(str, Enum):
    HEALTHY = "Healthy"
    WARNING = "Warning"
    DEGRADED = "Degraded"
    CRITICAL = "Critical"

    @classmethod
    def from_score(cls, score: float) -> "NetworkStatus":
        if score >= 90.0:
            return cls.HEALTHY
        if score >= 75.0:
            return cls.WARNING
        if score >= 50.0:
            return cls.DEGRADED
        return cls.CRITICAL

    def color_hex(self) -> str:
        return {
            NetworkStatus.HEALTHY: GREEN,
            NetworkStatus.WARNING: YELLOW,
            NetworkStatus.DEGRADED: ORANGE,
            NetworkStatus.CRITICAL: RED,
        }[self]


class AlertSeverity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


class AlertCategory(str, Enum):
    SKIP_RATE = "Skip Rate"
    VALIDATOR_COUNT = "Validator Count"
    NETWORK_EFFICIENCY = "Network Efficiency"
    PERFORMANCE = "Performance"


class TrendDirection(str, Enum):
    UP = "Up"
    DOWN = "Down"
    STABLE = "Stable"
    UNKNOWN = "Unknown"


class AggregateStatistics(FrozenModel):
    """Network wide skip rate statistics for one fetch."""
    total_validators: int
    total_assigned_slots: int
    total_blocks_produced: int
    total_missed_slots: int
    overall_skip_rate_percent: float
    average_skip_rate_percent: float
    median_skip_rate_percent: float
    weighted_skip_rate_percent: float
    significant_validators_skip_rate_percent: float
    high_stake_skip_rate_percent: float
    perfect_validators: int
    concerning_validators: int
    offline_validators: int
    low_activity_validators: int
    high_stake_validators: int
    significant_validators: int
    skip_rate_90th_percentile: float
    skip_rate_95th_percentile: float
    significant_skip_rate_90th_percentile: float
    significant_skip_rate_95th_percentile: float
    network_efficiency_percent: float
    weighted_network_efficiency_percent: float


class DistributionBucket(FrozenModel):
    range_label: str
    min_percent: float
    max_percent: float
    validator_count: int
    percentage_of_total: float
    total_slots: int


class PercentilePoint(FrozenModel):
    percentile: int
    skip_rate_percent: float


class DistributionPlotData(FrozenModel):
    """Parallel arrays ready to hand to a charting library."""
    histogram_labels: List[str]
    histogram_values: List[int]
    percentile_x: List[int]
    percentile_y: List[float]


class Distribution(FrozenModel):
    buckets: List[DistributionBucket]
    percentiles: List[PercentilePoint]
    plot_data: DistributionPlotData


class MetricCard(FrozenModel):
    value: str
    previous_value: Optional[str] = None
    trend: TrendDirection = TrendDirection.UNKNOWN
    color: str
    subtitle: str


class DashboardMetrics(FrozenModel):
    network_skip_rate: MetricCard
    active_validators: MetricCard
    network_efficiency: MetricCard
    concerning_validators: MetricCard


class NetworkAlert(FrozenModel):
    severity: AlertSeverity
    message: str
    category: AlertCategory
    triggered_at: datetime


class HealthAssessment(FrozenModel):
    health_score: float = Field(ge=0.0, le=100.0)
    status: NetworkStatus
    key_metrics: DashboardMetrics
    alerts: List[NetworkAlert] = Field(default_factory=list)


class PerformanceSnapshot(FrozenModel):
    """One validator's performance for one fetch, suitable for time-series storage."""
    identity: str
    skip_rate_percent: float
    assigned_slots: int
    produced_blocks: int
    category: PerformanceCategory
    slot_range: SlotRange
    timestamp: datetime


class FetchResult(FrozenModel):
    """Everything derived from a single getBlockProduction response."""
    validators: List[ValidatorRecord]
    statistics: AggregateStatistics
    distribution: Distribution
    health: HealthAssessment
    snapshots: List[PerformanceSnapshot]
    slot_range: SlotRange
    fetched_at: datetime


class ResponseMetadata(FrozenModel):
    """Observability data for a successful RPC call."""
    endpoint: str
    response_time_ms: float
    attempts: int
    rate_limited: bool = False


class DebugFetchResult(FrozenModel):
    """Fetch result bundled with the raw exchange, for troubleshooting."""
    result: FetchResult
    request: Dict[str, Any]
    raw_response: Dict[str, Any]
    metadata: ResponseMetadata


__all__ = [
    'Commitment',
    'SlotRange',
    'BlockProductionRequest',
    'ValidatorRecord',
    'PerformanceCategory',
    'NetworkStatus',
    'AlertSeverity',
    'AlertCategory',
    'TrendDirection',
    'AggregateStatistics',
    'DistributionBucket',
    'PercentilePoint',
    'DistributionPlotData',
    'Distribution',
    'MetricCard',
    'DashboardMetrics',
    'NetworkAlert',
    'HealthAssessment',
    'PerformanceSnapshot',
    'FetchResult',
    'ResponseMetadata',
    'DebugFetchResult',
]
