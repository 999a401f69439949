"""
Skip rate analytics for block production data.

Everything in this module is synchronous and side-effect free: the same
by-identity map and slot range always produce the same statistics,
distribution and health assessment (only timestamps differ).
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import InvalidSlotRangeError, MalformedResponseError, NoDataError
from .models import (
    AggregateStatistics,
    AlertCategory,
    AlertSeverity,
    DashboardMetrics,
    Distribution,
    DistributionBucket,
    DistributionPlotData,
    FetchResult,
    GREEN,
    HealthAssessment,
    MetricCard,
    NetworkAlert,
    NetworkStatus,
    PercentilePoint,
    PerformanceCategory,
    PerformanceSnapshot,
    RED,
    SlotRange,
    TrendDirection,
    ValidatorRecord,
    YELLOW,
)

logger = logging.getLogger(__name__)

PERCENTILE_LADDER = (10, 20, 30, 40, 50, 60, 70, 80, 90, 95, 99)

# (label, lower bound, upper bound); the first and last buckets match exactly
BUCKET_BOUNDS: Tuple[Tuple[str, float, float], ...] = (
    ("0%", 0.0, 0.0),
    ("0-1%", 0.0, 1.0),
    ("1-2%", 1.0, 2.0),
    ("2-5%", 2.0, 5.0),
    ("5-10%", 5.0, 10.0),
    ("10-25%", 10.0, 25.0),
    ("25-50%", 25.0, 50.0),
    ("50-100%", 50.0, 100.0),
    ("100%", 100.0, 100.0),
)

EXPECTED_STRUCTURE = '{"result": {"value": {"byIdentity": {...}, "range": {"firstSlot": N, "lastSlot": N}}}}'


def parse_block_production(body: Any) -> Tuple[Dict[str, Tuple[int, int]], SlotRange]:
    """
    Extract the by-identity map and slot range from a getBlockProduction body.

    Raises:
        MalformedResponseError: if the body does not have the expected shape
    """
    sample = _sample(body)
    try:
        value = body["result"]["value"]
        raw_identities = value["byIdentity"]
        raw_range = value["range"]
    except (KeyError, TypeError) as e:
        raise MalformedResponseError(
            f"missing field {e}", response_sample=sample, expected_structure=EXPECTED_STRUCTURE
        )

    if not isinstance(raw_identities, Mapping):
        raise MalformedResponseError(
            "byIdentity is not an object", response_sample=sample, expected_structure=EXPECTED_STRUCTURE
        )

    by_identity: Dict[str, Tuple[int, int]] = {}
    for identity, counts in raw_identities.items():
        if (not isinstance(counts, (list, tuple)) or len(counts) != 2
                or not all(_is_count(c) for c in counts)):
            raise MalformedResponseError(
                f"invalid slot counts for {identity}: {counts!r}",
                response_sample=sample, expected_structure=EXPECTED_STRUCTURE
            )
        by_identity[identity] = (counts[0], counts[1])

    try:
        slot_range = SlotRange(first_slot=raw_range["firstSlot"], last_slot=raw_range["lastSlot"])
    except (KeyError, TypeError, ValidationError, InvalidSlotRangeError) as e:
        raise MalformedResponseError(
            f"invalid range: {e}", response_sample=sample, expected_structure=EXPECTED_STRUCTURE
        )
    return by_identity, slot_range


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _sample(body: Any, limit: int = 200) -> str:
    try:
        text = json.dumps(body)
    except (TypeError, ValueError):
        text = repr(body)
    return text[:limit]


def build_records(by_identity: Mapping[str, Sequence[int]]) -> List[ValidatorRecord]:
    """Build records sorted ascending by skip rate; ties keep input order."""
    if not by_identity:
        raise NoDataError(reason="byIdentity is empty")
    records = [
        ValidatorRecord(identity=identity, assigned_slots=counts[0], produced_blocks=counts[1])
        for identity, counts in by_identity.items()
    ]
    records.sort(key=lambda r: r.skip_rate_percent)
    return records


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence, p in [0, 1]."""
    if not sorted_values:
        return 0.0
    n = len(sorted_values)
    index = math.floor((n - 1) * p)
    return sorted_values[min(max(index, 0), n - 1)]


def median(sorted_values: Sequence[float]) -> float:
    if not sorted_values:
        return 0.0
    n = len(sorted_values)
    mid = n // 2
    if n % 2 == 0:
        return (sorted_values[mid - 1] + sorted_values[mid]) / 2.0
    return sorted_values[mid]


def _ratio_percent(part: int, whole: int) -> float:
    return 100.0 * part / whole if whole > 0 else 0.0


def compute_statistics(records: Sequence[ValidatorRecord]) -> AggregateStatistics:
    total_slots = sum(r.assigned_slots for r in records)
    total_produced = sum(r.produced_blocks for r in records)
    total_missed = sum(r.missed_slots for r in records)

    significant = [r for r in records if r.is_significant()]
    high_stake = [r for r in records if r.is_high_stake()]

    weighted_sum = 0.0
    total_weight = 0.0
    for record in significant:
        weight = record.significance_weight()
        weighted_sum += record.skip_rate_percent * weight
        total_weight += weight
    weighted_skip_rate = weighted_sum / total_weight if total_weight > 0 else 0.0

    significant_slots = sum(r.assigned_slots for r in significant)
    high_stake_slots = sum(r.assigned_slots for r in high_stake)

    rates = sorted(r.skip_rate_percent for r in records)
    significant_rates = sorted(r.skip_rate_percent for r in significant)

    return AggregateStatistics(
        total_validators=len(records),
        total_assigned_slots=total_slots,
        total_blocks_produced=total_produced,
        total_missed_slots=total_missed,
        overall_skip_rate_percent=_ratio_percent(total_missed, total_slots),
        average_skip_rate_percent=sum(rates) / len(rates) if rates else 0.0,
        median_skip_rate_percent=median(rates),
        weighted_skip_rate_percent=weighted_skip_rate,
        significant_validators_skip_rate_percent=_ratio_percent(
            sum(r.missed_slots for r in significant), significant_slots
        ),
        high_stake_skip_rate_percent=_ratio_percent(
            sum(r.missed_slots for r in high_stake), high_stake_slots
        ),
        perfect_validators=sum(1 for r in records if r.is_perfect()),
        concerning_validators=sum(1 for r in records if r.is_concerning()),
        offline_validators=sum(1 for r in records if r.is_offline()),
        low_activity_validators=sum(1 for r in records if r.is_low_activity()),
        high_stake_validators=len(high_stake),
        significant_validators=len(significant),
        skip_rate_90th_percentile=percentile(rates, 0.90),
        skip_rate_95th_percentile=percentile(rates, 0.95),
        significant_skip_rate_90th_percentile=percentile(significant_rates, 0.90),
        significant_skip_rate_95th_percentile=percentile(significant_rates, 0.95),
        network_efficiency_percent=_ratio_percent(total_produced, total_slots),
        weighted_network_efficiency_percent=_ratio_percent(
            sum(r.produced_blocks for r in significant), significant_slots
        ),
    )


def bucket_index(skip_rate: float) -> int:
    """Index into BUCKET_BOUNDS; every rate in [0, 100] lands in exactly one bucket."""
    if skip_rate <= 0.0:
        return 0
    if skip_rate >= 100.0:
        return len(BUCKET_BOUNDS) - 1
    for index, (_, lower, upper) in enumerate(BUCKET_BOUNDS[1:-1], start=1):
        if lower <= skip_rate < upper:
            return index
    return len(BUCKET_BOUNDS) - 2


def compute_distribution(records: Sequence[ValidatorRecord]) -> Distribution:
    total = len(records)
    counts = [0] * len(BUCKET_BOUNDS)
    slots = [0] * len(BUCKET_BOUNDS)
    for record in records:
        index = bucket_index(record.skip_rate_percent)
        counts[index] += 1
        slots[index] += record.assigned_slots

    buckets = [
        DistributionBucket(
            range_label=label,
            min_percent=lower,
            max_percent=upper,
            validator_count=counts[i],
            percentage_of_total=_ratio_percent(counts[i], total),
            total_slots=slots[i],
        )
        for i, (label, lower, upper) in enumerate(BUCKET_BOUNDS)
    ]

    rates = sorted(r.skip_rate_percent for r in records)
    points = [PercentilePoint(percentile=p, skip_rate_percent=percentile(rates, p / 100.0))
              for p in PERCENTILE_LADDER]

    return Distribution(
        buckets=buckets,
        percentiles=points,
        plot_data=DistributionPlotData(
            histogram_labels=[b.range_label for b in buckets],
            histogram_values=[b.validator_count for b in buckets],
            percentile_x=[p.percentile for p in points],
            percentile_y=[p.skip_rate_percent for p in points],
        ),
    )


def health_score(stats: AggregateStatistics) -> float:
    """Composite 0-100 score: 40 for skip rate, 30 for efficiency, 30 for validator health."""
    skip_component = (5.0 - min(stats.overall_skip_rate_percent, 5.0)) / 5.0 * 40.0
    efficiency_component = stats.network_efficiency_percent / 100.0 * 30.0
    if stats.total_validators > 0:
        validator_component = (
            (stats.total_validators - stats.concerning_validators) / stats.total_validators * 30.0
        )
    else:
        validator_component = 0.0
    return min(max(skip_component + efficiency_component + validator_component, 0.0), 100.0)


def _three_color(good: bool, fair: bool) -> str:
    if good:
        return GREEN
    return YELLOW if fair else RED


def build_key_metrics(stats: AggregateStatistics) -> DashboardMetrics:
    skip = stats.overall_skip_rate_percent
    efficiency = stats.network_efficiency_percent
    concerning = stats.concerning_validators
    return DashboardMetrics(
        network_skip_rate=MetricCard(
            value=f"{skip:.2f}%",
            trend=TrendDirection.UNKNOWN,
            color=_three_color(skip < 1.0, skip < 3.0),
            subtitle="Network skip rate",
        ),
        active_validators=MetricCard(
            value=str(stats.significant_validators),
            trend=TrendDirection.UNKNOWN,
            color=GREEN,
            subtitle="Active validators",
        ),
        network_efficiency=MetricCard(
            value=f"{efficiency:.1f}%",
            trend=TrendDirection.UNKNOWN,
            color=_three_color(efficiency > 99.0, efficiency > 97.0),
            subtitle="Network efficiency",
        ),
        concerning_validators=MetricCard(
            value=str(concerning),
            trend=TrendDirection.UNKNOWN,
            color=_three_color(concerning == 0, concerning < 10),
            subtitle="Concerning validators",
        ),
    )


def build_alerts(stats: AggregateStatistics, records: Sequence[ValidatorRecord],
                 timestamp: datetime) -> List[NetworkAlert]:
    """Alert conditions for the current fetch; nothing carries over between calls."""
    alerts: List[NetworkAlert] = []

    if stats.overall_skip_rate_percent > 5.0:
        alerts.append(NetworkAlert(
            severity=AlertSeverity.CRITICAL,
            message=f"High network skip rate: {stats.overall_skip_rate_percent:.2f}%",
            category=AlertCategory.SKIP_RATE,
            triggered_at=timestamp,
        ))

    if stats.concerning_validators > 20:
        concerning = [r for r in records if r.is_concerning()]
        significant_concerning = sum(1 for r in concerning if r.is_significant())
        impact = _ratio_percent(sum(r.assigned_slots for r in concerning), stats.total_assigned_slots)
        if impact > 2.0 or significant_concerning > 10:
            alerts.append(NetworkAlert(
                severity=AlertSeverity.CRITICAL if impact > 5.0 else AlertSeverity.WARNING,
                message=(
                    f"{stats.concerning_validators} validators have concerning skip rates "
                    f"({significant_concerning} significant validators, {impact:.1f}% network impact, "
                    f"{sum(r.missed_slots for r in concerning)} total missed slots)"
                ),
                category=AlertCategory.VALIDATOR_COUNT,
                triggered_at=timestamp,
            ))

    if stats.network_efficiency_percent < 95.0:
        alerts.append(NetworkAlert(
            severity=AlertSeverity.WARNING,
            message=f"Low network efficiency: {stats.network_efficiency_percent:.1f}%",
            category=AlertCategory.NETWORK_EFFICIENCY,
            triggered_at=timestamp,
        ))

    high_impact = [r for r in records if r.skip_rate_percent > 10.0 and r.assigned_slots > 1000]
    if high_impact:
        alerts.append(NetworkAlert(
            severity=AlertSeverity.CRITICAL,
            message=(
                f"{len(high_impact)} high-stake validators have >10% skip rates "
                f"(missed {sum(r.missed_slots for r in high_impact)} slots total)"
            ),
            category=AlertCategory.PERFORMANCE,
            triggered_at=timestamp,
        ))

    return alerts


def compute_network_health(stats: AggregateStatistics, records: Sequence[ValidatorRecord],
                           timestamp: Optional[datetime] = None) -> HealthAssessment:
    timestamp = timestamp or datetime.now(timezone.utc)
    score = health_score(stats)
    return HealthAssessment(
        health_score=score,
        status=NetworkStatus.from_score(score),
        key_metrics=build_key_metrics(stats),
        alerts=build_alerts(stats, records, timestamp),
    )


def create_performance_snapshots(records: Sequence[ValidatorRecord], slot_range: SlotRange,
                                 timestamp: datetime) -> List[PerformanceSnapshot]:
    return [
        PerformanceSnapshot(
            identity=r.identity,
            skip_rate_percent=r.skip_rate_percent,
            assigned_slots=r.assigned_slots,
            produced_blocks=r.produced_blocks,
            category=PerformanceCategory.for_record(r),
            slot_range=slot_range,
            timestamp=timestamp,
        )
        for r in records
    ]


def analyze(by_identity: Mapping[str, Sequence[int]], slot_range: SlotRange,
            fetched_at: Optional[datetime] = None) -> FetchResult:
    """
    Turn a raw by-identity map into a complete FetchResult.

    Args:
        by_identity: identity -> (assigned slots, produced blocks)
        slot_range: Range the counts cover
        fetched_at: Timestamp for the result, snapshots and alerts (defaults to now, UTC)

    Raises:
        NoDataError: if by_identity is empty
    """
    fetched_at = fetched_at or datetime.now(timezone.utc)
    records = build_records(by_identity)
    stats = compute_statistics(records)
    logger.debug(
        f"Analyzed {stats.total_validators} validators over {slot_range.count} slots, "
        f"overall skip rate {stats.overall_skip_rate_percent:.2f}%"
    )
    return FetchResult(
        validators=records,
        statistics=stats,
        distribution=compute_distribution(records),
        health=compute_network_health(stats, records, fetched_at),
        snapshots=create_performance_snapshots(records, slot_range, fetched_at),
        slot_range=slot_range,
        fetched_at=fetched_at,
    )


def analyze_response(body: Any, fetched_at: Optional[datetime] = None) -> FetchResult:
    """Parse a getBlockProduction body and analyze it."""
    by_identity, slot_range = parse_block_production(body)
    if not by_identity:
        raise NoDataError(
            requested_range=(slot_range.first_slot, slot_range.last_slot),
            reason="byIdentity is empty"
        )
    return analyze(by_identity, slot_range, fetched_at)
