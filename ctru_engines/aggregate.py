"""
Module: ctru_engines.aggregate
Responsibility:
    Summary statistics over unit dynamic costs: per-product average/min/max
    and the monthly cost history report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - An empty cost list has NO statistics (None), never zeros; the caller
      keeps the previous aggregate instead of overwriting it.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from ctru_engines.tracer import traced_engine
from ctru_kernel.domain.dtos import CostHistoryPoint


@dataclass(frozen=True)
class CostStats:
    average: Decimal
    minimum: Decimal
    maximum: Decimal
    count: int


def _month_index(moment: datetime) -> int:
    return moment.year * 12 + (moment.month - 1)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


class CostStatistics:
    """Pure aggregate calculator."""

    @traced_engine("cost_statistics", "1.0", fingerprint_fields=("costs",))
    def summarize(self, costs: Sequence[Decimal]) -> CostStats | None:
        if not costs:
            return None
        total = sum(costs, Decimal("0"))
        return CostStats(
            average=total / len(costs),
            minimum=min(costs),
            maximum=max(costs),
            count=len(costs),
        )

    def monthly_history(
        self,
        receipts: Sequence[tuple[datetime, Decimal]],
        as_of: datetime,
        months: int = 6,
    ) -> list[CostHistoryPoint]:
        """
        Average dynamic cost per receipt month over the trailing window.

        The window covers ``months`` calendar months ending with the month
        of ``as_of``.  Months without receipts are omitted; oldest first.
        """
        if months <= 0:
            return []
        end = _month_index(_as_utc(as_of))
        start = end - (months - 1)

        buckets: dict[int, list[Decimal]] = defaultdict(list)
        for received_at, cost in receipts:
            idx = _month_index(_as_utc(received_at))
            if start <= idx <= end:
                buckets[idx].append(cost)

        points = []
        for idx in sorted(buckets):
            costs = buckets[idx]
            points.append(
                CostHistoryPoint(
                    year=idx // 12,
                    month=idx % 12 + 1,
                    average_cost=sum(costs, Decimal("0")) / len(costs),
                    unit_count=len(costs),
                )
            )
        return points
