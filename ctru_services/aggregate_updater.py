"""
ProductAggregateUpdater -- refreshes the per-product cost cache.

Responsibility:
    Recomputes average/min/max dynamic cost of one product's active units
    and overwrites its ProductCostAggregate row.

Architecture position:
    Services -- imperative shell.  Flush-only; the caller commits.

Invariants enforced:
    - Reads live unit dynamic costs, never the previous aggregate.  A unit
      never stamped counts at its computed base landed cost.
    - A product with zero active units keeps its prior aggregate
      (stale-but-valid beats a meaningless zero).
    - Calling for an unknown product is not an error.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.aggregate import CostStatistics
from ctru_engines.currency import CurrencyResolver
from ctru_kernel.domain.clock import Clock, SystemClock
from ctru_kernel.domain.dtos import ProductCostSummary
from ctru_kernel.logging_config import get_logger
from ctru_kernel.models.product_cost import ProductCostAggregate
from ctru_kernel.selectors.unit_selector import UnitSelector
from ctru_services.landed_cost_service import LandedCostService

logger = get_logger("services.aggregate")


class ProductAggregateUpdater:
    def __init__(
        self,
        session: Session,
        config: EngineConfig,
        clock: Clock | None = None,
        resolver: CurrencyResolver | None = None,
    ):
        self.session = session
        self._config = config
        self._landed = LandedCostService(session, config, resolver)
        self._clock = clock or SystemClock()
        self._units = UnitSelector(session)
        self._stats = CostStatistics()

    def refresh(
        self,
        product_id: str,
        run_id: UUID | None = None,
    ) -> ProductCostSummary | None:
        """
        Recompute one product's aggregate.

        Returns:
            The new summary, or None when the product has no active units
            and its previous aggregate was left untouched.
        """
        rows = self._units.active_cost_rows(self._config.active_states, product_id)
        costs = [self._landed.current_cost(*row) for row in rows]
        stats = self._stats.summarize(costs=costs)
        if stats is None:
            logger.info("aggregate_kept_stale", extra={"product_id": product_id})
            return None

        aggregate = self.session.scalar(
            select(ProductCostAggregate).where(
                ProductCostAggregate.product_id == product_id
            )
        )
        if aggregate is None:
            aggregate = ProductCostAggregate(product_id=product_id)
            self.session.add(aggregate)

        aggregate.average_cost = stats.average
        aggregate.min_cost = stats.minimum
        aggregate.max_cost = stats.maximum
        aggregate.active_unit_count = stats.count
        aggregate.refreshed_at = self._clock.now()
        aggregate.refreshed_by_run_id = run_id
        self.session.flush()

        logger.debug(
            "aggregate_refreshed",
            extra={
                "product_id": product_id,
                "average_cost": str(stats.average),
                "active_unit_count": stats.count,
            },
        )
        return ProductCostSummary.from_model(aggregate)
