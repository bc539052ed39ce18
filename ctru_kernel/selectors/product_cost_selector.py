"""
Module: ctru_kernel.selectors.product_cost_selector
Responsibility: Read-only access to the cached per-product aggregates and the
    recalculation audit trail ("last refreshed" marker).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Aggregates are a reporting convenience.  Nothing cost-critical reads
      through this selector.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ctru_kernel.domain.dtos import ProductCostSummary
from ctru_kernel.models.product_cost import ProductCostAggregate
from ctru_kernel.models.recalculation import RecalculationRun
from ctru_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class RecalculationRunInfo:
    """A committed recalculation as recorded in the audit trail."""

    run_id: UUID
    trigger: str
    actor_id: str | None
    units_updated: int
    expenses_applied: int
    impact_per_unit: Decimal
    total_prorated: Decimal
    started_at: datetime
    committed_at: datetime

    @classmethod
    def from_model(cls, model: RecalculationRun) -> "RecalculationRunInfo":
        return cls(
            run_id=model.id,
            trigger=model.trigger,
            actor_id=model.actor_id,
            units_updated=model.units_updated,
            expenses_applied=model.expenses_applied,
            impact_per_unit=model.impact_per_unit,
            total_prorated=model.total_prorated,
            started_at=model.started_at,
            committed_at=model.committed_at,
        )


class ProductCostSelector(BaseSelector[ProductCostAggregate]):
    """Selector for cached product aggregates."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_summary(self, product_id: str) -> ProductCostSummary:
        """Cached aggregate, or an all-zero summary if never refreshed."""
        model = self.session.scalar(
            select(ProductCostAggregate).where(
                ProductCostAggregate.product_id == product_id
            )
        )
        if model is None:
            return ProductCostSummary.empty(product_id)
        return ProductCostSummary.from_model(model)

    def top_by_average(self, limit: int = 10) -> list[ProductCostSummary]:
        # Sorted in Python: SQLite stores Numeric as float
        models = self.session.scalars(select(ProductCostAggregate))
        ordered = sorted(
            models,
            key=lambda m: (-m.average_cost, m.product_id),
        )
        return [ProductCostSummary.from_model(m) for m in ordered[:limit]]

    def last_run(self) -> RecalculationRunInfo | None:
        model = self.session.scalar(
            select(RecalculationRun)
            .order_by(RecalculationRun.committed_at.desc())
            .limit(1)
        )
        return RecalculationRunInfo.from_model(model) if model is not None else None
