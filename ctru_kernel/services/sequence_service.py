"""
SequenceService -- sequential numbering via locked counter rows.

Responsibility:
    Allocates the running number behind expense identifiers such as
    ``GAO-0007``.  Uses the ``ctru_sequence_counters`` table with row-level
    locking (``SELECT ... FOR UPDATE``) so concurrent registrations never
    receive the same number.

Architecture position:
    Kernel > Services.  Called by ExpenseService.

Invariants enforced:
    - Monotonic: each call returns a value strictly greater than any
      previously committed value for the same name.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError if two transactions create the same counter row on
      first use; the loser's transaction must be retried.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from ctru_kernel.logging_config import get_logger
from ctru_kernel.models.sequence import SequenceCounter
from ctru_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService[SequenceCounter]):
    """
    Service for transactional sequence numbers.

    Usage:
        seq = SequenceService(session).next_value("GAO")
        number = SequenceService.format_number("GAO", seq)  # "GAO-0001"
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it, and return the new value.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self.session.add(counter)

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    @staticmethod
    def format_number(prefix: str, value: int) -> str:
        """Zero-padded display number, e.g. ("GVD", 12) -> "GVD-0012"."""
        return f"{prefix}-{value:04d}"
