# src/inventory_domain/domain/services/fifo_allocation.py
"""FIFO (earliest-expiration-first) deduction planning."""

from dataclasses import dataclass
from typing import Iterable

from src.common.exceptions.custom_exceptions import InternalError
from src.inventory_domain.domain.entities.batch import Batch


@dataclass(frozen=True)
class BatchDeduction:
    """What one sale line takes out of one batch."""

    batch_id: int
    previous_quantity: int
    new_quantity: int

    @property
    def deducted(self) -> int:
        return self.previous_quantity - self.new_quantity


def plan_fifo_deduction(product_id: int, batches: Iterable[Batch], quantity: int) -> list[BatchDeduction]:
    """
    Walks batches in the order given (the ledger already sorts them by expiration
    date, then id) and takes min(batch.quantity, remaining) from each until the
    requested quantity is covered.

    Raises InternalError if the batches run out first. Callers check availability
    beforehand, so this only happens when the rows changed underneath them.
    """
    remaining = quantity
    plan: list[BatchDeduction] = []

    for batch in batches:
        if batch.quantity <= 0:
            continue

        take = min(batch.quantity, remaining)
        plan.append(
            BatchDeduction(batch_id=batch.id, previous_quantity=batch.quantity, new_quantity=batch.quantity - take)
        )
        remaining -= take
        if remaining == 0:
            break

    if remaining > 0:
        raise InternalError(
            f"FIFO walk for product ID {product_id} ran out of batches with {remaining} of {quantity} units left"
        )
    return plan
