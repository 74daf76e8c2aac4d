"""Batch entity."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass
class Batch:
    """A dated lot of one product. Its quantity only ever goes down after creation."""

    product_id: int
    batch_label: str
    expiration_date: date
    quantity: int
    unit_purchase_cost: Decimal
    total_purchase_cost: Decimal
    entry_date: date
    purchase_line_id: int | None = None
    id: int | None = None  # For persistence, if it has a unique DB ID

    def __post_init__(self) -> None:
        """Post-initialization for validation."""
        if self.quantity < 0:
            raise ValueError("Batch quantity cannot be negative.")
        if self.unit_purchase_cost < 0:
            raise ValueError("Unit purchase cost cannot be negative.")
