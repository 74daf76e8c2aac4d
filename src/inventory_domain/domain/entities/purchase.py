"""Purchase bill (order header) and purchase line entities."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class PurchaseBill:
    value: Decimal
    created_at: datetime
    id: int | None = None


@dataclass
class PurchaseLine:
    bill_id: int
    product_id: int
    unit_cost: Decimal
    quantity: int
    total: Decimal
    id: int | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Purchase line quantity must be positive.")
        if self.unit_cost < 0:
            raise ValueError("Unit cost cannot be negative.")
