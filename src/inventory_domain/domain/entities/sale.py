"""Sale header and sale line entities."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal


@dataclass
class Sale:
    value: Decimal
    sale_date: date
    description: str
    created_at: datetime
    id: int | None = None


@dataclass
class SaleLine:
    """One product on a sale. unit_price is what the customer paid, unrelated to batch cost."""

    sale_id: int
    product_id: int
    unit_price: Decimal
    quantity: int
    total: Decimal
    id: int | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("Sale line quantity must be positive.")
        if self.unit_price < 0:
            raise ValueError("Unit price cannot be negative.")
