"""Laboratory and Product entities."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class Laboratory:
    name: str
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class Product:
    """Product metadata. Stock is never stored here, it is always summed from batches."""

    laboratory_id: int
    name: str
    description: str | None = None
    sales_price: Decimal | None = None
    created_at: datetime | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if self.sales_price is not None and self.sales_price < 0:
            raise ValueError("Sales price cannot be negative.")
