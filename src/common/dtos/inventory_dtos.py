"""Data Transfer Objects for orders, sales and stock views."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from src.inventory_domain.domain.entities.batch import Batch
from src.inventory_domain.domain.entities.purchase import PurchaseBill, PurchaseLine
from src.inventory_domain.domain.entities.sale import Sale, SaleLine


# --- Order intake ---


@dataclass
class OrderLineDTO:
    """One purchased lot: becomes one purchase line and one new batch."""

    product_id: int
    batch_label: str
    expiration_date: date | str
    quantity: int
    unit_cost: Decimal | int | str


@dataclass
class OrderSummaryDTO:
    batch_count: int
    distinct_product_count: int
    total_value: Decimal


@dataclass
class OrderResultDTO:
    bill: PurchaseBill
    lines: list[PurchaseLine]
    batches: list[Batch]
    summary: OrderSummaryDTO


@dataclass
class OrderBatchDetailDTO:
    """Batch created by an order, joined with its product name for display."""

    id: int
    product_id: int
    product_name: str
    purchase_line_id: int
    batch_label: str
    expiration_date: date
    quantity: int
    unit_purchase_cost: Decimal
    total_purchase_cost: Decimal
    entry_date: date


@dataclass
class OrderDetailDTO:
    """A stored order read back with the lines and the batches they created."""

    bill: PurchaseBill
    lines: list[PurchaseLine] = field(default_factory=list)
    batches: list[OrderBatchDetailDTO] = field(default_factory=list)


@dataclass
class InitialStockDTO:
    """Opening batch written together with a new product. It has no purchase line."""

    batch_label: str
    expiration_date: date
    quantity: int
    unit_cost: Decimal
    entry_date: date


# --- Sale processing ---


@dataclass
class SaleLineRequestDTO:
    product_id: int
    unit_price: Decimal | int | str
    quantity: int


@dataclass
class SaleSummaryDTO:
    product_count: int
    total_items: int
    total_value: Decimal


@dataclass
class SaleResultDTO:
    sale: Sale
    lines: list[SaleLine]
    summary: SaleSummaryDTO


@dataclass
class SaleLineDetailDTO:
    """Sale line joined with product and laboratory names for display."""

    id: int
    sale_id: int
    product_id: int
    product_name: str
    laboratory: str | None
    unit_price: Decimal
    quantity: int
    total: Decimal


@dataclass
class SaleDetailDTO:
    sale: Sale
    lines: list[SaleLineDetailDTO] = field(default_factory=list)


@dataclass
class StockCheckDTO:
    product_id: int
    available: bool
    total_stock: int
    required: int


# --- Stock views ---


@dataclass
class StockViewDTO:
    """Product with its stock summed over all of its batches."""

    product_id: int
    product_name: str
    laboratory: str | None
    available_stock: int
    sales_price: Decimal | None = None
    description: str | None = None
    laboratory_id: int | None = None


@dataclass
class ExpiringBatchRecordDTO:
    """Flat row returned by the ledger for the expiry scan, one per matching batch."""

    product_id: int
    product_name: str
    laboratory: str | None
    sales_price: Decimal | None
    batch_id: int
    batch_label: str
    expiration_date: date
    quantity: int
    entry_date: date


@dataclass
class ExpiringBatchDTO:
    batch_id: int
    batch_label: str
    expiration_date: date
    quantity: int
    entry_date: date
    days_to_expire: int


@dataclass
class ExpiringProductDTO:
    """All of one product's batches that fall inside the expiry window."""

    product_id: int
    product_name: str
    laboratory: str | None
    sales_price: Decimal | None
    total_stock: int = 0
    batches: list[ExpiringBatchDTO] = field(default_factory=list)

    @property
    def min_days_to_expire(self) -> int:
        return min(batch.days_to_expire for batch in self.batches)
