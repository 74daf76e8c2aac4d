# src/inventory_domain/domain/repositories/batch_ledger_repository.py
"""Batch ledger repository interfaces."""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from src.common.dtos.inventory_dtos import (
    ExpiringBatchRecordDTO,
    OrderDetailDTO,
    SaleDetailDTO,
    StockViewDTO,
)
from src.inventory_domain.domain.entities.batch import Batch
from src.inventory_domain.domain.entities.purchase import PurchaseBill, PurchaseLine
from src.inventory_domain.domain.entities.sale import Sale, SaleLine


class ILedgerUnitOfWork(ABC):
    """Reads and writes that all belong to one open transaction.

    Obtained from IBatchLedgerRepository.transaction(); everything done through it
    is committed together when the block exits normally and rolled back otherwise.
    """

    @abstractmethod
    def existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        """Returns the subset of product_ids that exist."""
        pass

    @abstractmethod
    def available_stock(self, product_id: int) -> int:
        """Sum of remaining quantity over the product's batches, 0 if none."""
        pass

    @abstractmethod
    def batches_for_deduction(self, product_id: int) -> Iterator[Batch]:
        """Batches with quantity > 0 in FIFO order, locked for the rest of the transaction.

        Always read fresh; never served from a cache.
        """
        pass

    @abstractmethod
    def create_batch(
        self,
        product_id: int,
        batch_label: str,
        expiration_date: date,
        quantity: int,
        unit_cost: Decimal,
        entry_date: date,
        purchase_line_id: Optional[int] = None,
    ) -> Batch:
        """Inserts a new batch. quantity must be > 0."""
        pass

    @abstractmethod
    def deplete(self, batch_id: int, new_quantity: int, expected_quantity: int) -> None:
        """Sets the batch's remaining quantity.

        Raises TransactionConflictError when the stored quantity is no longer expected_quantity.
        """
        pass

    @abstractmethod
    def insert_purchase_bill(self, value: Decimal, created_at: datetime) -> PurchaseBill:
        pass

    @abstractmethod
    def insert_purchase_line(
        self, bill_id: int, product_id: int, unit_cost: Decimal, quantity: int, total: Decimal
    ) -> PurchaseLine:
        pass

    @abstractmethod
    def insert_sale(self, value: Decimal, sale_date: date, description: str, created_at: datetime) -> Sale:
        pass

    @abstractmethod
    def insert_sale_line(
        self, sale_id: int, product_id: int, unit_price: Decimal, quantity: int, total: Decimal
    ) -> SaleLine:
        pass


class IBatchLedgerRepository(ABC):

    @abstractmethod
    def transaction(self) -> AbstractContextManager[ILedgerUnitOfWork]:
        """Opens an atomic transaction and yields its unit of work."""
        pass

    @abstractmethod
    def get_stock_views(self, for_sale_only: bool = False) -> list[StockViewDTO]:
        """All products with aggregated stock, ordered by product name."""
        pass

    @abstractmethod
    def get_stock_view(self, product_id: int) -> Optional[StockViewDTO]:
        """One product with aggregated stock and its laboratory id, or None. The laboratory name is not filled."""
        pass

    @abstractmethod
    def get_expiring_batches(self, start: date, end: date) -> list[ExpiringBatchRecordDTO]:
        """Batches with quantity > 0 whose expiration date is in [start, end)."""
        pass

    @abstractmethod
    def list_purchase_bills(self) -> list[PurchaseBill]:
        """All purchase bills, newest first."""
        pass

    @abstractmethod
    def get_purchase_bill(self, bill_id: int) -> Optional[OrderDetailDTO]:
        """A purchase bill with its lines and the batches those lines created."""
        pass

    @abstractmethod
    def list_sales(self) -> list[Sale]:
        """All sales, newest first."""
        pass

    @abstractmethod
    def get_sale(self, sale_id: int) -> Optional[SaleDetailDTO]:
        """A sale with its lines joined to product and laboratory names."""
        pass
