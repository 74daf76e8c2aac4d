# src/inventory_domain/application/order_intake_service.py
"""Application service for recording purchase orders as new batches."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from src.common.dtos.inventory_dtos import (
    OrderDetailDTO,
    OrderLineDTO,
    OrderResultDTO,
    OrderSummaryDTO,
)
from src.common.exceptions.custom_exceptions import (
    DatabaseError,
    InternalError,
    ReferenceNotFoundError,
    ValidationError,
)
from src.common.utils.date_utils import SystemClock, parse_date
from src.common.utils.number_utils import check_amount_range, parse_amount, parse_id, parse_quantity
from src.inventory_domain.domain.entities.batch import Batch
from src.inventory_domain.domain.entities.purchase import PurchaseBill, PurchaseLine
from src.inventory_domain.domain.repositories.batch_ledger_repository import IBatchLedgerRepository

logger = logging.getLogger(__name__)


@dataclass
class _PreparedOrderLine:
    product_id: int
    batch_label: str
    expiration_date: date
    quantity: int
    unit_cost: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_cost * self.quantity


class OrderIntakeApplicationService:
    """Creates purchase bills and their batches in one transaction."""

    def __init__(self, ledger_repo: IBatchLedgerRepository, clock: SystemClock) -> None:
        self.ledger_repo = ledger_repo
        self.clock = clock

    def _prepare_lines(self, lines: list[OrderLineDTO]) -> list[_PreparedOrderLine]:
        if not lines:
            raise ValidationError("An order needs at least one line")

        prepared = []
        for number, line in enumerate(lines, 1):
            label = (line.batch_label or "").strip()
            if not label:
                raise ValidationError(f"Line {number}: batch label is required")
            prepared.append(
                _PreparedOrderLine(
                    product_id=parse_id(line.product_id, f"Line {number}: product ID"),
                    batch_label=label,
                    expiration_date=parse_date(line.expiration_date, f"Line {number}: expiration date"),
                    quantity=parse_quantity(line.quantity, f"Line {number}: quantity"),
                    unit_cost=parse_amount(line.unit_cost, f"Line {number}: unit cost"),
                )
            )
            check_amount_range(prepared[-1].total, f"Line {number}: total")
        check_amount_range(sum(line.total for line in prepared), "Order total")
        return prepared

    def _write_order(
        self, prepared: list[_PreparedOrderLine], product_ids: set[int], total_value: Decimal
    ) -> tuple[PurchaseBill, list[PurchaseLine], list[Batch]]:
        with self.ledger_repo.transaction() as uow:
            missing = product_ids - uow.existing_product_ids(product_ids)
            if missing:
                logger.warning(f"Order rejected, unknown product IDs: {sorted(missing)}")
                raise ReferenceNotFoundError("One or more products do not exist", missing_ids=list(missing))

            bill = uow.insert_purchase_bill(value=total_value, created_at=self.clock.now())

            entry_date = self.clock.today()
            created_lines = []
            created_batches = []
            for line in prepared:
                purchase_line = uow.insert_purchase_line(
                    bill_id=bill.id,
                    product_id=line.product_id,
                    unit_cost=line.unit_cost,
                    quantity=line.quantity,
                    total=line.total,
                )
                created_lines.append(purchase_line)
                created_batches.append(
                    uow.create_batch(
                        product_id=line.product_id,
                        batch_label=line.batch_label,
                        expiration_date=line.expiration_date,
                        quantity=line.quantity,
                        unit_cost=line.unit_cost,
                        entry_date=entry_date,
                        purchase_line_id=purchase_line.id,
                    )
                )
        return bill, created_lines, created_batches

    def create_order(self, lines: list[OrderLineDTO]) -> OrderResultDTO:
        """
        Records a purchase: one bill, one purchase line per input line, and one new
        batch per line entered today.

        Either everything is written or nothing is. Unknown products are detected
        before the first write and raise ReferenceNotFoundError.
        """
        prepared = self._prepare_lines(lines)
        product_ids = {line.product_id for line in prepared}
        total_value = sum((line.total for line in prepared), Decimal("0.00"))
        logger.info(f"Creating order with {len(prepared)} lines for {len(product_ids)} products.")

        try:
            bill, created_lines, created_batches = self._write_order(prepared, product_ids, total_value)
        except DatabaseError as e:
            logger.exception(f"Order with {len(prepared)} lines rolled back after a storage failure.")
            raise InternalError("The order could not be recorded", original_exception=e)

        summary = OrderSummaryDTO(
            batch_count=len(created_batches),
            distinct_product_count=len(product_ids),
            total_value=total_value,
        )
        logger.info(
            f"Order {bill.id} committed: {summary.batch_count} batches, "
            f"{summary.distinct_product_count} products, total {summary.total_value}."
        )
        return OrderResultDTO(bill=bill, lines=created_lines, batches=created_batches, summary=summary)

    def list_orders(self) -> list[PurchaseBill]:
        return self.ledger_repo.list_purchase_bills()

    def get_order(self, bill_id: int) -> Optional[OrderDetailDTO]:
        """The bill with its lines and the batches they created, or None."""
        return self.ledger_repo.get_purchase_bill(bill_id)
