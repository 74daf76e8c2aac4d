# src/inventory_domain/application/sale_processor_service.py
"""Application service for sales: FIFO depletion of batches in one transaction."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from src.common.config.settings import settings
from src.common.dtos.inventory_dtos import (
    SaleDetailDTO,
    SaleLineRequestDTO,
    SaleResultDTO,
    SaleSummaryDTO,
    StockCheckDTO,
)
from src.common.exceptions.custom_exceptions import (
    DatabaseError,
    InsufficientStockError,
    InternalError,
    ReferenceNotFoundError,
    TransactionConflictError,
    ValidationError,
)
from src.common.utils.date_utils import SystemClock
from src.common.utils.number_utils import check_amount_range, parse_amount, parse_id, parse_quantity
from src.inventory_domain.domain.entities.sale import Sale, SaleLine
from src.inventory_domain.domain.repositories.batch_ledger_repository import IBatchLedgerRepository
from src.inventory_domain.domain.services.fifo_allocation import plan_fifo_deduction

logger = logging.getLogger(__name__)


class SaleStage(Enum):
    VALIDATING = "validating"
    CHECKING = "checking"
    DEDUCTING = "deducting"
    COMMITTING = "committing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class _PreparedSaleLine:
    product_id: int
    unit_price: Decimal
    quantity: int

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


class SaleProcessorApplicationService:
    """Records sales and takes the sold units out of batches, earliest expiration first."""

    def __init__(
        self, ledger_repo: IBatchLedgerRepository, clock: SystemClock, max_retries: int | None = None
    ) -> None:
        self.ledger_repo = ledger_repo
        self.clock = clock
        self.max_retries = settings.SALE_MAX_RETRIES if max_retries is None else max_retries

    def _prepare_lines(self, description: str, lines: list[SaleLineRequestDTO]) -> list[_PreparedSaleLine]:
        if not description or not description.strip():
            raise ValidationError("Sale description is required")
        if not lines:
            raise ValidationError("A sale needs at least one product line")

        prepared = [
            _PreparedSaleLine(
                product_id=parse_id(line.product_id, f"Line {number}: product ID"),
                unit_price=parse_amount(line.unit_price, f"Line {number}: unit price"),
                quantity=parse_quantity(line.quantity, f"Line {number}: quantity"),
            )
            for number, line in enumerate(lines, 1)
        ]
        for number, line in enumerate(prepared, 1):
            check_amount_range(line.total, f"Line {number}: total")
        check_amount_range(sum(line.total for line in prepared), "Sale total")
        return prepared

    def create_sale(self, description: str, lines: list[SaleLineRequestDTO]) -> SaleResultDTO:
        """
        Records a sale and depletes stock FIFO by expiration date.

        The whole sale is one transaction. If any product lacks stock, nothing is
        deducted for any line and InsufficientStockError is raised. A lock conflict
        with a concurrent sale rolls back and re-runs from the stock check, up to
        max_retries times.

        Args:
            description: Free text stored on the sale header.
            lines: Products sold, each with its own caller-supplied unit price.

        Returns:
            SaleResultDTO with the header, the line records and a summary.
        """
        prepared = self._prepare_lines(description, lines)
        description = description.strip()
        logger.info(f"Processing sale '{description}' with {len(prepared)} lines.")

        attempt = 0
        while True:
            attempt += 1
            try:
                sale, sale_lines = self._run_sale(description, prepared)
                break
            except TransactionConflictError as e:
                if attempt > self.max_retries:
                    logger.error(f"Sale '{description}' gave up after {attempt} attempts: {e}")
                    raise InternalError(
                        "The sale could not be completed because of concurrent stock updates", original_exception=e
                    )
                logger.warning(f"Sale '{description}' attempt {attempt} lost a stock race, retrying: {e}")

        summary = SaleSummaryDTO(
            product_count=len(prepared),
            total_items=sum(line.quantity for line in prepared),
            total_value=sale.value,
        )
        logger.info(
            f"Sale {sale.id} committed: {summary.product_count} lines, "
            f"{summary.total_items} items, total {summary.total_value}."
        )
        return SaleResultDTO(sale=sale, lines=sale_lines, summary=summary)

    def _run_sale(self, description: str, prepared: list[_PreparedSaleLine]) -> tuple[Sale, list[SaleLine]]:
        """One attempt: VALIDATING -> CHECKING -> DEDUCTING -> COMMITTING inside a single transaction."""
        required: dict[int, int] = {}
        for line in prepared:
            required[line.product_id] = required.get(line.product_id, 0) + line.quantity

        stage = SaleStage.VALIDATING
        try:
            with self.ledger_repo.transaction() as uow:
                missing = set(required) - uow.existing_product_ids(required)
                if missing:
                    raise ReferenceNotFoundError("One or more products do not exist", missing_ids=list(missing))

                # Rows are locked in product-id order so two sales never wait on each other in a cycle
                stage = SaleStage.CHECKING
                for product_id in sorted(required):
                    available = uow.available_stock(product_id)
                    if available < required[product_id]:
                        raise InsufficientStockError(
                            product_id=product_id, available=available, required=required[product_id]
                        )

                stage = SaleStage.DEDUCTING
                for line in prepared:
                    plan = plan_fifo_deduction(
                        line.product_id, uow.batches_for_deduction(line.product_id), line.quantity
                    )
                    for step in plan:
                        uow.deplete(step.batch_id, step.new_quantity, expected_quantity=step.previous_quantity)
                    logger.debug(
                        f"Product ID {line.product_id}: took {line.quantity} units as (batch, units) "
                        f"{[(step.batch_id, step.deducted) for step in plan]}"
                    )

                stage = SaleStage.COMMITTING
                total_value = sum((line.total for line in prepared), Decimal("0.00"))
                sale = uow.insert_sale(
                    value=total_value,
                    sale_date=self.clock.today(),
                    description=description,
                    created_at=self.clock.now(),
                )
                sale_lines = [
                    uow.insert_sale_line(
                        sale_id=sale.id,
                        product_id=line.product_id,
                        unit_price=line.unit_price,
                        quantity=line.quantity,
                        total=line.total,
                    )
                    for line in prepared
                ]
            stage = SaleStage.DONE
            return sale, sale_lines
        except (ValidationError, InsufficientStockError) as e:
            logger.warning(f"Sale '{description}' {SaleStage.ABORTED.value} at {stage.value}: {e}")
            raise
        except TransactionConflictError:
            raise
        except InternalError:
            logger.exception(f"Sale '{description}' rolled back at {stage.value}; lines: {prepared}")
            raise
        except DatabaseError as e:
            logger.exception(f"Sale '{description}' rolled back at {stage.value} after a storage failure.")
            raise InternalError("The sale could not be recorded", original_exception=e)

    def check_stock(self, product_id: int, quantity: int) -> StockCheckDTO:
        """
        Quick availability pre-check for a caller building a sale. Reads without
        locking, so create_sale re-checks under lock regardless of the answer.
        """
        product_id = parse_id(product_id, "product ID")
        quantity = parse_quantity(quantity)

        view = self.ledger_repo.get_stock_view(product_id)
        if view is None:
            raise ReferenceNotFoundError("Product does not exist", missing_ids=[product_id])
        return StockCheckDTO(
            product_id=product_id,
            available=view.available_stock >= quantity,
            total_stock=view.available_stock,
            required=quantity,
        )

    def list_sales(self) -> list[Sale]:
        return self.ledger_repo.list_sales()

    def get_sale(self, sale_id: int) -> Optional[SaleDetailDTO]:
        return self.ledger_repo.get_sale(sale_id)
