# src/inventory_domain/application/expiry_scanner_service.py
"""Application service reporting batches that are about to expire."""

import logging
from datetime import timedelta

from src.common.dtos.inventory_dtos import ExpiringBatchDTO, ExpiringProductDTO
from src.common.exceptions.custom_exceptions import ValidationError
from src.common.utils.date_utils import SystemClock, days_between
from src.inventory_domain.domain.repositories.batch_ledger_repository import IBatchLedgerRepository

logger = logging.getLogger(__name__)


class ExpiryScannerApplicationService:

    def __init__(self, ledger_repo: IBatchLedgerRepository, clock: SystemClock) -> None:
        self.ledger_repo = ledger_repo
        self.clock = clock

    def scan_expiring(self, horizon_days: int) -> list[ExpiringProductDTO]:
        """
        Finds batches with stock left whose expiration date falls in
        [today, today + horizon_days), grouped by product.

        Args:
            horizon_days: Size of the window in days, at least 1.

        Returns:
            One ExpiringProductDTO per product, soonest-expiring product first. A
            product is placed by its earliest batch, whatever its other batches are.
        """
        if isinstance(horizon_days, bool) or not isinstance(horizon_days, int):
            raise ValidationError(f"horizon_days must be an integer, got {horizon_days!r}")
        if horizon_days < 1:
            raise ValidationError(f"horizon_days must be at least 1, got {horizon_days}")

        today = self.clock.today()
        end = today + timedelta(days=horizon_days)
        records = self.ledger_repo.get_expiring_batches(today, end)

        grouped: dict[int, ExpiringProductDTO] = {}
        for record in records:
            group = grouped.get(record.product_id)
            if group is None:
                group = ExpiringProductDTO(
                    product_id=record.product_id,
                    product_name=record.product_name,
                    laboratory=record.laboratory,
                    sales_price=record.sales_price,
                )
                grouped[record.product_id] = group

            group.total_stock += record.quantity
            group.batches.append(
                ExpiringBatchDTO(
                    batch_id=record.batch_id,
                    batch_label=record.batch_label,
                    expiration_date=record.expiration_date,
                    quantity=record.quantity,
                    entry_date=record.entry_date,
                    days_to_expire=days_between(today, record.expiration_date),
                )
            )

        for group in grouped.values():
            group.batches.sort(key=lambda batch: (batch.expiration_date, batch.batch_id))

        report = sorted(grouped.values(), key=lambda group: (group.min_days_to_expire, group.product_name))
        logger.info(
            f"Expiry scan for the next {horizon_days} days: {len(records)} batches across {len(report)} products."
        )
        return report
