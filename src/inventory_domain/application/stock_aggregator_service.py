# src/inventory_domain/application/stock_aggregator_service.py
"""Application service for aggregated stock views."""

import logging
from typing import Optional

from src.common.dtos.inventory_dtos import StockViewDTO
from src.inventory_domain.domain.repositories.batch_ledger_repository import IBatchLedgerRepository
from src.inventory_domain.domain.repositories.product_catalog_repository import IProductCatalogRepository

logger = logging.getLogger(__name__)


class StockAggregatorApplicationService:
    """Read-only product listings with stock summed over batches.

    Reads run outside any write transaction, so they may be slightly stale. Sales
    never decide anything from these views; they re-read stock under lock.
    """

    def __init__(self, ledger_repo: IBatchLedgerRepository, catalog_repo: IProductCatalogRepository) -> None:
        self.ledger_repo = ledger_repo
        self.catalog_repo = catalog_repo

    def list_all(self) -> list[StockViewDTO]:
        """Every product with its available stock, ordered by name."""
        views = self.ledger_repo.get_stock_views(for_sale_only=False)
        logger.debug(f"Listed stock for {len(views)} products.")
        return views

    def list_for_sale(self) -> list[StockViewDTO]:
        """Only products with available stock > 0."""
        views = self.ledger_repo.get_stock_views(for_sale_only=True)
        logger.debug(f"{len(views)} products have stock for sale.")
        return views

    def get_by_id(self, product_id: int) -> Optional[StockViewDTO]:
        """Product detail with stock, or None when it does not exist. The laboratory name is read from the catalog."""
        view = self.ledger_repo.get_stock_view(product_id)
        if view is None:
            logger.info(f"Product ID {product_id} not found.")
            return None

        if view.laboratory_id is not None:
            view.laboratory = self.catalog_repo.laboratory_name(view.laboratory_id)
        return view
