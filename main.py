"""Main application entry point: wires the inventory ledger and runs the daily expiry report."""

import logging
import time
from dataclasses import dataclass

import pytz
import schedule

from src.common.config.settings import settings
from src.common.exceptions.custom_exceptions import ApplicationError, DatabaseError
from src.common.logger_config import setup_logging
from src.common.utils.date_utils import SystemClock
from src.inventory_domain.application.expiry_scanner_service import ExpiryScannerApplicationService
from src.inventory_domain.application.order_intake_service import OrderIntakeApplicationService
from src.inventory_domain.application.sale_processor_service import SaleProcessorApplicationService
from src.inventory_domain.application.stock_aggregator_service import StockAggregatorApplicationService
from src.inventory_domain.infrastructure.persistence.mysql_batch_ledger_repository import (
    MySQLBatchLedgerRepository,
)
from src.inventory_domain.infrastructure.persistence.mysql_connection_pool import create_connection_pool
from src.inventory_domain.infrastructure.persistence.mysql_product_catalog_repository import (
    MySQLProductCatalogRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class InventoryServices:
    """Everything the service layer needs, built once at process start."""

    catalog_repository: MySQLProductCatalogRepository
    ledger_repository: MySQLBatchLedgerRepository
    order_intake: OrderIntakeApplicationService
    sale_processor: SaleProcessorApplicationService
    stock_aggregator: StockAggregatorApplicationService
    expiry_scanner: ExpiryScannerApplicationService


def setup_inventory_dependencies() -> InventoryServices:
    """Initializes and wires up inventory domain dependencies around one shared connection pool."""
    pool = create_connection_pool()
    clock = SystemClock(settings.TIMEZONE)

    catalog_repository = MySQLProductCatalogRepository(pool)
    ledger_repository = MySQLBatchLedgerRepository(pool)

    return InventoryServices(
        catalog_repository=catalog_repository,
        ledger_repository=ledger_repository,
        order_intake=OrderIntakeApplicationService(ledger_repo=ledger_repository, clock=clock),
        sale_processor=SaleProcessorApplicationService(ledger_repo=ledger_repository, clock=clock),
        stock_aggregator=StockAggregatorApplicationService(
            ledger_repo=ledger_repository, catalog_repo=catalog_repository
        ),
        expiry_scanner=ExpiryScannerApplicationService(ledger_repo=ledger_repository, clock=clock),
    )


def create_inventory_db_tables(services: InventoryServices) -> None:
    """Creates catalog tables first, then the ledger tables that reference them."""
    try:
        services.catalog_repository.create_tables()
        services.ledger_repository.create_tables()
        logger.info("✅ Database tables created/verified successfully")
    except DatabaseError as e:
        logger.error(f"❌ Error creating inventory database tables: {e}")
        raise


def run_expiry_report(services: InventoryServices, horizon_days: int = settings.EXPIRY_REPORT_DAYS) -> None:
    """Logs every product with stock expiring within horizon_days."""
    logger.info(f"--- Expiry report for the next {horizon_days} days ---")
    try:
        report = services.expiry_scanner.scan_expiring(horizon_days)
    except ApplicationError as e:
        logger.error(f"Expiry report failed: {e}")
        return

    if not report:
        logger.info("No batches expire in this window.")
        return

    for product in report:
        logger.info(
            f"{product.product_name} ({product.laboratory or 'no laboratory'}): "
            f"{product.total_stock} units in {len(product.batches)} batches, "
            f"first expires in {product.min_days_to_expire} days"
        )
        for batch in product.batches:
            logger.info(
                f"    Batch {batch.batch_label}: {batch.quantity} units, expires {batch.expiration_date} "
                f"({batch.days_to_expire} days), entered {batch.entry_date}"
            )


if __name__ == "__main__":
    setup_logging()
    logger.info("Inventory ledger service started.")

    inventory_services = setup_inventory_dependencies()
    create_inventory_db_tables(inventory_services)
    run_expiry_report(inventory_services)

    local_tz = pytz.timezone(settings.TIMEZONE)
    logger.info(f"Scheduling expiry report for every day at {settings.EXPIRY_REPORT_TIME} ({local_tz.zone}).")
    schedule.every().day.at(settings.EXPIRY_REPORT_TIME, local_tz).do(run_expiry_report, inventory_services)

    while True:
        schedule.run_pending()
        time.sleep(1)  # Wait one second before checking again
