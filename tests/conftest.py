# tests/conftest.py
import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock, Mock

import pytest
import pytz

from src.common.config.settings import settings
from src.common.dtos.inventory_dtos import (
    ExpiringBatchRecordDTO,
    OrderBatchDetailDTO,
    OrderDetailDTO,
    SaleDetailDTO,
    SaleLineDetailDTO,
    StockViewDTO,
)
from src.common.exceptions.custom_exceptions import InternalError, TransactionConflictError
from src.inventory_domain.application.expiry_scanner_service import ExpiryScannerApplicationService
from src.inventory_domain.application.order_intake_service import OrderIntakeApplicationService
from src.inventory_domain.application.sale_processor_service import SaleProcessorApplicationService
from src.inventory_domain.application.stock_aggregator_service import StockAggregatorApplicationService
from src.inventory_domain.domain.entities.batch import Batch
from src.inventory_domain.domain.entities.catalog import Laboratory, Product
from src.inventory_domain.domain.entities.purchase import PurchaseBill, PurchaseLine
from src.inventory_domain.domain.entities.sale import Sale, SaleLine
from src.inventory_domain.domain.repositories.batch_ledger_repository import (
    IBatchLedgerRepository,
    ILedgerUnitOfWork,
)
from src.inventory_domain.infrastructure.persistence.mysql_batch_ledger_repository import (
    MySQLBatchLedgerRepository,
    MySQLLedgerUnitOfWork,
)
from src.inventory_domain.infrastructure.persistence.mysql_product_catalog_repository import (
    MySQLProductCatalogRepository,
)

LOCAL_TZ = pytz.timezone("America/Bogota")


class FixedClock:
    """Clock stand-in that always reports the same instant."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()


# --- In-memory ledger used for the behavioural tests ---


class InMemoryUnitOfWork(ILedgerUnitOfWork):
    def __init__(self, ledger: "InMemoryBatchLedgerRepository") -> None:
        self._ledger = ledger

    def existing_product_ids(self, product_ids):
        return set(product_ids) & set(self._ledger.products)

    def available_stock(self, product_id):
        return sum(b.quantity for b in self._ledger.batches.values() if b.product_id == product_id)

    def batches_for_deduction(self, product_id):
        rows = sorted(
            (b for b in self._ledger.batches.values() if b.product_id == product_id and b.quantity > 0),
            key=lambda b: (b.expiration_date, b.id),
        )
        for row in rows:
            yield replace(row)

    def create_batch(
        self, product_id, batch_label, expiration_date, quantity, unit_cost, entry_date, purchase_line_id=None
    ):
        self._ledger._maybe_fail("create_batch")
        if quantity <= 0:
            raise InternalError(f"Refusing to create batch '{batch_label}' with quantity {quantity}")
        batch = Batch(
            id=self._ledger._next_id(),
            product_id=product_id,
            purchase_line_id=purchase_line_id,
            batch_label=batch_label,
            expiration_date=expiration_date,
            quantity=quantity,
            unit_purchase_cost=unit_cost,
            total_purchase_cost=unit_cost * quantity,
            entry_date=entry_date,
        )
        self._ledger.batches[batch.id] = batch
        return replace(batch)

    def deplete(self, batch_id, new_quantity, expected_quantity):
        self._ledger._maybe_fail("deplete")
        stored = self._ledger.batches[batch_id]
        if stored.quantity != expected_quantity:
            raise TransactionConflictError(f"Batch ID {batch_id} no longer holds {expected_quantity} units")
        if not 0 <= new_quantity <= expected_quantity:
            raise InternalError(f"Invalid depletion of batch ID {batch_id}")
        stored.quantity = new_quantity

    def insert_purchase_bill(self, value, created_at):
        bill = PurchaseBill(id=self._ledger._next_id(), value=value, created_at=created_at)
        self._ledger.purchase_bills[bill.id] = bill
        return replace(bill)

    def insert_purchase_line(self, bill_id, product_id, unit_cost, quantity, total):
        line = PurchaseLine(
            id=self._ledger._next_id(),
            bill_id=bill_id,
            product_id=product_id,
            unit_cost=unit_cost,
            quantity=quantity,
            total=total,
        )
        self._ledger.purchase_lines[line.id] = line
        return replace(line)

    def insert_sale(self, value, sale_date, description, created_at):
        self._ledger._maybe_fail("insert_sale")
        sale = Sale(
            id=self._ledger._next_id(), value=value, sale_date=sale_date, description=description, created_at=created_at
        )
        self._ledger.sales[sale.id] = sale
        return replace(sale)

    def insert_sale_line(self, sale_id, product_id, unit_price, quantity, total):
        line = SaleLine(
            id=self._ledger._next_id(),
            sale_id=sale_id,
            product_id=product_id,
            unit_price=unit_price,
            quantity=quantity,
            total=total,
        )
        self._ledger.sale_lines[line.id] = line
        return replace(line)


class InMemoryBatchLedgerRepository(IBatchLedgerRepository):
    """Dict-backed ledger. Transactions are serialized by a lock and undone from a snapshot on error."""

    _STATE = ("laboratories", "products", "batches", "purchase_bills", "purchase_lines", "sales", "sale_lines")

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._last_id = 0
        self._failures: dict[str, list] = {}
        self.transaction_count = 0
        for name in self._STATE:
            setattr(self, name, {})

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def fail_on(self, operation: str, error: Exception, after: int = 0, times: int = 1) -> None:
        """Makes `operation` raise `error` once `after` calls have succeeded, `times` times in a row."""
        self._failures[operation] = [after, times, error]

    def _maybe_fail(self, operation: str) -> None:
        failure = self._failures.get(operation)
        if not failure:
            return
        if failure[0] > 0:
            failure[0] -= 1
            return
        if failure[1] > 0:
            failure[1] -= 1
            raise failure[2]

    # Seeding helpers

    def add_laboratory(self, name: str) -> Laboratory:
        laboratory = Laboratory(id=self._next_id(), name=name)
        self.laboratories[laboratory.id] = laboratory
        return laboratory

    def add_product(self, laboratory_id: int, name: str, sales_price: Decimal | None = None) -> Product:
        product = Product(id=self._next_id(), laboratory_id=laboratory_id, name=name, sales_price=sales_price)
        self.products[product.id] = product
        return product

    def add_batch(
        self,
        product_id: int,
        expiration_date: date,
        quantity: int,
        batch_label: str | None = None,
        unit_cost: Decimal = Decimal("1.00"),
        entry_date: date = date(2023, 11, 1),
    ) -> Batch:
        batch = Batch(
            id=self._next_id(),
            product_id=product_id,
            batch_label=batch_label or f"L-{self._last_id}",
            expiration_date=expiration_date,
            quantity=quantity,
            unit_purchase_cost=unit_cost,
            total_purchase_cost=unit_cost * quantity,
            entry_date=entry_date,
        )
        self.batches[batch.id] = batch
        return batch

    def quantities(self, product_id: int) -> list[int]:
        """Batch quantities of a product in FIFO order."""
        rows = sorted(
            (b for b in self.batches.values() if b.product_id == product_id), key=lambda b: (b.expiration_date, b.id)
        )
        return [b.quantity for b in rows]

    # IBatchLedgerRepository

    @contextmanager
    def transaction(self):
        with self._lock:
            self.transaction_count += 1
            snapshot = {name: copy.deepcopy(getattr(self, name)) for name in self._STATE}
            try:
                yield InMemoryUnitOfWork(self)
            except BaseException:
                for name, value in snapshot.items():
                    setattr(self, name, value)
                raise

    def _stock_view(self, product: Product) -> StockViewDTO:
        laboratory = self.laboratories.get(product.laboratory_id)
        return StockViewDTO(
            product_id=product.id,
            product_name=product.name,
            laboratory=laboratory.name if laboratory else None,
            available_stock=sum(b.quantity for b in self.batches.values() if b.product_id == product.id),
            sales_price=product.sales_price,
            description=product.description,
            laboratory_id=product.laboratory_id,
        )

    def get_stock_views(self, for_sale_only=False):
        views = [self._stock_view(p) for p in sorted(self.products.values(), key=lambda p: p.name)]
        if for_sale_only:
            views = [v for v in views if v.available_stock > 0]
        return views

    def get_stock_view(self, product_id):
        product = self.products.get(product_id)
        return replace(self._stock_view(product), laboratory=None) if product else None

    def get_expiring_batches(self, start, end):
        records = []
        for batch in self.batches.values():
            if batch.quantity <= 0 or not start <= batch.expiration_date < end:
                continue
            product = self.products[batch.product_id]
            laboratory = self.laboratories.get(product.laboratory_id)
            records.append(
                ExpiringBatchRecordDTO(
                    product_id=product.id,
                    product_name=product.name,
                    laboratory=laboratory.name if laboratory else None,
                    sales_price=product.sales_price,
                    batch_id=batch.id,
                    batch_label=batch.batch_label,
                    expiration_date=batch.expiration_date,
                    quantity=batch.quantity,
                    entry_date=batch.entry_date,
                )
            )
        return sorted(records, key=lambda r: (r.expiration_date, r.product_name, r.batch_id))

    def list_purchase_bills(self):
        return sorted(self.purchase_bills.values(), key=lambda b: (b.created_at, b.id), reverse=True)

    def get_purchase_bill(self, bill_id):
        bill = self.purchase_bills.get(bill_id)
        if bill is None:
            return None
        lines = [line for line in self.purchase_lines.values() if line.bill_id == bill_id]
        line_ids = {line.id for line in lines}
        batches = [
            OrderBatchDetailDTO(
                id=b.id,
                product_id=b.product_id,
                product_name=self.products[b.product_id].name,
                purchase_line_id=b.purchase_line_id,
                batch_label=b.batch_label,
                expiration_date=b.expiration_date,
                quantity=b.quantity,
                unit_purchase_cost=b.unit_purchase_cost,
                total_purchase_cost=b.total_purchase_cost,
                entry_date=b.entry_date,
            )
            for b in self.batches.values()
            if b.purchase_line_id in line_ids
        ]
        return OrderDetailDTO(bill=bill, lines=lines, batches=batches)

    def list_sales(self):
        return sorted(self.sales.values(), key=lambda s: (s.sale_date, s.created_at, s.id), reverse=True)

    def get_sale(self, sale_id):
        sale = self.sales.get(sale_id)
        if sale is None:
            return None
        lines = []
        for line in self.sale_lines.values():
            if line.sale_id != sale_id:
                continue
            product = self.products[line.product_id]
            laboratory = self.laboratories.get(product.laboratory_id)
            lines.append(
                SaleLineDetailDTO(
                    id=line.id,
                    sale_id=line.sale_id,
                    product_id=line.product_id,
                    product_name=product.name,
                    laboratory=laboratory.name if laboratory else None,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    total=line.total,
                )
            )
        return SaleDetailDTO(sale=sale, lines=lines)


# --- Fixtures ---


@pytest.fixture(autouse=True)
def mock_settings_retry_info(mocker) -> None:
    """Pins retry and lock settings for consistent testing."""
    mocker.patch.object(settings, "SALE_MAX_RETRIES", 3)
    mocker.patch.object(settings, "DB_LOCK_WAIT_TIMEOUT", 10)


@pytest.fixture
def fixed_clock() -> FixedClock:
    """Clock frozen at 2023-12-15 10:00 local time."""
    return FixedClock(LOCAL_TZ.localize(datetime(2023, 12, 15, 10, 0, 0)))


@pytest.fixture
def ledger() -> InMemoryBatchLedgerRepository:
    return InMemoryBatchLedgerRepository()


@pytest.fixture
def laboratory(ledger) -> Laboratory:
    return ledger.add_laboratory("Genfar")


@pytest.fixture
def product_p(ledger, laboratory) -> Product:
    """Product with two batches: 5 units expiring 2024-01-01 and 10 units expiring 2024-02-01."""
    product = ledger.add_product(laboratory.id, "Acetaminofen 500mg", sales_price=Decimal("2500.00"))
    ledger.add_batch(product.id, date(2024, 1, 1), 5, batch_label="A-JAN")
    ledger.add_batch(product.id, date(2024, 2, 1), 10, batch_label="A-FEB")
    return product


@pytest.fixture
def order_intake_service(ledger, fixed_clock) -> OrderIntakeApplicationService:
    return OrderIntakeApplicationService(ledger_repo=ledger, clock=fixed_clock)


@pytest.fixture
def sale_processor_service(ledger, fixed_clock) -> SaleProcessorApplicationService:
    return SaleProcessorApplicationService(ledger_repo=ledger, clock=fixed_clock)


@pytest.fixture
def expiry_scanner_service(ledger, fixed_clock) -> ExpiryScannerApplicationService:
    return ExpiryScannerApplicationService(ledger_repo=ledger, clock=fixed_clock)


@pytest.fixture
def mock_ledger_repository() -> Mock:
    """Mock for MySQLBatchLedgerRepository."""
    return Mock(spec=MySQLBatchLedgerRepository)


@pytest.fixture
def mock_catalog_repository() -> Mock:
    """Mock for MySQLProductCatalogRepository."""
    return Mock(spec=MySQLProductCatalogRepository)


@pytest.fixture
def mock_unit_of_work(mock_ledger_repository) -> Mock:
    """Unit of work handed out by mock_ledger_repository.transaction()."""
    uow = Mock(spec=MySQLLedgerUnitOfWork)
    context = MagicMock()
    context.__enter__.return_value = uow
    context.__exit__.return_value = False
    mock_ledger_repository.transaction.return_value = context
    return uow


@pytest.fixture
def stock_aggregator_service(mock_ledger_repository, mock_catalog_repository) -> StockAggregatorApplicationService:
    """Instance of StockAggregatorApplicationService with mocked dependencies."""
    return StockAggregatorApplicationService(ledger_repo=mock_ledger_repository, catalog_repo=mock_catalog_repository)


@pytest.fixture
def mock_pool(mocker) -> MagicMock:
    """Patches the MySQL pool class; returns the pool instance the repositories will get."""
    pool_cls = mocker.patch("mysql.connector.pooling.MySQLConnectionPool")
    return pool_cls.return_value


@pytest.fixture
def mock_connection(mock_pool) -> MagicMock:
    connection = MagicMock()
    mock_pool.get_connection.return_value = connection
    return connection


@pytest.fixture
def mock_cursor(mock_connection) -> MagicMock:
    cursor = MagicMock()
    mock_connection.cursor.return_value = cursor
    return cursor
