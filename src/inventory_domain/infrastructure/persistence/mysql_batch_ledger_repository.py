# src/inventory_domain/infrastructure/persistence/mysql_batch_ledger_repository.py
"""MySQL implementation of the batch ledger."""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from mysql.connector import Error

from src.common.config.settings import settings
from src.common.dtos.inventory_dtos import (
    ExpiringBatchRecordDTO,
    OrderBatchDetailDTO,
    OrderDetailDTO,
    SaleDetailDTO,
    SaleLineDetailDTO,
    StockViewDTO,
)
from src.common.exceptions.custom_exceptions import DatabaseError, InternalError, TransactionConflictError
from src.common.utils.date_utils import format_date_for_db, format_datetime_for_db
from src.inventory_domain.domain.entities.batch import Batch
from src.inventory_domain.domain.entities.purchase import PurchaseBill, PurchaseLine
from src.inventory_domain.domain.entities.sale import Sale, SaleLine
from src.inventory_domain.domain.repositories.batch_ledger_repository import (
    IBatchLedgerRepository,
    ILedgerUnitOfWork,
)
from src.inventory_domain.infrastructure.persistence.mysql_connection_pool import (
    MySQLRepositoryBase,
    translate_mysql_error,
)

logger = logging.getLogger(__name__)

LEDGER_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS purchase_bills (
        id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        value DECIMAL(12, 2) NOT NULL,
        created_at DATETIME NOT NULL,
        INDEX idx_purchase_bills_created_at (created_at)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_lines (
        id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        bill_id BIGINT UNSIGNED NOT NULL,
        product_id INT UNSIGNED NOT NULL,
        unit_cost DECIMAL(12, 2) NOT NULL,
        quantity INT UNSIGNED NOT NULL,
        total DECIMAL(12, 2) NOT NULL,
        CONSTRAINT fk_purchase_lines_bill FOREIGN KEY (bill_id) REFERENCES purchase_bills (id),
        CONSTRAINT fk_purchase_lines_product FOREIGN KEY (product_id) REFERENCES products (id)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS product_batches (
        id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        product_id INT UNSIGNED NOT NULL,
        purchase_line_id BIGINT UNSIGNED NULL,
        batch_label VARCHAR(100) NOT NULL,
        expiration_date DATE NOT NULL,
        quantity INT NOT NULL,
        unit_purchase_cost DECIMAL(12, 2) NOT NULL,
        total_purchase_cost DECIMAL(12, 2) NOT NULL,
        entry_date DATE NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        CONSTRAINT chk_product_batches_quantity CHECK (quantity >= 0),
        CONSTRAINT fk_product_batches_product FOREIGN KEY (product_id) REFERENCES products (id),
        CONSTRAINT fk_product_batches_line FOREIGN KEY (purchase_line_id) REFERENCES purchase_lines (id),
        INDEX idx_product_batches_fifo (product_id, expiration_date, id),
        INDEX idx_product_batches_expiration (expiration_date)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS sales (
        id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        value DECIMAL(12, 2) NOT NULL,
        sale_date DATE NOT NULL,
        description VARCHAR(500) NOT NULL,
        created_at DATETIME NOT NULL,
        INDEX idx_sales_date (sale_date)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS sale_lines (
        id BIGINT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        sale_id BIGINT UNSIGNED NOT NULL,
        product_id INT UNSIGNED NOT NULL,
        unit_price DECIMAL(12, 2) NOT NULL,
        quantity INT UNSIGNED NOT NULL,
        total DECIMAL(12, 2) NOT NULL,
        CONSTRAINT fk_sale_lines_sale FOREIGN KEY (sale_id) REFERENCES sales (id),
        CONSTRAINT fk_sale_lines_product FOREIGN KEY (product_id) REFERENCES products (id)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
)

BATCH_COLUMNS = (
    "id, product_id, purchase_line_id, batch_label, expiration_date, quantity, "
    "unit_purchase_cost, total_purchase_cost, entry_date"
)


def _row_to_batch(row: dict) -> Batch:
    return Batch(
        id=row["id"],
        product_id=row["product_id"],
        purchase_line_id=row["purchase_line_id"],
        batch_label=row["batch_label"],
        expiration_date=row["expiration_date"],
        quantity=int(row["quantity"]),
        unit_purchase_cost=Decimal(row["unit_purchase_cost"]),
        total_purchase_cost=Decimal(row["total_purchase_cost"]),
        entry_date=row["entry_date"],
    )


def _row_to_stock_view(row: dict) -> StockViewDTO:
    return StockViewDTO(
        product_id=row["id"],
        product_name=row["name"],
        laboratory=row.get("laboratory"),
        available_stock=int(row["stock"]),
        sales_price=row["sales_price"],
        description=row["description"],
        laboratory_id=row.get("laboratory_id"),
    )


class MySQLLedgerUnitOfWork(ILedgerUnitOfWork):
    """Ledger operations bound to one connection with an open transaction.

    Never commits; MySQLBatchLedgerRepository.transaction() does that once the block succeeds.
    """

    def __init__(self, connection) -> None:
        self._connection = connection

    def existing_product_ids(self, product_ids: Iterable[int]) -> set[int]:
        ids = sorted(set(product_ids))
        if not ids:
            return set()

        cursor = self._connection.cursor()
        try:
            placeholders = ",".join(["%s"] * len(ids))
            cursor.execute(f"SELECT id FROM products WHERE id IN ({placeholders})", ids)
            return {row[0] for row in cursor.fetchall()}
        except Error as e:
            raise translate_mysql_error("Error checking product IDs", e)
        finally:
            cursor.close()

    def available_stock(self, product_id: int) -> int:
        cursor = self._connection.cursor()
        try:
            # Locking read: the rows stay ours until commit, so the deduction sees the same stock
            cursor.execute(
                """
                SELECT COALESCE(SUM(quantity), 0)
                FROM product_batches
                WHERE product_id = %s
                FOR UPDATE
                """,
                (product_id,),
            )
            row = cursor.fetchone()
            return int(row[0]) if row else 0
        except Error as e:
            raise translate_mysql_error(f"Error reading stock for product ID {product_id}", e)
        finally:
            cursor.close()

    def batches_for_deduction(self, product_id: int) -> Iterator[Batch]:
        cursor = self._connection.cursor(dictionary=True)
        try:
            cursor.execute(
                f"""
                SELECT {BATCH_COLUMNS}
                FROM product_batches
                WHERE product_id = %s AND quantity > 0
                ORDER BY expiration_date ASC, id ASC
                FOR UPDATE
                """,
                (product_id,),
            )
            rows = cursor.fetchall()
        except Error as e:
            raise translate_mysql_error(f"Error reading batches for product ID {product_id}", e)
        finally:
            cursor.close()

        for row in rows:
            yield _row_to_batch(row)

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
        if quantity <= 0:
            raise InternalError(f"Refusing to create batch '{batch_label}' with quantity {quantity}")

        total_cost = unit_cost * quantity
        cursor = self._connection.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO product_batches
                (product_id, purchase_line_id, batch_label, expiration_date, quantity,
                 unit_purchase_cost, total_purchase_cost, entry_date)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    product_id,
                    purchase_line_id,
                    batch_label,
                    format_date_for_db(expiration_date),
                    quantity,
                    unit_cost,
                    total_cost,
                    format_date_for_db(entry_date),
                ),
            )
            batch_id = cursor.lastrowid
        except Error as e:
            raise translate_mysql_error(f"Error creating batch '{batch_label}' for product ID {product_id}", e)
        finally:
            cursor.close()

        return Batch(
            id=batch_id,
            product_id=product_id,
            purchase_line_id=purchase_line_id,
            batch_label=batch_label,
            expiration_date=expiration_date,
            quantity=quantity,
            unit_purchase_cost=unit_cost,
            total_purchase_cost=total_cost,
            entry_date=entry_date,
        )

    def deplete(self, batch_id: int, new_quantity: int, expected_quantity: int) -> None:
        if not 0 <= new_quantity <= expected_quantity:
            raise InternalError(
                f"Invalid depletion of batch ID {batch_id}: {expected_quantity} -> {new_quantity}"
            )

        cursor = self._connection.cursor()
        try:
            cursor.execute(
                """
                UPDATE product_batches
                SET quantity = %s, updated_at = CURRENT_TIMESTAMP
                WHERE id = %s AND quantity = %s
                """,
                (new_quantity, batch_id, expected_quantity),
            )
            updated = cursor.rowcount
        except Error as e:
            raise translate_mysql_error(f"Error depleting batch ID {batch_id}", e)
        finally:
            cursor.close()

        if updated != 1:
            raise TransactionConflictError(
                f"Batch ID {batch_id} no longer holds {expected_quantity} units"
            )

    def insert_purchase_bill(self, value: Decimal, created_at: datetime) -> PurchaseBill:
        cursor = self._connection.cursor()
        try:
            cursor.execute(
                "INSERT INTO purchase_bills (value, created_at) VALUES (%s, %s)",
                (value, format_datetime_for_db(created_at)),
            )
            return PurchaseBill(id=cursor.lastrowid, value=value, created_at=created_at)
        except Error as e:
            raise translate_mysql_error("Error inserting purchase bill", e)
        finally:
            cursor.close()

    def insert_purchase_line(
        self, bill_id: int, product_id: int, unit_cost: Decimal, quantity: int, total: Decimal
    ) -> PurchaseLine:
        cursor = self._connection.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO purchase_lines (bill_id, product_id, unit_cost, quantity, total)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (bill_id, product_id, unit_cost, quantity, total),
            )
            return PurchaseLine(
                id=cursor.lastrowid,
                bill_id=bill_id,
                product_id=product_id,
                unit_cost=unit_cost,
                quantity=quantity,
                total=total,
            )
        except Error as e:
            raise translate_mysql_error(f"Error inserting purchase line for bill ID {bill_id}", e)
        finally:
            cursor.close()

    def insert_sale(self, value: Decimal, sale_date: date, description: str, created_at: datetime) -> Sale:
        cursor = self._connection.cursor()
        try:
            cursor.execute(
                "INSERT INTO sales (value, sale_date, description, created_at) VALUES (%s, %s, %s, %s)",
                (value, format_date_for_db(sale_date), description, format_datetime_for_db(created_at)),
            )
            return Sale(
                id=cursor.lastrowid,
                value=value,
                sale_date=sale_date,
                description=description,
                created_at=created_at,
            )
        except Error as e:
            raise translate_mysql_error("Error inserting sale", e)
        finally:
            cursor.close()

    def insert_sale_line(
        self, sale_id: int, product_id: int, unit_price: Decimal, quantity: int, total: Decimal
    ) -> SaleLine:
        cursor = self._connection.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO sale_lines (sale_id, product_id, unit_price, quantity, total)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (sale_id, product_id, unit_price, quantity, total),
            )
            return SaleLine(
                id=cursor.lastrowid,
                sale_id=sale_id,
                product_id=product_id,
                unit_price=unit_price,
                quantity=quantity,
                total=total,
            )
        except Error as e:
            raise translate_mysql_error(f"Error inserting sale line for sale ID {sale_id}", e)
        finally:
            cursor.close()


class MySQLBatchLedgerRepository(MySQLRepositoryBase, IBatchLedgerRepository):
    """MySQL implementation of the batch ledger."""

    def create_tables(self) -> None:
        """Creates the ledger tables. The products table must already exist."""
        self._execute_ddl(LEDGER_TABLES, "Ledger tables")

    @contextmanager
    def transaction(self) -> Iterator[MySQLLedgerUnitOfWork]:
        conn = self._get_connection()
        try:
            try:
                cursor = conn.cursor()
                try:
                    cursor.execute("SET SESSION innodb_lock_wait_timeout = %s", (settings.DB_LOCK_WAIT_TIMEOUT,))
                finally:
                    cursor.close()
                conn.start_transaction()
            except Error as e:
                raise translate_mysql_error("Failed to start ledger transaction", e)

            try:
                yield MySQLLedgerUnitOfWork(conn)
                conn.commit()
            except Error as e:
                self._rollback(conn)
                raise translate_mysql_error("Ledger transaction failed", e)
            except BaseException:
                self._rollback(conn)
                raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn) -> None:
        try:
            conn.rollback()
        except Error as e:
            # The server drops the transaction with the connection, so nothing is left half-written
            logger.error(f"Rollback failed, connection will be discarded: {e}")

    def get_stock_views(self, for_sale_only: bool = False) -> list[StockViewDTO]:
        having = "HAVING COALESCE(SUM(pb.quantity), 0) > 0" if for_sale_only else ""
        query = f"""
        SELECT
            p.id,
            p.name,
            p.laboratory_id,
            l.name AS laboratory,
            p.description,
            p.sales_price,
            COALESCE(SUM(pb.quantity), 0) AS stock
        FROM products p
        LEFT JOIN laboratories l ON p.laboratory_id = l.id
        LEFT JOIN product_batches pb ON p.id = pb.product_id
        GROUP BY p.id, p.name, p.laboratory_id, l.name, p.description, p.sales_price
        {having}
        ORDER BY p.name ASC
        """
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(query)
            return [_row_to_stock_view(row) for row in cursor.fetchall()]
        except Error as e:
            raise DatabaseError(f"Error fetching product stock: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def get_stock_view(self, product_id: int) -> Optional[StockViewDTO]:
        """Stock for one product. The laboratory name is left to the catalog."""
        query = """
        SELECT
            p.id,
            p.name,
            p.laboratory_id,
            p.description,
            p.sales_price,
            COALESCE(SUM(pb.quantity), 0) AS stock
        FROM products p
        LEFT JOIN product_batches pb ON p.id = pb.product_id
        WHERE p.id = %s
        GROUP BY p.id, p.name, p.laboratory_id, p.description, p.sales_price
        """
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(query, (product_id,))
            row = cursor.fetchone()
            return _row_to_stock_view(row) if row else None
        except Error as e:
            raise DatabaseError(f"Error fetching stock for product ID {product_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def get_expiring_batches(self, start: date, end: date) -> list[ExpiringBatchRecordDTO]:
        query = """
        SELECT
            p.id AS product_id,
            p.name AS product_name,
            p.sales_price,
            l.name AS laboratory,
            pb.id AS batch_id,
            pb.batch_label,
            pb.expiration_date,
            pb.quantity,
            pb.entry_date
        FROM product_batches pb
        JOIN products p ON pb.product_id = p.id
        LEFT JOIN laboratories l ON p.laboratory_id = l.id
        WHERE pb.quantity > 0
          AND pb.expiration_date >= %s
          AND pb.expiration_date < %s
        ORDER BY pb.expiration_date ASC, p.name ASC, pb.id ASC
        """
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(query, (format_date_for_db(start), format_date_for_db(end)))
            return [
                ExpiringBatchRecordDTO(
                    product_id=row["product_id"],
                    product_name=row["product_name"],
                    laboratory=row["laboratory"],
                    sales_price=row["sales_price"],
                    batch_id=row["batch_id"],
                    batch_label=row["batch_label"],
                    expiration_date=row["expiration_date"],
                    quantity=int(row["quantity"]),
                    entry_date=row["entry_date"],
                )
                for row in cursor.fetchall()
            ]
        except Error as e:
            raise DatabaseError(f"Error fetching expiring batches: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def list_purchase_bills(self) -> list[PurchaseBill]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute("SELECT id, value, created_at FROM purchase_bills ORDER BY created_at DESC, id DESC")
            return [
                PurchaseBill(id=row["id"], value=row["value"], created_at=row["created_at"])
                for row in cursor.fetchall()
            ]
        except Error as e:
            raise DatabaseError(f"Error fetching purchase bills: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def get_purchase_bill(self, bill_id: int) -> Optional[OrderDetailDTO]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute("SELECT id, value, created_at FROM purchase_bills WHERE id = %s", (bill_id,))
            bill_row = cursor.fetchone()
            if not bill_row:
                return None

            cursor.execute(
                """
                SELECT id, bill_id, product_id, unit_cost, quantity, total
                FROM purchase_lines
                WHERE bill_id = %s
                ORDER BY id ASC
                """,
                (bill_id,),
            )
            lines = [
                PurchaseLine(
                    id=row["id"],
                    bill_id=row["bill_id"],
                    product_id=row["product_id"],
                    unit_cost=row["unit_cost"],
                    quantity=int(row["quantity"]),
                    total=row["total"],
                )
                for row in cursor.fetchall()
            ]

            cursor.execute(
                """
                SELECT
                    pb.id,
                    pb.product_id,
                    p.name AS product_name,
                    pb.purchase_line_id,
                    pb.batch_label,
                    pb.expiration_date,
                    pb.quantity,
                    pb.unit_purchase_cost,
                    pb.total_purchase_cost,
                    pb.entry_date
                FROM product_batches pb
                JOIN purchase_lines pl ON pb.purchase_line_id = pl.id
                JOIN products p ON pb.product_id = p.id
                WHERE pl.bill_id = %s
                ORDER BY pb.id ASC
                """,
                (bill_id,),
            )
            batches = [
                OrderBatchDetailDTO(
                    id=row["id"],
                    product_id=row["product_id"],
                    product_name=row["product_name"],
                    purchase_line_id=row["purchase_line_id"],
                    batch_label=row["batch_label"],
                    expiration_date=row["expiration_date"],
                    quantity=int(row["quantity"]),
                    unit_purchase_cost=Decimal(row["unit_purchase_cost"]),
                    total_purchase_cost=Decimal(row["total_purchase_cost"]),
                    entry_date=row["entry_date"],
                )
                for row in cursor.fetchall()
            ]

            bill = PurchaseBill(id=bill_row["id"], value=bill_row["value"], created_at=bill_row["created_at"])
            return OrderDetailDTO(bill=bill, lines=lines, batches=batches)
        except Error as e:
            raise DatabaseError(f"Error fetching purchase bill ID {bill_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def list_sales(self) -> list[Sale]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(
                """
                SELECT id, value, sale_date, description, created_at
                FROM sales
                ORDER BY sale_date DESC, created_at DESC, id DESC
                """
            )
            return [
                Sale(
                    id=row["id"],
                    value=row["value"],
                    sale_date=row["sale_date"],
                    description=row["description"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]
        except Error as e:
            raise DatabaseError(f"Error fetching sales: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def get_sale(self, sale_id: int) -> Optional[SaleDetailDTO]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(
                "SELECT id, value, sale_date, description, created_at FROM sales WHERE id = %s",
                (sale_id,),
            )
            sale_row = cursor.fetchone()
            if not sale_row:
                return None

            cursor.execute(
                """
                SELECT
                    sl.id,
                    sl.sale_id,
                    sl.product_id,
                    p.name AS product_name,
                    l.name AS laboratory,
                    sl.unit_price,
                    sl.quantity,
                    sl.total
                FROM sale_lines sl
                JOIN products p ON sl.product_id = p.id
                LEFT JOIN laboratories l ON p.laboratory_id = l.id
                WHERE sl.sale_id = %s
                ORDER BY sl.id ASC
                """,
                (sale_id,),
            )
            lines = [
                SaleLineDetailDTO(
                    id=row["id"],
                    sale_id=row["sale_id"],
                    product_id=row["product_id"],
                    product_name=row["product_name"],
                    laboratory=row["laboratory"],
                    unit_price=row["unit_price"],
                    quantity=int(row["quantity"]),
                    total=row["total"],
                )
                for row in cursor.fetchall()
            ]

            sale = Sale(
                id=sale_row["id"],
                value=sale_row["value"],
                sale_date=sale_row["sale_date"],
                description=sale_row["description"],
                created_at=sale_row["created_at"],
            )
            return SaleDetailDTO(sale=sale, lines=lines)
        except Error as e:
            raise DatabaseError(f"Error fetching sale ID {sale_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()
