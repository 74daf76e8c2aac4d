# src/inventory_domain/infrastructure/persistence/mysql_product_catalog_repository.py
"""MySQL implementation of the product/laboratory catalog."""

import logging
from decimal import Decimal
from typing import Optional

from mysql.connector import Error, errorcode

from src.common.dtos.inventory_dtos import InitialStockDTO
from src.common.exceptions.custom_exceptions import (
    ConflictError,
    DatabaseError,
    ReferenceNotFoundError,
    ValidationError,
)
from src.common.utils.date_utils import format_date_for_db
from src.inventory_domain.domain.entities.catalog import Laboratory, Product
from src.inventory_domain.domain.repositories.product_catalog_repository import IProductCatalogRepository
from src.inventory_domain.infrastructure.persistence.mysql_connection_pool import MySQLRepositoryBase

logger = logging.getLogger(__name__)

CATALOG_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS laboratories (
        id INT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        name VARCHAR(255) NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE KEY uk_laboratories_name (name)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id INT UNSIGNED PRIMARY KEY AUTO_INCREMENT,
        laboratory_id INT UNSIGNED NOT NULL,
        name VARCHAR(255) NOT NULL,
        description TEXT,
        sales_price DECIMAL(12, 2) NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
        CONSTRAINT fk_products_laboratory FOREIGN KEY (laboratory_id) REFERENCES laboratories (id),
        UNIQUE KEY uk_products_laboratory_name (laboratory_id, name),
        INDEX idx_products_name (name)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
)


class MySQLProductCatalogRepository(MySQLRepositoryBase, IProductCatalogRepository):
    """Lookups used to enrich ledger responses, plus the inserts needed to seed products."""

    def create_tables(self) -> None:
        """Creates laboratories and products. Run before the ledger tables, which reference products."""
        self._execute_ddl(CATALOG_TABLES, "Catalog tables")

    def product_exists(self, product_id: int) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT id FROM products WHERE id = %s", (product_id,))
            return cursor.fetchone() is not None
        except Error as e:
            raise DatabaseError(f"Error checking product ID {product_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def get_product(self, product_id: int) -> Optional[Product]:
        conn = self._get_connection()
        cursor = conn.cursor(dictionary=True)
        try:
            cursor.execute(
                """
                SELECT id, laboratory_id, name, description, sales_price, created_at
                FROM products
                WHERE id = %s
                """,
                (product_id,),
            )
            row = cursor.fetchone()
            if not row:
                return None
            return Product(
                id=row["id"],
                laboratory_id=row["laboratory_id"],
                name=row["name"],
                description=row["description"],
                sales_price=row["sales_price"],
                created_at=row["created_at"],
            )
        except Error as e:
            raise DatabaseError(f"Error fetching product ID {product_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def laboratory_name(self, laboratory_id: int) -> Optional[str]:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("SELECT name FROM laboratories WHERE id = %s", (laboratory_id,))
            row = cursor.fetchone()
            return row[0] if row else None
        except Error as e:
            raise DatabaseError(f"Error fetching laboratory ID {laboratory_id}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def create_laboratory(self, name: str) -> Laboratory:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("INSERT INTO laboratories (name) VALUES (%s)", (name,))
            conn.commit()
            logger.info(f"Laboratory '{name}' created with ID {cursor.lastrowid}.")
            return Laboratory(id=cursor.lastrowid, name=name)
        except Error as e:
            conn.rollback()
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ConflictError(f"A laboratory named '{name}' already exists", original_exception=e)
            raise DatabaseError(f"Error creating laboratory '{name}': {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    def create_product(
        self,
        laboratory_id: int,
        name: str,
        description: Optional[str] = None,
        sales_price: Optional[Decimal] = None,
        initial_stock: Optional[InitialStockDTO] = None,
    ) -> Product:
        if initial_stock is not None:
            if not (initial_stock.batch_label or "").strip():
                raise ValidationError("Initial stock needs a batch label")
            if initial_stock.quantity <= 0:
                raise ValidationError(f"Initial stock must be greater than 0, got {initial_stock.quantity}")
            if initial_stock.unit_cost < 0:
                raise ValidationError(f"Initial unit cost cannot be negative, got {initial_stock.unit_cost}")

        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            conn.start_transaction()

            # Case-insensitive duplicate check within the laboratory
            cursor.execute(
                "SELECT id FROM products WHERE LOWER(name) = LOWER(%s) AND laboratory_id = %s FOR UPDATE",
                (name, laboratory_id),
            )
            if cursor.fetchone() is not None:
                raise ConflictError(f"A product named '{name}' already exists for laboratory ID {laboratory_id}")

            cursor.execute(
                "INSERT INTO products (laboratory_id, name, description, sales_price) VALUES (%s, %s, %s, %s)",
                (laboratory_id, name, description or None, sales_price),
            )
            product_id = cursor.lastrowid

            if initial_stock is not None:
                self._insert_initial_batch(cursor, product_id, initial_stock)

            conn.commit()
            logger.info(f"Product '{name}' created with ID {product_id}.")
            if initial_stock is not None:
                logger.info(
                    f"Initial batch '{initial_stock.batch_label}' with {initial_stock.quantity} units "
                    f"stocked for product ID {product_id}."
                )
            return Product(
                id=product_id,
                laboratory_id=laboratory_id,
                name=name,
                description=description or None,
                sales_price=sales_price,
            )
        except ConflictError:
            conn.rollback()
            raise
        except Error as e:
            conn.rollback()
            if e.errno == errorcode.ER_NO_REFERENCED_ROW_2:
                raise ReferenceNotFoundError("Laboratory does not exist", missing_ids=[laboratory_id])
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise ConflictError(
                    f"A product named '{name}' already exists for laboratory ID {laboratory_id}", original_exception=e
                )
            raise DatabaseError(f"Error creating product '{name}': {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()

    @staticmethod
    def _insert_initial_batch(cursor, product_id: int, stock: InitialStockDTO) -> None:
        total_cost = stock.unit_cost * stock.quantity
        cursor.execute(
            """
            INSERT INTO product_batches
            (product_id, purchase_line_id, batch_label, expiration_date, quantity,
             unit_purchase_cost, total_purchase_cost, entry_date)
            VALUES (%s, NULL, %s, %s, %s, %s, %s, %s)
            """,
            (
                product_id,
                stock.batch_label,
                format_date_for_db(stock.expiration_date),
                stock.quantity,
                stock.unit_cost,
                total_cost,
                format_date_for_db(stock.entry_date),
            ),
        )
