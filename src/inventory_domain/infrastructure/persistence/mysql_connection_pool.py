# src/inventory_domain/infrastructure/persistence/mysql_connection_pool.py
"""Shared MySQL connection pool and the base class the MySQL repositories build on."""

import logging

from mysql.connector import Error, errorcode, pooling

from src.common.config.settings import settings
from src.common.exceptions.custom_exceptions import DatabaseError, TransactionConflictError

logger = logging.getLogger(__name__)

# InnoDB aborts one side of a lock conflict with one of these; the work can be retried.
RETRYABLE_ERRNOS = {errorcode.ER_LOCK_DEADLOCK, errorcode.ER_LOCK_WAIT_TIMEOUT}


def create_connection_pool() -> pooling.MySQLConnectionPool:
    """Creates the process-wide pool. Every transaction borrows its own connection from it."""
    try:
        pool = pooling.MySQLConnectionPool(
            pool_name=settings.DB_POOL_NAME,
            pool_size=settings.DB_POOL_SIZE,
            host=settings.DB_HOST,
            port=settings.DB_PORT,
            database=settings.DB_DATABASE,
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            autocommit=False,  # Better control over transactions
            charset="utf8mb4",
            use_unicode=True,
        )
    except Error as e:
        raise DatabaseError(f"Failed to create MySQL connection pool: {e}", original_exception=e)
    logger.info(f"MySQL connection pool '{settings.DB_POOL_NAME}' ready (size {settings.DB_POOL_SIZE}).")
    return pool


def translate_mysql_error(message: str, error: Error) -> DatabaseError:
    """Maps a driver error to DatabaseError, or TransactionConflictError for lock conflicts."""
    if getattr(error, "errno", None) in RETRYABLE_ERRNOS:
        return TransactionConflictError(f"{message}: {error}", original_exception=error)
    return DatabaseError(f"{message}: {error}", original_exception=error)


class MySQLRepositoryBase:
    """Holds the pool. Pass one in to share it between repositories; otherwise one is created on first use."""

    def __init__(self, pool: pooling.MySQLConnectionPool | None = None) -> None:
        self._pool = pool

    def _get_pool(self) -> pooling.MySQLConnectionPool:
        if self._pool is None:
            self._pool = create_connection_pool()
        return self._pool

    def _get_connection(self):
        """Borrows a connection from the pool. close() hands it back."""
        try:
            return self._get_pool().get_connection()
        except Error as e:
            raise DatabaseError(f"Failed to get a connection from the MySQL pool: {e}", original_exception=e)

    def _execute_ddl(self, statements: tuple[str, ...], description: str) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            for statement in statements:
                cursor.execute(statement)
            conn.commit()
            logger.info(f"{description} checked/created.")
        except Error as e:
            conn.rollback()
            raise DatabaseError(f"Error creating {description}: {e}", original_exception=e)
        finally:
            cursor.close()
            conn.close()
