"""Custom application-wide exceptions."""


class ApplicationError(Exception):
    """Base class for application-specific errors."""

    def __init__(
        self, message: str = "An application error occurred", original_exception: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_exception = original_exception
        self.message = message

    def __str__(self) -> str:
        if self.original_exception:
            return f"{self.message} (Original error: {self.original_exception})"
        return self.message


class ValidationError(ApplicationError):
    """Raised for malformed or out-of-range input. No ledger access has happened."""

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(message)
        self.message = f"Validation Error: {message}"


class ReferenceNotFoundError(ValidationError):
    """Raised when input refers to a product or laboratory that does not exist."""

    def __init__(self, message: str = "Referenced record does not exist", missing_ids: list[int] | None = None) -> None:
        super().__init__(message)
        self.missing_ids = sorted(missing_ids or [])
        self.message = f"Reference Error: {message}"
        if self.missing_ids:
            self.message += f" (Missing IDs: {', '.join(str(i) for i in self.missing_ids)})"


class InsufficientStockError(ApplicationError):
    """Raised when a sale requests more units of a product than its batches hold."""

    def __init__(self, product_id: int, available: int, required: int) -> None:
        super().__init__(
            f"Insufficient stock for product ID {product_id}. Available: {available}, Required: {required}"
        )
        self.product_id = product_id
        self.available = available
        self.required = required


class ConflictError(ApplicationError):
    """Raised on a uniqueness violation (duplicate laboratory or product name)."""

    def __init__(self, message: str = "Record already exists", original_exception: Exception | None = None) -> None:
        super().__init__(message, original_exception)
        self.message = f"Conflict Error: {message}"


class InternalError(ApplicationError):
    """Raised when an invariant breaks mid-transaction. The transaction is always rolled back."""

    def __init__(self, message: str = "Internal error", original_exception: Exception | None = None) -> None:
        super().__init__(message, original_exception)
        self.message = f"Internal Error: {message}"


class DatabaseError(ApplicationError):
    """Exception raised for errors during database operations."""

    def __init__(self, message: str = "Database operation failed", original_exception: Exception | None = None) -> None:
        super().__init__(message, original_exception)
        self.message = f"Database Error: {message}"


class TransactionConflictError(DatabaseError):
    """Raised when a transaction lost a race on locked rows and may be retried."""

    def __init__(
        self, message: str = "Transaction conflict", original_exception: Exception | None = None
    ) -> None:
        super().__init__(message, original_exception)
        self.message = f"Transaction Conflict: {message}"
