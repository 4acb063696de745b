"""
Typed exception hierarchy for the inventory kernel.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
instead of a bare message string.

    InventoryKernelError (base)
    |
    +-- SaleError
    |   +-- SaleNotFoundError
    |   +-- DuplicateInvoiceError
    |   +-- InvalidSaleError
    |
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- DuplicateItemError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- InvalidQuantityError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConfigError

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------------
Sale         | SALE_NOT_FOUND            | Sale id does not exist for the user
             | DUPLICATE_INVOICE         | Invoice number already used by the user
             | INVALID_SALE              | Missing party or lines, unknown payment type
Item         | ITEM_NOT_FOUND            | No item with that name for the user
             | DUPLICATE_ITEM            | Item name already exists for the user
Stock        | INSUFFICIENT_STOCK        | reduce_stock asked for more than on hand
             | INVALID_QUANTITY          | Negative or non-numeric quantity
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Item row changed under a concurrent edit
Config       | CONFIG_ERROR              | Settings file has an invalid value

InsufficientStockError is raised by the primary stock mutator only.  The
sale service catches it and degrades to the manual FIFO fallback, so a
stock shortfall never fails a sale create or update.
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Sale-related exceptions


class SaleError(InventoryKernelError):
    """Base exception for sale-related errors."""

    code: str = "SALE_ERROR"


class SaleNotFoundError(SaleError):
    """Sale with given ID was not found for the user."""

    code: str = "SALE_NOT_FOUND"

    def __init__(self, sale_id: str, user_id: str):
        self.sale_id = sale_id
        self.user_id = user_id
        super().__init__(f"Sale not found: {sale_id}")


class DuplicateInvoiceError(SaleError):
    """Invoice number is already used by another sale of the same user."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, invoice_no: str, user_id: str):
        self.invoice_no = invoice_no
        self.user_id = user_id
        super().__init__(f"Invoice number already exists: {invoice_no}")


class InvalidSaleError(SaleError):
    """Sale draft is missing required data or uses an unknown payment type."""

    code: str = "INVALID_SALE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid sale: {reason}")


# Item-related exceptions


class ItemError(InventoryKernelError):
    """Base exception for inventory item errors."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """No inventory item with the given name exists for the user."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_name: str, user_id: str):
        self.item_name = item_name
        self.user_id = user_id
        super().__init__(f"Item not found: {item_name}")


class DuplicateItemError(ItemError):
    """Item names are unique per user."""

    code: str = "DUPLICATE_ITEM"

    def __init__(self, item_name: str, user_id: str):
        self.item_name = item_name
        self.user_id = user_id
        super().__init__(f"Item already exists: {item_name}")


# Stock-related exceptions


class StockError(InventoryKernelError):
    """Base exception for stock movement errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds the stock on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_name: str,
        requested_quantity: str,
        available_quantity: str,
    ):
        self.item_name = item_name
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        super().__init__(
            f"Insufficient stock for {item_name}: "
            f"requested {requested_quantity}, available {available_quantity}"
        )


class InvalidQuantityError(StockError):
    """Quantity is negative or not a number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Configuration exceptions


class ConfigError(InventoryKernelError):
    """Settings file contains an invalid value."""

    code: str = "CONFIG_ERROR"

    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid setting {key}={value!r}: {reason}")
