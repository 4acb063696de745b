"""
Inventory Kernel

Shared foundation for batch-aware inventory accounting:
- Structured JSON logging with request context
- Typed exceptions with machine-readable codes
- SQLAlchemy persistence for items, cost batches, sales and parties
- Unit-of-measure conversion to base units
"""

__version__ = "0.1.0"
