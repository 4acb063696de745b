"""
BaseService -- abstract base for the inventory services.

Responsibility:
    Common constructor and session contract.  Every service receives a
    SQLAlchemy ``Session`` and persists with ``session.flush()`` only.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back.  The caller (``session_scope()`` or a
    test fixture) owns commit/rollback, so a sale edit and all of its item
    and party writes land atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
