"""Core components: connections, execution, caching, hooks, transactions."""

from .cache import QueryCache
from .connection import DatabaseConnection
from .executor import QueryExecutor
from .hooks import HookContext, HookRegistry
from .inspector import MetadataInspector
from .transaction import Transaction, TransactionCoordinator

__all__ = [
    "DatabaseConnection",
    "QueryExecutor",
    "QueryCache",
    "HookContext",
    "HookRegistry",
    "MetadataInspector",
    "Transaction",
    "TransactionCoordinator",
]
