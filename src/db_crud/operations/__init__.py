"""Operation families composed into the ``Database`` facade."""

from .analytics import AnalyticsOperations
from .base import OperationsBase
from .raw import RawOperations
from .reads import ReadOperations
from .relations import RelationOperations
from .schema import SchemaOperations
from .writes import WriteOperations

__all__ = [
    "OperationsBase",
    "RawOperations",
    "WriteOperations",
    "ReadOperations",
    "AnalyticsOperations",
    "RelationOperations",
    "SchemaOperations",
]
