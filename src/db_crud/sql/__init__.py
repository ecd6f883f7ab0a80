"""SQL statement synthesis: identifiers, conditions, builders."""

from .builder import StatementBuilder
from .conditions import Condition, Filter, Operator, RawClause, make_condition
from .identifiers import IdentifierQuoter
from .statements import ParamCollector, Statement

__all__ = [
    "StatementBuilder",
    "Condition",
    "Filter",
    "Operator",
    "RawClause",
    "make_condition",
    "IdentifierQuoter",
    "ParamCollector",
    "Statement",
]
