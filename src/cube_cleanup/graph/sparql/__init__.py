"""
SPARQL query/pattern builder.

Identifier validation, a typed pattern AST and one query function per
lifecycle operation.
"""

from cube_cleanup.graph.sparql import queries
from cube_cleanup.graph.sparql.identifiers import is_valid_identifier, validate_identifier
from cube_cleanup.graph.sparql.patterns import PREFIXES
from cube_cleanup.graph.sparql.queries import closure_branches

__all__ = [
    "PREFIXES",
    "closure_branches",
    "is_valid_identifier",
    "queries",
    "validate_identifier",
]
