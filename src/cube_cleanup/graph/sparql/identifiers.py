"""
Identifier validation for generated SPARQL.

Every caller-supplied IRI (graph, cube, or one recovered from a backup
payload) passes through validate_identifier before it is embedded in a
pattern. This is the only injection defense of the query builder.
"""

import re

from cube_cleanup.core.exceptions import InvalidIdentifier

ALLOWED_SCHEMES = ("http://", "https://", "urn:")

# Characters that would terminate an IRIREF or open a group/literal
FORBIDDEN_CHARACTERS = frozenset('<>"{}|\\^`')

MUTATION_KEYWORDS = frozenset({
    "DELETE", "INSERT", "DROP", "CLEAR", "LOAD",
    "CREATE", "COPY", "MOVE", "ADD", "WITH",
})

_WHITESPACE_OR_CONTROL = re.compile(r"[\s\x00-\x1f\x7f]")
_SEGMENT_SPLIT = re.compile(r"[/#?&=;:]")


def validate_identifier(value: object, kind: str = "resource") -> str:
    """
    Validate an IRI before embedding it in a SPARQL pattern.

    Args:
        value: Candidate identifier
        kind: What the identifier names ("graph", "cube", ...), for messages

    Returns:
        The identifier, unchanged

    Raises:
        InvalidIdentifier: If the value is empty, not a string, uses an
            unsupported scheme, contains a character that can break out of
            an IRI reference, or carries a mutation keyword as a segment.
    """
    if not isinstance(value, str):
        raise InvalidIdentifier(value, f"{kind} identifier must be a string")

    if not value:
        raise InvalidIdentifier(value, f"{kind} identifier is empty")

    if not value.lower().startswith(ALLOWED_SCHEMES):
        raise InvalidIdentifier(
            value, f"{kind} identifier must start with one of {', '.join(ALLOWED_SCHEMES)}"
        )

    if _WHITESPACE_OR_CONTROL.search(value):
        raise InvalidIdentifier(value, "whitespace or control characters are not allowed")

    bad = sorted({c for c in value if c in FORBIDDEN_CHARACTERS})
    if bad:
        raise InvalidIdentifier(value, f"forbidden characters: {''.join(bad)}")

    for segment in _SEGMENT_SPLIT.split(value):
        if segment.upper() in MUTATION_KEYWORDS:
            raise InvalidIdentifier(value, f"embedded keyword: {segment}")

    return value


def is_valid_identifier(value: object) -> bool:
    """Boolean form of validate_identifier."""
    try:
        validate_identifier(value)
    except InvalidIdentifier:
        return False
    return True
