"""
Typed SPARQL pattern builder.

Queries are assembled from small immutable nodes and rendered to text in
one place. IRIs are validated when an IRI node is created, so a pattern
tree can never carry an unchecked identifier to the renderer.

    where = Group([
        GraphGroup(IRI(graph_uri), Group([
            Triple(IRI(cube_uri), A, CUBE_CUBE),
        ])),
    ])
    AskQuery(where).render()
"""

from dataclasses import dataclass, field
from typing import Union

from cube_cleanup.graph.sparql.identifiers import validate_identifier

INDENT = "  "

PREFIXES: dict[str, str] = {
    "cube": "https://cube.link/",
    "schema": "http://schema.org/",
    "sh": "http://www.w3.org/ns/shacl#",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "xsd": "http://www.w3.org/2001/XMLSchema#",
}


def prologue() -> str:
    return "\n".join(f"PREFIX {name}: <{ns}>" for name, ns in PREFIXES.items())


# =============================================================================
# Terms
# =============================================================================


@dataclass(frozen=True)
class IRI:
    """Absolute IRI supplied from outside. Validated on construction."""

    value: str

    def __post_init__(self) -> None:
        validate_identifier(self.value)

    def render(self) -> str:
        return f"<{self.value}>"


@dataclass(frozen=True)
class Var:
    name: str

    def render(self) -> str:
        return f"?{self.name}"


@dataclass(frozen=True)
class PName:
    """Prefixed name or keyword from the fixed vocabulary below (never user input)."""

    value: str

    def render(self) -> str:
        return self.value


@dataclass(frozen=True)
class Path:
    """Property path built from vocabulary terms, e.g. cube:observationSet/cube:observation."""

    expression: str

    def render(self) -> str:
        return self.expression


Term = Union[IRI, Var, PName]
Predicate = Union[IRI, Var, PName, Path]

A = PName("a")
CUBE_CUBE = PName("cube:Cube")
CUBE_OBSERVATION_SET_CLASS = PName("cube:ObservationSet")
CUBE_OBSERVATION_SET = PName("cube:observationSet")
CUBE_OBSERVATION = PName("cube:observation")
CUBE_OBSERVATION_CONSTRAINT = PName("cube:observationConstraint")
SCHEMA_NAME = PName("schema:name")
SCHEMA_DATE_CREATED = PName("schema:dateCreated")
SH_NODE_SHAPE = PName("sh:NodeShape")
SH_PROPERTY_SHAPE = PName("sh:PropertyShape")
SH_PROPERTY = PName("sh:property")
RDF_FIRST = PName("rdf:first")
RDF_REST_STAR = Path("rdf:rest*")
OBSERVATIONS_PATH = Path("cube:observationSet/cube:observation")


# =============================================================================
# Group graph pattern elements
# =============================================================================


@dataclass(frozen=True)
class Triple:
    s: Term
    p: Predicate
    o: Term

    def render(self, depth: int = 0) -> str:
        return f"{INDENT * depth}{self.s.render()} {self.p.render()} {self.o.render()} ."


@dataclass(frozen=True)
class Bind:
    expression: str
    var: Var

    def render(self, depth: int = 0) -> str:
        return f"{INDENT * depth}BIND({self.expression} AS {self.var.render()})"


@dataclass(frozen=True)
class Filter:
    expression: str

    def render(self, depth: int = 0) -> str:
        return f"{INDENT * depth}FILTER({self.expression})"


@dataclass(frozen=True)
class Exists:
    group: "Group"
    negated: bool = False

    def render(self, depth: int = 0) -> str:
        keyword = "FILTER NOT EXISTS" if self.negated else "FILTER EXISTS"
        return f"{INDENT * depth}{keyword} {self.group.render(depth, inline=True)}"


@dataclass(frozen=True)
class Optional:
    group: "Group"

    def render(self, depth: int = 0) -> str:
        return f"{INDENT * depth}OPTIONAL {self.group.render(depth, inline=True)}"


@dataclass(frozen=True)
class Union_:
    branches: tuple["Group", ...]

    def render(self, depth: int = 0) -> str:
        pad = INDENT * depth
        rendered = [b.render(depth, inline=True) for b in self.branches]
        return pad + f"\n{pad}UNION\n{pad}".join(rendered)


@dataclass(frozen=True)
class GraphGroup:
    graph: IRI
    group: "Group"

    def render(self, depth: int = 0) -> str:
        return f"{INDENT * depth}GRAPH {self.graph.render()} {self.group.render(depth, inline=True)}"


@dataclass(frozen=True)
class SubSelect:
    query: "SelectQuery"

    def render(self, depth: int = 0) -> str:
        pad = INDENT * depth
        body = self.query.render_body(depth + 1)
        return f"{pad}{{\n{body}\n{pad}}}"


Element = Union[Triple, Bind, Filter, Exists, Optional, Union_, GraphGroup, SubSelect, "Group"]


@dataclass(frozen=True)
class Group:
    elements: tuple[Element, ...] = field(default_factory=tuple)

    def __init__(self, elements=()) -> None:
        object.__setattr__(self, "elements", tuple(elements))

    def render(self, depth: int = 0, inline: bool = False) -> str:
        pad = INDENT * depth
        lines = [e.render(depth + 1) for e in self.elements]
        body = "\n".join(lines)
        opening = "{" if inline else f"{pad}{{"
        return f"{opening}\n{body}\n{pad}}}"


def union(*branches: Group) -> Union_:
    return Union_(tuple(branches))


# =============================================================================
# Queries and updates
# =============================================================================


@dataclass(frozen=True)
class SelectQuery:
    projection: tuple[str, ...]
    where: Group
    distinct: bool = False
    group_by: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ()
    limit: int | None = None

    def render_body(self, depth: int = 0) -> str:
        pad = INDENT * depth
        head = "SELECT DISTINCT" if self.distinct else "SELECT"
        lines = [f"{pad}{head} {' '.join(self.projection)}", f"{pad}WHERE {self.where.render(depth, inline=True)}"]
        if self.group_by:
            lines.append(f"{pad}GROUP BY {' '.join(self.group_by)}")
        if self.order_by:
            lines.append(f"{pad}ORDER BY {' '.join(self.order_by)}")
        if self.limit is not None:
            lines.append(f"{pad}LIMIT {int(self.limit)}")
        return "\n".join(lines)

    def render(self) -> str:
        return f"{prologue()}\n{self.render_body()}"


@dataclass(frozen=True)
class ConstructQuery:
    template: tuple[Triple, ...]
    where: Group

    def render(self) -> str:
        template = "\n".join(t.render(1) for t in self.template)
        return f"{prologue()}\nCONSTRUCT {{\n{template}\n}}\nWHERE {self.where.render(0, inline=True)}"


@dataclass(frozen=True)
class AskQuery:
    where: Group

    def render(self) -> str:
        return f"{prologue()}\nASK WHERE {self.where.render(0, inline=True)}"


@dataclass(frozen=True)
class DeleteWhere:
    """WITH <graph> DELETE { template } WHERE { pattern }."""

    graph: IRI
    template: tuple[Triple, ...]
    where: Group

    def render(self) -> str:
        template = "\n".join(t.render(1) for t in self.template)
        return (
            f"{prologue()}\n"
            f"WITH {self.graph.render()}\n"
            f"DELETE {{\n{template}\n}}\n"
            f"WHERE {self.where.render(0, inline=True)}"
        )
