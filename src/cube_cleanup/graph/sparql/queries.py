"""
SPARQL operations for cube lifecycle management.

One pure function per operation. Each validates its identifiers (through
the IRI node), assembles a pattern tree and returns rendered text. The
closure of a cube is defined once in closure_branches and shared by the
export, count and metadata-delete operations.
"""

from cube_cleanup.graph.sparql.patterns import (
    A,
    CUBE_CUBE,
    CUBE_OBSERVATION,
    CUBE_OBSERVATION_CONSTRAINT,
    CUBE_OBSERVATION_SET,
    CUBE_OBSERVATION_SET_CLASS,
    IRI,
    OBSERVATIONS_PATH,
    RDF_FIRST,
    RDF_REST_STAR,
    SCHEMA_DATE_CREATED,
    SCHEMA_NAME,
    SH_NODE_SHAPE,
    SH_PROPERTY,
    SH_PROPERTY_SHAPE,
    AskQuery,
    Bind,
    ConstructQuery,
    DeleteWhere,
    Exists,
    Filter,
    Group,
    GraphGroup,
    Optional,
    SelectQuery,
    SubSelect,
    Term,
    Triple,
    Var,
    union,
)

ORPHAN_DETAIL_LIMIT = 100

# Versioned cube IRIs end in a numeric path segment, optionally followed by "/"
_VERSIONED = "^.*/[0-9]+/?$"
_VERSION_GROUP = "^.*/([0-9]+)/?$"
_BASE_GROUP = "^(.*)/[0-9]+/?$"

S, P, O = Var("s"), Var("p"), Var("o")
SPO = (Triple(S, P, O),)


def _is_versioned(var: Var) -> str:
    return f'REGEX(STR({var.render()}), "{_VERSIONED}")'


def _version_of(var: Var) -> str:
    return f'xsd:integer(REPLACE(STR({var.render()}), "{_VERSION_GROUP}", "$1"))'


def _base_of(var: Var) -> str:
    return f'REPLACE(STR({var.render()}), "{_BASE_GROUP}", "$1")'


def _positive_int(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


def _in_graph(graph_uri: str, *elements) -> Group:
    return Group([GraphGroup(IRI(graph_uri), Group(elements))])


# =============================================================================
# Closure
# =============================================================================


def _list_cells(prop: Term, cell: Var) -> list:
    """Every cell of an RDF list hanging off a property shape."""
    head = Var("listHead")
    return [
        Triple(prop, Var("listProp"), head),
        Triple(head, RDF_FIRST, Var("listFirst")),
        Triple(head, RDF_REST_STAR, cell),
    ]


def closure_branches(cube: Term) -> list[Group]:
    """
    Union branches binding ?s ?p ?o to every triple owned by one cube.

    Args:
        cube: The cube, either a concrete IRI or a variable bound by the
            surrounding pattern (bulk deletion)

    Returns:
        One group per closure member kind
    """
    shape, prop, obs_set, obs = Var("shape"), Var("prop"), Var("set"), Var("obs")
    return [
        # cube outgoing
        Group([Triple(cube, P, O), Bind(cube.render(), S)]),
        # cube incoming
        Group([Triple(S, P, cube), Bind(cube.render(), O)]),
        # blank nodes attached to the cube
        Group([Triple(cube, Var("blankLink"), S), Filter("isBlank(?s)"), Triple(S, P, O)]),
        # constraint shapes
        Group([Triple(cube, CUBE_OBSERVATION_CONSTRAINT, S), Triple(S, P, O)]),
        # property shapes
        Group([
            Triple(cube, CUBE_OBSERVATION_CONSTRAINT, shape),
            Triple(shape, SH_PROPERTY, S),
            Triple(S, P, O),
        ]),
        # list cells referenced by property shapes
        Group([
            Triple(cube, CUBE_OBSERVATION_CONSTRAINT, shape),
            Triple(shape, SH_PROPERTY, prop),
            *_list_cells(prop, S),
            Triple(S, P, O),
        ]),
        # observation sets, outgoing and incoming
        Group([Triple(cube, CUBE_OBSERVATION_SET, S), Triple(S, P, O)]),
        Group([Triple(cube, CUBE_OBSERVATION_SET, O), Triple(S, P, O)]),
        # observations, outgoing and incoming
        Group([Triple(cube, CUBE_OBSERVATION_SET, obs_set), Triple(obs_set, CUBE_OBSERVATION, S), Triple(S, P, O)]),
        Group([Triple(cube, OBSERVATIONS_PATH, obs), Triple(S, P, obs), Bind("?obs", O)]),
    ]


def _closure_pattern(graph_uri: str, cube_uri: str) -> Group:
    return _in_graph(graph_uri, union(*closure_branches(IRI(cube_uri))))


# =============================================================================
# Version identification
# =============================================================================


def list_versions_query(graph_uri: str) -> str:
    """All cubes in a graph with family, version number, title and creation date."""
    cube, title = Var("cube"), Var("title")
    where = _in_graph(
        graph_uri,
        Triple(cube, A, CUBE_CUBE),
        Optional(Group([Triple(cube, SCHEMA_NAME, title)])),
        Optional(Group([Triple(cube, SCHEMA_DATE_CREATED, Var("dateCreated"))])),
        Bind(f"IF({_is_versioned(cube)}, {_version_of(cube)}, 0)", Var("version")),
        Bind(f"IF({_is_versioned(cube)}, IRI({_base_of(cube)}), ?cube)", Var("baseCube")),
    )
    return SelectQuery(
        projection=("?baseCube", "?cube", "?version", "?title", "?dateCreated"),
        where=where,
        distinct=True,
        order_by=("?baseCube", "DESC(?version)"),
    ).render()


def identify_deletions_query(graph_uri: str, versions_to_keep: int = 2) -> str:
    """
    Rank every versioned cube within its family and tag it KEEP or DELETE.

    Rank is one plus the number of distinct newer version numbers in the
    same family, so duplicated version numbers never push a cube down.
    Unversioned cubes are not returned.
    """
    keep = _positive_int(versions_to_keep, "versions_to_keep")
    cube, newer = Var("cube"), Var("newer")
    where = _in_graph(
        graph_uri,
        Triple(cube, A, CUBE_CUBE),
        Filter(_is_versioned(cube)),
        Bind(_version_of(cube), Var("version")),
        Bind(_base_of(cube), Var("baseStr")),
        Bind("IRI(?baseStr)", Var("baseCube")),
        Optional(Group([
            Triple(newer, A, CUBE_CUBE),
            Filter(_is_versioned(newer)),
            Bind(_version_of(newer), Var("newerVersion")),
            Bind(_base_of(newer), Var("newerBase")),
            Filter("?newerBase = ?baseStr && ?newerVersion > ?version"),
        ])),
    )
    ranked = SelectQuery(
        projection=("?baseCube", "?cube", "?version", "(COUNT(DISTINCT ?newerVersion) + 1 AS ?rank)"),
        where=where,
        group_by=("?baseCube", "?cube", "?version"),
    )
    return SelectQuery(
        projection=("?baseCube", "?cube", "?version", "?rank", "?action"),
        where=Group([
            SubSelect(ranked),
            Bind(f'IF(?rank <= {keep}, "KEEP", "DELETE")', Var("action")),
        ]),
        order_by=("?baseCube", "?rank"),
    ).render()


def preview_query(graph_uri: str, cube_uri: str) -> str:
    """Title, creation date and component counts of one cube. No rows if the cube is absent."""
    cube = IRI(cube_uri)

    def count(alias: str, var: str, *triples: Triple) -> SubSelect:
        return SubSelect(SelectQuery(
            projection=(f"(COUNT(DISTINCT ?{var}) AS ?{alias})",),
            where=_in_graph(graph_uri, *triples),
        ))

    where = Group([
        GraphGroup(IRI(graph_uri), Group([
            Triple(cube, A, CUBE_CUBE),
            Optional(Group([Triple(cube, SCHEMA_NAME, Var("title"))])),
            Optional(Group([Triple(cube, SCHEMA_DATE_CREATED, Var("dateCreated"))])),
        ])),
        count("shapeCount", "shape", Triple(cube, CUBE_OBSERVATION_CONSTRAINT, Var("shape"))),
        count(
            "propertyCount", "prop",
            Triple(cube, CUBE_OBSERVATION_CONSTRAINT, Var("shape")),
            Triple(Var("shape"), SH_PROPERTY, Var("prop")),
        ),
        count("observationSetCount", "set", Triple(cube, CUBE_OBSERVATION_SET, Var("set"))),
        count("observationCount", "obs", Triple(cube, OBSERVATIONS_PATH, Var("obs"))),
    ])
    return SelectQuery(
        projection=(
            "?title", "?dateCreated",
            "?shapeCount", "?propertyCount", "?observationSetCount", "?observationCount",
        ),
        limit=1,
        where=where,
    ).render()


# =============================================================================
# Export and counting
# =============================================================================


def export_closure_query(graph_uri: str, cube_uri: str) -> str:
    """CONSTRUCT of the whole closure of one cube."""
    return ConstructQuery(template=SPO, where=_closure_pattern(graph_uri, cube_uri)).render()


def count_closure_query(graph_uri: str, cube_uri: str) -> str:
    """Number of distinct triples in the closure of one cube."""
    distinct = SelectQuery(projection=("?s", "?p", "?o"), where=_closure_pattern(graph_uri, cube_uri), distinct=True)
    return SelectQuery(projection=("(COUNT(*) AS ?count)",), where=Group([SubSelect(distinct)])).render()


def count_observations_query(graph_uri: str, cube_uri: str) -> str:
    """Observations of a cube that still carry outgoing triples."""
    obs = Var("obs")
    where = _in_graph(graph_uri, Triple(IRI(cube_uri), OBSERVATIONS_PATH, obs), Triple(obs, P, O))
    return SelectQuery(projection=("(COUNT(DISTINCT ?obs) AS ?count)",), where=where).render()


def exists_query(graph_uri: str, cube_uri: str) -> str:
    return AskQuery(_in_graph(graph_uri, Triple(IRI(cube_uri), A, CUBE_CUBE))).render()


def count_all_query(graph_uri: str) -> str:
    return SelectQuery(projection=("(COUNT(*) AS ?count)",), where=_in_graph(graph_uri, Triple(S, P, O))).render()


# =============================================================================
# Phased deletion
# =============================================================================


def delete_observations_query(graph_uri: str, cube_uri: str) -> str:
    """
    Phase one: observation triples and references to observations.

    The set membership link (?set cube:observation ?obs) is left in place so
    the remaining observations can still be counted; phase two removes it.
    """
    cube, obs_set, obs = IRI(cube_uri), Var("set"), Var("obs")
    ref, ref_p = Var("ref"), Var("refP")
    where = Group([
        Triple(cube, CUBE_OBSERVATION_SET, obs_set),
        Triple(obs_set, CUBE_OBSERVATION, obs),
        union(
            Group([Triple(obs, P, O)]),
            Group([Triple(ref, ref_p, obs), Filter("!(?ref = ?set && ?refP = cube:observation)")]),
        ),
    ])
    return DeleteWhere(
        graph=IRI(graph_uri),
        template=(Triple(obs, P, O), Triple(ref, ref_p, obs)),
        where=where,
    ).render()


def delete_links_query(graph_uri: str, cube_uri: str) -> str:
    """Phase two: set to observation membership links."""
    obs_set, obs = Var("set"), Var("obs")
    link = Triple(obs_set, CUBE_OBSERVATION, obs)
    where = Group([Triple(IRI(cube_uri), CUBE_OBSERVATION_SET, obs_set), link])
    return DeleteWhere(graph=IRI(graph_uri), template=(link,), where=where).render()


def delete_metadata_query(graph_uri: str, cube_uri: str) -> str:
    """Phase three: whatever remains of the closure."""
    where = Group([union(*closure_branches(IRI(cube_uri)))])
    return DeleteWhere(graph=IRI(graph_uri), template=SPO, where=where).render()


def bulk_delete_old_versions_query(graph_uri: str, versions_to_keep: int = 2) -> str:
    """
    Delete the closure of every versioned cube that has at least
    versions_to_keep distinct newer versions in its family.

    One FILTER EXISTS with versions_to_keep newer-version variables, pairwise
    distinct by version number, selects the candidates.
    """
    keep = _positive_int(versions_to_keep, "versions_to_keep")
    cube = Var("cube")

    newer_elements = []
    for i in range(1, keep + 1):
        newer = Var(f"newer{i}")
        newer_elements += [
            Triple(newer, A, CUBE_CUBE),
            Filter(_is_versioned(newer)),
            Filter(f"{_base_of(newer)} = ?baseStr"),
            Bind(_version_of(newer), Var(f"newerVersion{i}")),
            Filter(f"?newerVersion{i} > ?version"),
        ]
    for i in range(1, keep + 1):
        for j in range(i + 1, keep + 1):
            newer_elements.append(Filter(f"?newerVersion{i} != ?newerVersion{j}"))

    where = Group([
        Triple(cube, A, CUBE_CUBE),
        Filter(_is_versioned(cube)),
        Bind(_version_of(cube), Var("version")),
        Bind(_base_of(cube), Var("baseStr")),
        Exists(Group(newer_elements)),
        union(*closure_branches(cube)),
    ])
    return DeleteWhere(graph=IRI(graph_uri), template=SPO, where=where).render()


# =============================================================================
# Orphans
# =============================================================================


def _orphan_observation_set(var: Var) -> list:
    # Distinct candidates first so set members do not multiply the rows
    candidates = SelectQuery(
        projection=(var.render(),),
        where=Group([
            union(
                Group([Triple(var, A, CUBE_OBSERVATION_SET_CLASS)]),
                Group([Triple(var, CUBE_OBSERVATION, Var("anyObservation"))]),
            ),
        ]),
        distinct=True,
    )
    return [
        SubSelect(candidates),
        Exists(Group([Triple(Var("anyCube"), A, CUBE_CUBE), Triple(Var("anyCube"), CUBE_OBSERVATION_SET, var)]), negated=True),
    ]


def _orphan_node_shape(var: Var) -> list:
    return [
        Triple(var, A, SH_NODE_SHAPE),
        Exists(
            Group([Triple(Var("anyCube"), A, CUBE_CUBE), Triple(Var("anyCube"), CUBE_OBSERVATION_CONSTRAINT, var)]),
            negated=True,
        ),
    ]


def _orphan_property_shape(var: Var) -> list:
    return [
        Triple(var, A, SH_PROPERTY_SHAPE),
        Exists(Group([Triple(Var("anyShape"), SH_PROPERTY, var)]), negated=True),
    ]


def orphan_summary_query(graph_uri: str) -> str:
    """Orphan counts per category (ObservationSet, NodeShape, PropertyShape)."""
    orphan, kind = Var("orphan"), Var("orphanType")
    where = _in_graph(
        graph_uri,
        union(
            Group([*_orphan_observation_set(orphan), Bind('"ObservationSet"', kind)]),
            Group([*_orphan_node_shape(orphan), Bind('"NodeShape"', kind)]),
            Group([*_orphan_property_shape(orphan), Bind('"PropertyShape"', kind)]),
        ),
    )
    return SelectQuery(
        projection=("?orphanType", "(COUNT(DISTINCT ?orphan) AS ?count)"),
        where=where,
        group_by=("?orphanType",),
        order_by=("?orphanType",),
    ).render()


def orphan_sets_detail_query(graph_uri: str, limit: int = ORPHAN_DETAIL_LIMIT) -> str:
    orphan = Var("orphanSet")
    where = _in_graph(
        graph_uri,
        *_orphan_observation_set(orphan),
        Optional(Group([Triple(orphan, CUBE_OBSERVATION, Var("obs"))])),
    )
    return SelectQuery(
        projection=("?orphanSet", "(COUNT(DISTINCT ?obs) AS ?observationCount)"),
        where=where,
        group_by=("?orphanSet",),
        order_by=("DESC(?observationCount)", "?orphanSet"),
        limit=_positive_int(limit, "limit"),
    ).render()


def orphan_shapes_detail_query(graph_uri: str, limit: int = ORPHAN_DETAIL_LIMIT) -> str:
    orphan, kind = Var("orphanShape"), Var("shapeType")
    where = _in_graph(
        graph_uri,
        union(
            Group([*_orphan_node_shape(orphan), Bind('"NodeShape"', kind)]),
            Group([*_orphan_property_shape(orphan), Bind('"PropertyShape"', kind)]),
        ),
        Triple(orphan, P, O),
    )
    return SelectQuery(
        projection=("?orphanShape", "?shapeType", "(COUNT(*) AS ?tripleCount)"),
        where=where,
        group_by=("?orphanShape", "?shapeType"),
        order_by=("DESC(?tripleCount)", "?orphanShape"),
        limit=_positive_int(limit, "limit"),
    ).render()


def orphan_delete_query(graph_uri: str) -> str:
    """
    Delete every orphan together with what hangs off it: observations of an
    orphan set, property shapes of an orphan node shape, and the list cells
    of orphan property shapes.
    """
    obs_set, shape, prop = Var("orphanSet"), Var("orphanShape"), Var("orphanProp")
    where = Group([
        union(
            Group([*_orphan_observation_set(S), Triple(S, P, O)]),
            Group([*_orphan_observation_set(obs_set), Triple(obs_set, CUBE_OBSERVATION, S), Triple(S, P, O)]),
            Group([*_orphan_node_shape(S), Triple(S, P, O)]),
            Group([*_orphan_node_shape(shape), Triple(shape, SH_PROPERTY, S), Triple(S, P, O)]),
            Group([
                *_orphan_node_shape(shape),
                Triple(shape, SH_PROPERTY, Var("childProp")),
                *_list_cells(Var("childProp"), S),
                Triple(S, P, O),
            ]),
            Group([*_orphan_property_shape(S), Triple(S, P, O)]),
            Group([*_orphan_property_shape(prop), *_list_cells(prop, S), Triple(S, P, O)]),
        ),
    ])
    return DeleteWhere(graph=IRI(graph_uri), template=SPO, where=where).render()
