"""Pipeline composition: ordering, collision checks, rendering and evaluation.

Fragments declare the facts they need (``requires``) and the facts they
establish (``provides``). The composer orders them so every fragment comes
strictly after the providers of its preconditions, keeping the caller's order
wherever the dependencies allow it, and rejects compositions in which two
fragments declare the same scratch variable.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from functools import partial
from graphlib import CycleError, TopologicalSorter
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from schema.blueprint import (
    default_interaction_permissions,
    default_provisioning_permissions,
    default_tables,
)
from schema.permission import PermissionRequirement, PermissionScope
from schema.table_def import TableSpec
from scriptgen.catalog import CatalogSnapshot
from scriptgen.errors import CompositionError, PreconditionError
from scriptgen.fragments import (
    KIND_PRECONDITIONS,
    Fact,
    Fragment,
    FragmentKind,
    column_select_permission,
    column_shape,
    database_permission,
    extra_columns,
    foreign_key,
    object_permission,
    primary_key,
    resolve_table_schema,
    same_schema_fact,
    table_exists_unique,
    tables_same_schema,
)
from scriptgen.namespace import NamespaceAllocator
from scriptgen.outcome import (
    Outcome,
    SuccessToken,
    fold_outcomes,
    render_success,
)

logger = logging.getLogger(__name__)

_CLOSING_COMMENTS = {
    SuccessToken.SUCCESS: "-- Database creation is successful if execution reached here.",
    SuccessToken.ALLOW: "-- Permissions are not denied if execution reached here.",
    SuccessToken.VALID: "-- Structure is valid if execution reached here.",
}


def validate_kind_graph(
    graph: Dict[FragmentKind, FrozenSet[FragmentKind]] = KIND_PRECONDITIONS,
) -> List[FragmentKind]:
    """Return fragment kinds in precondition order.

    Raises:
        CompositionError: if the kind-level preconditions contain a cycle.
    """
    sorter = TopologicalSorter({kind: set(deps) for kind, deps in graph.items()})
    try:
        return list(sorter.static_order())
    except CycleError as exc:
        raise CompositionError(f"Fragment kind preconditions form a cycle: {exc.args[1]}") from exc


KIND_ORDER = validate_kind_graph()


def _describe(required: Fact) -> str:
    kind, entities = required
    return f"{kind.value}({', '.join(entities)})"


def _check_declared_preconditions(fragment: Fragment) -> None:
    # Facts are typed by the kind that provides them, so the kind graph bounds every dependency.
    for provided in fragment.provides:
        if provided[0] != fragment.kind:
            raise PreconditionError(
                f"{fragment.name} provides {_describe(provided)}, a fact of another fragment kind"
            )
    allowed = KIND_PRECONDITIONS.get(fragment.kind, frozenset())
    for required in fragment.requires:
        if required[0] not in allowed:
            raise PreconditionError(
                f"{fragment.name} depends on {_describe(required)}, which is not a declared "
                f"precondition of {fragment.kind.value} fragments"
            )


def order_fragments(fragments: Iterable[Fragment]) -> List[Fragment]:
    """Stable topological order of fragments over their facts.

    Raises:
        PreconditionError: if a required fact has no provider in the sequence.
        CompositionError: on duplicate fragment names, duplicate providers or cycles.
    """
    items = list(fragments)
    providers: Dict[Fact, int] = {}
    names: Set[str] = set()
    for index, fragment in enumerate(items):
        if fragment.name in names:
            raise CompositionError(f"Fragment {fragment.name} appears twice")
        names.add(fragment.name)
        _check_declared_preconditions(fragment)
        for provided in fragment.provides:
            if provided in providers:
                raise CompositionError(
                    f"{_describe(provided)} is provided by both "
                    f"{items[providers[provided]].name} and {fragment.name}"
                )
            providers[provided] = index

    indegree = [0] * len(items)
    dependents: List[List[int]] = [[] for _ in items]
    for index, fragment in enumerate(items):
        for required in sorted(fragment.requires, key=_describe):
            provider = providers.get(required)
            if provider is None:
                raise PreconditionError(
                    f"{fragment.name} requires {_describe(required)} but no fragment provides it"
                )
            if provider == index:
                raise CompositionError(f"{fragment.name} requires a fact it provides itself")
            indegree[index] += 1
            dependents[provider].append(index)

    ready = [index for index, degree in enumerate(indegree) if degree == 0]
    heapq.heapify(ready)
    ordered: List[int] = []
    while ready:
        index = heapq.heappop(ready)
        ordered.append(index)
        for dependent in dependents[index]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(ordered) != len(items):
        stuck = sorted(items[index].name for index, degree in enumerate(indegree) if degree)
        raise CompositionError(f"Fragment preconditions form a cycle: {', '.join(stuck)}")
    return [items[index] for index in ordered]


def verify_order(fragments: Sequence[Fragment]) -> None:
    """Raise PreconditionError if any fragment runs before one of its preconditions."""
    established: Set[Fact] = set()
    for fragment in fragments:
        missing = fragment.requires - established
        if missing:
            pending = ", ".join(sorted(_describe(item) for item in missing))
            raise PreconditionError(f"{fragment.name} runs before its preconditions: {pending}")
        established |= fragment.provides


def _check_declarations(fragments: Sequence[Fragment]) -> None:
    owners: Dict[str, str] = {}
    for fragment in fragments:
        for variable in sorted(fragment.declares):
            if variable in owners:
                raise CompositionError(
                    f"Variable {variable} is declared by both {owners[variable]} and {fragment.name}"
                )
            owners[variable] = fragment.name


@dataclass(frozen=True)
class Pipeline:
    """An ordered, collision-free composition ending in one success token."""

    name: str
    success: SuccessToken
    fragments: Tuple[Fragment, ...]

    @property
    def variables(self) -> FrozenSet[str]:
        declared: Set[str] = set()
        for fragment in self.fragments:
            declared |= fragment.declares
        return frozenset(declared)

    @property
    def fragment_names(self) -> List[str]:
        return [fragment.name for fragment in self.fragments]

    def render(self) -> str:
        """Render the complete procedure text.

        After an abort the session stays in NOEXEC mode; the executor owns the session.
        """
        parts = [f"-- {self.name} check; selects '{self.success.value}' or the first ERR_* token."]
        parts.extend(fragment.text for fragment in self.fragments)
        parts.append(f"{_CLOSING_COMMENTS[self.success]}\n{render_success(self.success)}")
        return "\n\n".join(parts) + "\n"

    def evaluate(self, catalog: CatalogSnapshot) -> Outcome:
        """Evaluate the procedure against a catalog snapshot; first failure wins."""
        outcome = fold_outcomes(
            (partial(fragment.evaluate, catalog) for fragment in self.fragments),
            self.success,
        )
        logger.debug("Evaluated %s pipeline: %s", self.name, outcome.token)
        return outcome


def compose(name: str, success: SuccessToken, fragments: Iterable[Fragment]) -> Pipeline:
    """Order fragments by their preconditions and check they can share one procedure."""
    ordered = order_fragments(fragments)
    verify_order(ordered)
    _check_declarations(ordered)
    for fragment in ordered:
        logger.debug("%s: %s", name, fragment.name)
    logger.info("Composed %s pipeline with %d fragments", name, len(ordered))
    return Pipeline(name=name, success=SuccessToken(success), fragments=tuple(ordered))


def provisioning_permission_pipeline(
    requirements: Optional[Sequence[PermissionRequirement]] = None,
) -> Pipeline:
    """Check the principal may create the application database."""
    ns = NamespaceAllocator()
    requirements = default_provisioning_permissions() if requirements is None else requirements
    fragments = [database_permission(ns, requirement) for requirement in requirements]
    return compose("provisioning_permission", SuccessToken.ALLOW, fragments)


def interaction_permission_pipeline(
    tables: Optional[Sequence[TableSpec]] = None,
    requirements: Optional[Sequence[PermissionRequirement]] = None,
) -> Pipeline:
    """Check the principal holds every table and column permission the application uses."""
    ns = NamespaceAllocator()
    tables = default_tables() if tables is None else tables
    requirements = default_interaction_permissions() if requirements is None else requirements

    order: List[str] = []
    columns: Dict[str, List[str]] = {}
    object_requirements: List[PermissionRequirement] = []
    for requirement in requirements:
        if requirement.scope == PermissionScope.COLUMN:
            wanted = columns.setdefault(requirement.target, [])
            if requirement.column not in wanted:
                wanted.append(requirement.column)
        elif requirement.scope == PermissionScope.OBJECT:
            if requirement not in object_requirements:
                object_requirements.append(requirement)
        else:
            raise CompositionError(
                f"{requirement.scope.value} permissions belong to the provisioning check"
            )
        if requirement.target not in order:
            order.append(requirement.target)

    # Blueprint order first, then tables only named by requirements.
    known = [table.name for table in tables if table.name in order]
    order = known + [name for name in order if name not in known]

    fragments = [resolve_table_schema(ns, name) for name in order]
    fragments.extend(
        column_select_permission(ns, name, columns[name]) for name in order if name in columns
    )
    fragments.extend(
        object_permission(ns, requirement.target, requirement.action)
        for requirement in object_requirements
    )
    return compose("interaction_permission", SuccessToken.ALLOW, fragments)


def structural_validation_pipeline(tables: Optional[Sequence[TableSpec]] = None) -> Pipeline:
    """Check the live schema matches the blueprint tables exactly."""
    ns = NamespaceAllocator()
    tables = list(default_tables() if tables is None else tables)
    if not tables:
        raise CompositionError("Structural validation needs at least one table")

    fragments: List[Fragment] = [table_exists_unique(ns, table.name) for table in tables]

    pairs: List[Tuple[str, str]] = []
    covered: Set[Fact] = set()

    def add_pair(first: str, second: str) -> None:
        key = same_schema_fact(first, second)
        if first != second and key not in covered:
            covered.add(key)
            pairs.append((first, second))

    anchor = tables[0].name
    for table in tables[1:]:
        add_pair(anchor, table.name)
    for table in tables:
        for fk in table.foreign_keys:
            add_pair(table.name, fk.referenced_table)

    if pairs:
        involved = {name for pair in pairs for name in pair}
        for name in [table.name for table in tables] + sorted(involved):
            if name in involved:
                fragments.append(resolve_table_schema(ns, name))
                involved.discard(name)
        fragments.extend(tables_same_schema(ns, first, second) for first, second in pairs)

    for table in tables:
        fragments.extend(column_shape(ns, table.name, column) for column in table.columns)
        fragments.append(extra_columns(ns, table.name, table.column_names))
    fragments.extend(primary_key(ns, table.name, table.primary_key) for table in tables)
    for table in tables:
        fragments.extend(foreign_key(ns, table.name, fk) for fk in table.foreign_keys)

    return compose("structural_validation", SuccessToken.VALID, fragments)
