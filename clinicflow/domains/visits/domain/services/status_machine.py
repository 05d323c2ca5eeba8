"""Status Machine.

Pure classification of requested status edges for visit records, lab
orders and lab results. No I/O and no mutation: callers persist.

VisitRecord: AWAITING_EXAM -> IN_EXAM -> AWAITING_LAB -> COMPLETED,
             any non-terminal -> CANCELLED
LabOrder:    PENDING -> IN_PROGRESS -> AWAITING_RESULT -> DONE,
             any non-terminal -> CANCELLED
LabResult:   DRAFT -> FINAL

There are no implicit skips and no self-edges. The cross-entity
precondition on COMPLETED is enforced by the lifecycle controller.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from ..exceptions import InvalidTransition
from ..value_objects import LabOrderStatus, LabResultStatus, VisitStatus


class EntityKind(str, Enum):
    VISIT_RECORD = "visit_record"
    LAB_ORDER = "lab_order"
    LAB_RESULT = "lab_result"


_Graph = Mapping[Enum, frozenset[Enum]]

_VISIT_GRAPH: _Graph = MappingProxyType(
    {
        VisitStatus.AWAITING_EXAM: frozenset({VisitStatus.IN_EXAM, VisitStatus.CANCELLED}),
        VisitStatus.IN_EXAM: frozenset({VisitStatus.AWAITING_LAB, VisitStatus.CANCELLED}),
        VisitStatus.AWAITING_LAB: frozenset({VisitStatus.COMPLETED, VisitStatus.CANCELLED}),
        VisitStatus.COMPLETED: frozenset(),
        VisitStatus.CANCELLED: frozenset(),
    }
)

_LAB_ORDER_GRAPH: _Graph = MappingProxyType(
    {
        LabOrderStatus.PENDING: frozenset({LabOrderStatus.IN_PROGRESS, LabOrderStatus.CANCELLED}),
        LabOrderStatus.IN_PROGRESS: frozenset({LabOrderStatus.AWAITING_RESULT, LabOrderStatus.CANCELLED}),
        LabOrderStatus.AWAITING_RESULT: frozenset({LabOrderStatus.DONE, LabOrderStatus.CANCELLED}),
        LabOrderStatus.DONE: frozenset(),
        LabOrderStatus.CANCELLED: frozenset(),
    }
)

_LAB_RESULT_GRAPH: _Graph = MappingProxyType(
    {
        LabResultStatus.DRAFT: frozenset({LabResultStatus.FINAL}),
        LabResultStatus.FINAL: frozenset(),
    }
)

_GRAPHS: Mapping[EntityKind, tuple[type[Enum], _Graph]] = MappingProxyType(
    {
        EntityKind.VISIT_RECORD: (VisitStatus, _VISIT_GRAPH),
        EntityKind.LAB_ORDER: (LabOrderStatus, _LAB_ORDER_GRAPH),
        EntityKind.LAB_RESULT: (LabResultStatus, _LAB_RESULT_GRAPH),
    }
)


def _graph_for(kind: EntityKind, *statuses: object) -> _Graph | None:
    """Return the graph, or None if any status belongs to another enum.

    Status enums are str-valued and share wire codes (HOAN_THANH), so an
    explicit type check keeps a LabOrderStatus from matching a visit edge.
    """
    status_type, graph = _GRAPHS[EntityKind(kind)]
    if not all(type(status) is status_type for status in statuses):
        return None
    return graph


def is_allowed(kind: EntityKind, current: Enum, requested: Enum) -> bool:
    """True iff ``current -> requested`` is an edge of the kind's graph."""
    graph = _graph_for(kind, current, requested)
    if graph is None:
        return False
    return requested in graph[current]


def validate_transition(kind: EntityKind, current: Enum, requested: Enum) -> None:
    """Classify a requested edge.

    Raises:
        InvalidTransition: If the edge is not in the allowed graph.
    """
    if not is_allowed(kind, current, requested):
        raise InvalidTransition(EntityKind(kind).value, current, requested)


def allowed_targets(kind: EntityKind, current: Enum) -> frozenset[Enum]:
    """Statuses reachable from ``current`` in one step."""
    graph = _graph_for(kind, current)
    if graph is None:
        return frozenset()
    return graph[current]


def is_terminal(kind: EntityKind, status: Enum) -> bool:
    """A status with no outgoing edges."""
    graph = _graph_for(kind, status)
    return graph is not None and not graph[status]


def all_statuses(kind: EntityKind) -> tuple[Enum, ...]:
    status_type, _ = _GRAPHS[EntityKind(kind)]
    return tuple(status_type)
