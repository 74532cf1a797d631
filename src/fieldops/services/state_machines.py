"""
Transition tables for every status-bearing document.

Each machine declares, for every member of its status enum, the statuses it
may move to, plus the operations engines call with their permitted source
statuses. Construction fails if a status has no row or if an operation's
target is not reachable from one of its sources, so the tables can't drift
out of step with the enums.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Generic, Mapping, Optional, Type, TypeVar

from fieldops.enums import EstimateStatus, InvoiceStatus, QuoteStatus, WorkOrderStatus
from fieldops.exceptions import InvalidStateTransitionError

S = TypeVar("S", bound=Enum)


@dataclass(frozen=True)
class Operation(Generic[S]):
    name: str
    sources: FrozenSet[S]
    target: Optional[S] = None


def op(name: str, sources, target=None) -> Operation:
    return Operation(name=name, sources=frozenset(sources), target=target)


class StateMachine(Generic[S]):
    def __init__(
        self,
        entity: str,
        states: Type[S],
        transitions: Mapping[S, FrozenSet[S]],
        operations: Mapping[str, Operation[S]],
    ) -> None:
        missing = [s.value for s in states if s not in transitions]
        if missing:
            raise ValueError(f"{entity} transition table has no row for: {', '.join(missing)}")
        for key, operation in operations.items():
            if operation.target is None:
                continue
            for source in operation.sources:
                if operation.target not in transitions[source]:
                    raise ValueError(
                        f"{entity} operation {key!r} moves {source.value} -> "
                        f"{operation.target.value}, which the transition table forbids"
                    )
        self.entity = entity
        self.states = states
        self.transitions: Dict[S, FrozenSet[S]] = dict(transitions)
        self.operations: Dict[str, Operation[S]] = dict(operations)

    def guard(self, operation: str, current: S) -> Optional[S]:
        """Raise unless ``operation`` is allowed from ``current``; return its target status."""
        rule = self.operations[operation]
        if current not in rule.sources:
            allowed = [s for s in self.states if s in rule.sources]
            raise InvalidStateTransitionError(self.entity, rule.name, current, allowed)
        return rule.target

    def ensure(self, current: S, target: S) -> S:
        """For data-dependent targets (e.g. PAID vs PARTIAL) check the table directly."""
        if target not in self.transitions[current]:
            allowed = [s for s in self.states if target in self.transitions[s]]
            raise InvalidStateTransitionError(
                self.entity, f"move to {target.value}", current, allowed
            )
        return target


# -----------------------------------------------------------------------------
# Estimate
# -----------------------------------------------------------------------------
_E = EstimateStatus

ESTIMATE_TRANSITIONS = {
    _E.DRAFT: frozenset({_E.PENDING_MANAGER_APPROVAL, _E.CANCELLED}),
    _E.PENDING_MANAGER_APPROVAL: frozenset(
        {_E.APPROVED, _E.REJECTED, _E.REVISION_REQUESTED, _E.CANCELLED}
    ),
    _E.REVISION_REQUESTED: frozenset({_E.PENDING_MANAGER_APPROVAL, _E.CANCELLED}),
    _E.APPROVED: frozenset({_E.CONVERTED, _E.CANCELLED}),
    _E.REJECTED: frozenset(),
    _E.CONVERTED: frozenset(),
    _E.CANCELLED: frozenset(),
}

estimate_machine: StateMachine[EstimateStatus] = StateMachine(
    "estimate",
    EstimateStatus,
    ESTIMATE_TRANSITIONS,
    {
        "update": op("edit", {_E.DRAFT, _E.REVISION_REQUESTED}),
        "submit": op("submit", {_E.DRAFT, _E.REVISION_REQUESTED}, _E.PENDING_MANAGER_APPROVAL),
        "approve": op("approve", {_E.PENDING_MANAGER_APPROVAL}, _E.APPROVED),
        "reject": op("reject", {_E.PENDING_MANAGER_APPROVAL}, _E.REJECTED),
        "request_revision": op(
            "request revision of", {_E.PENDING_MANAGER_APPROVAL}, _E.REVISION_REQUESTED
        ),
        "convert": op("convert to quote", {_E.APPROVED}, _E.CONVERTED),
        "cancel": op(
            "cancel",
            {_E.DRAFT, _E.PENDING_MANAGER_APPROVAL, _E.REVISION_REQUESTED, _E.APPROVED},
            _E.CANCELLED,
        ),
        "delete": op("delete", {_E.DRAFT}),
        "seed_work_order": op("create a work order from", {_E.APPROVED}),
        "create_revision": op("create a revision of", {_E.REVISION_REQUESTED, _E.REJECTED}),
    },
)


# -----------------------------------------------------------------------------
# Quote
# -----------------------------------------------------------------------------
_Q = QuoteStatus

QUOTE_TRANSITIONS = {
    _Q.DRAFT: frozenset({_Q.PENDING_REVIEW, _Q.SENT, _Q.CANCELLED}),
    _Q.PENDING_REVIEW: frozenset({_Q.SENT, _Q.REVISED, _Q.CANCELLED}),
    _Q.SENT: frozenset({_Q.VIEWED, _Q.ACCEPTED, _Q.REJECTED, _Q.EXPIRED, _Q.REVISED, _Q.CANCELLED}),
    _Q.VIEWED: frozenset({_Q.ACCEPTED, _Q.REJECTED, _Q.EXPIRED, _Q.REVISED, _Q.CANCELLED}),
    _Q.REVISED: frozenset({_Q.SENT, _Q.CANCELLED}),
    _Q.ACCEPTED: frozenset({_Q.CONVERTED}),
    _Q.REJECTED: frozenset(),
    _Q.EXPIRED: frozenset(),
    _Q.CONVERTED: frozenset(),
    _Q.CANCELLED: frozenset(),
}

quote_machine: StateMachine[QuoteStatus] = StateMachine(
    "quote",
    QuoteStatus,
    QUOTE_TRANSITIONS,
    {
        "send": op("send", {_Q.DRAFT, _Q.PENDING_REVIEW, _Q.REVISED}, _Q.SENT),
        "view": op("mark viewed", {_Q.SENT}, _Q.VIEWED),
        "accept": op("accept", {_Q.SENT, _Q.VIEWED}, _Q.ACCEPTED),
        "reject": op("reject", {_Q.SENT, _Q.VIEWED}, _Q.REJECTED),
        "expire": op("expire", {_Q.SENT, _Q.VIEWED}, _Q.EXPIRED),
        "convert": op("convert to work order", {_Q.ACCEPTED}, _Q.CONVERTED),
        "cancel": op(
            "cancel",
            {_Q.DRAFT, _Q.PENDING_REVIEW, _Q.SENT, _Q.VIEWED, _Q.REVISED},
            _Q.CANCELLED,
        ),
    },
)


# -----------------------------------------------------------------------------
# Work order
# -----------------------------------------------------------------------------
_W = WorkOrderStatus

_W_OPEN = {
    _W.PENDING, _W.SCHEDULED, _W.CONFIRMED, _W.EN_ROUTE,
    _W.IN_PROGRESS, _W.ON_HOLD, _W.REQUIRES_FOLLOWUP,
}
_W_RESCHEDULABLE = _W_OPEN - {_W.IN_PROGRESS}
_W_FIELD = {_W.SCHEDULED, _W.CONFIRMED, _W.EN_ROUTE, _W.IN_PROGRESS}

WORK_ORDER_TRANSITIONS = {
    _W.PENDING: frozenset({_W.SCHEDULED, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}),
    _W.SCHEDULED: frozenset(
        {_W.SCHEDULED, _W.CONFIRMED, _W.EN_ROUTE, _W.IN_PROGRESS, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}
    ),
    _W.CONFIRMED: frozenset(
        {_W.SCHEDULED, _W.EN_ROUTE, _W.IN_PROGRESS, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}
    ),
    _W.EN_ROUTE: frozenset({_W.SCHEDULED, _W.IN_PROGRESS, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}),
    _W.IN_PROGRESS: frozenset({_W.COMPLETED, _W.ON_HOLD, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}),
    _W.ON_HOLD: frozenset({_W.IN_PROGRESS, _W.SCHEDULED, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}),
    _W.REQUIRES_FOLLOWUP: frozenset({_W.SCHEDULED, _W.REQUIRES_FOLLOWUP, _W.CANCELLED}),
    _W.COMPLETED: frozenset(),
    _W.CANCELLED: frozenset(),
}

work_order_machine: StateMachine[WorkOrderStatus] = StateMachine(
    "work order",
    WorkOrderStatus,
    WORK_ORDER_TRANSITIONS,
    {
        "update": op("edit", {_W.PENDING, _W.SCHEDULED}),
        "delete": op("delete", {_W.PENDING, _W.SCHEDULED}),
        "assign_team": op("assign a team to", _W_OPEN),
        "schedule": op("schedule", {_W.PENDING, _W.SCHEDULED, _W.CONFIRMED}, _W.SCHEDULED),
        "reschedule": op("reschedule", _W_RESCHEDULABLE, _W.SCHEDULED),
        "confirm": op("confirm", {_W.SCHEDULED}, _W.CONFIRMED),
        "start_en_route": op("start travel for", {_W.SCHEDULED, _W.CONFIRMED}, _W.EN_ROUTE),
        "arrive": op("record arrival for", _W_FIELD),
        "start_work": op("start", {_W.SCHEDULED, _W.CONFIRMED, _W.EN_ROUTE}, _W.IN_PROGRESS),
        "clock_in": op("clock in to", _W_FIELD),
        "clock_out": op("clock out of", _W_OPEN),
        "checklist": op("update the checklist of", _W_OPEN),
        "add_item": op("add items to", _W_OPEN),
        "add_photo": op("add photos to", _W_OPEN | {_W.COMPLETED}),
        "complete": op("complete", {_W.IN_PROGRESS}, _W.COMPLETED),
        "hold": op("put on hold", {_W.IN_PROGRESS}, _W.ON_HOLD),
        "resume": op("resume", {_W.ON_HOLD}, _W.IN_PROGRESS),
        "follow_up": op("flag for follow-up", _W_OPEN, _W.REQUIRES_FOLLOWUP),
        "cancel": op("cancel", _W_OPEN, _W.CANCELLED),
    },
)


# -----------------------------------------------------------------------------
# Invoice
# -----------------------------------------------------------------------------
_I = InvoiceStatus

INVOICE_TRANSITIONS = {
    _I.DRAFT: frozenset({_I.SENT, _I.CANCELLED}),
    _I.SENT: frozenset({_I.PARTIAL, _I.PAID, _I.OVERDUE, _I.CANCELLED}),
    _I.PARTIAL: frozenset({_I.PARTIAL, _I.PAID, _I.OVERDUE}),
    _I.OVERDUE: frozenset({_I.PARTIAL, _I.PAID, _I.CANCELLED}),
    _I.PAID: frozenset(),
    _I.CANCELLED: frozenset(),
}

invoice_machine: StateMachine[InvoiceStatus] = StateMachine(
    "invoice",
    InvoiceStatus,
    INVOICE_TRANSITIONS,
    {
        "send": op("send", {_I.DRAFT}, _I.SENT),
        "pay": op("record a payment on", {_I.SENT, _I.PARTIAL, _I.OVERDUE}),
        "mark_overdue": op("mark overdue", {_I.SENT, _I.PARTIAL}, _I.OVERDUE),
        "cancel": op("cancel", {_I.DRAFT, _I.SENT, _I.OVERDUE}, _I.CANCELLED),
    },
)

__all__ = [
    "Operation",
    "StateMachine",
    "estimate_machine",
    "quote_machine",
    "work_order_machine",
    "invoice_machine",
]
