from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


def connection_nodes(value: Any) -> List[Any]:
    """
    Unwrap a GraphQL connection.

    Payloads arrive either as `{"nodes": [...]}` or as a plain list; anything
    else (None, scalars) is treated as an empty collection.
    """
    if value is None:
        return []
    if isinstance(value, Mapping):
        nodes = value.get("nodes")
        return list(nodes) if isinstance(nodes, (list, tuple)) else []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        name = value.get("name")
        return str(name) if name is not None else None
    return None


def _estimate(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class WorkflowState:
    name: Optional[str]
    type: Optional[str]  # backlog|unstarted|started|completed|canceled|triage

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["WorkflowState"]:
        if not isinstance(payload, Mapping):
            return None
        return cls(name=payload.get("name"), type=payload.get("type"))


@dataclass(frozen=True)
class Assignee:
    id: Optional[str]
    name: Optional[str]

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Assignee"]:
        if not isinstance(payload, Mapping):
            return None
        raw_id = payload.get("id")
        return cls(
            id=str(raw_id) if raw_id is not None else None,
            name=payload.get("name"),
        )


@dataclass(frozen=True)
class HistoryEvent:
    created_at: Optional[str]
    from_state: Optional[WorkflowState] = None
    to_state: Optional[WorkflowState] = None

    @property
    def from_state_name(self) -> Optional[str]:
        return self.from_state.name if self.from_state else None

    @property
    def to_state_name(self) -> Optional[str]:
        return self.to_state.name if self.to_state else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "HistoryEvent":
        return cls(
            created_at=payload.get("createdAt"),
            from_state=WorkflowState.from_payload(payload.get("fromState")),
            to_state=WorkflowState.from_payload(payload.get("toState")),
        )


@dataclass(frozen=True)
class Issue:
    """
    A single tracked issue as returned by the issue-fetch collaborator.

    Timestamps are kept as the raw ISO-8601 strings; calculators parse them
    through `metrics.utils` so an unparseable value only skips the derivation
    that needs it.
    """

    id: str
    created_at: Optional[str]
    title: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    canceled_at: Optional[str] = None
    estimate: Optional[float] = None
    priority: int = 0
    priority_label: Optional[str] = None
    state: Optional[WorkflowState] = None
    assignee: Optional[Assignee] = None
    team_name: Optional[str] = None
    cycle_name: Optional[str] = None
    labels: Tuple[str, ...] = ()
    history: Tuple[HistoryEvent, ...] = ()

    @property
    def state_name(self) -> Optional[str]:
        return self.state.name if self.state else None

    @property
    def state_type(self) -> Optional[str]:
        return self.state.type if self.state else None

    @property
    def assignee_name(self) -> Optional[str]:
        return self.assignee.name if self.assignee else None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Issue":
        priority_raw = payload.get("priority")
        try:
            priority = int(priority_raw) if priority_raw is not None else 0
        except (TypeError, ValueError):
            priority = 0

        return cls(
            id=str(payload.get("id") or payload.get("identifier") or ""),
            title=str(payload.get("title") or ""),
            created_at=payload.get("createdAt"),
            started_at=payload.get("startedAt"),
            completed_at=payload.get("completedAt"),
            canceled_at=payload.get("canceledAt"),
            estimate=_estimate(payload.get("estimate")),
            priority=priority,
            priority_label=payload.get("priorityLabel"),
            state=WorkflowState.from_payload(payload.get("state")),
            assignee=Assignee.from_payload(payload.get("assignee")),
            team_name=_name_of(payload.get("team")),
            cycle_name=_name_of(payload.get("cycle")),
            labels=tuple(
                str(label.get("name"))
                for label in connection_nodes(payload.get("labels"))
                if isinstance(label, Mapping) and label.get("name") is not None
            ),
            history=tuple(
                HistoryEvent.from_payload(event)
                for event in connection_nodes(payload.get("history"))
                if isinstance(event, Mapping)
            ),
        )


@dataclass(frozen=True)
class CycleIssue:
    estimate: Optional[float] = None
    completed_at: Optional[str] = None
    assignee_id: Optional[str] = None
    state_type: Optional[str] = None
    labels: Tuple[str, ...] = ()

    @property
    def is_completed(self) -> bool:
        # Cycle membership reports completion through the workflow state type.
        return self.state_type == "completed"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CycleIssue":
        assignee = Assignee.from_payload(payload.get("assignee"))
        state = WorkflowState.from_payload(payload.get("state"))
        return cls(
            estimate=_estimate(payload.get("estimate")),
            completed_at=payload.get("completedAt"),
            assignee_id=assignee.id if assignee else None,
            state_type=state.type if state else None,
            labels=tuple(
                str(label.get("name"))
                for label in connection_nodes(payload.get("labels"))
                if isinstance(label, Mapping) and label.get("name") is not None
            ),
        )


@dataclass(frozen=True)
class Cycle:
    number: int
    name: Optional[str] = None
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    completed_at: Optional[str] = None
    progress: float = 0.0
    team_name: Optional[str] = None
    issues: Tuple[CycleIssue, ...] = ()
    uncompleted_issue_ids: Tuple[str, ...] = ()
    scope_history: Tuple[int, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name or f"Cycle {self.number}"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Cycle":
        number_raw = payload.get("number")
        try:
            number = int(number_raw) if number_raw is not None else 0
        except (TypeError, ValueError):
            number = 0
        try:
            progress = float(payload.get("progress") or 0.0)
        except (TypeError, ValueError):
            progress = 0.0

        scope: List[int] = []
        for value in payload.get("scopeHistory") or []:
            try:
                scope.append(int(value))
            except (TypeError, ValueError):
                scope.append(0)

        return cls(
            number=number,
            name=payload.get("name"),
            starts_at=payload.get("startsAt"),
            ends_at=payload.get("endsAt"),
            completed_at=payload.get("completedAt"),
            progress=progress,
            team_name=_name_of(payload.get("team")),
            issues=tuple(
                CycleIssue.from_payload(issue)
                for issue in connection_nodes(payload.get("issues"))
                if isinstance(issue, Mapping)
            ),
            uncompleted_issue_ids=tuple(
                str(issue.get("id"))
                for issue in connection_nodes(payload.get("uncompletedIssuesUponClose"))
                if isinstance(issue, Mapping)
            ),
            scope_history=tuple(scope),
        )


def issues_from_payloads(payloads: Sequence[Dict[str, Any]]) -> List[Issue]:
    return [Issue.from_payload(p) for p in payloads if isinstance(p, Mapping)]


def cycles_from_payloads(payloads: Sequence[Dict[str, Any]]) -> List[Cycle]:
    return [Cycle.from_payload(p) for p in payloads if isinstance(p, Mapping)]
