from .pull_requests import (CheckSuite, HeadCommit, PullRequest,  # noqa: F401
                            Release, Review, pull_requests_from_payloads,
                            releases_from_payloads)
from .work_items import (Assignee, Cycle, CycleIssue,  # noqa: F401
                         HistoryEvent, Issue, WorkflowState,
                         cycles_from_payloads, issues_from_payloads)

__all__ = [
    "Assignee",
    "CheckSuite",
    "Cycle",
    "CycleIssue",
    "HeadCommit",
    "HistoryEvent",
    "Issue",
    "PullRequest",
    "Release",
    "Review",
    "WorkflowState",
    "cycles_from_payloads",
    "issues_from_payloads",
    "pull_requests_from_payloads",
    "releases_from_payloads",
]
