"""Shared test fixtures for the test suite."""
import itertools
from datetime import date

import pytest

from models.work_items import Assignee, Cycle, HistoryEvent, Issue, WorkflowState


@pytest.fixture
def today():
    """A fixed Wednesday so 7/30 day windows are deterministic."""
    return date(2025, 3, 12)


@pytest.fixture
def make_event():
    def _make(at, from_name=None, to_name=None):
        return HistoryEvent(
            created_at=at,
            from_state=WorkflowState(from_name, None) if from_name else None,
            to_state=WorkflowState(to_name, None) if to_name else None,
        )

    return _make


@pytest.fixture
def make_issue():
    """Build an Issue; `state` is a (name, type) pair, `assignee` a display name."""
    counter = itertools.count(1)

    def _make(*, state=None, assignee=None, labels=(), history=(), **fields):
        fields.setdefault("id", f"ISS-{next(counter)}")
        fields.setdefault("created_at", "2025-03-01T09:00:00Z")
        return Issue(
            state=WorkflowState(*state) if state else None,
            assignee=Assignee(id=assignee.lower(), name=assignee) if assignee else None,
            labels=tuple(labels),
            history=tuple(history),
            **fields,
        )

    return _make


@pytest.fixture
def make_cycle():
    def _make(number=1, *, team="Platform", issues=(), uncompleted=(), scope_history=(), **fields):
        return Cycle(
            number=number,
            team_name=team,
            issues=tuple(issues),
            uncompleted_issue_ids=tuple(uncompleted),
            scope_history=tuple(scope_history),
            **fields,
        )

    return _make


@pytest.fixture
def issue_payloads():
    """Issues shaped like the issue-fetch GraphQL response."""
    return [
        {
            "id": "PLT-1",
            "title": "Fix bug in login",
            "createdAt": "2025-03-01T09:00:00.000Z",
            "startedAt": "2025-03-03T09:00:00.000Z",
            "completedAt": "2025-03-10T14:30:00.000Z",
            "estimate": 3,
            "priority": 2,
            "priorityLabel": "High",
            "state": {"name": "Done", "type": "completed"},
            "assignee": {"id": "u1", "name": "Alice"},
            "team": {"name": "Platform"},
            "labels": {"nodes": [{"name": "Bug"}]},
            "history": {
                "nodes": [
                    {
                        "createdAt": "2025-03-05T10:00:00.000Z",
                        "fromState": {"name": "In Progress", "type": "started"},
                        "toState": {"name": "In Review", "type": "started"},
                    },
                    {
                        "createdAt": "2025-03-07T10:00:00.000Z",
                        "fromState": {"name": "In Review", "type": "started"},
                        "toState": {"name": "Done", "type": "completed"},
                    },
                ]
            },
        },
        {
            "id": "PLT-2",
            "title": "Add support for SSO",
            "createdAt": "2025-03-04T09:00:00.000Z",
            "startedAt": "2025-03-05T09:00:00.000Z",
            "priority": 3,
            "priorityLabel": "Medium",
            "state": {"name": "In Progress", "type": "started"},
            "assignee": {"id": "u2", "name": "Bob"},
            "team": {"name": "Platform"},
            "labels": {"nodes": [{"name": "Feature"}]},
            "history": {"nodes": []},
        },
        {
            "id": "SRC-1",
            "title": "Investigate slow search",
            "createdAt": "2025-02-20T09:00:00.000Z",
            "state": {"name": "Backlog", "type": "backlog"},
            "team": {"name": "Sourcing"},
            "labels": {"nodes": []},
        },
    ]


@pytest.fixture
def cycle_payloads():
    """Cycles shaped like the cycle-fetch GraphQL response."""
    return [
        {
            "number": 7,
            "name": None,
            "startsAt": "2025-02-24T00:00:00.000Z",
            "endsAt": "2025-03-10T00:00:00.000Z",
            "completedAt": "2025-03-10T00:00:00.000Z",
            "progress": 0.5,
            "team": {"name": "Platform"},
            "issues": {
                "nodes": [
                    {"estimate": 3, "state": {"type": "completed"}, "assignee": {"id": "u1"}},
                    {"estimate": 2, "state": {"type": "started"}, "assignee": {"id": "u2"}},
                ]
            },
            "uncompletedIssuesUponClose": {"nodes": [{"id": "PLT-2"}]},
            "scopeHistory": [2, 2],
        },
        {
            "number": 8,
            "name": "Cycle 8",
            "startsAt": "2025-03-10T00:00:00.000Z",
            "endsAt": "2025-03-24T00:00:00.000Z",
            "progress": 0.1,
            "team": {"name": "Platform"},
            "issues": {
                "nodes": [
                    {"estimate": 1, "state": {"type": "completed"}, "assignee": {"id": "u1"}},
                ]
            },
            "uncompletedIssuesUponClose": {"nodes": []},
        },
    ]


@pytest.fixture
def pull_request_payloads():
    """PRs shaped like the PR search GraphQL response."""
    return [
        {
            "url": "https://github.com/acme/api/pull/1",
            "title": "Add rate limiting",
            "state": "MERGED",
            "createdAt": "2025-03-03T10:00:00Z",
            "mergedAt": "2025-03-05T10:00:00Z",
            "closedAt": "2025-03-05T10:00:00Z",
            "additions": 100,
            "deletions": 20,
            "changedFiles": 5,
            "author": {"login": "alice"},
            "repository": {"name": "api"},
            "commits": {
                "totalCount": 2,
                "nodes": [
                    {"commit": {"committedDate": "2025-03-03T09:00:00Z"}},
                    {"commit": {"committedDate": "2025-03-04T15:00:00Z"}},
                ],
            },
            "reviews": {
                "totalCount": 2,
                "nodes": [
                    {"createdAt": "2025-03-04T10:00:00Z", "state": "CHANGES_REQUESTED", "author": {"login": "bob"}},
                    {"createdAt": "2025-03-05T04:00:00Z", "state": "APPROVED", "author": {"login": "bob"}},
                ],
            },
            "comments": {"totalCount": 3},
            "lastCommit": {
                "nodes": [
                    {
                        "commit": {
                            "committedDate": "2025-03-04T15:00:00Z",
                            "statusCheckRollup": {"state": "SUCCESS"},
                            "checkSuites": {
                                "nodes": [
                                    {"conclusion": "SUCCESS", "updatedAt": "2025-03-04T17:00:00Z"},
                                    {"conclusion": "FAILURE", "updatedAt": "2025-03-04T18:00:00Z"},
                                ]
                            },
                        }
                    }
                ]
            },
        },
        {
            "url": "https://github.com/acme/web/pull/2",
            "title": "Try new bundler",
            "state": "CLOSED",
            "createdAt": "2025-03-03T12:00:00Z",
            "closedAt": "2025-03-04T12:00:00Z",
            "additions": 10,
            "deletions": 0,
            "changedFiles": 1,
            "author": {"login": "bob"},
            "repository": None,
            "commits": {"totalCount": 1, "nodes": [{"commit": {"committedDate": "2025-03-03T11:00:00Z"}}]},
            "reviews": {"totalCount": 0, "nodes": []},
            "comments": {"totalCount": 0},
            "lastCommit": {
                "nodes": [
                    {
                        "commit": {
                            "committedDate": "2025-03-03T11:00:00Z",
                            "statusCheckRollup": {"state": "FAILURE"},
                            "checkSuites": {"nodes": []},
                        }
                    }
                ]
            },
        },
        {
            "url": "https://github.com/acme/api/pull/3",
            "title": "Document pagination",
            "state": "OPEN",
            "createdAt": "2025-03-10T08:00:00Z",
            "additions": 30,
            "deletions": 10,
            "changedFiles": 2,
            "author": {"login": "alice"},
            "repository": {"name": "api"},
            "commits": {"totalCount": 1, "nodes": [{"commit": {"committedDate": "2025-03-10T07:30:00Z"}}]},
            "reviews": {
                "totalCount": 1,
                "nodes": [{"createdAt": "2025-03-10T20:00:00Z", "state": "COMMENTED", "author": {"login": "alice"}}],
            },
            "comments": {"totalCount": 1},
        },
    ]


@pytest.fixture
def release_payloads():
    """Releases shaped like the REST releases listing."""
    return [
        {"created_at": "2025-02-26T12:00:00Z", "name": "v1.2.0", "tag_name": "v1.2.0"},
        {"created_at": "2025-03-05T12:00:00Z", "name": "Hotfix 1.2.1", "tag_name": "v1.2.1"},
    ]
