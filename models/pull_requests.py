from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from models.work_items import connection_nodes

MERGED = "MERGED"
CLOSED = "CLOSED"
OPEN = "OPEN"
APPROVED = "APPROVED"
CHANGES_REQUESTED = "CHANGES_REQUESTED"
SUCCESS = "SUCCESS"


def _count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _total_count(connection: Any) -> Optional[int]:
    if isinstance(connection, Mapping) and connection.get("totalCount") is not None:
        return _count(connection.get("totalCount"))
    return None


def _login(value: Any) -> Optional[str]:
    if isinstance(value, Mapping) and value.get("login"):
        return str(value["login"])
    return None


@dataclass(frozen=True)
class Review:
    created_at: Optional[str]
    state: Optional[str] = None  # APPROVED|CHANGES_REQUESTED|COMMENTED|...
    author: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Review":
        return cls(
            created_at=payload.get("createdAt"),
            state=payload.get("state"),
            author=_login(payload.get("author")),
        )


@dataclass(frozen=True)
class CheckSuite:
    conclusion: Optional[str]
    updated_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CheckSuite":
        return cls(conclusion=payload.get("conclusion"), updated_at=payload.get("updatedAt"))


@dataclass(frozen=True)
class HeadCommit:
    """The PR's last commit with its CI rollup."""

    committed_date: Optional[str]
    status_state: Optional[str] = None
    check_suites: Tuple[CheckSuite, ...] = ()

    @property
    def ci_succeeded(self) -> bool:
        return self.status_state == SUCCESS

    def latest_successful_suite(self) -> Optional[CheckSuite]:
        succeeded = [s for s in self.check_suites if s.conclusion == SUCCESS and s.updated_at]
        if not succeeded:
            return None
        return max(succeeded, key=lambda s: s.updated_at)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "HeadCommit":
        rollup = payload.get("statusCheckRollup")
        return cls(
            committed_date=payload.get("committedDate"),
            status_state=rollup.get("state") if isinstance(rollup, Mapping) else None,
            check_suites=tuple(
                CheckSuite.from_payload(suite)
                for suite in connection_nodes(payload.get("checkSuites"))
                if isinstance(suite, Mapping)
            ),
        )


@dataclass(frozen=True)
class PullRequest:
    """
    A pull request as returned by the PR search query.

    `reviews` holds the fetched review nodes; `review_count` and
    `comment_count` are the connection totals, which may exceed the page.
    """

    url: str
    created_at: Optional[str]
    state: Optional[str] = None  # OPEN|CLOSED|MERGED
    title: str = ""
    updated_at: Optional[str] = None
    merged_at: Optional[str] = None
    closed_at: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    commit_count: int = 0
    review_count: int = 0
    comment_count: int = 0
    author: Optional[str] = None
    repository: Optional[str] = None
    reviews: Tuple[Review, ...] = ()
    commit_dates: Tuple[str, ...] = ()
    head_commit: Optional[HeadCommit] = None

    @property
    def is_merged(self) -> bool:
        return self.state == MERGED

    @property
    def approvals(self) -> List[Review]:
        return [r for r in self.reviews if r.state == APPROVED]

    @property
    def changes_requested(self) -> int:
        return sum(1 for r in self.reviews if r.state == CHANGES_REQUESTED)

    @staticmethod
    def earliest(reviews: Sequence[Review]) -> Optional[Review]:
        dated = [r for r in reviews if r.created_at]
        return min(dated, key=lambda r: r.created_at) if dated else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PullRequest":
        reviews = tuple(
            Review.from_payload(r)
            for r in connection_nodes(payload.get("reviews"))
            if isinstance(r, Mapping)
        )
        review_total = _total_count(payload.get("reviews"))
        comment_total = _total_count(payload.get("comments"))

        commit_dates: List[str] = []
        for node in connection_nodes(payload.get("commits")):
            commit = node.get("commit") if isinstance(node, Mapping) else None
            if isinstance(commit, Mapping) and commit.get("committedDate"):
                commit_dates.append(str(commit["committedDate"]))

        head_commit = None
        last_nodes = connection_nodes(payload.get("lastCommit"))
        if last_nodes and isinstance(last_nodes[-1], Mapping):
            commit = last_nodes[-1].get("commit")
            if isinstance(commit, Mapping):
                head_commit = HeadCommit.from_payload(commit)

        repository = payload.get("repository")
        repo_name = repository.get("name") if isinstance(repository, Mapping) else None
        return cls(
            url=str(payload.get("url") or ""),
            title=str(payload.get("title") or ""),
            state=payload.get("state"),
            created_at=payload.get("createdAt"),
            updated_at=payload.get("updatedAt"),
            merged_at=payload.get("mergedAt"),
            closed_at=payload.get("closedAt"),
            additions=_count(payload.get("additions")),
            deletions=_count(payload.get("deletions")),
            changed_files=_count(payload.get("changedFiles")),
            commit_count=_total_count(payload.get("commits")) or len(commit_dates),
            review_count=review_total if review_total is not None else len(reviews),
            comment_count=comment_total or 0,
            author=_login(payload.get("author")),
            repository=str(repo_name) if repo_name else None,
            reviews=reviews,
            commit_dates=tuple(commit_dates),
            head_commit=head_commit,
        )


@dataclass(frozen=True)
class Release:
    created_at: Optional[str]
    name: str = ""
    tag_name: str = ""

    def is_hotfix(self, marker: str = "hotfix") -> bool:
        return marker in self.name.lower() or marker in self.tag_name.lower()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Release":
        # Releases come from the REST API, hence snake_case keys.
        return cls(
            created_at=payload.get("created_at") or payload.get("createdAt"),
            name=str(payload.get("name") or ""),
            tag_name=str(payload.get("tag_name") or payload.get("tagName") or ""),
        )


def pull_requests_from_payloads(payloads: Sequence[Dict[str, Any]]) -> List[PullRequest]:
    return [PullRequest.from_payload(p) for p in payloads if isinstance(p, Mapping)]


def releases_from_payloads(payloads: Sequence[Dict[str, Any]]) -> List[Release]:
    return [Release.from_payload(p) for p in payloads if isinstance(p, Mapping)]
