from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple


def _rule(name: str, pattern: str) -> Tuple[str, Pattern[str]]:
    return (name, re.compile(pattern, re.IGNORECASE))


# Label-based type rules, most specific first.
_LABEL_TYPE_RULES = (
    _rule("Bug", r"\b(bug|bugs|hotfix|fix)\b"),
    _rule("Feature", r"\b(feature|enhancement|ai-feature)\b"),
    _rule("Improvement", r"\bimprovement"),
    _rule("Tech Debt", r"\b(debt|refactor|migration|migrated|upgrade|component upgrade)\b"),
    _rule("Task", r"\b(task|chore|cooldown|testing|manual testing)\b"),
    _rule("Documentation", r"\b(doc|documentation|writing|content fix)\b"),
)

# Title fallback for unlabeled issues, same precedence as the label rules.
_TITLE_TYPE_RULES = (
    _rule("Bug", r"\[bug\]|^bug[:\s]|fix\s+(bug|issue|error)|broken|crash|not working"),
    _rule(
        "Feature",
        r"\badd\s+(new|support|ability|feature|functionality)|^create\s+\w+\s+(for|to)"
        r"|implement\s+new|introduce\s+",
    ),
    _rule("Improvement", r"\bimprove|enhance|optimize|better|refine|polish|cleanup"),
    _rule("Tech Debt", r"\brefactor|upgrade|migrate|migration|update\s+\w+\s+to\s+|modernize|consolidate"),
    _rule("Task", r"^(explore|investigate|research|review|analyze|test|verify|validate|check)\b"),
    _rule("Documentation", r"\bdocument|docs|readme|guide|tutorial|example|write\s+doc"),
)


@dataclass(frozen=True)
class MetricsConfig:
    """
    Lookup tables and windows used by the calculators.

    Built once (`DEFAULT_CONFIG`) and passed explicitly to every calculator.
    """

    # A label containing any of these substrings marks the issue as a bug.
    bug_label_markers: Tuple[str, ...] = ("bug", "fix")
    blocked_state_marker: str = "blocked"
    review_state_pattern: Pattern[str] = field(
        default_factory=lambda: re.compile(r"review|validate|test|merge", re.IGNORECASE)
    )
    # Bug stats per team consider both as "closed".
    closed_state_types: Tuple[str, ...] = ("completed", "canceled")
    started_state_type: str = "started"
    backlog_state_type: str = "backlog"
    completed_state_type: str = "completed"

    throughput_window_days: int = 7
    recent_window_days: int = 30

    issue_types: Tuple[str, ...] = (
        "Feature",
        "Bug",
        "Improvement",
        "Tech Debt",
        "Task",
        "Documentation",
        "Other",
    )
    label_type_rules: Tuple[Tuple[str, Pattern[str]], ...] = _LABEL_TYPE_RULES
    title_type_rules: Tuple[Tuple[str, Pattern[str]], ...] = _TITLE_TYPE_RULES
    # Label fragments that look like tech debt but are stack/area tags.
    tech_debt_label_exclusions: Tuple[str, ...] = ("front-end", "back-end")

    default_team: str = "Unknown"
    default_assignee: str = "Unassigned"
    default_priority_label: str = "No priority"
    default_state_name: str = "Unknown"

    # A release whose name or tag contains this is a hotfix.
    hotfix_marker: str = "hotfix"


DEFAULT_CONFIG = MetricsConfig()
