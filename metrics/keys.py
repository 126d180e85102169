"""
Composite keys packed into the `metric` column.

Two arities share the `:` delimiter:
- `team:cycle:metric` for category `cycle`
- `team:stat` for team-scoped categories (`bugs_by_team`, `team`, `transition_to`)

`team` and `transition_to` also hold plain global rows (`completion_rate`,
`<state>`) next to their team-scoped ones. `decode_for` returns those as
`(None, stat)`.

There is no escaping. A team or cycle name containing `:` produces a key with
the wrong segment count and the row is dropped on decode; the format is kept
as-is because it is the persisted contract between runs.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DELIMITER = ":"

CATEGORY_KEY_ARITY: Dict[str, int] = {
    "cycle": 3,
    "bugs_by_team": 2,
    "team": 2,
    "transition_to": 2,
}

# Categories mixing `team:stat` rows with single-segment global rows.
GLOBAL_ROW_CATEGORIES = frozenset({"team", "transition_to"})


def _check_parts(*parts: str) -> None:
    for part in parts:
        if DELIMITER in part:
            logger.warning(
                "Composite key component %r contains %r; the row will not decode", part, DELIMITER
            )


def encode(team: str, cycle_name: str, metric_name: str) -> str:
    _check_parts(team, cycle_name, metric_name)
    return DELIMITER.join((team, cycle_name, metric_name))


def encode_pair(team: str, stat_name: str) -> str:
    _check_parts(team, stat_name)
    return DELIMITER.join((team, stat_name))


def _split(key: str, arity: int) -> Optional[Tuple[str, ...]]:
    if not isinstance(key, str):
        return None
    parts = key.split(DELIMITER)
    if len(parts) != arity:
        return None
    return tuple(parts)


def decode3(key: str) -> Optional[Tuple[str, str, str]]:
    """(team, cycle_name, metric_name), or None unless there are exactly 3 segments."""
    return _split(key, 3)  # type: ignore[return-value]


def decode2(key: str) -> Optional[Tuple[str, str]]:
    """(team, stat_name), or None unless there are exactly 2 segments."""
    return _split(key, 2)  # type: ignore[return-value]


def decode_for(
    category: str, key: str
) -> Optional[Union[Tuple[Optional[str], str], Tuple[str, str, str]]]:
    arity = CATEGORY_KEY_ARITY.get(category)
    if arity is None:
        return None
    if category in GLOBAL_ROW_CATEGORIES and isinstance(key, str) and key and DELIMITER not in key:
        return (None, key)
    return _split(key, arity)  # type: ignore[return-value]
