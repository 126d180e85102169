from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TEAMS_CONFIG_PATH = "config/teams.yml"


class TeamConfigurationError(ValueError):
    """Raised when a teams file exists but is not shaped like one."""


class TeamConfiguration:
    """
    Unified team name -> name patterns per source system.

    The YAML layout is:

        teams:
          Platform:
            linear: ["Platform*", "Infra"]
            github: "platform-*"

    A single pattern string is accepted where a list is expected.
    """

    def __init__(self, teams: Optional[Mapping[str, Mapping[str, object]]] = None) -> None:
        self.teams: Dict[str, Dict[str, object]] = {
            str(name): dict(sources or {}) for name, sources in (teams or {}).items()
        }

    @property
    def defined_teams(self) -> List[str]:
        return list(self.teams.keys())

    def patterns_for(self, team_name: str, source: str) -> List[str]:
        patterns = self.teams.get(team_name, {}).get(str(source))
        if not patterns:
            return []
        if isinstance(patterns, str):
            return [patterns]
        return [str(p) for p in patterns]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "TeamConfiguration":
        path = Path(path)
        if not path.exists():
            logger.warning("Teams config not found at %s, no unified teams defined", path)
            return cls()
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise TeamConfigurationError(f"Teams config {path} must be a mapping")
        teams = data.get("teams") or {}
        if not isinstance(teams, dict):
            raise TeamConfigurationError(f"'teams' in {path} must map team names to sources")
        for name, sources in teams.items():
            if sources is not None and not isinstance(sources, dict):
                raise TeamConfigurationError(
                    f"Team {name!r} in {path} must map sources to patterns, got {type(sources).__name__}"
                )
        config = cls(teams)
        logger.info("Loaded %d unified teams from %s", len(config.teams), path)
        return config


def load_team_configuration(path: Optional[Union[str, Path]] = None) -> TeamConfiguration:
    """Load teams from `path`, `TEAMS_CONFIG_PATH`, or `config/teams.yml`."""
    path = path or os.getenv("TEAMS_CONFIG_PATH") or DEFAULT_TEAMS_CONFIG_PATH
    return TeamConfiguration.from_file(path)
