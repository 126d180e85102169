from __future__ import annotations

import logging

import pytest

from analytics.team_config import (
    TeamConfiguration,
    TeamConfigurationError,
    load_team_configuration,
)

TEAMS_YAML = """
teams:
  Platform:
    linear:
      - "Platform"
      - "Platform *"
    github: "platform-*"
  Sourcing:
    linear: ["Sourcing"]
"""


def test_from_file(tmp_path):
    path = tmp_path / "teams.yml"
    path.write_text(TEAMS_YAML, encoding="utf-8")

    config = TeamConfiguration.from_file(path)

    assert config.defined_teams == ["Platform", "Sourcing"]
    assert config.patterns_for("Platform", "linear") == ["Platform", "Platform *"]
    assert config.patterns_for("Platform", "github") == ["platform-*"]
    assert config.patterns_for("Sourcing", "github") == []
    assert config.patterns_for("Unknown", "linear") == []


def test_missing_file_yields_empty_configuration(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="analytics.team_config"):
        config = TeamConfiguration.from_file(tmp_path / "missing.yml")
    assert config.defined_teams == []
    assert "not found" in caplog.text


def test_empty_file_yields_empty_configuration(tmp_path):
    path = tmp_path / "teams.yml"
    path.write_text("", encoding="utf-8")
    assert TeamConfiguration.from_file(path).defined_teams == []


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "teams:\n  - Platform\n",
        "teams:\n  Platform: ['Platform*']\n",
        "teams:\n  Platform: Platform*\n",
    ],
)
def test_malformed_file_raises(tmp_path, content):
    path = tmp_path / "teams.yml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(TeamConfigurationError):
        TeamConfiguration.from_file(path)


def test_load_team_configuration_reads_env(tmp_path, monkeypatch):
    path = tmp_path / "teams.yml"
    path.write_text(TEAMS_YAML, encoding="utf-8")
    monkeypatch.setenv("TEAMS_CONFIG_PATH", str(path))

    assert load_team_configuration().defined_teams == ["Platform", "Sourcing"]
    assert isinstance(TeamConfigurationError("x"), ValueError)


def test_team_without_sources_has_no_patterns(tmp_path):
    path = tmp_path / "teams.yml"
    path.write_text("teams:\n  Platform:\n", encoding="utf-8")

    config = TeamConfiguration.from_file(path)

    assert config.defined_teams == ["Platform"]
    assert config.patterns_for("Platform", "linear") == []
