"""
tests/test_cli.py — ``arbiter explain`` Command
================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from typer.testing import CliRunner

from arbiter.__main__ import app
from arbiter.database.models import (
    Base,
    Community,
    Publication,
    User,
    UserCommunityRole,
)

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """A SQLite database with a marathon community, plus a config file."""
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        session.add_all([
            User(id="alice", display_name="Alice"),
            User(id="bob", display_name="Bob"),
            Community(id="c1", name="General"),
            Community(id="mog", name="Marathon", type_tag="marathon-of-good"),
            UserCommunityRole(user_id="alice", community_id="c1", role="participant"),
            UserCommunityRole(user_id="alice", community_id="mog", role="participant"),
            UserCommunityRole(user_id="bob", community_id="mog", role="participant"),
            Publication(id="m1", community_id="mog", author_id="bob"),
        ])
        session.commit()
    engine.dispose()

    config = tmp_path / "config.yaml"
    config.write_text("platform_name: CLI Test\n", encoding="utf-8")
    monkeypatch.setenv("DATABASE_URL", url)
    return config


def _explain(config, *args: str):
    return runner.invoke(app, ["explain", "--config", str(config), *args])


class TestExplainCommand:
    def test_allowed_exits_zero(self, cli_env):
        result = _explain(cli_env, "--user", "alice", "--community", "c1", "--action", "post_publication")
        assert result.exit_code == 0
        assert '"allowed": true' in result.stdout

    def test_denied_exits_one(self, cli_env):
        result = _explain(cli_env, "--user", "stranger", "--action", "vote", "--publication", "m1")
        assert result.exit_code == 1
        assert "voteDisabled.noRole" in result.stdout

    def test_vote_with_merit_routing(self, cli_env):
        result = _explain(
            cli_env, "--user", "alice", "--action", "vote",
            "--publication", "m1", "--direction", "up", "--amount", "50",
        )
        assert result.exit_code == 0
        assert '"merit_destination"' in result.stdout
        assert '"future-vision"' in result.stdout

    def test_two_resources_rejected(self, cli_env):
        result = _explain(
            cli_env, "--user", "alice", "--action", "vote", "--publication", "m1", "--poll", "q1"
        )
        assert result.exit_code == 2

    def test_community_or_resource_required(self, cli_env):
        result = _explain(cli_env, "--user", "alice", "--action", "vote")
        assert result.exit_code == 2

    def test_unknown_action_rejected(self, cli_env):
        result = _explain(cli_env, "--user", "alice", "--community", "c1", "--action", "fly")
        assert result.exit_code != 0
