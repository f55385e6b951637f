"""
tests/test_seed.py — Special Community Seeder
==============================================
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from arbiter.database.models import Community
from arbiter.services.seed import seed_special_communities


def _count(session) -> int:
    return session.scalar(select(func.count()).select_from(Community))


class TestSeedSpecialCommunities:
    def test_seeds_bundled_file(self, db_engine, db_session):
        assert seed_special_communities(db_engine) == 3
        types = set(db_session.scalars(select(Community.type_tag)).all())
        assert types == {"future-vision", "marathon-of-good", "support"}

    def test_idempotent(self, db_engine, db_session):
        seed_special_communities(db_engine)
        assert seed_special_communities(db_engine) == 0
        assert _count(db_session) == 3

    def test_existing_type_is_left_alone(self, db_engine, db_session):
        db_session.add(Community(id="my-fv", name="Mine", type_tag="future-vision"))
        db_session.commit()

        assert seed_special_communities(db_engine) == 2
        assert db_session.get(Community, "future-vision") is None

    def test_non_singleton_types_skipped(self, db_engine, db_session, tmp_path, caplog):
        path = tmp_path / "seed.yaml"
        path.write_text(
            "- {id: t1, name: Team, type_tag: team}\n"
            "- {id: s1, name: Help, type_tag: support, merit_settings: {daily_quota: 5}}\n",
            encoding="utf-8",
        )
        with caplog.at_level(logging.WARNING):
            assert seed_special_communities(db_engine, path) == 1
        assert "t1" in caplog.text
        assert db_session.get(Community, "s1").merit_settings == {"daily_quota": 5}

    def test_missing_file_seeds_nothing(self, db_engine, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            assert seed_special_communities(db_engine, tmp_path / "absent.yaml") == 0
        assert "not found" in caplog.text
