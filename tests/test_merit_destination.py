"""
tests/test_merit_destination.py — Wallet Routing
=================================================
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from arbiter.database.models import CommunityTypeTag
from arbiter.engine.merit_destination import MeritDestinationFactor
from arbiter.engine.types import CommunitySettings, Destination, MeritDestination
from fakes import FakeDirectory, make_ctx


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def factor(directory) -> MeritDestinationFactor:
    return MeritDestinationFactor(directory)


def _route(factor, community, amount=10, beneficiary="ben", **kw) -> MeritDestination:
    ctx = make_ctx(community, effective_beneficiary_id=beneficiary, **kw)
    return asyncio.run(factor.evaluate(ctx, amount))


class TestRouting:
    def test_marathon_routes_to_future_vision(self, directory, factor):
        mog = directory.add_community("mog", CommunityTypeTag.MARATHON_OF_GOOD)
        directory.add_community("fv", CommunityTypeTag.FUTURE_VISION)

        result = _route(factor, mog, amount=10)

        assert list(result) == [Destination("ben", "fv", 10, "merit")]

    def test_future_vision_is_a_sink(self, directory, factor):
        fv = directory.add_community("fv", CommunityTypeTag.FUTURE_VISION)
        assert _route(factor, fv, amount=5) == MeritDestination()

    def test_custom_stays_home(self, directory, factor):
        custom = directory.add_community("c1")
        result = _route(factor, custom, amount=3)
        assert result.total == 3
        assert result[0].community_id == "c1"

    def test_team_stays_home(self, directory, factor):
        team = directory.add_community("t1", CommunityTypeTag.TEAM)
        assert _route(factor, team)[0].community_id == "t1"

    def test_single_recipient_is_effective_beneficiary(self, directory, factor):
        custom = directory.add_community("c1")
        result = _route(factor, custom, beneficiary="someone")
        assert [d.recipient_user_id for d in result] == ["someone"]


class TestConversion:
    def test_conversion_applies_ratio(self, directory, factor):
        source = directory.add_community(
            "src", voting={"meritConversion": {"targetCommunityId": "dst", "ratio": 2}}
        )
        directory.add_community("dst")
        result = _route(factor, source, amount=10)
        assert list(result) == [Destination("ben", "dst", 20, "merit")]

    def test_conversion_outranks_marathon(self, directory, factor):
        mog = directory.add_community(
            "mog",
            CommunityTypeTag.MARATHON_OF_GOOD,
            voting={"merit_conversion": {"target_community_id": "dst"}},
        )
        directory.add_community("dst")
        directory.add_community("fv", CommunityTypeTag.FUTURE_VISION)
        result = _route(factor, mog, amount=4)
        assert result[0].community_id == "dst"
        assert result.total == 4

    def test_missing_target_falls_through(self, directory, factor, caplog):
        source = directory.add_community(
            "src", voting={"merit_conversion": {"target_community_id": "gone", "ratio": 3}}
        )
        with caplog.at_level(logging.WARNING):
            result = _route(factor, source, amount=10)
        assert list(result) == [Destination("ben", "src", 10, "merit")]
        assert "gone" in caplog.text

    def test_bad_stored_values_do_not_break_routing(self, directory, factor, caplog):
        source = directory.add_community(
            "src",
            voting={
                "currencySource": "wallet",
                "meritConversion": {"targetCommunityId": "dst", "ratio": "x"},
            },
        )
        directory.add_community("dst")
        with caplog.at_level(logging.WARNING):
            result = _route(factor, source, amount=10)
        assert list(result) == [Destination("ben", "dst", 10, "merit")]

    def test_target_label_wins(self, directory, factor):
        source = directory.add_community(
            "src", voting={"merit_conversion": {"target_community_id": "dst"}}
        )
        directory.add_community("dst", settings=CommunitySettings(currency_label="kudos"))
        assert _route(factor, source)[0].currency_label == "kudos"


class TestEmptyOutcomes:
    def test_no_future_vision_community(self, directory, factor, caplog):
        mog = directory.add_community("mog", CommunityTypeTag.MARATHON_OF_GOOD)
        with caplog.at_level(logging.WARNING):
            result = _route(factor, mog, amount=2)
        assert result[0].community_id == "mog"
        assert "future-vision" in caplog.text

    def test_awards_disabled(self, directory, factor):
        community = directory.add_community("c1", voting={"awardsMerits": False})
        assert _route(factor, community) == MeritDestination()

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount(self, directory, factor, amount):
        community = directory.add_community("c1")
        assert _route(factor, community, amount=amount) == MeritDestination()

    def test_no_beneficiary(self, directory, factor):
        community = directory.add_community("c1")
        assert _route(factor, community, beneficiary=None) == MeritDestination()

    def test_no_community(self, factor):
        ctx = make_ctx(no_community=True, effective_beneficiary_id="ben")
        assert asyncio.run(factor.evaluate(ctx, 10)) == MeritDestination()


class TestLabel:
    def test_community_label(self, directory, factor):
        community = directory.add_community(
            "c1", settings=CommunitySettings(currency_label="stars")
        )
        assert _route(factor, community)[0].currency_label == "stars"

    def test_platform_label_fallback(self, directory, factor):
        community = directory.add_community("c1")
        result = _route(factor, community, default_currency_label="points")
        assert result[0].currency_label == "points"
