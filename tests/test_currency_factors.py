"""
tests/test_currency_factors.py — Social & Context Currency Factors
===================================================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from arbiter.database.models import (
    CommunityTypeTag,
    RequiredCurrency,
    Role,
    SocialConstraint,
    TargetType,
    VoteDirection,
)
from arbiter.engine.currency import (
    SELF_VOTE_REASON,
    TEAMMATE_VOTE_REASON,
    ContextCurrencyModeFactor,
    CurrencyModeComposer,
    SocialCurrencyConstraintFactor,
)
from arbiter.engine.types import CommunityView, CurrencyMode, MissingCommunityError
from fakes import make_ctx


def _community(type_tag=CommunityTypeTag.CUSTOM, **kw) -> CommunityView:
    return CommunityView(id="c1", type_tag=type_tag, **kw)


def _vote_ctx(community: CommunityView, **kw):
    kw.setdefault("user_role", Role.PARTICIPANT)
    kw.setdefault("author_id", "u2")
    kw.setdefault("effective_beneficiary_id", "u2")
    kw.setdefault("target_type", TargetType.PUBLICATION)
    kw.setdefault("direction", VoteDirection.UP)
    return make_ctx(community, **kw)


# ---------------------------------------------------------------------------
# Factor 2
# ---------------------------------------------------------------------------
class TestSocialConstraint:
    @pytest.fixture
    def factor(self) -> SocialCurrencyConstraintFactor:
        return SocialCurrencyConstraintFactor()

    @pytest.mark.parametrize("type_tag", list(CommunityTypeTag))
    def test_self_vote_is_wallet_only_everywhere(self, factor, type_tag):
        ctx = _vote_ctx(
            _community(type_tag),
            author_id="u1",
            effective_beneficiary_id="u1",
            is_effective_beneficiary=True,
        )
        result = factor.evaluate(ctx)
        assert result.constraint is SocialConstraint.WALLET_ONLY
        assert result.reason == SELF_VOTE_REASON

    def test_self_vote_detected_from_ids(self, factor):
        ctx = _vote_ctx(_community(), effective_beneficiary_id="u1")
        assert factor.evaluate(ctx).constraint is SocialConstraint.WALLET_ONLY

    def test_author_voting_for_other_beneficiary(self, factor):
        """Author votes on a post whose beneficiary is someone else: not a self-vote."""
        ctx = _vote_ctx(
            _community(), author_id="u1", beneficiary_id="u3", effective_beneficiary_id="u3"
        )
        assert factor.evaluate(ctx).constraint is SocialConstraint.NONE

    @pytest.mark.parametrize(
        "type_tag",
        [CommunityTypeTag.FUTURE_VISION, CommunityTypeTag.MARATHON_OF_GOOD],
    )
    def test_teammates_in_special_communities(self, factor, type_tag):
        ctx = _vote_ctx(_community(type_tag), shared_team_communities=frozenset({"t1"}))
        result = factor.evaluate(ctx)
        assert result.constraint is SocialConstraint.WALLET_ONLY
        assert result.reason == TEAMMATE_VOTE_REASON

    @pytest.mark.parametrize(
        "type_tag",
        [CommunityTypeTag.CUSTOM, CommunityTypeTag.SUPPORT, CommunityTypeTag.TEAM],
    )
    def test_teammates_elsewhere_unconstrained(self, factor, type_tag):
        ctx = _vote_ctx(_community(type_tag), shared_team_communities=frozenset({"t1"}))
        assert factor.evaluate(ctx).constraint is SocialConstraint.NONE

    def test_strangers_unconstrained(self, factor):
        ctx = _vote_ctx(_community(CommunityTypeTag.MARATHON_OF_GOOD))
        result = factor.evaluate(ctx)
        assert result.constraint is SocialConstraint.NONE
        assert result.reason is None


# ---------------------------------------------------------------------------
# Factor 3
# ---------------------------------------------------------------------------
class TestContextMode:
    @pytest.fixture
    def factor(self) -> ContextCurrencyModeFactor:
        return ContextCurrencyModeFactor()

    def test_missing_community_raises(self, factor):
        with pytest.raises(MissingCommunityError):
            factor.evaluate(make_ctx(no_community=True))

    def test_default_is_choice(self, factor):
        mode = factor.evaluate(_vote_ctx(_community()))
        assert mode == CurrencyMode(True, True, RequiredCurrency.NONE)

    def test_target_defaults_to_publication(self, factor):
        ctx = _vote_ctx(_community(CommunityTypeTag.FUTURE_VISION), target_type=None)
        assert factor.evaluate(ctx).required_currency is RequiredCurrency.WALLET

    def test_future_vision_is_wallet_only(self, factor):
        for target in (TargetType.PUBLICATION, TargetType.VOTE):
            ctx = _vote_ctx(_community(CommunityTypeTag.FUTURE_VISION), target_type=target)
            mode = factor.evaluate(ctx)
            assert mode.allowed_quota is False
            assert mode.allowed_wallet is True

    def test_project_is_wallet_only(self, factor):
        assert factor.evaluate(_vote_ctx(_community(), post_type="project")).allowed_quota is False
        assert factor.evaluate(_vote_ctx(_community(), is_project=True)).allowed_quota is False

    def test_poll_target_is_wallet_only(self, factor):
        mode = factor.evaluate(_vote_ctx(_community(), target_type=TargetType.POLL))
        assert mode.required_currency is RequiredCurrency.WALLET

    def test_downvote_is_wallet_only(self, factor):
        mode = factor.evaluate(_vote_ctx(_community(), direction=VoteDirection.DOWN))
        assert mode.required_currency is RequiredCurrency.WALLET
        assert "Downvotes" in mode.reason

    def test_quota_only_source(self, factor):
        community = _community(voting_settings={"currencySource": "quota-only"})
        mode = factor.evaluate(_vote_ctx(community, direction=VoteDirection.DOWN))
        assert mode.required_currency is RequiredCurrency.QUOTA
        assert mode.allowed_wallet is False

    def test_source_outranks_future_vision(self, factor):
        community = _community(
            CommunityTypeTag.FUTURE_VISION, voting_settings={"currency_source": "quota-and-wallet"}
        )
        mode = factor.evaluate(_vote_ctx(community))
        assert mode.required_currency is RequiredCurrency.NONE
        assert mode.allowed_quota is True

    def test_source_ignored_for_polls(self, factor):
        community = _community(voting_settings={"currency_source": "quota-only"})
        mode = factor.evaluate(_vote_ctx(community, target_type=TargetType.POLL))
        assert mode.required_currency is RequiredCurrency.WALLET

    def test_quota_gated_by_recipients(self, factor):
        community = _community(merit_settings={"quota_recipients": ["lead"]})
        assert factor.evaluate(_vote_ctx(community)).allowed_quota is False
        assert factor.evaluate(_vote_ctx(community, user_role=Role.LEAD)).allowed_quota is True

    def test_quota_and_wallet_source_respects_recipients(self, factor):
        community = _community(
            voting_settings={"currency_source": "quota-and-wallet"},
            merit_settings={"quota_recipients": ["lead"]},
        )
        mode = factor.evaluate(_vote_ctx(community))
        assert mode.allowed_quota is False
        assert mode.allowed_wallet is True

    def test_no_role_means_no_quota(self, factor):
        assert factor.evaluate(_vote_ctx(_community(), user_role=None)).allowed_quota is False


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------
class TestComposer:
    def test_social_constraint_short_circuits(self):
        context = MagicMock(spec=ContextCurrencyModeFactor)
        composer = CurrencyModeComposer(context=context)
        ctx = _vote_ctx(_community(), effective_beneficiary_id="u1", is_effective_beneficiary=True)

        mode = composer.evaluate(ctx)

        assert mode == CurrencyMode.wallet_only(SELF_VOTE_REASON)
        context.evaluate.assert_not_called()

    def test_falls_through_to_context(self):
        context = MagicMock(spec=ContextCurrencyModeFactor)
        context.evaluate.return_value = CurrencyMode.quota_only("stub")
        composer = CurrencyModeComposer(context=context)
        ctx = _vote_ctx(_community())

        assert composer.evaluate(ctx) == CurrencyMode.quota_only("stub")
        context.evaluate.assert_called_once_with(ctx)

    def test_teammate_in_marathon_beats_default(self):
        composer = CurrencyModeComposer()
        ctx = _vote_ctx(
            _community(CommunityTypeTag.MARATHON_OF_GOOD),
            shared_team_communities=frozenset({"t1"}),
        )
        assert composer.evaluate(ctx).reason == TEAMMATE_VOTE_REASON

    def test_self_vote_in_support_community(self):
        """Self-vote wallet rule holds even where quota is otherwise available."""
        ctx = _vote_ctx(
            _community(CommunityTypeTag.SUPPORT),
            user_role=Role.LEAD,
            effective_beneficiary_id="u1",
            is_effective_beneficiary=True,
        )
        mode = CurrencyModeComposer().evaluate(ctx)
        assert mode.allowed_quota is False
        assert mode.required_currency is RequiredCurrency.WALLET
