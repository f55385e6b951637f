"""
arbiter.engine.currency — Currency Factors & Composer
======================================================

Once a vote is permitted, decides which money may pay for it:

* :class:`SocialCurrencyConstraintFactor` (factor 2) looks at *who* is
  being voted for (self, teammate).
* :class:`ContextCurrencyModeFactor` (factor 3) looks at *where/what*
  (community type, content type, direction, quota eligibility).
* :class:`CurrencyModeComposer` merges them: a social constraint always
  wins outright and factor 3 is then never consulted.

Neither factor ever denies an action; they only narrow the currency.

PURE module — no DB I/O.
"""

from __future__ import annotations

import logging

from arbiter.constants import same_id
from arbiter.database.models import (
    CommunityTypeTag,
    CurrencySource,
    SocialConstraint,
    TargetType,
    VoteDirection,
)
from arbiter.engine.defaults import RuleDefaultsResolver
from arbiter.engine.types import (
    CurrencyMode,
    DecisionContext,
    MissingCommunityError,
    SocialConstraintResult,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ContextCurrencyModeFactor",
    "CurrencyModeComposer",
    "SocialCurrencyConstraintFactor",
]

SELF_VOTE_REASON = "Self-voting requires wallet"
TEAMMATE_VOTE_REASON = "Voting for teammates in a special community requires wallet"

_TEAMMATE_WALLET_TYPES = frozenset({
    CommunityTypeTag.FUTURE_VISION,
    CommunityTypeTag.MARATHON_OF_GOOD,
})
_VOTE_TARGETS = frozenset({TargetType.PUBLICATION, TargetType.VOTE})


# ---------------------------------------------------------------------------
# Factor 2: social constraint
# ---------------------------------------------------------------------------
class SocialCurrencyConstraintFactor:
    """Self-votes and teammate-votes in special communities are wallet-only."""

    def evaluate(self, ctx: DecisionContext) -> SocialConstraintResult:
        if ctx.is_effective_beneficiary or same_id(
            ctx.user_id, ctx.effective_beneficiary_id
        ):
            logger.debug("Self-vote → wallet-only user=%s", ctx.user_id)
            return SocialConstraintResult(SocialConstraint.WALLET_ONLY, SELF_VOTE_REASON)

        if ctx.type_tag in _TEAMMATE_WALLET_TYPES and ctx.shared_team_communities:
            logger.debug(
                "Teammate vote in %s → wallet-only shared=%s",
                ctx.type_tag, sorted(ctx.shared_team_communities),
            )
            return SocialConstraintResult(
                SocialConstraint.WALLET_ONLY, TEAMMATE_VOTE_REASON
            )

        return SocialConstraintResult()


# ---------------------------------------------------------------------------
# Factor 3: context currency mode
# ---------------------------------------------------------------------------
class ContextCurrencyModeFactor:
    """First matching rule wins:

    1. explicit ``currency_source`` on the community (publication/vote targets)
    2. future-vision (publication/vote targets) → wallet-only
    3. project content → wallet-only
    4. poll target → wallet-only
    5. downvote → wallet-only
    6. default → caller chooses; quota only for ``quota_recipients`` roles
    """

    def __init__(self, defaults: RuleDefaultsResolver | None = None) -> None:
        self._defaults = defaults or RuleDefaultsResolver()

    def evaluate(self, ctx: DecisionContext) -> CurrencyMode:
        """Raises :class:`MissingCommunityError` when *ctx* has no community."""
        community = ctx.community
        if community is None:
            raise MissingCommunityError(
                f"Currency mode needs a community (community_id={ctx.community_id!r})"
            )

        target = ctx.target_type or TargetType.PUBLICATION
        voting = self._defaults.effective_voting_settings(community)
        merit = self._defaults.effective_merit_settings(community)
        quota_eligible = ctx.user_role is not None and ctx.user_role in merit.quota_recipients

        if voting.currency_source is not None and target in _VOTE_TARGETS:
            logger.debug(
                "Community %s currency_source=%s", community.id, voting.currency_source
            )
            if voting.currency_source is CurrencySource.QUOTA_ONLY:
                return CurrencyMode.quota_only("Community only accepts daily quota")
            if voting.currency_source is CurrencySource.WALLET_ONLY:
                return CurrencyMode.wallet_only("Community only accepts wallet merits")
            return CurrencyMode.choice(allowed_quota=quota_eligible)

        if community.type_tag is CommunityTypeTag.FUTURE_VISION and target in _VOTE_TARGETS:
            return CurrencyMode.wallet_only(
                "Future Vision only allows wallet voting on posts and comments"
            )

        if ctx.post_type == "project" or ctx.is_project:
            return CurrencyMode.wallet_only(
                "Projects can only be voted on with wallet merits, not daily quota"
            )

        if target is TargetType.POLL:
            return CurrencyMode.wallet_only("Polls can only be voted on with wallet merits")

        if ctx.direction is VoteDirection.DOWN:
            return CurrencyMode.wallet_only("Downvotes can only be made with wallet merits")

        logger.debug(
            "Default currency mode role=%s quota_eligible=%s", ctx.user_role, quota_eligible
        )
        return CurrencyMode.choice(allowed_quota=quota_eligible)


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------
class CurrencyModeComposer:
    """Social constraint wins outright; otherwise the context mode applies."""

    def __init__(
        self,
        social: SocialCurrencyConstraintFactor | None = None,
        context: ContextCurrencyModeFactor | None = None,
    ) -> None:
        self.social = social or SocialCurrencyConstraintFactor()
        self.context = context or ContextCurrencyModeFactor()

    def evaluate(self, ctx: DecisionContext) -> CurrencyMode:
        social = self.social.evaluate(ctx)
        if social.constraint is SocialConstraint.WALLET_ONLY:
            return CurrencyMode.wallet_only(social.reason)
        return self.context.evaluate(ctx)
