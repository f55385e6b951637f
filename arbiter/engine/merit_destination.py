"""
arbiter.engine.merit_destination — Factor 4: Wallet Routing
============================================================

After a currency-consuming action succeeds, decides which wallet receives
the merit.  Routing, first match wins:

1. ``merit_conversion`` on the community → target community, ``amount × ratio``
   (skipped with a warning if the target no longer exists)
2. marathon-of-good → the platform's future-vision community, unconverted
   (skipped with a warning if no future-vision community exists)
3. future-vision → nowhere; merit earned there is not accumulated
4. team → the team community's own wallet
5. anything else → the same community's wallet

Always a single recipient: the effective beneficiary.  An empty result is
a valid outcome, never an error.
"""

from __future__ import annotations

import logging

from arbiter.database.models import CommunityTypeTag
from arbiter.engine.context import CommunityReader
from arbiter.engine.defaults import RuleDefaultsResolver
from arbiter.engine.types import (
    CommunityView,
    DecisionContext,
    Destination,
    MeritDestination,
)

logger = logging.getLogger(__name__)


class MeritDestinationFactor:
    """Factor 4.  Reads other communities only through :class:`CommunityReader`."""

    def __init__(
        self,
        communities: CommunityReader,
        defaults: RuleDefaultsResolver | None = None,
    ) -> None:
        self._communities = communities
        self._defaults = defaults or RuleDefaultsResolver()

    async def evaluate(self, ctx: DecisionContext, amount: float) -> MeritDestination:
        community = ctx.community
        beneficiary = ctx.effective_beneficiary_id
        if community is None or not beneficiary or amount <= 0:
            return MeritDestination()

        voting = self._defaults.effective_voting_settings(community)
        if not voting.awards_merits:
            logger.debug("Merits not awarded in community=%s", community.id)
            return MeritDestination()

        label = self._label(community, ctx.default_currency_label)

        conversion = voting.merit_conversion
        if conversion is not None:
            target = await self._communities.get_community(conversion.target_community_id)
            if target is not None:
                ratio = conversion.ratio or 1
                logger.debug(
                    "Conversion community=%s → %s amount=%s ratio=%s",
                    community.id, target.id, amount, ratio,
                )
                return self._single(
                    beneficiary, target.id, amount * ratio, self._label(target, label)
                )
            logger.warning(
                "Community %s converts merit into missing community %s; ignoring conversion",
                community.id, conversion.target_community_id,
            )

        if community.type_tag is CommunityTypeTag.MARATHON_OF_GOOD:
            future_vision = await self._communities.get_community_by_type_tag(
                CommunityTypeTag.FUTURE_VISION
            )
            if future_vision is not None:
                logger.debug(
                    "Marathon community=%s → future-vision %s amount=%s",
                    community.id, future_vision.id, amount,
                )
                return self._single(
                    beneficiary, future_vision.id, amount, self._label(future_vision, label)
                )
            logger.warning(
                "No future-vision community exists; marathon merit stays in %s",
                community.id,
            )

        if community.type_tag is CommunityTypeTag.FUTURE_VISION:
            logger.debug("Future-vision community=%s is a terminal sink", community.id)
            return MeritDestination()

        # team and default both route to the source community's wallet
        return self._single(beneficiary, community.id, amount, label)

    @staticmethod
    def _label(community: CommunityView, fallback: str) -> str:
        return community.settings.currency_label or fallback

    @staticmethod
    def _single(
        recipient: str, community_id: str, amount: float, label: str
    ) -> MeritDestination:
        return MeritDestination([Destination(recipient, community_id, amount, label)])
