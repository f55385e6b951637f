"""
arbiter.engine.orchestrator — DecisionOrchestrator
===================================================

The only component external callers use.  Pipeline::

    ContextBuilder → (comment-vote gate) → RoleHierarchyFactor
                   → CurrencyModeComposer (votes only, when allowed)

MeritDestinationFactor runs separately, on demand, once the caller knows
the amount.  Batch checks fan out one independent context build per
resource and join the results; nothing is shared between evaluations.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from arbiter import constants as rc
from arbiter.config import ArbiterConfig
from arbiter.database.models import Action, ResourceKind, VoteDirection
from arbiter.engine.context import (
    CommunityReader,
    ContextBuilder,
    ResourceResolver,
    RoleResolver,
    UserLookup,
)
from arbiter.engine.currency import (
    ContextCurrencyModeFactor,
    CurrencyModeComposer,
    SocialCurrencyConstraintFactor,
)
from arbiter.engine.defaults import RuleDefaultsResolver
from arbiter.engine.merit_destination import MeritDestinationFactor
from arbiter.engine.role_hierarchy import RoleHierarchyFactor
from arbiter.engine.types import (
    CurrencyMode,
    Decision,
    DecisionContext,
    MeritDestination,
    ResourceRef,
)

logger = logging.getLogger(__name__)


class DecisionOrchestrator:
    """Runs the factors in precedence order and composes their results."""

    def __init__(
        self,
        builder: ContextBuilder,
        role_hierarchy: RoleHierarchyFactor,
        currency: CurrencyModeComposer,
        merit_destination: MeritDestinationFactor,
    ) -> None:
        self.builder = builder
        self.role_hierarchy = role_hierarchy
        self.currency = currency
        self.merit_destination = merit_destination

    @classmethod
    def create(
        cls,
        users: UserLookup,
        roles: RoleResolver,
        communities: CommunityReader,
        resolvers: Mapping[ResourceKind, ResourceResolver],
        config: ArbiterConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> DecisionOrchestrator:
        """Wire the concrete factors around the given collaborators."""
        defaults = RuleDefaultsResolver()
        return cls(
            builder=ContextBuilder(users, roles, communities, resolvers, config, clock),
            role_hierarchy=RoleHierarchyFactor(defaults),
            currency=CurrencyModeComposer(
                SocialCurrencyConstraintFactor(), ContextCurrencyModeFactor(defaults)
            ),
            merit_destination=MeritDestinationFactor(communities, defaults),
        )

    # ------------------------------------------------------------------
    # Single decisions
    # ------------------------------------------------------------------
    async def can_perform_action(
        self,
        user_id: str,
        community_id: str | None,
        action: Action,
        *,
        resource: ResourceRef | None = None,
        direction: VoteDirection | None = None,
        beneficiary_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> Decision:
        """Permission (and, for votes, currency) decision for one request.

        *overrides* replaces fields of the built :class:`DecisionContext`
        (for example ``{"is_team_member": True}``) before any factor runs.
        """
        ctx = await self.builder.build(
            user_id, community_id, action,
            resource=resource, direction=direction, beneficiary_id=beneficiary_id,
        )
        if overrides:
            ctx = dataclasses.replace(ctx, **overrides)
        return self.decide(ctx, action)

    def decide(self, ctx: DecisionContext, action: Action) -> Decision:
        """Run the factors over an already-built context."""
        if (
            action is Action.VOTE
            and ctx.resource_kind is ResourceKind.COMMENT
            and not ctx.comment_voting_enabled
        ):
            return Decision(
                allowed=False,
                action=action,
                reason="Voting on comments is disabled",
                code=rc.reason_code(action, rc.COMMENT_VOTING_DISABLED),
                context=ctx,
            )

        permission = self.role_hierarchy.evaluate(ctx, action)
        if not permission.allowed:
            logger.debug(
                "Denied user=%s action=%s code=%s", ctx.user_id, action, permission.code
            )
            return Decision(
                allowed=False,
                action=action,
                reason=permission.reason,
                code=permission.code,
                context=ctx,
            )

        mode = self.currency.evaluate(ctx) if action is Action.VOTE else None
        return Decision(
            allowed=True,
            action=action,
            reason=permission.reason,
            currency_mode=mode,
            context=ctx,
        )

    async def evaluate_currency_mode(
        self,
        user_id: str,
        community_id: str | None,
        *,
        resource: ResourceRef | None = None,
        direction: VoteDirection | None = None,
        beneficiary_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> CurrencyMode:
        """Currency mode for a vote.  Missing community/resource → unavailable."""
        ctx = await self.builder.build(
            user_id, community_id, Action.VOTE,
            resource=resource, direction=direction, beneficiary_id=beneficiary_id,
        )
        if overrides:
            ctx = dataclasses.replace(ctx, **overrides)
        if ctx.community is None:
            return CurrencyMode.unavailable("Community not found")
        if ctx.resource_missing:
            return CurrencyMode.unavailable("Resource not found")
        return self.currency.evaluate(ctx)

    async def evaluate_merit_destination(
        self,
        community_id: str,
        effective_beneficiary_id: str | None,
        amount: float,
    ) -> MeritDestination:
        """Where *amount* merit lands.  Missing community → empty."""
        community = await self.builder.communities.get_community(community_id)
        if community is None:
            return MeritDestination()
        ctx = DecisionContext(
            user_id="",
            community_id=community_id,
            community=community,
            effective_beneficiary_id=effective_beneficiary_id,
            default_currency_label=self.builder.config.currency_label,
        )
        return await self.merit_destination.evaluate(ctx, amount)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    async def batch_can_perform_action(
        self,
        user_id: str,
        action: Action,
        resources: Iterable[ResourceRef],
        *,
        direction: VoteDirection | None = None,
    ) -> dict[str, Decision]:
        """One decision per distinct resource id, evaluated concurrently."""
        refs = list({ref.id: ref for ref in resources}.values())
        decisions = await asyncio.gather(*(
            self.can_perform_action(
                user_id, None, action, resource=ref, direction=direction
            )
            for ref in refs
        ))
        return {ref.id: decision for ref, decision in zip(refs, decisions)}

    # ------------------------------------------------------------------
    # Explainability
    # ------------------------------------------------------------------
    @staticmethod
    def explain(decision: Decision) -> dict[str, Any]:
        """JSON-ready trace of a decision: outcome, currency mode, facts."""
        return {
            "action": decision.action.value,
            "allowed": decision.allowed,
            "reason": decision.reason,
            "code": decision.code,
            "currency_mode": (
                decision.currency_mode.to_dict() if decision.currency_mode else None
            ),
            "facts": decision.context.to_dict() if decision.context else None,
        }
