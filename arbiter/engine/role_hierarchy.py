"""
arbiter.engine.role_hierarchy — Factor 1: Permission Gate
==========================================================

Binary answer to "may this action happen at all?".  Steps run in strict
order and the first denial wins:

  0. Missing resource / missing community → denied (fail closed)
  1. Global superadmin → allowed (bypass)
  2. No community role → denied
  3. No rule for (role, action) → denied
  4. Vote + ``can_vote_for_own_posts == deny`` + requester is effective
     beneficiary → denied, outranking everything below
  5. Rule ``allowed`` is false → denied
  6. ``not-same-team`` restriction + shared team community → denied
  7. Team community vote → requires ``is_team_member``; then allowed
  8. Remaining rule conditions (all must pass)
  9. Participant editing/deleting someone else's publication, poll or
     comment → denied

Which currency pays for an allowed vote is decided downstream; self-votes
are never blocked here unless a rule explicitly says so.

PURE module — evaluates a :class:`DecisionContext`, no I/O.
"""

from __future__ import annotations

import logging

from arbiter import constants as rc
from arbiter.database.models import (
    Action,
    CommunityTypeTag,
    OwnVotePolicy,
    ResourceKind,
    Role,
    VotingRestriction,
)
from arbiter.engine.defaults import RuleDefaultsResolver
from arbiter.engine.types import (
    CommunityView,
    ConditionSet,
    DecisionContext,
    PermissionResult,
)

logger = logging.getLogger(__name__)

# Actions that only the author (or a higher role) may perform.
_OWNER_ACTIONS: frozenset[Action] = frozenset({
    Action.EDIT_PUBLICATION,
    Action.DELETE_PUBLICATION,
    Action.EDIT_POLL,
    Action.DELETE_POLL,
    Action.EDIT_COMMENT,
    Action.DELETE_COMMENT,
})

# Actions that act on an existing resource.
_RESOURCE_ACTIONS: frozenset[Action] = _OWNER_ACTIONS | {Action.VOTE, Action.COMMENT}


class RoleHierarchyFactor:
    """Factor 1.  Deterministic for a fixed (context, action, rule table)."""

    def __init__(self, defaults: RuleDefaultsResolver | None = None) -> None:
        self._defaults = defaults or RuleDefaultsResolver()

    def evaluate(self, ctx: DecisionContext, action: Action) -> PermissionResult:
        # A missing resource also leaves no community to derive.
        if ctx.resource_missing and action in _RESOURCE_ACTIONS:
            return PermissionResult.deny(
                "Resource not found", rc.reason_code(action, rc.RESOURCE_NOT_FOUND)
            )
        community = ctx.community
        if community is None:
            return PermissionResult.deny(
                "Community not found", rc.reason_code(action, rc.NO_COMMUNITY)
            )

        # 1. Superadmin bypass.
        if ctx.is_superadmin:
            logger.debug("Superadmin bypass user=%s action=%s", ctx.user_id, action)
            return PermissionResult.allow("Superadmin bypass")

        # 2. Community role.
        role = ctx.user_role
        if role is None:
            return PermissionResult.deny(
                "User has no role in community", rc.reason_code(action, rc.NO_ROLE)
            )

        # 3. Effective rule.
        rule = self._defaults.effective_rule(community, role, action)
        if rule is None:
            return PermissionResult.deny(
                f"No matching rule found for role={role}, action={action}",
                rc.reason_code(action, rc.NO_MATCHING_RULE),
            )
        conditions = rule.conditions

        # 4. Explicit self-vote ban outranks every other check.
        if (
            action is Action.VOTE
            and conditions is not None
            and conditions.can_vote_for_own_posts is OwnVotePolicy.DENY
            and ctx.is_effective_beneficiary
        ):
            logger.debug("Self-vote blocked by rule user=%s", ctx.user_id)
            return PermissionResult.deny(
                "Cannot vote for own posts (self-voting disabled by rule)",
                rc.reason_code(action, rc.IS_AUTHOR),
            )

        # 5. Rule flag.
        if not rule.allowed:
            return PermissionResult.deny(
                f"Rule explicitly denies: role={role}, action={action}",
                rc.reason_code(action, rc.RULE_DENIED),
            )

        # 6. not-same-team restriction.
        if action is Action.VOTE and ctx.effective_beneficiary_id:
            voting = self._defaults.effective_voting_settings(community)
            if (
                voting.voting_restriction is VotingRestriction.NOT_SAME_TEAM
                and ctx.shared_team_communities
            ):
                return PermissionResult.deny(
                    "Users share team communities (not-same-team restriction)",
                    rc.reason_code(action, rc.SAME_TEAM),
                )

        # 7. Team communities: only members vote.
        if community.type_tag is CommunityTypeTag.TEAM and action is Action.VOTE:
            if not ctx.is_team_member:
                return PermissionResult.deny(
                    "Not a team member in team community",
                    rc.reason_code(action, rc.NOT_TEAM_MEMBER),
                )
            return PermissionResult.allow("Team member vote")

        # 8. Conditions.
        if conditions is not None:
            failed = self._check_conditions(ctx, community, conditions, role, action)
            if failed is not None:
                logger.debug(
                    "Conditions not met role=%s action=%s: %s",
                    role, action, failed.reason,
                )
                return failed

        # 9. Participants only edit/delete their own resources.
        if role is Role.PARTICIPANT and action in _OWNER_ACTIONS and not ctx.is_author:
            if action is Action.EDIT_PUBLICATION and community.settings.allow_edit_by_others:
                logger.debug("Edit by non-author allowed by community setting")
            else:
                kind = _resource_word(action)
                return PermissionResult.deny(
                    f"Participant can only {action.value.split('_')[0]} their own {kind}",
                    rc.reason_code(action, rc.NOT_AUTHOR),
                )

        return PermissionResult.allow(f"Allowed by rule role={role}, action={action}")

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------
    def _check_conditions(
        self,
        ctx: DecisionContext,
        community: CommunityView,
        conditions: ConditionSet,
        role: Role,
        action: Action,
    ) -> PermissionResult | None:
        """Return the first failing condition as a denial, or ``None``."""
        if conditions.requires_team_membership:
            member = (
                ctx.is_team_member
                if community.type_tag is CommunityTypeTag.TEAM
                else ctx.has_team_membership
            )
            if not member:
                return PermissionResult.deny(
                    "Requires team membership: user is not a team member",
                    rc.reason_code(action, rc.NOT_TEAM_MEMBER),
                )

        if conditions.only_team_lead and role is not Role.LEAD:
            return PermissionResult.deny(
                "Only the team lead may perform this action",
                rc.reason_code(action, rc.CONDITIONS_NOT_MET),
            )

        if (
            action is Action.EDIT_PUBLICATION
            and role is Role.PARTICIPANT
            and ctx.minutes_since_creation is not None
        ):
            window = _edit_window(ctx, community, conditions)
            # 0 means no time limit.
            if window and ctx.minutes_since_creation >= window:
                return PermissionResult.deny(
                    f"Edit window of {window} minutes has expired",
                    rc.reason_code(action, rc.TIME_WINDOW_EXPIRED),
                )

        if conditions.can_delete_with_votes is False and ctx.has_votes:
            return PermissionResult.deny(
                "Cannot delete a resource that has votes",
                rc.reason_code(action, rc.HAS_VOTES),
            )

        if conditions.can_delete_with_comments is False and ctx.has_comments:
            return PermissionResult.deny(
                "Cannot delete a resource that has comments",
                rc.reason_code(action, rc.HAS_COMMENTS),
            )

        if conditions.team_only and not ctx.has_team_membership:
            return PermissionResult.deny(
                "Only team members may perform this action",
                rc.reason_code(action, rc.NOT_TEAM_MEMBER),
            )

        if conditions.is_hidden:
            return PermissionResult.deny(
                "Hidden from this role", rc.reason_code(action, rc.CONDITIONS_NOT_MET)
            )

        if (
            action is Action.VOTE
            and conditions.participants_cannot_vote_for_lead
            and role is Role.PARTICIPANT
            and ctx.author_role is Role.LEAD
        ):
            return PermissionResult.deny(
                "Participants cannot vote for a lead's publication",
                rc.reason_code(action, rc.CONDITIONS_NOT_MET),
            )

        return None


def _edit_window(
    ctx: DecisionContext, community: CommunityView, conditions: ConditionSet
) -> int:
    """Rule condition → community setting → platform default."""
    if conditions.can_edit_after_minutes is not None:
        return conditions.can_edit_after_minutes
    if community.settings.edit_window_minutes is not None:
        return community.settings.edit_window_minutes
    return ctx.default_edit_window_minutes


def _resource_word(action: Action) -> str:
    if action in (Action.EDIT_POLL, Action.DELETE_POLL):
        return f"{ResourceKind.POLL}s"
    if action in (Action.EDIT_COMMENT, Action.DELETE_COMMENT):
        return f"{ResourceKind.COMMENT}s"
    return f"{ResourceKind.PUBLICATION}s"
