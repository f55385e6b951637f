"""
arbiter.engine.defaults — Rule Defaults & Effective Settings
=============================================================

Rule tables are derived fresh on every read:

    base matrix  →  community-type overrides  →  community's stored rules

Each layer replaces entries by ``(role, action)`` key; no layer may add a
key the base matrix does not define.  Voting and merit settings use the
same "code defaults + stored override" merge.

PURE module — no DB I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from arbiter.database.models import (
    Action,
    CommunityTypeTag,
    OwnVotePolicy,
    Role,
    VotingRestriction,
)
from arbiter.engine.types import (
    CommunityView,
    ConditionSet,
    MeritSettings,
    PermissionRule,
    VotingSettings,
)

logger = logging.getLogger(__name__)

__all__ = [
    "MERIT_DEFAULTS",
    "TYPE_OVERRIDES",
    "VOTING_DEFAULTS",
    "RuleDefaultsResolver",
    "base_rules",
    "find_rule",
    "merge_rules",
    "merge_settings",
]

RuleKey = tuple[Role, Action]


# ---------------------------------------------------------------------------
# Base matrix — 3 roles × 11 actions
# ---------------------------------------------------------------------------
_PARTICIPANT_CONDITIONS: dict[Action, ConditionSet] = {
    Action.DELETE_PUBLICATION: ConditionSet(
        can_delete_with_votes=False, can_delete_with_comments=False
    ),
    Action.DELETE_COMMENT: ConditionSet(can_delete_with_votes=False),
    Action.DELETE_POLL: ConditionSet(can_delete_with_votes=False),
    # Empty set so the community/platform edit window still applies.
    Action.EDIT_PUBLICATION: ConditionSet(),
    Action.VOTE: ConditionSet(can_vote_for_own_posts=OwnVotePolicy.UNSET),
}


def base_rules() -> tuple[PermissionRule, ...]:
    """The base permission matrix, in canonical (role, action) order."""
    rules: list[PermissionRule] = []
    for role in (Role.SUPERADMIN, Role.LEAD):
        rules.extend(PermissionRule(role, action, True) for action in Action)
    rules.extend(
        PermissionRule(
            Role.PARTICIPANT, action, True, _PARTICIPANT_CONDITIONS.get(action)
        )
        for action in Action
    )
    return tuple(rules)


# ---------------------------------------------------------------------------
# Community-type overrides (replace only)
# ---------------------------------------------------------------------------
_TEAM_GATED = (
    Action.POST_PUBLICATION,
    Action.CREATE_POLL,
    Action.VOTE,
    Action.VIEW_COMMUNITY,
)

TYPE_OVERRIDES: dict[CommunityTypeTag, tuple[PermissionRule, ...]] = {
    CommunityTypeTag.CUSTOM: (),
    CommunityTypeTag.FUTURE_VISION: (
        PermissionRule(
            Role.PARTICIPANT, Action.VOTE, True,
            ConditionSet(can_vote_for_own_posts=OwnVotePolicy.ALLOW),
        ),
        PermissionRule(
            Role.LEAD, Action.VOTE, True,
            ConditionSet(can_vote_for_own_posts=OwnVotePolicy.ALLOW),
        ),
    ),
    CommunityTypeTag.MARATHON_OF_GOOD: (
        PermissionRule(
            Role.PARTICIPANT, Action.VOTE, True,
            ConditionSet(participants_cannot_vote_for_lead=True),
        ),
    ),
    CommunityTypeTag.SUPPORT: (
        PermissionRule(
            Role.PARTICIPANT, Action.VOTE, True,
            ConditionSet(can_vote_for_own_posts=OwnVotePolicy.DENY),
        ),
    ),
    CommunityTypeTag.TEAM: tuple(
        PermissionRule(
            Role.PARTICIPANT, action, True,
            ConditionSet(requires_team_membership=True),
        )
        for action in _TEAM_GATED
    ),
}


# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------
def merge_rules(
    base: Iterable[PermissionRule], *layers: Iterable[PermissionRule]
) -> tuple[PermissionRule, ...]:
    """Fold *layers* over *base*, replacing entries by ``(role, action)``.

    The result has exactly one rule per base key, in base order.  Later
    layers win over earlier ones; within a layer the last entry for a key
    wins.  Keys absent from *base* are dropped.
    """
    order: list[RuleKey] = []
    table: dict[RuleKey, PermissionRule] = {}
    for rule in base:
        if rule.key not in table:
            order.append(rule.key)
        table[rule.key] = rule

    for layer in layers:
        for rule in layer:
            if rule.key not in table:
                logger.warning(
                    "Dropping rule for unknown key role=%s action=%s",
                    rule.role, rule.action,
                )
                continue
            table[rule.key] = rule

    return tuple(table[key] for key in order)


def merge_settings(
    defaults: Mapping[str, Any], overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Stored override wins over code default, except a stored ``None``."""
    merged = dict(defaults)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    return merged


def find_rule(
    rules: Iterable[PermissionRule], role: Role, action: Action
) -> PermissionRule | None:
    for rule in rules:
        if rule.role is role and rule.action is action:
            return rule
    return None


# ---------------------------------------------------------------------------
# Settings defaults
# ---------------------------------------------------------------------------
VOTING_DEFAULTS: dict[str, Any] = {
    "voting_restriction": VotingRestriction.ANY.value,
    "currency_source": None,
    "spends_merits": True,
    "awards_merits": True,
    "merit_conversion": None,
}

MERIT_DEFAULTS: dict[str, Any] = {
    "daily_quota": 100,
    "quota_recipients": [role.value for role in Role],
    "can_earn": True,
    "can_spend": True,
}

_CAMEL_TO_SNAKE = {
    "votingRestriction": "voting_restriction",
    "currencySource": "currency_source",
    "spendsMerits": "spends_merits",
    "awardsMerits": "awards_merits",
    "meritConversion": "merit_conversion",
    "dailyQuota": "daily_quota",
    "quotaRecipients": "quota_recipients",
    "canEarn": "can_earn",
    "canSpend": "can_spend",
}


def _snake_keys(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    return {_CAMEL_TO_SNAKE.get(k, k): v for k, v in (raw or {}).items()}


# ---------------------------------------------------------------------------
# RuleDefaultsResolver
# ---------------------------------------------------------------------------
class RuleDefaultsResolver:
    """Derives effective rules and settings for a community.

    Stateless: every call rebuilds its result from the base matrix, the
    type overrides and the community's stored data.
    """

    def resolve(self, type_tag: CommunityTypeTag | str | None) -> tuple[PermissionRule, ...]:
        """Default rules for a community type (base + type overrides)."""
        tag = (
            type_tag
            if isinstance(type_tag, CommunityTypeTag)
            else CommunityTypeTag.parse(type_tag)
        )
        return merge_rules(base_rules(), TYPE_OVERRIDES.get(tag, ()))

    def effective_rules(self, community: CommunityView) -> tuple[PermissionRule, ...]:
        """Type defaults with the community's stored rules layered on top."""
        return merge_rules(
            base_rules(),
            TYPE_OVERRIDES.get(community.type_tag, ()),
            community.permission_rules,
        )

    def effective_rule(
        self, community: CommunityView, role: Role, action: Action
    ) -> PermissionRule | None:
        return find_rule(self.effective_rules(community), role, action)

    def effective_voting_settings(self, community: CommunityView) -> VotingSettings:
        return VotingSettings.from_mapping(
            merge_settings(VOTING_DEFAULTS, _snake_keys(community.voting_settings))
        )

    def effective_merit_settings(self, community: CommunityView) -> MeritSettings:
        return MeritSettings.from_mapping(
            merge_settings(MERIT_DEFAULTS, _snake_keys(community.merit_settings))
        )
