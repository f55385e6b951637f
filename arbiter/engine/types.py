"""
arbiter.engine.types — Rules, Contexts & Factor Results
========================================================

Immutable value objects that flow through the decision pipeline:

  CommunityView + ResourceFacts + UserFacts → DecisionContext
  DecisionContext → PermissionResult → CurrencyMode → MeritDestination

Every type here is a frozen, slotted dataclass.  Factors receive them by
value and never mutate them; overrides produce new values through
:func:`dataclasses.replace`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from arbiter.database.models import (
    Action,
    CommunityTypeTag,
    CurrencySource,
    GlobalRole,
    OwnVotePolicy,
    RequiredCurrency,
    ResourceKind,
    Role,
    SocialConstraint,
    TargetType,
    VoteDirection,
    VotingRestriction,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CommunitySettings",
    "CommunityView",
    "ConditionSet",
    "CurrencyMode",
    "Decision",
    "DecisionContext",
    "Destination",
    "MeritConversion",
    "MeritDestination",
    "MeritSettings",
    "MissingCommunityError",
    "PermissionResult",
    "PermissionRule",
    "ResourceFacts",
    "ResourceRef",
    "SocialConstraintResult",
    "UserFacts",
    "VotingSettings",
]


def _pick(raw: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    """Read *snake* or *camel* from a stored mapping, whichever is present."""
    if snake in raw:
        return raw[snake]
    return raw.get(camel, default)


def _stored_enum(enum_cls: type, value: Any, default: Any, name: str) -> Any:
    """Parse a stored enum value; unknown values fall back to *default*."""
    if value is None or value == "":
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Ignoring unknown %s %r; using %r", name, value, default)
        return default


def _stored_number(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s %r; using %r", name, value, default)
        return default


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class MissingCommunityError(ValueError):
    """A factor that requires a community was handed a context without one.

    This is a bug in the calling code, not a data outcome: data-driven
    "not found" cases resolve to denied/empty results instead.
    """


# ---------------------------------------------------------------------------
# Permission rules
# ---------------------------------------------------------------------------
_CONDITION_KEYS: dict[str, str] = {
    "requiresTeamMembership": "requires_team_membership",
    "onlyTeamLead": "only_team_lead",
    "canEditAfterMinutes": "can_edit_after_minutes",
    "canDeleteWithVotes": "can_delete_with_votes",
    "canDeleteWithComments": "can_delete_with_comments",
    "canVoteForOwnPosts": "can_vote_for_own_posts",
    "teamOnly": "team_only",
    "isHidden": "is_hidden",
    "participantsCannotVoteForLead": "participants_cannot_vote_for_lead",
}


@dataclass(frozen=True, slots=True)
class ConditionSet:
    """Named predicates attached to a rule.  All present ones must pass.

    ``None`` on the tri-state delete flags means "not configured".
    """

    requires_team_membership: bool = False
    only_team_lead: bool = False
    can_edit_after_minutes: int | None = None
    can_delete_with_votes: bool | None = None
    can_delete_with_comments: bool | None = None
    can_vote_for_own_posts: OwnVotePolicy = OwnVotePolicy.UNSET
    team_only: bool = False
    is_hidden: bool = False
    participants_cannot_vote_for_lead: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ConditionSet:
        """Parse stored conditions; both snake_case and camelCase keys work."""
        if not raw:
            return cls()
        values: dict[str, Any] = {}
        for key, value in raw.items():
            name = _CONDITION_KEYS.get(key, key)
            if name not in _CONDITION_KEYS.values():
                logger.warning("Ignoring unknown rule condition %r", key)
                continue
            values[name] = value

        if "can_vote_for_own_posts" in values:
            values["can_vote_for_own_posts"] = OwnVotePolicy.parse(
                values["can_vote_for_own_posts"]
            )
        for flag in (
            "requires_team_membership",
            "only_team_lead",
            "team_only",
            "is_hidden",
            "participants_cannot_vote_for_lead",
        ):
            if flag in values:
                values[flag] = bool(values[flag])
        if values.get("can_edit_after_minutes") is not None:
            values["can_edit_after_minutes"] = int(values["can_edit_after_minutes"])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Only the conditions that differ from "not configured"."""
        out: dict[str, Any] = {}
        for name in _CONDITION_KEYS.values():
            value = getattr(self, name)
            if value is None or value is OwnVotePolicy.UNSET:
                continue
            if value is False and name not in _TRI_STATE:
                continue
            out[name] = value.value if isinstance(value, OwnVotePolicy) else value
        return out


_TRI_STATE = frozenset({"can_delete_with_votes", "can_delete_with_comments"})


@dataclass(frozen=True, slots=True)
class PermissionRule:
    """One cell of the (role, action) permission matrix."""

    role: Role
    action: Action
    allowed: bool
    conditions: ConditionSet | None = None

    @property
    def key(self) -> tuple[Role, Action]:
        return (self.role, self.action)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> PermissionRule:
        """Parse a stored rule.

        Raises
        ------
        ValueError
            If the stored role or action is not a known member.
        KeyError
            If ``role`` or ``action`` is missing.
        """
        conditions = raw.get("conditions")
        return cls(
            role=Role(raw["role"]),
            action=Action(raw["action"]),
            allowed=bool(raw.get("allowed", False)),
            conditions=ConditionSet.from_dict(conditions) if conditions else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "role": self.role.value,
            "action": self.action.value,
            "allowed": self.allowed,
        }
        if self.conditions is not None:
            out["conditions"] = self.conditions.to_dict()
        return out


# ---------------------------------------------------------------------------
# Effective community settings
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MeritConversion:
    target_community_id: str
    ratio: float = 1

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> MeritConversion | None:
        if not raw:
            return None
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring malformed merit conversion %r", raw)
            return None
        target = _pick(raw, "target_community_id", "targetCommunityId")
        if not target:
            return None
        ratio = _stored_number(raw.get("ratio"), 1, "merit conversion ratio")
        return cls(target_community_id=str(target), ratio=ratio)


@dataclass(frozen=True, slots=True)
class VotingSettings:
    """Effective voting settings (code defaults merged with stored overrides)."""

    voting_restriction: VotingRestriction = VotingRestriction.ANY
    currency_source: CurrencySource | None = None
    spends_merits: bool = True
    awards_merits: bool = True
    merit_conversion: MeritConversion | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> VotingSettings:
        restriction = _pick(raw, "voting_restriction", "votingRestriction")
        source = _pick(raw, "currency_source", "currencySource")
        return cls(
            voting_restriction=_stored_enum(
                VotingRestriction, restriction, VotingRestriction.ANY, "voting restriction"
            ),
            currency_source=_stored_enum(CurrencySource, source, None, "currency source"),
            spends_merits=bool(_pick(raw, "spends_merits", "spendsMerits", True)),
            awards_merits=bool(_pick(raw, "awards_merits", "awardsMerits", True)),
            merit_conversion=MeritConversion.from_dict(
                _pick(raw, "merit_conversion", "meritConversion")
            ),
        )


@dataclass(frozen=True, slots=True)
class MeritSettings:
    """Effective merit settings (code defaults merged with stored overrides)."""

    daily_quota: int = 100
    quota_recipients: frozenset[Role] = frozenset(Role)
    can_earn: bool = True
    can_spend: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MeritSettings:
        recipients = _pick(raw, "quota_recipients", "quotaRecipients")
        parsed: set[Role] = set()
        for value in recipients if recipients is not None else list(Role):
            try:
                parsed.add(Role(value))
            except ValueError:
                logger.warning("Ignoring unknown quota recipient role %r", value)
        return cls(
            daily_quota=int(
                _stored_number(_pick(raw, "daily_quota", "dailyQuota"), 100, "daily quota")
            ),
            quota_recipients=frozenset(parsed),
            can_earn=bool(_pick(raw, "can_earn", "canEarn", True)),
            can_spend=bool(_pick(raw, "can_spend", "canSpend", True)),
        )


@dataclass(frozen=True, slots=True)
class CommunitySettings:
    allow_edit_by_others: bool = False
    edit_window_minutes: int | None = None
    currency_label: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> CommunitySettings:
        if not raw:
            return cls()
        window = _pick(raw, "edit_window_minutes", "editWindowMinutes")
        return cls(
            allow_edit_by_others=bool(
                _pick(raw, "allow_edit_by_others", "allowEditByOthers", False)
            ),
            edit_window_minutes=None if window is None else int(window),
            currency_label=_pick(raw, "currency_label", "currencyLabel"),
        )


# ---------------------------------------------------------------------------
# CommunityView — read-only snapshot handed to the engine
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CommunityView:
    """A community as the engine sees it.

    ``permission_rules``, ``voting_settings`` and ``merit_settings`` hold the
    *stored overrides only*; the effective values are derived by
    :mod:`arbiter.engine.defaults` on every read.
    """

    id: str
    type_tag: CommunityTypeTag = CommunityTypeTag.CUSTOM
    name: str = ""
    permission_rules: tuple[PermissionRule, ...] = ()
    voting_settings: Mapping[str, Any] = field(default_factory=dict)
    merit_settings: Mapping[str, Any] = field(default_factory=dict)
    settings: CommunitySettings = field(default_factory=CommunitySettings)
    is_active: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CommunityView:
        """Build a view from a stored row/document.

        Malformed stored rules are skipped with a warning rather than
        failing the whole community read.
        """
        rules: list[PermissionRule] = []
        for entry in _pick(raw, "permission_rules", "permissionRules") or ():
            try:
                rules.append(PermissionRule.from_dict(entry))
            except (KeyError, ValueError):
                logger.warning(
                    "Skipping malformed stored rule %r on community %s",
                    entry, raw.get("id"),
                )
        return cls(
            id=str(raw["id"]),
            type_tag=CommunityTypeTag.parse(_pick(raw, "type_tag", "typeTag")),
            name=raw.get("name") or "",
            permission_rules=tuple(rules),
            voting_settings=dict(_pick(raw, "voting_settings", "votingSettings") or {}),
            merit_settings=dict(_pick(raw, "merit_settings", "meritSettings") or {}),
            settings=CommunitySettings.from_mapping(raw.get("settings")),
            is_active=bool(_pick(raw, "is_active", "isActive", True)),
        )


# ---------------------------------------------------------------------------
# Collaborator facts
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserFacts:
    id: str
    global_role: GlobalRole = GlobalRole.USER


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Caller-side pointer to a resource: its kind and id."""

    kind: ResourceKind
    id: str


@dataclass(frozen=True, slots=True)
class ResourceFacts:
    """What a resource resolver knows about one publication/comment/poll."""

    resource_id: str
    kind: ResourceKind
    community_id: str
    author_id: str
    beneficiary_id: str | None = None
    created_at: datetime | None = None
    upvotes: int = 0
    downvotes: int = 0
    comment_count: int = 0
    post_type: str | None = None
    is_project: bool = False
    deleted: bool = False
    is_active: bool = True
    expires_at: datetime | None = None

    @property
    def has_votes(self) -> bool:
        return self.upvotes + self.downvotes > 0

    @property
    def has_comments(self) -> bool:
        return self.comment_count > 0


# ---------------------------------------------------------------------------
# DecisionContext — the per-request fact sheet
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DecisionContext:
    """Everything the factors may look at for one (user, resource) pair.

    Built once per decision by :class:`~arbiter.engine.context.ContextBuilder`
    and discarded afterwards.
    """

    user_id: str
    community_id: str
    community: CommunityView | None = None

    # Requester
    global_role: GlobalRole | None = None
    user_role: Role | None = None

    # Resource
    resource_id: str | None = None
    resource_kind: ResourceKind | None = None
    resource_missing: bool = False
    author_id: str | None = None
    beneficiary_id: str | None = None
    effective_beneficiary_id: str | None = None
    author_role: Role | None = None
    minutes_since_creation: int | None = None
    has_votes: bool = False
    has_comments: bool = False
    post_type: str | None = None
    is_project: bool = False

    # Relationships
    is_author: bool = False
    is_beneficiary: bool = False
    is_effective_beneficiary: bool = False
    is_team_member: bool = False
    has_team_membership: bool = False
    shared_team_communities: frozenset[str] = frozenset()

    # Vote specifics
    target_type: TargetType | None = None
    direction: VoteDirection | None = None

    # Platform configuration
    comment_voting_enabled: bool = False
    default_edit_window_minutes: int = 30
    default_currency_label: str = "merit"

    @property
    def is_superadmin(self) -> bool:
        return (
            self.global_role is GlobalRole.SUPERADMIN
            or self.user_role is Role.SUPERADMIN
        )

    @property
    def type_tag(self) -> CommunityTypeTag | None:
        return self.community.type_tag if self.community else None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready snapshot of the facts (used by ``explain``)."""
        return {
            "user_id": self.user_id,
            "community_id": self.community_id,
            "community_type": self.type_tag.value if self.type_tag else None,
            "global_role": self.global_role.value if self.global_role else None,
            "user_role": self.user_role.value if self.user_role else None,
            "resource_id": self.resource_id,
            "resource_kind": self.resource_kind.value if self.resource_kind else None,
            "resource_missing": self.resource_missing,
            "author_id": self.author_id,
            "beneficiary_id": self.beneficiary_id,
            "effective_beneficiary_id": self.effective_beneficiary_id,
            "author_role": self.author_role.value if self.author_role else None,
            "minutes_since_creation": self.minutes_since_creation,
            "has_votes": self.has_votes,
            "has_comments": self.has_comments,
            "is_author": self.is_author,
            "is_beneficiary": self.is_beneficiary,
            "is_effective_beneficiary": self.is_effective_beneficiary,
            "is_team_member": self.is_team_member,
            "has_team_membership": self.has_team_membership,
            "shared_team_communities": sorted(self.shared_team_communities),
            "target_type": self.target_type.value if self.target_type else None,
            "direction": self.direction.value if self.direction else None,
        }


# ---------------------------------------------------------------------------
# Factor results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PermissionResult:
    allowed: bool
    reason: str
    code: str | None = None

    @classmethod
    def allow(cls, reason: str) -> PermissionResult:
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: str, code: str) -> PermissionResult:
        return cls(False, reason, code)


@dataclass(frozen=True, slots=True)
class SocialConstraintResult:
    constraint: SocialConstraint = SocialConstraint.NONE
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CurrencyMode:
    """Which currencies may pay for a vote.

    ``required_currency == NONE`` means the caller chooses among the
    allowed ones.
    """

    allowed_quota: bool
    allowed_wallet: bool
    required_currency: RequiredCurrency = RequiredCurrency.NONE
    reason: str | None = None

    @classmethod
    def wallet_only(cls, reason: str | None = None) -> CurrencyMode:
        return cls(False, True, RequiredCurrency.WALLET, reason)

    @classmethod
    def quota_only(cls, reason: str | None = None) -> CurrencyMode:
        return cls(True, False, RequiredCurrency.QUOTA, reason)

    @classmethod
    def choice(cls, allowed_quota: bool = True, reason: str | None = None) -> CurrencyMode:
        return cls(allowed_quota, True, RequiredCurrency.NONE, reason)

    @classmethod
    def unavailable(cls, reason: str) -> CurrencyMode:
        return cls(False, False, RequiredCurrency.NONE, reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed_quota": self.allowed_quota,
            "allowed_wallet": self.allowed_wallet,
            "required_currency": self.required_currency.value,
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class Destination:
    recipient_user_id: str
    community_id: str
    amount: float
    currency_label: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient_user_id": self.recipient_user_id,
            "community_id": self.community_id,
            "amount": self.amount,
            "currency_label": self.currency_label,
        }


class MeritDestination(tuple[Destination, ...]):
    """Ordered destinations.  Empty means the merit is extinguished."""

    __slots__ = ()

    def __new__(cls, destinations: Iterable[Destination] = ()) -> MeritDestination:
        return super().__new__(cls, destinations)

    @property
    def total(self) -> float:
        return sum(d.amount for d in self)

    def __repr__(self) -> str:
        return f"MeritDestination({list(self)!r})"


@dataclass(frozen=True, slots=True)
class Decision:
    """Composed orchestrator output for one action."""

    allowed: bool
    action: Action
    reason: str
    code: str | None = None
    currency_mode: CurrencyMode | None = None
    context: DecisionContext | None = None
