"""
arbiter.engine.context — Collaborator Interfaces & ContextBuilder
==================================================================

The engine depends only on narrow, read-only collaborator protocols.  The
hosting service wires concrete implementations (see
:mod:`arbiter.services.lookup_service`); tests wire in-memory fakes.

:class:`ContextBuilder` assembles one :class:`DecisionContext` per call in
three dependency phases, each a concurrent ``asyncio.gather`` fan-out:

  1. requester + resource
  2. community, requester role, author role, requester/beneficiary memberships
  3. community types for every membership (team detection)

Nothing is cached across calls; lookups are memoised within one build only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from arbiter.config import ArbiterConfig
from arbiter.constants import normalize_id, same_id
from arbiter.database.models import (
    Action,
    CommunityTypeTag,
    ResourceKind,
    Role,
    TargetType,
    VoteDirection,
)
from arbiter.engine.types import (
    CommunityView,
    DecisionContext,
    ResourceFacts,
    ResourceRef,
    UserFacts,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CommunityReader",
    "ContextBuilder",
    "ResourceResolver",
    "RoleResolver",
    "UserLookup",
]


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------
@runtime_checkable
class UserLookup(Protocol):
    async def get_user_by_id(self, user_id: str) -> UserFacts | None:
        ...


@runtime_checkable
class RoleResolver(Protocol):
    async def get_user_role_in_community(
        self, user_id: str, community_id: str
    ) -> Role | None:
        """Global superadmin first, then the stored community role, else ``None``."""
        ...

    async def get_user_community_ids(self, user_id: str) -> list[str]:
        """Ids of every community the user holds a role in."""
        ...


@runtime_checkable
class CommunityReader(Protocol):
    async def get_community(self, community_id: str) -> CommunityView | None:
        ...

    async def get_community_by_type_tag(
        self, type_tag: CommunityTypeTag
    ) -> CommunityView | None:
        """The platform's singleton community of *type_tag*, if any."""
        ...


@runtime_checkable
class ResourceResolver(Protocol):
    async def resolve(self, resource_id: str) -> ResourceFacts | None:
        ...


_TARGET_BY_KIND: dict[ResourceKind, TargetType] = {
    ResourceKind.PUBLICATION: TargetType.PUBLICATION,
    ResourceKind.COMMENT: TargetType.VOTE,
    ResourceKind.POLL: TargetType.POLL,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def minutes_between(created_at: datetime, now: datetime) -> int:
    """Whole minutes elapsed, floored.  Naive timestamps are taken as UTC."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return int((now - created_at).total_seconds() // 60)


# ---------------------------------------------------------------------------
# Per-build memo
# ---------------------------------------------------------------------------
class _CommunityMemo:
    """Shares one in-flight lookup per community id within a single build."""

    def __init__(self, reader: CommunityReader) -> None:
        self._reader = reader
        self._tasks: dict[str, asyncio.Task[CommunityView | None]] = {}

    def get(self, community_id: str) -> Awaitable[CommunityView | None]:
        key = normalize_id(community_id)
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._reader.get_community(community_id))
            self._tasks[key] = task
        return task

    async def team_ids(self, community_ids: Iterable[str]) -> frozenset[str]:
        ids = list(community_ids)
        views = await asyncio.gather(*(self.get(cid) for cid in ids))
        return frozenset(
            normalize_id(cid)
            for cid, view in zip(ids, views)
            if view is not None and view.type_tag is CommunityTypeTag.TEAM
        )


# ---------------------------------------------------------------------------
# ContextBuilder
# ---------------------------------------------------------------------------
class ContextBuilder:
    """Builds the fact sheet for one (user, community, action, resource) request.

    Parameters
    ----------
    users, roles, communities:
        Read-only collaborators.
    resolvers:
        One :class:`ResourceResolver` per resource kind.
    config:
        Platform configuration; supplies the comment-voting switch and the
        fallback edit window / currency label.
    clock:
        Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        users: UserLookup,
        roles: RoleResolver,
        communities: CommunityReader,
        resolvers: Mapping[ResourceKind, ResourceResolver],
        config: ArbiterConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.users = users
        self.roles = roles
        self.communities = communities
        self.resolvers = dict(resolvers)
        self.config = config
        self._clock = clock or _utcnow

    async def resolve_resource(self, ref: ResourceRef) -> ResourceFacts | None:
        """Resolve *ref*; unknown kinds and deleted resources count as missing."""
        resolver = self.resolvers.get(ref.kind)
        if resolver is None:
            logger.warning("No resolver registered for resource kind %s", ref.kind)
            return None
        facts = await resolver.resolve(ref.id)
        if facts is None or facts.deleted:
            return None
        return facts

    async def build(
        self,
        user_id: str,
        community_id: str | None,
        action: Action,
        *,
        resource: ResourceRef | None = None,
        direction: VoteDirection | None = None,
        beneficiary_id: str | None = None,
    ) -> DecisionContext:
        memo = _CommunityMemo(self.communities)

        # Phase 1: requester + resource.
        user, facts = await asyncio.gather(
            self.users.get_user_by_id(user_id),
            self.resolve_resource(resource) if resource else _none(),
        )

        if facts is not None:
            community_id = facts.community_id
        community_id = community_id or ""

        author_id = facts.author_id if facts else None
        stored_beneficiary = beneficiary_id or (facts.beneficiary_id if facts else None)
        if stored_beneficiary and not same_id(stored_beneficiary, author_id):
            effective_beneficiary = stored_beneficiary
        else:
            effective_beneficiary = author_id or stored_beneficiary

        # Phase 2: community, roles, memberships.
        community, user_role, author_role, user_ids, beneficiary_ids = await asyncio.gather(
            memo.get(community_id) if community_id else _none(),
            self.roles.get_user_role_in_community(user_id, community_id)
            if community_id else _none(),
            self.roles.get_user_role_in_community(author_id, community_id)
            if author_id and community_id else _none(),
            self.roles.get_user_community_ids(user_id),
            self.roles.get_user_community_ids(effective_beneficiary)
            if effective_beneficiary else _empty(),
        )

        # Phase 3: which memberships are team communities.
        user_teams, beneficiary_teams = await asyncio.gather(
            memo.team_ids(user_ids),
            memo.team_ids(beneficiary_ids or ()),
        )

        is_team_community = (
            community is not None and community.type_tag is CommunityTypeTag.TEAM
        )
        minutes = (
            minutes_between(facts.created_at, self._clock())
            if facts is not None and facts.created_at is not None
            else None
        )

        ctx = DecisionContext(
            user_id=user_id,
            community_id=community_id,
            community=community,
            global_role=user.global_role if user else None,
            user_role=user_role,
            resource_id=resource.id if resource else None,
            resource_kind=resource.kind if resource else None,
            resource_missing=resource is not None and facts is None,
            author_id=author_id,
            beneficiary_id=stored_beneficiary,
            effective_beneficiary_id=effective_beneficiary,
            author_role=author_role,
            minutes_since_creation=minutes,
            has_votes=facts.has_votes if facts else False,
            has_comments=facts.has_comments if facts else False,
            post_type=facts.post_type if facts else None,
            is_project=facts.is_project if facts else False,
            is_author=same_id(user_id, author_id),
            is_beneficiary=same_id(user_id, stored_beneficiary),
            is_effective_beneficiary=same_id(user_id, effective_beneficiary),
            is_team_member=is_team_community and user_role is not None,
            has_team_membership=bool(user_teams),
            shared_team_communities=(
                user_teams & beneficiary_teams if effective_beneficiary else frozenset()
            ),
            target_type=_TARGET_BY_KIND.get(resource.kind) if resource else None,
            direction=direction,
            comment_voting_enabled=self.config.enable_comment_voting,
            default_edit_window_minutes=self.config.edit_window_minutes,
            default_currency_label=self.config.currency_label,
        )
        logger.debug(
            "Context built user=%s community=%s action=%s resource=%s missing=%s",
            user_id, community_id, action, ctx.resource_id, ctx.resource_missing,
        )
        return ctx


async def _none() -> None:
    return None


async def _empty() -> list[str]:
    return []
