"""
tests/fakes.py — In-memory Collaborators
=========================================

One :class:`FakeDirectory` implements every collaborator protocol over
plain dicts, and counts calls so tests can assert on fan-out behaviour.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta

from arbiter.config import ArbiterConfig
from arbiter.database.models import (
    CommunityTypeTag,
    GlobalRole,
    ResourceKind,
    Role,
)
from arbiter.engine.orchestrator import DecisionOrchestrator
from arbiter.engine.types import (
    CommunitySettings,
    CommunityView,
    DecisionContext,
    PermissionRule,
    ResourceFacts,
    UserFacts,
)


class _FakeResolver:
    def __init__(self, directory: FakeDirectory, kind: ResourceKind) -> None:
        self.directory = directory
        self.kind = kind

    async def resolve(self, resource_id: str) -> ResourceFacts | None:
        self.directory.calls[f"resolve:{self.kind}"] += 1
        return self.directory.resources.get((self.kind, resource_id))


class FakeDirectory:
    def __init__(self) -> None:
        self.users: dict[str, UserFacts] = {}
        self.roles: dict[tuple[str, str], Role] = {}
        self.communities: dict[str, CommunityView] = {}
        self.resources: dict[tuple[ResourceKind, str], ResourceFacts] = {}
        self.calls: Counter[str] = Counter()

    # -- setup helpers --------------------------------------------------
    def add_user(self, user_id: str, global_role: GlobalRole = GlobalRole.USER) -> str:
        self.users[user_id] = UserFacts(user_id, global_role)
        return user_id

    def add_community(
        self,
        community_id: str,
        type_tag: CommunityTypeTag = CommunityTypeTag.CUSTOM,
        *,
        rules: tuple[PermissionRule, ...] = (),
        voting: dict | None = None,
        merit: dict | None = None,
        settings: CommunitySettings | None = None,
    ) -> CommunityView:
        view = CommunityView(
            id=community_id,
            type_tag=type_tag,
            name=community_id.title(),
            permission_rules=rules,
            voting_settings=voting or {},
            merit_settings=merit or {},
            settings=settings or CommunitySettings(),
        )
        self.communities[community_id] = view
        return view

    def grant(self, user_id: str, community_id: str, role: Role = Role.PARTICIPANT) -> None:
        if user_id not in self.users:
            self.add_user(user_id)
        self.roles[(user_id, community_id)] = role

    def add_resource(
        self,
        kind: ResourceKind,
        resource_id: str,
        community_id: str,
        author_id: str,
        **kw,
    ) -> ResourceFacts:
        facts = ResourceFacts(
            resource_id=resource_id,
            kind=kind,
            community_id=community_id,
            author_id=author_id,
            **kw,
        )
        self.resources[(kind, resource_id)] = facts
        return facts

    def add_publication(self, resource_id: str, community_id: str, author_id: str, **kw):
        return self.add_resource(ResourceKind.PUBLICATION, resource_id, community_id, author_id, **kw)

    # -- UserLookup -----------------------------------------------------
    async def get_user_by_id(self, user_id: str) -> UserFacts | None:
        self.calls["get_user_by_id"] += 1
        return self.users.get(user_id)

    # -- RoleResolver ---------------------------------------------------
    async def get_user_role_in_community(self, user_id: str, community_id: str) -> Role | None:
        self.calls["get_user_role_in_community"] += 1
        user = self.users.get(user_id)
        if user is not None and user.global_role is GlobalRole.SUPERADMIN:
            return Role.SUPERADMIN
        return self.roles.get((user_id, community_id))

    async def get_user_community_ids(self, user_id: str) -> list[str]:
        self.calls["get_user_community_ids"] += 1
        return sorted(cid for (uid, cid) in self.roles if uid == user_id)

    # -- CommunityReader ------------------------------------------------
    async def get_community(self, community_id: str) -> CommunityView | None:
        self.calls["get_community"] += 1
        self.calls[f"get_community:{community_id}"] += 1
        return self.communities.get(community_id)

    async def get_community_by_type_tag(self, type_tag: CommunityTypeTag) -> CommunityView | None:
        self.calls["get_community_by_type_tag"] += 1
        for view in self.communities.values():
            if view.type_tag is type_tag:
                return view
        return None

    # -- wiring ---------------------------------------------------------
    def resolvers(self) -> dict[ResourceKind, _FakeResolver]:
        return {kind: _FakeResolver(self, kind) for kind in ResourceKind}

    def orchestrator(
        self,
        config: ArbiterConfig | None = None,
        clock=None,
    ) -> DecisionOrchestrator:
        return DecisionOrchestrator.create(
            users=self,
            roles=self,
            communities=self,
            resolvers=self.resolvers(),
            config=config or ArbiterConfig(platform_name="Test Platform"),
            clock=clock,
        )


def make_ctx(
    community: CommunityView | None = None,
    *,
    community_id: str = "c1",
    user_id: str = "u1",
    no_community: bool = False,
    **kw,
) -> DecisionContext:
    """A DecisionContext for factor tests; defaults to a custom community."""
    if community is None and not no_community:
        community = CommunityView(id=community_id)
    return DecisionContext(
        user_id=user_id,
        community_id=community.id if community else community_id,
        community=community,
        **kw,
    )


def created_minutes_ago(now: datetime, minutes: float) -> datetime:
    return now - timedelta(minutes=minutes)
