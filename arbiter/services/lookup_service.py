"""
arbiter.services.lookup_service — DB-backed Engine Collaborators
==================================================================

Implements the read-only collaborator protocols of
:mod:`arbiter.engine.context` on top of the SQLAlchemy models.

Each collaborator method is ``async`` and ships a plain synchronous
session function to a worker thread with :func:`run_db`; the sync
functions return engine value objects (never ORM rows) so nothing leaks
out of the session.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from arbiter.database.engine import run_db
from arbiter.database.models import (
    Comment,
    Community,
    CommunityTypeTag,
    GlobalRole,
    Poll,
    Publication,
    ResourceKind,
    Role,
    User,
    UserCommunityRole,
)
from arbiter.engine.context import ResourceResolver
from arbiter.engine.types import CommunityView, ResourceFacts, UserFacts

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sync reads (run on a worker thread)
# ---------------------------------------------------------------------------
def load_user(engine: Engine, user_id: str) -> UserFacts | None:
    with Session(engine) as session:
        row = session.get(User, user_id)
        if row is None:
            return None
        try:
            global_role = GlobalRole(row.global_role)
        except ValueError:
            logger.warning("User %s has unknown global role %r", row.id, row.global_role)
            global_role = GlobalRole.USER
        return UserFacts(id=row.id, global_role=global_role)


def load_role(engine: Engine, user_id: str, community_id: str) -> Role | None:
    """Global superadmin → stored community role → ``None``."""
    with Session(engine) as session:
        global_role = session.scalar(select(User.global_role).where(User.id == user_id))
        if global_role == GlobalRole.SUPERADMIN:
            return Role.SUPERADMIN

        stored = session.scalar(
            select(UserCommunityRole.role).where(
                UserCommunityRole.user_id == user_id,
                UserCommunityRole.community_id == community_id,
            )
        )
        if stored is None:
            return None
        try:
            return Role(stored)
        except ValueError:
            logger.warning(
                "Ignoring unknown role %r for user=%s community=%s",
                stored, user_id, community_id,
            )
            return None


def load_community_ids(engine: Engine, user_id: str) -> list[str]:
    with Session(engine) as session:
        return list(
            session.scalars(
                select(UserCommunityRole.community_id)
                .where(UserCommunityRole.user_id == user_id)
                .order_by(UserCommunityRole.community_id)
            ).all()
        )


def _to_view(row: Community) -> CommunityView:
    return CommunityView.from_mapping({
        "id": row.id,
        "name": row.name,
        "type_tag": row.type_tag,
        "permission_rules": row.permission_rules or [],
        "voting_settings": row.voting_settings or {},
        "merit_settings": row.merit_settings or {},
        "settings": row.settings or {},
        "is_active": row.is_active,
    })


def load_community(engine: Engine, community_id: str) -> CommunityView | None:
    with Session(engine) as session:
        row = session.get(Community, community_id)
        return _to_view(row) if row is not None else None


def load_community_by_type(engine: Engine, type_tag: CommunityTypeTag) -> CommunityView | None:
    """The oldest active community with *type_tag*."""
    with Session(engine) as session:
        row = session.scalars(
            select(Community)
            .where(Community.type_tag == type_tag.value, Community.is_active.is_(True))
            .order_by(Community.created_at, Community.id)
            .limit(1)
        ).first()
        return _to_view(row) if row is not None else None


def load_publication(engine: Engine, publication_id: str) -> ResourceFacts | None:
    with Session(engine) as session:
        row = session.get(Publication, publication_id)
        if row is None:
            return None
        return ResourceFacts(
            resource_id=row.id,
            kind=ResourceKind.PUBLICATION,
            community_id=row.community_id,
            author_id=row.author_id,
            beneficiary_id=row.beneficiary_id,
            created_at=row.created_at,
            upvotes=row.upvotes or 0,
            downvotes=row.downvotes or 0,
            comment_count=row.comment_count or 0,
            post_type=row.post_type,
            is_project=bool(row.is_project),
            deleted=bool(row.deleted),
        )


def load_comment(engine: Engine, comment_id: str) -> ResourceFacts | None:
    with Session(engine) as session:
        row = session.get(Comment, comment_id)
        if row is None:
            return None
        return ResourceFacts(
            resource_id=row.id,
            kind=ResourceKind.COMMENT,
            community_id=row.community_id,
            author_id=row.author_id,
            created_at=row.created_at,
            upvotes=row.upvotes or 0,
            downvotes=row.downvotes or 0,
            comment_count=row.reply_count or 0,
            deleted=bool(row.deleted),
        )


def load_poll(engine: Engine, poll_id: str) -> ResourceFacts | None:
    with Session(engine) as session:
        row = session.get(Poll, poll_id)
        if row is None:
            return None
        return ResourceFacts(
            resource_id=row.id,
            kind=ResourceKind.POLL,
            community_id=row.community_id,
            author_id=row.author_id,
            created_at=row.created_at,
            upvotes=row.vote_count or 0,
            is_active=bool(row.is_active),
            expires_at=row.expires_at,
        )


# ---------------------------------------------------------------------------
# Async collaborators
# ---------------------------------------------------------------------------
class SqlUserLookup:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get_user_by_id(self, user_id: str) -> UserFacts | None:
        return await run_db(load_user, self.engine, user_id)


class SqlRoleResolver:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get_user_role_in_community(
        self, user_id: str, community_id: str
    ) -> Role | None:
        return await run_db(load_role, self.engine, user_id, community_id)

    async def get_user_community_ids(self, user_id: str) -> list[str]:
        return await run_db(load_community_ids, self.engine, user_id)


class SqlCommunityReader:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get_community(self, community_id: str) -> CommunityView | None:
        return await run_db(load_community, self.engine, community_id)

    async def get_community_by_type_tag(
        self, type_tag: CommunityTypeTag
    ) -> CommunityView | None:
        return await run_db(load_community_by_type, self.engine, type_tag)


class SqlResourceResolver:
    """Resolves one resource kind with the matching ``load_*`` function."""

    _LOADERS = {
        ResourceKind.PUBLICATION: load_publication,
        ResourceKind.COMMENT: load_comment,
        ResourceKind.POLL: load_poll,
    }

    def __init__(self, engine: Engine, kind: ResourceKind) -> None:
        self.engine = engine
        self.kind = kind
        self._load = self._LOADERS[kind]

    async def resolve(self, resource_id: str) -> ResourceFacts | None:
        return await run_db(self._load, self.engine, resource_id)


def sql_collaborators(engine: Engine) -> dict[str, Any]:
    """Keyword arguments for :meth:`DecisionOrchestrator.create`, minus config."""
    resolvers: dict[ResourceKind, ResourceResolver] = {
        kind: SqlResourceResolver(engine, kind) for kind in ResourceKind
    }
    return {
        "users": SqlUserLookup(engine),
        "roles": SqlRoleResolver(engine),
        "communities": SqlCommunityReader(engine),
        "resolvers": resolvers,
    }
