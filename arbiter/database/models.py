"""
arbiter.database.models — Enums & SQLAlchemy 2.0 Data Models
=============================================================

The enums are shared by the pure decision engine and the persistence
adapter; the ORM tables exist only for the hosting adapter
(:mod:`arbiter.services.lookup_service`).  The engine itself never imports
a Session.

Tables:
- users                  — Platform accounts with their global role
- communities            — Community rows with stored rule/settings overrides (JSONB)
- user_community_roles   — Per-community role assignments
- publications           — Posts (and projects) that can be voted on
- comments               — Comments on publications (votable when enabled)
- polls                  — Polls; voted through a separate subsystem
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Arbiter ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Action(enum.StrEnum):
    """Closed set of verbs the engine decides on.

    Adding a member requires matching entries in the default rule matrix.
    """
    POST_PUBLICATION = "post_publication"
    CREATE_POLL = "create_poll"
    EDIT_PUBLICATION = "edit_publication"
    DELETE_PUBLICATION = "delete_publication"
    VOTE = "vote"
    COMMENT = "comment"
    EDIT_COMMENT = "edit_comment"
    DELETE_COMMENT = "delete_comment"
    EDIT_POLL = "edit_poll"
    DELETE_POLL = "delete_poll"
    VIEW_COMMUNITY = "view_community"


class Role(enum.StrEnum):
    """Per-community role tier."""
    SUPERADMIN = "superadmin"
    LEAD = "lead"
    PARTICIPANT = "participant"


class GlobalRole(enum.StrEnum):
    SUPERADMIN = "superadmin"
    USER = "user"


class CommunityTypeTag(enum.StrEnum):
    """Community category that selects rule and currency overrides."""
    CUSTOM = "custom"
    MARATHON_OF_GOOD = "marathon-of-good"
    FUTURE_VISION = "future-vision"
    SUPPORT = "support"
    TEAM = "team"

    @classmethod
    def parse(cls, value: str | None) -> CommunityTypeTag:
        """Return the tag for *value*; unknown or empty values mean CUSTOM."""
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM


class VotingRestriction(enum.StrEnum):
    ANY = "any"
    NOT_OWN = "not-own"
    NOT_SAME_TEAM = "not-same-team"


class CurrencySource(enum.StrEnum):
    QUOTA_ONLY = "quota-only"
    WALLET_ONLY = "wallet-only"
    QUOTA_AND_WALLET = "quota-and-wallet"


class RequiredCurrency(enum.StrEnum):
    QUOTA = "quota"
    WALLET = "wallet"
    NONE = "none"


class OwnVotePolicy(enum.StrEnum):
    """Three-state ``canVoteForOwnPosts`` condition.

    ``UNSET`` is distinct from ``DENY``: only an explicit deny triggers the
    high-priority self-vote block in the role hierarchy factor.
    """
    UNSET = "unset"
    ALLOW = "allow"
    DENY = "deny"

    @classmethod
    def parse(cls, value: object) -> OwnVotePolicy:
        """Map stored ``None``/``True``/``False`` (or a member name) to a policy."""
        if value is None:
            return cls.UNSET
        if isinstance(value, bool):
            return cls.ALLOW if value else cls.DENY
        return cls(str(value).lower())


class SocialConstraint(enum.StrEnum):
    NONE = "none"
    WALLET_ONLY = "wallet-only"


class ResourceKind(enum.StrEnum):
    PUBLICATION = "publication"
    COMMENT = "comment"
    POLL = "poll"


class TargetType(enum.StrEnum):
    """What a currency-consuming action targets.  Comment votes target VOTE."""
    PUBLICATION = "publication"
    VOTE = "vote"
    POLL = "poll"


class VoteDirection(enum.StrEnum):
    UP = "up"
    DOWN = "down"


# ---------------------------------------------------------------------------
# Users — one row per platform account
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    global_role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GlobalRole.USER.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} role={self.global_role}>"


# ---------------------------------------------------------------------------
# Communities — stored overrides are merged with code defaults on read
# ---------------------------------------------------------------------------
class Community(Base):
    __tablename__ = "communities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type_tag: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CommunityTypeTag.CUSTOM.value
    )
    permission_rules: Mapped[list | None] = mapped_column(JSONB, default=list)
    voting_settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    merit_settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_communities_type_tag", "type_tag"),
    )

    def __repr__(self) -> str:
        return f"<Community id={self.id!r} type={self.type_tag}>"


# ---------------------------------------------------------------------------
# UserCommunityRole — composite PK (user_id, community_id)
# ---------------------------------------------------------------------------
class UserCommunityRole(Base):
    __tablename__ = "user_community_roles"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    community_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<UserCommunityRole user={self.user_id!r} "
            f"community={self.community_id!r} role={self.role}>"
        )


# ---------------------------------------------------------------------------
# Publications
# ---------------------------------------------------------------------------
class Publication(Base):
    __tablename__ = "publications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    community_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    beneficiary_id: Mapped[str | None] = mapped_column(String(64), default=None)
    post_type: Mapped[str | None] = mapped_column(String(32), default=None)
    is_project: Mapped[bool] = mapped_column(Boolean, default=False)
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_publications_community", "community_id"),
    )

    def __repr__(self) -> str:
        return f"<Publication id={self.id!r} author={self.author_id!r}>"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    community_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    publication_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("publications.id", ondelete="CASCADE"), default=None
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, default=0)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id!r} author={self.author_id!r}>"


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------
class Poll(Base):
    __tablename__ = "polls"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    community_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    vote_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Poll id={self.id!r} active={self.is_active}>"
