"""
arbiter.services.permissions_service — Per-resource Permission Summaries
==========================================================================

Feeds list/detail views: for a (possibly anonymous) viewer and a page of
publications, comments or polls, computes which buttons are enabled and,
for disabled ones, the machine-readable reason code the UI localizes.

Every flag is one :class:`DecisionOrchestrator` decision; the decisions
for one resource, and the resources of one page, run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from arbiter import constants as rc
from arbiter.database.models import Action, ResourceKind
from arbiter.engine.orchestrator import DecisionOrchestrator
from arbiter.engine.types import Decision, ResourceRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResourcePermissions:
    can_vote: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_comment: bool = False
    vote_disabled_reason: str | None = None
    edit_disabled_reason: str | None = None
    delete_disabled_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_vote": self.can_vote,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "can_comment": self.can_comment,
            "vote_disabled_reason": self.vote_disabled_reason,
            "edit_disabled_reason": self.edit_disabled_reason,
            "delete_disabled_reason": self.delete_disabled_reason,
        }


ANONYMOUS = ResourcePermissions(
    vote_disabled_reason=rc.reason_code(Action.VOTE, rc.NOT_LOGGED_IN)
)

# (edit action, delete action) per resource kind
_OWNER_ACTIONS: dict[ResourceKind, tuple[Action, Action]] = {
    ResourceKind.PUBLICATION: (Action.EDIT_PUBLICATION, Action.DELETE_PUBLICATION),
    ResourceKind.COMMENT: (Action.EDIT_COMMENT, Action.DELETE_COMMENT),
    ResourceKind.POLL: (Action.EDIT_POLL, Action.DELETE_POLL),
}


def _reason(decision: Decision) -> str | None:
    return None if decision.allowed else decision.code


class PermissionsService:
    """Builds :class:`ResourcePermissions` on top of the orchestrator."""

    def __init__(
        self,
        orchestrator: DecisionOrchestrator,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self._clock = clock or (lambda: datetime.now(UTC))

    async def for_resource(
        self, user_id: str | None, ref: ResourceRef
    ) -> ResourcePermissions:
        if not user_id:
            return ANONYMOUS
        if ref.kind is ResourceKind.POLL:
            return await self._poll(user_id, ref)

        edit_action, delete_action = _OWNER_ACTIONS[ref.kind]
        check = self.orchestrator.can_perform_action
        vote, edit, delete, comment = await asyncio.gather(
            check(user_id, None, Action.VOTE, resource=ref),
            check(user_id, None, edit_action, resource=ref),
            check(user_id, None, delete_action, resource=ref),
            check(user_id, None, Action.COMMENT, resource=ref),
        )
        return ResourcePermissions(
            can_vote=vote.allowed,
            can_edit=edit.allowed,
            can_delete=delete.allowed,
            can_comment=comment.allowed,
            vote_disabled_reason=_reason(vote),
            edit_disabled_reason=_reason(edit),
            delete_disabled_reason=_reason(delete),
        )

    async def _poll(self, user_id: str, ref: ResourceRef) -> ResourcePermissions:
        """Polls are voted through their own subsystem and take no comments."""
        check = self.orchestrator.can_perform_action
        facts, edit, delete = await asyncio.gather(
            self.orchestrator.builder.resolve_resource(ref),
            check(user_id, None, Action.EDIT_POLL, resource=ref),
            check(user_id, None, Action.DELETE_POLL, resource=ref),
        )
        if facts is None:
            can_vote = False
            vote_reason = rc.reason_code(Action.VOTE, rc.RESOURCE_NOT_FOUND)
        else:
            expired = facts.expires_at is not None and _as_utc(facts.expires_at) <= self._clock()
            can_vote = facts.is_active and not expired
            vote_reason = None if can_vote else rc.reason_code(Action.VOTE, rc.CONDITIONS_NOT_MET)
        return ResourcePermissions(
            can_vote=can_vote,
            can_edit=edit.allowed,
            can_delete=delete.allowed,
            can_comment=False,
            vote_disabled_reason=vote_reason,
            edit_disabled_reason=_reason(edit),
            delete_disabled_reason=_reason(delete),
        )

    # ------------------------------------------------------------------
    # Convenience + batch
    # ------------------------------------------------------------------
    async def publication_permissions(self, user_id: str | None, publication_id: str):
        return await self.for_resource(user_id, ResourceRef(ResourceKind.PUBLICATION, publication_id))

    async def comment_permissions(self, user_id: str | None, comment_id: str):
        return await self.for_resource(user_id, ResourceRef(ResourceKind.COMMENT, comment_id))

    async def poll_permissions(self, user_id: str | None, poll_id: str):
        return await self.for_resource(user_id, ResourceRef(ResourceKind.POLL, poll_id))

    async def batch(
        self, user_id: str | None, refs: Iterable[ResourceRef]
    ) -> dict[str, ResourcePermissions]:
        """Permissions for a page of resources, keyed by resource id."""
        refs = list({ref.id: ref for ref in refs}.values())
        if not user_id:
            return {ref.id: ANONYMOUS for ref in refs}
        results = await asyncio.gather(*(self.for_resource(user_id, ref) for ref in refs))
        logger.debug("Computed permissions for %d resources user=%s", len(refs), user_id)
        return {ref.id: perms for ref, perms in zip(refs, results)}

    async def batch_publication_permissions(
        self, user_id: str | None, publication_ids: Iterable[str]
    ) -> dict[str, ResourcePermissions]:
        return await self.batch(
            user_id, (ResourceRef(ResourceKind.PUBLICATION, i) for i in publication_ids)
        )

    async def batch_comment_permissions(
        self, user_id: str | None, comment_ids: Iterable[str]
    ) -> dict[str, ResourcePermissions]:
        return await self.batch(
            user_id, (ResourceRef(ResourceKind.COMMENT, i) for i in comment_ids)
        )


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
