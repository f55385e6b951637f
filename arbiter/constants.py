"""
arbiter.constants — Shared Constants & Helpers
================================================

Single source of truth for machine-readable denial codes and the id
comparison helper.  Import from here instead of duplicating in factors,
services, and the CLI.
"""

from __future__ import annotations

from arbiter.database.models import Action

# ---------------------------------------------------------------------------
# Currency presentation
# ---------------------------------------------------------------------------
DEFAULT_CURRENCY_LABEL = "merit"
DEFAULT_EDIT_WINDOW_MINUTES = 30


# ---------------------------------------------------------------------------
# Reason codes — stable keys the UI localizes
# ---------------------------------------------------------------------------
NO_COMMUNITY = "noCommunity"
RESOURCE_NOT_FOUND = "resourceNotFound"
NO_ROLE = "noRole"
NO_MATCHING_RULE = "noMatchingRule"
IS_AUTHOR = "isAuthor"
RULE_DENIED = "ruleDenied"
SAME_TEAM = "sameTeam"
NOT_TEAM_MEMBER = "notTeamMember"
CONDITIONS_NOT_MET = "conditionsNotMet"
TIME_WINDOW_EXPIRED = "timeWindowExpired"
HAS_VOTES = "hasVotes"
HAS_COMMENTS = "hasComments"
NOT_AUTHOR = "notAuthor"
COMMENT_VOTING_DISABLED = "commentVotingDisabled"
NOT_LOGGED_IN = "notLoggedIn"

_ACTION_PREFIX: dict[Action, str] = {
    Action.VOTE: "voteDisabled",
    Action.POST_PUBLICATION: "postDisabled",
    Action.CREATE_POLL: "postDisabled",
    Action.COMMENT: "commentDisabled",
    Action.EDIT_PUBLICATION: "editDisabled",
    Action.EDIT_COMMENT: "editDisabled",
    Action.EDIT_POLL: "editDisabled",
    Action.DELETE_PUBLICATION: "deleteDisabled",
    Action.DELETE_COMMENT: "deleteDisabled",
    Action.DELETE_POLL: "deleteDisabled",
    Action.VIEW_COMMUNITY: "viewDisabled",
}


def reason_code(action: Action, suffix: str) -> str:
    """Build the ``<prefix>.<suffix>`` code for a denied *action*.

    >>> reason_code(Action.VOTE, IS_AUTHOR)
    'voteDisabled.isAuthor'
    """
    return f"{_ACTION_PREFIX[action]}.{suffix}"


# ---------------------------------------------------------------------------
# Id helpers
# ---------------------------------------------------------------------------
def normalize_id(value: object | None) -> str:
    """Canonical form of a user/community id: stripped, lower-cased string."""
    if value is None:
        return ""
    return str(value).strip().lower()


def same_id(a: object | None, b: object | None) -> bool:
    """Case- and whitespace-insensitive id equality.  Empty ids never match."""
    left = normalize_id(a)
    return bool(left) and left == normalize_id(b)
