"""
questboard.constants — Shared Constants
========================================

Single source of truth for notification copy, notification kinds and the
squad settings vocabulary.  Import from here instead of duplicating in
services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Notification kinds (``notifications.kind``)
# ---------------------------------------------------------------------------
KIND_QUEST_APPROVED = "quest_approved"
KIND_QUEST_REJECTED = "quest_rejected"
KIND_QUEST_CHANGES_REQUESTED = "quest_changes_requested"
KIND_QUEST_STATUS = "quest_status"
KIND_QUEST_REVOKED = "quest_revoked"
KIND_INSTANCE_PAUSED = "instance_paused"
KIND_INSTANCE_RESUMED = "instance_resumed"
KIND_INSTANCE_CANCELLED = "instance_cancelled"
KIND_SQUAD_REMOVED = "squad_member_removed"
KIND_SQUAD_WARM_UP = "squad_warm_up"
KIND_SQUAD_APPROVED = "squad_approved"

REVIEW_KINDS: dict[str, str] = {
    "approve": KIND_QUEST_APPROVED,
    "reject": KIND_QUEST_REJECTED,
    "request_changes": KIND_QUEST_CHANGES_REQUESTED,
}

# ---------------------------------------------------------------------------
# Notification copy
# ---------------------------------------------------------------------------
REVIEW_MESSAGES: dict[str, str] = {
    "approve": "has been approved",
    "reject": "has been rejected",
    "request_changes": "requires changes before approval",
}

QUEST_STATUS_MESSAGES: dict[str, str] = {
    "draft": "has been moved to draft",
    "open": "is now live and accepting signups",
    "closed": "is now closed for signups",
    "completed": "has been marked as completed",
    "cancelled": "has been cancelled",
    "paused": "has been temporarily paused",
    "revoked": "has been revoked by an administrator",
    "deleted": "has been removed",
}

INSTANCE_NOTICES: dict[str, tuple[str, str]] = {
    # kind → (title prefix, fallback body)
    KIND_INSTANCE_PAUSED: (
        "Quest Paused",
        "The quest has been temporarily paused. We'll update you when it resumes.",
    ),
    KIND_INSTANCE_RESUMED: (
        "Quest Resumed",
        "The quest is back on. See you there!",
    ),
    KIND_INSTANCE_CANCELLED: (
        "Quest Cancelled",
        "Unfortunately, this quest has been cancelled. We apologize for any inconvenience.",
    ),
}

# ---------------------------------------------------------------------------
# Squad settings vocabulary
# ---------------------------------------------------------------------------
THEME_TAGS: frozenset[str] = frozenset({
    "movies", "music", "outdoors", "food", "games", "fitness",
    "arts", "books", "tech", "travel", "sports", "nightlife",
})
MAX_THEME_TAGS = 5

INVITE_CODE_PREFIX = "SQD"

# ---------------------------------------------------------------------------
# Confirmation phrases the caller surface must collect before danger actions
# ---------------------------------------------------------------------------
CONFIRM_REVOKE = "REVOKE"
CONFIRM_DELETE = "DELETE"
CONFIRM_BULK_CANCEL = "CANCEL"
