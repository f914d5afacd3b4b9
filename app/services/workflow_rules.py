"""
Pure workflow rules shared by the service layer and the HTTP client.

Nothing here touches the database or Flask; callers pass plain values
(ids, status strings, checklist dicts) so the same gate runs server-side
and client-side before a request is sent.
"""

from __future__ import annotations

from app.core.exceptions import AuthorizationError, TransitionError, ValidationError

MIN_DESCRIPTION_LENGTH = 5

# Stage statuses from which a deliverable may be submitted
DELIVERABLE_SOURCE_STATUSES = ("PENDING", "IN_PROGRESS", "REJECTED")

# Checklist item statuses from which an objective may be submitted
OBJECTIVE_SOURCE_STATUSES = ("PENDING", "REJECTED")

# Stage statuses where checklist edits still drive PENDING ↔ IN_PROGRESS
WORKING_STATUSES = ("PENDING", "IN_PROGRESS")

REVIEWER_ROLES = ("SUPERVISOR", "DIRETOR", "GM")

_TRUTHY = {"true", "1", "yes", "on"}


def normalize_marked(value) -> bool:
    """Coerce a loosely typed "marked" flag (``"true"``, ``"1"``, ``1``)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


def count_marked(items) -> int:
    return sum(1 for item in items or [] if isinstance(item, dict) and normalize_marked(item.get("marked")))


def validate_description(description, field: str = "description",
                         minimum: int = MIN_DESCRIPTION_LENGTH) -> str:
    """Return the stripped description or raise ``ValidationError``."""
    text = description.strip() if isinstance(description, str) else ""
    if len(text) < minimum:
        raise ValidationError(
            f"Description must be at least {minimum} characters",
            details={field: f"min_length={minimum}"},
        )
    return text


def user_may_act(executor_id, member_ids, user_id) -> bool:
    """Executor or team member of the stage."""
    if user_id is None:
        return False
    return user_id == executor_id or user_id in set(member_ids or ())


def check_may_act(executor_id, member_ids, user_id, action: str) -> None:
    if not user_may_act(executor_id, member_ids, user_id):
        raise AuthorizationError(
            "Only the stage executor or a team member may perform this action",
            user_id=user_id, action=action,
        )


def check_deliverable_gate(stage_status: str, items_marked: int) -> None:
    """Raise unless the stage may receive a new deliverable."""
    if stage_status not in DELIVERABLE_SOURCE_STATUSES:
        raise TransitionError("stage", "submit_deliverable", stage_status,
                              "Stage does not accept a new deliverable in this status")
    if items_marked <= 0:
        raise TransitionError("stage", "submit_deliverable", stage_status,
                              "Mark at least one checklist item before delivering")


def check_objective_gate(item_status: str) -> None:
    """Raise unless the checklist item may receive a new submission."""
    if item_status not in OBJECTIVE_SOURCE_STATUSES:
        raise TransitionError("checklist item", "submit_objective", item_status,
                              "Item already has a submission awaiting review or approved")


def derive_working_status(current: str, items) -> str:
    """PENDING ↔ IN_PROGRESS from marked flags; other statuses are untouched."""
    if current not in WORKING_STATUSES:
        return current
    return "IN_PROGRESS" if count_marked(items) > 0 else "PENDING"
