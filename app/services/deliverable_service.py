"""
Deliverable Service — whole-stage delivery and its review.

    submit_deliverable  executor/team, stage PENDING|IN_PROGRESS|REJECTED,
                        at least one checklist item marked → stage UNDER_REVIEW
    edit_deliverable    executor/team, latest deliverable UNDER_REVIEW,
                        stage UNDER_REVIEW → replaced in place
    review_deliverable  reviewer → APPROVED (stage APPROVED, terminal)
                                 or REJECTED (stage REJECTED, reopened)

Deliverable approval does not re-check the per-item checklist reviews;
the two review tracks are independent.
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.project import Deliverable, Stage
from app.services.notification import NotificationService
from app.services.stage_lifecycle import (
    can_approve,
    get_stage_or_404,
    require_actor,
    require_reviewer,
    transition_stage,
)
from app.services.workflow_rules import check_deliverable_gate, count_marked, validate_description
from app.utils.attachments import validate_single_image
from app.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)

REVIEW_OUTCOMES = {"APPROVED": "approve", "REJECTED": "reject"}


def items_marked(stage: Stage) -> int:
    return count_marked(stage.checklist_items)


def submit_deliverable(stage_id: int, user_id: int, *, description, image=None) -> Deliverable:
    """Create a deliverable and move the stage to UNDER_REVIEW in one commit.

    Raises:
        NotFoundError: stage does not exist.
        AuthorizationError: caller is neither executor nor team member.
        TransitionError: stage status does not accept a delivery, or no
            checklist item is marked.
        ValidationError: description shorter than 5 characters, or image
            is not image/*.
    """
    stage = get_stage_or_404(stage_id)
    require_actor(stage, user_id, "submit_deliverable")
    check_deliverable_gate(stage.status, items_marked(stage))
    text = validate_description(description)
    image_uri = validate_single_image(image)

    now = datetime.now(timezone.utc)
    deliverable = Deliverable(
        stage=stage,
        description=text,
        image=image_uri,
        status="UNDER_REVIEW",
        submitted_by_id=user_id,
        submitted_at=now,
    )
    db.session.add(deliverable)
    transition_stage(stage, "submit_deliverable", user_id=user_id)
    if stage.end_date is None:
        stage.end_date = now
    db.session.flush()

    NotificationService.notify_deliverable_submitted(stage, deliverable)
    commit_or_rollback()

    logger.info(
        "Deliverable %s submitted for stage %s", deliverable.id, stage.id,
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": "deliverable.submit", "user_id": user_id},
    )
    return deliverable


def edit_deliverable(stage_id: int, deliverable_id: int, user_id: int, *,
                     description, image=None) -> Deliverable:
    """Replace description (and image, when given) of the pending deliverable."""
    stage = get_stage_or_404(stage_id)
    deliverable = next((d for d in stage.deliverables if d.id == deliverable_id), None)
    if deliverable is None:
        raise NotFoundError(resource="Deliverable", resource_id=deliverable_id)
    require_actor(stage, user_id, "edit_deliverable")

    if deliverable is not stage.latest_deliverable:
        raise TransitionError("deliverable", "edit", deliverable.status,
                              "Only the latest deliverable can be edited")
    if deliverable.status != "UNDER_REVIEW":
        raise TransitionError("deliverable", "edit", deliverable.status,
                              "Only deliverables under review can be edited")
    if stage.status != "UNDER_REVIEW":
        raise TransitionError("stage", "edit_deliverable", stage.status,
                              "Stage must be under review to edit its deliverable")

    text = validate_description(description)
    image_uri = validate_single_image(image)

    deliverable.description = text
    if image_uri is not None:
        deliverable.image = image_uri
    commit_or_rollback()

    logger.info(
        "Deliverable %s edited on stage %s", deliverable.id, stage.id,
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": "deliverable.edit", "user_id": user_id},
    )
    return deliverable


def pending_deliverable(stage: Stage) -> Deliverable | None:
    """Latest deliverable still UNDER_REVIEW, if any."""
    waiting = [d for d in stage.deliverables if d.status == "UNDER_REVIEW"]
    if not waiting:
        return None
    return max(waiting, key=Deliverable.sort_key)


def review_deliverable(stage_id: int, reviewer, *, status, comment=None) -> Deliverable:
    """Approve or reject the pending deliverable and move the stage with it."""
    outcome = status.strip().upper() if isinstance(status, str) else None
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError("status must be APPROVED or REJECTED", details={"status": "enum"})

    stage = get_stage_or_404(stage_id)
    require_reviewer(stage, reviewer, f"{REVIEW_OUTCOMES[outcome]}_deliverable", check=can_approve)

    deliverable = pending_deliverable(stage)
    if deliverable is None:
        raise TransitionError("stage", REVIEW_OUTCOMES[outcome], stage.status,
                              "No deliverable awaiting review")

    transition_stage(stage, REVIEW_OUTCOMES[outcome], user_id=reviewer.id)
    deliverable.status = outcome
    deliverable.comment = comment.strip() if isinstance(comment, str) and comment.strip() else None
    deliverable.reviewed_by_id = reviewer.id
    deliverable.reviewed_at = datetime.now(timezone.utc)

    NotificationService.notify_deliverable_reviewed(stage, deliverable)
    commit_or_rollback()

    logger.info(
        "Deliverable %s on stage %s %s", deliverable.id, stage.id, outcome,
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": f"deliverable.{outcome.lower()}", "user_id": reviewer.id},
    )
    return deliverable


def approve_stage(stage_id: int, reviewer, comment=None) -> Deliverable:
    return review_deliverable(stage_id, reviewer, status="APPROVED", comment=comment)


def reject_stage(stage_id: int, reviewer, comment=None) -> Deliverable:
    return review_deliverable(stage_id, reviewer, status="REJECTED", comment=comment)
