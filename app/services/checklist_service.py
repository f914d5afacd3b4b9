"""
Checklist Submission Service

One sub-workflow per checklist entry of a stage:

    PENDING ──submit──▶ UNDER_REVIEW ──review──▶ APPROVED (terminal)
       ▲                                   └───▶ REJECTED
       └──────────── resubmit (in place) ◀───────────┘

An entry with no submission row is PENDING. Resubmitting after a
rejection overwrites the existing row and clears its review fields, so
(stage, index) stays unique.

The "marked" flags in ``Stage.checklist`` are edited by the executor or
team through ``update_checklist``; they drive PENDING ↔ IN_PROGRESS on the
stage and gate deliverable submission. Approving an entry also marks it.

Check order for ``submit_objective`` (first failure wins, nothing is
written on failure):
    stage exists → caller may act → index in range → entry status allows a
    submission → description length → attachment MIME classes
"""

import logging
from datetime import datetime, timezone

from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.project import ChecklistSubmission, Stage
from app.services.notification import NotificationService
from app.services.stage_lifecycle import (
    get_stage_or_404,
    refresh_project_status,
    require_actor,
    require_reviewer,
    sync_work_started,
)
from app.services.workflow_rules import check_objective_gate, normalize_marked, validate_description
from app.utils.attachments import validate_documents, validate_images
from app.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)

REVIEW_OUTCOMES = ("APPROVED", "REJECTED")


def _check_index(stage: Stage, index) -> int:
    items = stage.checklist_items
    if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(items):
        raise ValidationError(
            "Invalid checklist index",
            details={"checklist_index": f"expected 0..{len(items) - 1}" if items else "stage has no checklist"},
        )
    return index


def get_item_status(stage: Stage, index: int) -> str:
    """Status of one checklist entry: its submission's status, or PENDING."""
    sub = stage.submission_for(index)
    return sub.status if sub else "PENDING"


def _pick_attachments(plural, single):
    """List form wins when it carries anything; otherwise the legacy single field."""
    if isinstance(plural, (list, tuple)) and any(isinstance(v, str) and v.strip() for v in plural):
        return plural
    if isinstance(single, str) and single.strip():
        return [single]
    return []


# ── Checklist editing ────────────────────────────────────────────────────────


def update_checklist(stage_id: int, user_id: int, items) -> Stage:
    """Replace the checklist texts and marked flags.

    Truthy strings ("true", "1") and 1 are normalized to True. While the
    stage is PENDING or IN_PROGRESS its status follows the flags.
    """
    stage = get_stage_or_404(stage_id)
    require_actor(stage, user_id, "update_checklist")

    if not isinstance(items, list):
        raise ValidationError("checklist must be a list", details={"checklist": "type"})
    normalized = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"checklist[{position}] must be an object", details={"checklist": "type"})
        text = item.get("text", item.get("texto"))
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(f"checklist[{position}].text is required", details={"checklist": "text"})
        normalized.append({
            "text": text.strip(),
            "marked": normalize_marked(item.get("marked", item.get("concluido"))),
        })

    stage.checklist = normalized or None
    sync_work_started(stage)
    refresh_project_status(stage.project)
    commit_or_rollback()

    logger.info(
        "Checklist updated on stage %s (%d items)", stage.id, len(normalized),
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": "checklist.update", "user_id": user_id},
    )
    return stage


# ── Submission ───────────────────────────────────────────────────────────────


def submit_objective(stage_id: int, index: int, user_id: int, *, description,
                     images=None, documents=None, image=None, document=None) -> ChecklistSubmission:
    """Submit evidence for one checklist entry.

    Raises:
        NotFoundError: stage does not exist.
        AuthorizationError: caller is neither executor nor team member.
        ValidationError: bad index, short description, wrong attachment type.
        TransitionError: entry is UNDER_REVIEW or APPROVED.
    """
    stage = get_stage_or_404(stage_id)
    require_actor(stage, user_id, "submit_objective")
    index = _check_index(stage, index)
    check_objective_gate(get_item_status(stage, index))
    text = validate_description(description)
    image_list = validate_images(_pick_attachments(images, image))
    document_list = validate_documents(_pick_attachments(documents, document))

    now = datetime.now(timezone.utc)
    sub = stage.submission_for(index)
    if sub is None:
        sub = ChecklistSubmission(stage=stage, checklist_index=index)
        db.session.add(sub)
    sub.description = text
    sub.images = image_list
    sub.documents = document_list
    sub.status = "UNDER_REVIEW"
    sub.submitted_by_id = user_id
    sub.submitted_at = now
    sub.reviewed_by_id = None
    sub.review_comment = None
    sub.reviewed_at = None
    db.session.flush()

    NotificationService.notify_objective_submitted(stage, sub)
    commit_or_rollback()

    logger.info(
        "Checklist item %d on stage %s submitted (%d images, %d documents)",
        index, stage.id, len(image_list), len(document_list),
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": "checklist.submit", "user_id": user_id},
    )
    return sub


def review_objective(stage_id: int, index: int, reviewer, *, status, comment=None) -> ChecklistSubmission:
    """Approve or reject the UNDER_REVIEW submission of one checklist entry."""
    stage = get_stage_or_404(stage_id)
    require_reviewer(stage, reviewer, "review_objective")
    index = _check_index(stage, index)

    outcome = status.strip().upper() if isinstance(status, str) else None
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError("status must be APPROVED or REJECTED", details={"status": "enum"})

    sub = stage.submission_for(index)
    if sub is None:
        raise NotFoundError(resource="ChecklistSubmission", resource_id=f"{stage_id}:{index}")
    if sub.status != "UNDER_REVIEW":
        raise TransitionError("checklist submission", "review", sub.status,
                              "Submission has already been reviewed")

    sub.status = outcome
    sub.review_comment = comment.strip() if isinstance(comment, str) and comment.strip() else None
    sub.reviewed_by_id = reviewer.id
    sub.reviewed_at = datetime.now(timezone.utc)

    if outcome == "APPROVED":
        items = stage.checklist_items
        items[index] = {**items[index], "marked": True}
        stage.checklist = items
        sync_work_started(stage)

    NotificationService.notify_objective_reviewed(stage, sub)
    commit_or_rollback()

    logger.info(
        "Checklist item %d on stage %s %s", index, stage.id, outcome,
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": f"checklist.{outcome.lower()}", "user_id": reviewer.id},
    )
    return sub


# ── Read ─────────────────────────────────────────────────────────────────────


def get_submission(stage_id: int, index: int) -> ChecklistSubmission:
    stage = get_stage_or_404(stage_id)
    index = _check_index(stage, index)
    sub = stage.submission_for(index)
    if sub is None:
        raise NotFoundError(resource="ChecklistSubmission", resource_id=f"{stage_id}:{index}")
    return sub


def list_submissions(stage_id: int) -> list[ChecklistSubmission]:
    stage = get_stage_or_404(stage_id)
    return list(stage.submissions)
