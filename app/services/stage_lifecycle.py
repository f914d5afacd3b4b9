"""
Stage Lifecycle Service

Manages stage status transitions with:
  - Transition validation against ``STAGE_TRANSITIONS``
  - Actor checks (executor / team member, reviewer)
  - Project status roll-up after every transition

5 valid transitions:
  start_work, reset_work, submit_deliverable, approve, reject

A stage's status always follows a checklist or deliverable event; no
endpoint sets it directly. REJECTED accepts a new deliverable exactly like
PENDING and IN_PROGRESS do. APPROVED is terminal.

Usage:
    from app.services.stage_lifecycle import transition_stage

    transition_stage(stage, "submit_deliverable", user_id=7)
    db.session.commit()
"""

import logging

from app.core.exceptions import AuthorizationError, NotFoundError, TransitionError
from app.models import db
from app.models.project import Project, Stage
from app.services.capability_resolver import has_permission, normalize_role
from app.services.workflow_rules import REVIEWER_ROLES, check_may_act, derive_working_status, user_may_act

logger = logging.getLogger(__name__)


# Stage transition rules
STAGE_TRANSITIONS = {
    "start_work": {"from": ["PENDING"], "to": "IN_PROGRESS"},
    "reset_work": {"from": ["IN_PROGRESS"], "to": "PENDING"},
    "submit_deliverable": {"from": ["PENDING", "IN_PROGRESS", "REJECTED"], "to": "UNDER_REVIEW"},
    "approve": {"from": ["UNDER_REVIEW"], "to": "APPROVED"},
    "reject": {"from": ["UNDER_REVIEW"], "to": "REJECTED"},
}

REVIEW_PERMISSIONS = ("trabalhos:avaliar", "projetos:aprovar")

# Stage statuses that count as "delivered" for the project roll-up
DELIVERED_STATUSES = ("UNDER_REVIEW", "APPROVED")


def get_stage_or_404(stage_id: int) -> Stage:
    stage = db.session.get(Stage, stage_id)
    if not stage:
        raise NotFoundError(resource="Stage", resource_id=stage_id)
    return stage


def validate_stage_transition(stage: Stage, action: str) -> dict:
    """Validate whether an action is valid for the current stage state."""
    rule = STAGE_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": stage.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if stage.status not in rule["from"]:
        return {"valid": False, "from": stage.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{stage.status}'"}

    return {"valid": True, "from": stage.status, "to": rule["to"], "reason": None}


def get_available_stage_transitions(stage: Stage) -> list[str]:
    return [action for action, rule in STAGE_TRANSITIONS.items() if stage.status in rule["from"]]


def may_act(stage: Stage, user_id: int | None) -> bool:
    return user_may_act(stage.executor_id, stage.member_ids, user_id)


def require_actor(stage: Stage, user_id: int | None, action: str) -> None:
    """Raise AuthorizationError unless the user is executor or team member."""
    try:
        check_may_act(stage.executor_id, stage.member_ids, user_id, action)
    except AuthorizationError:
        logger.warning(
            "Denied %s on stage %s for user %s", action, stage.id, user_id,
            extra={"stage_id": stage.id, "user_id": user_id, "event_type": "denied"},
        )
        raise


def can_review(stage: Stage, user) -> bool:
    """Project supervisor or a reviewer role (SUPERVISOR, DIRETOR, GM)."""
    if user is None:
        return False
    role = normalize_role(user.role)
    if role.is_bypass:
        return True
    project = stage.project
    if project is not None and project.supervisor_id == user.id:
        return True
    return role.name in REVIEWER_ROLES


def can_approve(stage: Stage, user) -> bool:
    """Deliverable review: a reviewer, or any role holding a review permission."""
    if can_review(stage, user):
        return True
    return user is not None and has_permission(user.role, *REVIEW_PERMISSIONS)


def require_reviewer(stage: Stage, user, action: str, *, check=can_review) -> None:
    if not check(stage, user):
        logger.warning(
            "Denied %s on stage %s for user %s", action, stage.id, getattr(user, "id", None),
            extra={"stage_id": stage.id, "event_type": "denied"},
        )
        raise AuthorizationError(
            "Only the project supervisor or a reviewer may review this stage",
            user_id=getattr(user, "id", None), action=action,
        )


def transition_stage(stage: Stage, action: str, user_id: int | None = None) -> dict:
    """Apply a transition in the current session. The caller commits.

    Raises:
        TransitionError: If the action is not valid from the current status.
    """
    validation = validate_stage_transition(stage, action)
    if not validation["valid"]:
        raise TransitionError("stage", action, stage.status, validation["reason"])

    old_status = stage.status
    stage.status = validation["to"]
    if stage.status != "PENDING":
        stage.started = True
    refresh_project_status(stage.project)

    logger.info(
        "Stage %s: %s → %s (%s)", stage.id, old_status, stage.status, action,
        extra={"stage_id": stage.id, "project_id": stage.project_id,
               "event_type": f"stage.{action}", "user_id": user_id},
    )
    return {"stage_id": stage.id, "action": action,
            "previous_status": old_status, "new_status": stage.status}


def sync_work_started(stage: Stage) -> str:
    """Move PENDING ↔ IN_PROGRESS from the checklist's marked flags.

    Stages already under review, approved or rejected are left untouched.
    """
    target = derive_working_status(stage.status, stage.checklist_items)
    if target == stage.status:
        return stage.status
    action = "start_work" if target == "IN_PROGRESS" else "reset_work"
    transition_stage(stage, action)
    return stage.status


def refresh_project_status(project: Project | None) -> None:
    """Roll stage state up into the project: status and supplies value."""
    if project is None:
        return
    stages = list(project.stages)
    project.supplies_value = sum(s.supplies_value or 0.0 for s in stages)
    if stages and all(s.status in DELIVERED_STATUSES for s in stages):
        new_status = "FINISHED"
    else:
        new_status = "IN_PROGRESS"
    if new_status != project.status:
        logger.info(
            "Project %s: %s → %s", project.id, project.status, new_status,
            extra={"project_id": project.id, "event_type": "project.status"},
        )
        project.status = new_status
