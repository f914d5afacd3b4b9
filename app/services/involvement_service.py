"""
Involvement Aggregator — which projects and stages concern a given user.

A project involves a user who is its supervisor, one of its responsible
parties, or the executor or a team member of any of its stages. Each
project appears once however many of these relations hold.
"""

import logging

from sqlalchemy import or_

from app.models.project import Project, Stage
from app.services.project_service import project_progress
from app.services.workflow_rules import user_may_act

logger = logging.getLogger(__name__)

# Stage statuses listed on the "my tasks" screen
OPEN_STAGE_STATUSES = ("PENDING", "IN_PROGRESS", "UNDER_REVIEW", "REJECTED")

STAT_STATUSES = ("PENDING", "IN_PROGRESS", "UNDER_REVIEW")


def is_involved(project: Project, user_id: int | None) -> bool:
    if user_id is None:
        return False
    if project.supervisor_id == user_id:
        return True
    if any(u.id == user_id for u in project.responsibles):
        return True
    return any(user_may_act(s.executor_id, s.member_ids, user_id) for s in project.stages)


def involved_projects(user_id: int) -> list[Project]:
    """Projects involving the user, ordered by id, without duplicates."""
    q = Project.query.filter(
        or_(
            Project.supervisor_id == user_id,
            Project.responsibles.any(id=user_id),
            Project.stages.any(
                or_(Stage.executor_id == user_id, Stage.members.any(id=user_id))
            ),
        )
    ).order_by(Project.id)

    seen = set()
    result = []
    for project in q.all():
        if project.id in seen:
            continue
        seen.add(project.id)
        result.append(project)
    return result


def stage_stats(stages) -> dict:
    """Counts by status for the summary cards."""
    stats = {"total": 0, "pending": 0, "in_progress": 0, "under_review": 0}
    for stage in stages:
        status = stage["status"] if isinstance(stage, dict) else stage.status
        stats["total"] += 1
        if status in STAT_STATUSES:
            stats[status.lower()] += 1
    return stats


def my_tasks(user_id: int, status=None, project_id=None) -> dict:
    """Open stages the user works on or is responsible for, plus their projects."""
    responsible_ids = [
        p.id for p in Project.query.filter(Project.responsibles.any(id=user_id)).all()
    ]
    relation = [Stage.executor_id == user_id, Stage.members.any(id=user_id)]
    if responsible_ids:
        relation.append(Stage.project_id.in_(responsible_ids))

    q = Stage.query.filter(Stage.status.in_(OPEN_STAGE_STATUSES), or_(*relation))
    if status:
        q = q.filter(Stage.status == status)
    if project_id:
        q = q.filter(Stage.project_id == project_id)
    stages = q.order_by(Stage.project_id, Stage.id).all()

    projects = involved_projects(user_id)
    if project_id:
        projects = [p for p in projects if p.id == project_id]

    logger.debug(
        "my_tasks user=%s: %d stages, %d projects", user_id, len(stages), len(projects),
        extra={"user_id": user_id},
    )
    return {
        "stages": [s.to_dict() for s in stages],
        "projects": [
            {**p.to_dict(), "progress": project_progress(p), "stats": stage_stats(p.stages)}
            for p in projects
        ],
        "stats": stage_stats(stages),
    }
