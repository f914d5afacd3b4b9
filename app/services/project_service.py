"""Project service layer — listing, detail and progress roll-up.

Progress is the share of a project's stages counted as complete:
UNDER_REVIEW or APPROVED, or every checklist entry approved, or every
checklist entry marked. Rounded to a whole percentage.
"""
import logging

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.project import Project, Stage
from app.services.stage_lifecycle import DELIVERED_STATUSES, refresh_project_status
from app.services.workflow_rules import count_marked
from app.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)


def stage_is_complete(stage: Stage) -> bool:
    if stage.status in DELIVERED_STATUSES:
        return True
    items = stage.checklist_items
    if not items:
        return False
    approved = sum(1 for s in stage.submissions if s.status == "APPROVED")
    return approved == len(items) or count_marked(items) == len(items)


def project_progress(project: Project) -> int:
    stages = list(project.stages)
    if not stages:
        return 0
    done = sum(1 for s in stages if stage_is_complete(s))
    return round(done / len(stages) * 100)


def project_to_dict(project: Project, include_stages=False) -> dict:
    d = project.to_dict(include_stages=include_stages)
    d["progress"] = project_progress(project)
    return d


def list_projects(status=None, search=None) -> list[Project]:
    q = Project.query
    if status:
        q = q.filter(Project.status == status)
    if search:
        q = q.filter(Project.name.ilike(f"%{search}%"))
    return q.order_by(Project.id).all()


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def sync_project_status(project_id: int) -> Project:
    """Recompute status and supplies value from the stages and persist them."""
    project = get_project(project_id)
    refresh_project_status(project)
    commit_or_rollback()
    return project
