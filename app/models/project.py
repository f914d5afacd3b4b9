"""
Project domain model — projects, stages (etapas), checklist submissions
and stage deliverables.

Hierarchy:
    Project ─┬─ responsibles (Users, many-to-many)
             ├─ supervisor (User, optional)
             └─ Stage ─┬─ executor (User, mandatory)
                       ├─ members (Users, many-to-many)
                       ├─ checklist (JSON list of {"text", "marked"})
                       ├─ ChecklistSubmission (one per checklist index)
                       └─ Deliverable (history; latest = newest submission)

A checklist entry is identified by its position in ``Stage.checklist``;
that index is the join key to ``ChecklistSubmission.checklist_index``.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("IN_PROGRESS", "FINISHED")

STAGE_STATUSES = ("PENDING", "IN_PROGRESS", "UNDER_REVIEW", "APPROVED", "REJECTED")

SUBMISSION_STATUSES = ("PENDING", "UNDER_REVIEW", "APPROVED", "REJECTED")

DELIVERABLE_STATUSES = ("UNDER_REVIEW", "APPROVED", "REJECTED")


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


project_responsibles = db.Table(
    "project_responsibles",
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

stage_members = db.Table(
    "stage_members",
    db.Column("stage_id", db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Project(db.Model):
    """A unit of contracted work, split into stages."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    objective = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="IN_PROGRESS",
                       comment="IN_PROGRESS | FINISHED")
    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    total_value = db.Column(db.Float, nullable=False, default=0.0)
    supplies_value = db.Column(db.Float, nullable=False, default=0.0,
                               comment="Sum of the stages' supplies values")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    supervisor = db.relationship("User", foreign_keys=[supervisor_id], lazy="joined")
    responsibles = db.relationship("User", secondary=project_responsibles, lazy="selectin",
                                   order_by="User.name")
    stages = db.relationship(
        "Stage", back_populates="project", lazy="selectin",
        cascade="all, delete-orphan", order_by="Stage.id",
    )

    def to_dict(self, include_stages=False):
        d = {
            "id": self.id,
            "name": self.name,
            "summary": self.summary,
            "objective": self.objective,
            "status": self.status,
            "supervisor": self.supervisor.to_summary() if self.supervisor else None,
            "responsibles": [u.to_summary() for u in self.responsibles],
            "total_value": self.total_value,
            "supplies_value": self.supplies_value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_stages:
            d["stages"] = [s.to_dict() for s in self.stages]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Stage(db.Model):
    """A unit of work inside a project, owned by one executor."""

    __tablename__ = "stages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="PENDING",
                       comment="PENDING | IN_PROGRESS | UNDER_REVIEW | APPROVED | REJECTED")
    executor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    checklist = db.Column(db.JSON, nullable=True, comment='[{"text": str, "marked": bool}, ...]')
    started = db.Column(db.Boolean, nullable=False, default=False)
    supplies_value = db.Column(db.Float, nullable=False, default=0.0)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="stages")
    executor = db.relationship("User", foreign_keys=[executor_id], lazy="joined")
    members = db.relationship("User", secondary=stage_members, lazy="selectin", order_by="User.name")
    submissions = db.relationship(
        "ChecklistSubmission", back_populates="stage", lazy="selectin",
        cascade="all, delete-orphan", order_by="ChecklistSubmission.checklist_index",
    )
    deliverables = db.relationship(
        "Deliverable", back_populates="stage", lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Deliverable.id",
    )

    # ── Checklist helpers ────────────────────────────────────────────────

    @property
    def checklist_items(self) -> list[dict]:
        return list(self.checklist or [])

    @property
    def member_ids(self) -> list[int]:
        return [u.id for u in self.members]

    def submission_for(self, index: int):
        for sub in self.submissions:
            if sub.checklist_index == index:
                return sub
        return None

    @property
    def latest_deliverable(self):
        """Newest submission timestamp wins; id breaks ties."""
        if not self.deliverables:
            return None
        return max(self.deliverables, key=Deliverable.sort_key)

    def to_dict(self, include_history=False):
        from app.services.workflow_rules import count_marked

        items = self.checklist_items
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "started": self.started,
            "executor": self.executor.to_summary() if self.executor else None,
            "members": [u.to_summary() for u in self.members],
            "checklist": [
                {
                    "index": i,
                    "text": item.get("text", ""),
                    "marked": bool(item.get("marked")),
                    "status": (self.submission_for(i).status if self.submission_for(i) else "PENDING"),
                }
                for i, item in enumerate(items)
            ],
            "items_marked": count_marked(items),
            "total_items": len(items),
            "supplies_value": self.supplies_value,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
        }
        latest = self.latest_deliverable
        d["latest_deliverable"] = latest.to_dict() if latest else None
        if include_history:
            d["deliverables"] = [e.to_dict() for e in sorted(self.deliverables, key=Deliverable.sort_key, reverse=True)]
            d["submissions"] = [s.to_dict() for s in self.submissions]
        return d

    def __repr__(self):
        return f"<Stage {self.id}: {self.name} [{self.status}]>"


class ChecklistSubmission(db.Model):
    """Evidence submitted for one checklist entry of a stage.

    Business rules:
    - (stage_id, checklist_index) is unique; a resubmission after
      rejection overwrites the row and clears the review fields.
    - A new submission is accepted only when none exists or the
      existing one is REJECTED.
    """

    __tablename__ = "checklist_submissions"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    checklist_index = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list, comment="data URIs, image/*")
    documents = db.Column(db.JSON, nullable=False, default=list, comment="data URIs, application/pdf or image/*")
    status = db.Column(db.String(20), nullable=False, default="UNDER_REVIEW")
    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    review_comment = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("stage_id", "checklist_index", name="uq_checklist_submission_stage_index"),
    )

    stage = db.relationship("Stage", back_populates="submissions")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id], lazy="joined")
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id], lazy="joined")

    def to_dict(self, include_attachments=True):
        d = {
            "id": self.id,
            "stage_id": self.stage_id,
            "checklist_index": self.checklist_index,
            "description": self.description,
            "image_count": len(self.images or []),
            "document_count": len(self.documents or []),
            "status": self.status,
            "submitted_by": self.submitted_by.to_summary() if self.submitted_by else None,
            "reviewed_by": self.reviewed_by.to_summary() if self.reviewed_by else None,
            "review_comment": self.review_comment,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
        }
        if include_attachments:
            d["images"] = list(self.images or [])
            d["documents"] = list(self.documents or [])
        return d

    def __repr__(self):
        return f"<ChecklistSubmission stage={self.stage_id} index={self.checklist_index} [{self.status}]>"


class Deliverable(db.Model):
    """Whole-stage delivery (narrative + optional image) that drives approval."""

    __tablename__ = "deliverables"

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    description = db.Column(db.Text, nullable=False)
    image = db.Column(db.Text, nullable=True, comment="data URI, image/*")
    status = db.Column(db.String(20), nullable=False, default="UNDER_REVIEW",
                       comment="UNDER_REVIEW | APPROVED | REJECTED")
    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    stage = db.relationship("Stage", back_populates="deliverables")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id], lazy="joined")
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id], lazy="joined")

    @staticmethod
    def sort_key(deliverable):
        # SQLite hands back naive datetimes; compare everything as naive UTC
        ts = deliverable.submitted_at
        if ts is not None and ts.tzinfo is not None:
            ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
        return (ts or datetime.min, deliverable.id or 0)

    def to_dict(self):
        return {
            "id": self.id,
            "stage_id": self.stage_id,
            "description": self.description,
            "image": self.image,
            "status": self.status,
            "submitted_by": self.submitted_by.to_summary() if self.submitted_by else None,
            "reviewed_by": self.reviewed_by.to_summary() if self.reviewed_by else None,
            "comment": self.comment,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
        }

    def __repr__(self):
        return f"<Deliverable {self.id} stage={self.stage_id} [{self.status}]>"
