"""
Notification domain model.

A Notification tells one user that something happened to a stage they
work on or supervise: a checklist item or a deliverable was submitted,
approved or rejected. Clients poll the unread count.
"""

from datetime import datetime, timezone

from app.models import db

NOTIFICATION_CATEGORIES = {"checklist", "deliverable", "stage", "project", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


def _utcnow():
    return datetime.now(timezone.utc)


class Notification(db.Model):
    """One record per recipient per event."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system", comment="checklist | deliverable | stage | project | system")
    severity = db.Column(db.String(20), default="info")
    entity_type = db.Column(db.String(30), default="", comment="stage | checklist_submission | deliverable")
    entity_id = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
    )

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = _utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id} -> user {self.recipient_id}: {self.title[:40]}>"
