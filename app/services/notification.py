"""
Notification Service.

Workflow services call the ``notify_*`` helpers inside their own
transaction (``commit=False``) so a notification is recorded together
with the state change that caused it, or not at all.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_id, title, message="", category="system", severity="info",
               entity_type="", entity_id=None, commit=True):
        notif = Notification(
            recipient_id=recipient_id,
            title=title,
            message=message,
            category=category,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, recipient_ids, commit=True, **fields):
        """Same notification for several users, once per distinct id; None ids are skipped."""
        recipients = list(dict.fromkeys(rid for rid in recipient_ids if rid is not None))
        notifications = [
            NotificationService.create(recipient_id=rid, commit=False, **fields)
            for rid in recipients
        ]
        if commit:
            db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark a single notification as read. Other users' notifications are invisible."""
        notif = db.session.get(Notification, notification_id)
        if not notif or notif.recipient_id != recipient_id:
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count

    # ── Workflow Integration Helpers ──────────────────────────────────────

    @staticmethod
    def notify_deliverable_submitted(stage, deliverable):
        """Tell the project supervisor a stage is waiting for review."""
        project = stage.project
        if project is None or project.supervisor_id is None:
            return None
        return NotificationService.create(
            recipient_id=project.supervisor_id,
            title=f"Stage '{stage.name}' delivered for review",
            message=f"{project.name}: {deliverable.description[:200]}",
            category="deliverable",
            severity="info",
            entity_type="deliverable",
            entity_id=deliverable.id,
            commit=False,
        )

    @staticmethod
    def notify_deliverable_reviewed(stage, deliverable):
        """Tell the executor and team how their delivery was judged."""
        approved = deliverable.status == "APPROVED"
        verdict = "approved" if approved else "rejected"
        message = deliverable.comment or ""
        return NotificationService.broadcast(
            recipient_ids=[stage.executor_id, *stage.member_ids],
            title=f"Stage '{stage.name}' {verdict}",
            message=message,
            category="deliverable",
            severity="success" if approved else "warning",
            entity_type="deliverable",
            entity_id=deliverable.id,
            commit=False,
        )

    @staticmethod
    def notify_objective_submitted(stage, submission):
        project = stage.project
        if project is None or project.supervisor_id is None:
            return None
        items = stage.checklist_items
        label = items[submission.checklist_index].get("text", "") if submission.checklist_index < len(items) else ""
        return NotificationService.create(
            recipient_id=project.supervisor_id,
            title=f"Checklist item submitted on '{stage.name}'",
            message=label,
            category="checklist",
            severity="info",
            entity_type="checklist_submission",
            entity_id=submission.id,
            commit=False,
        )

    @staticmethod
    def notify_objective_reviewed(stage, submission):
        approved = submission.status == "APPROVED"
        return NotificationService.create(
            recipient_id=stage.executor_id,
            title=f"Checklist item #{submission.checklist_index + 1} on '{stage.name}' "
                  f"{'approved' if approved else 'rejected'}",
            message=submission.review_comment or "",
            category="checklist",
            severity="success" if approved else "warning",
            entity_type="checklist_submission",
            entity_id=submission.id,
            commit=False,
        )
