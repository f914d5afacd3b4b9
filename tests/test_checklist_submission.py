"""
Checklist submission engine tests (service layer).

Covers:
    - description boundary: 5 characters accepted, 4 rejected
    - executor / team member gate, outsider rejected with no side effect
    - source status gate: UNDER_REVIEW and APPROVED block a new submission
    - MIME-class validation of images and documents
    - read-after-write of attachments and description
    - resubmission after rejection updates the same row in place
    - checklist editing drives PENDING ↔ IN_PROGRESS
    - review rules: reviewer identity, UNDER_REVIEW only, approval marks the item
"""

import pytest

from app.core.exceptions import AuthorizationError, NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.notification import Notification
from app.models.project import ChecklistSubmission
from app.services import checklist_service

PNG = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="
JPEG = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8U"
PDF = "data:application/pdf;base64,JVBERi0xLjQKJcOkw7zDtsOfCjIgMCBvYmoKPDwvTGVuZ3RoIDMgMCBSL0ZpbHRlci9GbGF0ZURlY29kZT4+"
TXT = "data:text/plain;base64,aGVsbG8gd29ybGQ="


@pytest.fixture()
def people(make_user):
    return {
        "executor": make_user("EXECUTOR"),
        "member": make_user("EXECUTOR"),
        "outsider": make_user("EXECUTOR"),
        "supervisor": make_user("SUPERVISOR"),
        "buyer": make_user("COTADOR"),
    }


@pytest.fixture()
def stage(people, make_project, make_stage, checklist3):
    project = make_project(supervisor=people["supervisor"])
    return make_stage(project, people["executor"], checklist=checklist3, members=[people["member"]])


def _submission_count():
    return ChecklistSubmission.query.count()


# ═════════════════════════════════════════════════════════════════════════════
# Submit
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmitObjective:

    def test_five_characters_accepted(self, stage, people):
        sub = checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Done.")
        assert sub.status == "UNDER_REVIEW"
        assert sub.description == "Done."

    def test_four_characters_rejected(self, stage, people):
        with pytest.raises(ValidationError):
            checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Done")
        assert _submission_count() == 0

    def test_whitespace_does_not_count(self, stage, people):
        with pytest.raises(ValidationError):
            checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="  abc   ")

    def test_team_member_may_submit(self, stage, people):
        sub = checklist_service.submit_objective(stage.id, 1, people["member"].id, description="Rebar checked")
        assert sub.submitted_by_id == people["member"].id

    def test_outsider_rejected_without_side_effect(self, stage, people):
        with pytest.raises(AuthorizationError):
            checklist_service.submit_objective(stage.id, 0, people["outsider"].id, description="Not mine")
        assert _submission_count() == 0
        assert Notification.query.count() == 0

    def test_authorization_checked_before_description(self, stage, people):
        with pytest.raises(AuthorizationError):
            checklist_service.submit_objective(stage.id, 0, people["outsider"].id, description="x")

    def test_unknown_stage(self, people):
        with pytest.raises(NotFoundError):
            checklist_service.submit_objective(9999, 0, people["executor"].id, description="Valid text")

    @pytest.mark.parametrize("index", [-1, 3, 10])
    def test_index_out_of_range(self, stage, people, index):
        with pytest.raises(ValidationError):
            checklist_service.submit_objective(stage.id, index, people["executor"].id, description="Valid text")

    def test_under_review_blocks_resubmission(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="First try")
        with pytest.raises(TransitionError) as exc:
            checklist_service.submit_objective(stage.id, 0, people["member"].id, description="Second try")
        assert exc.value.current_status == "UNDER_REVIEW"

    def test_approved_is_terminal(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="First try")
        checklist_service.review_objective(stage.id, 0, people["supervisor"], status="APPROVED")
        with pytest.raises(TransitionError):
            checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Again please")

    def test_attachment_round_trip(self, stage, people):
        checklist_service.submit_objective(
            stage.id, 2, people["executor"].id,
            description="Concrete poured and cured",
            images=[PNG, JPEG], documents=[PDF],
        )
        db.session.expire_all()
        sub = checklist_service.get_submission(stage.id, 2)
        assert sub.description == "Concrete poured and cured"
        assert len(sub.images) == 2
        assert len(sub.documents) == 1
        d = sub.to_dict()
        assert d["image_count"] == 2
        assert d["document_count"] == 1

    def test_image_must_be_image(self, stage, people):
        with pytest.raises(ValidationError):
            checklist_service.submit_objective(
                stage.id, 0, people["executor"].id, description="With a pdf", images=[PDF],
            )
        assert _submission_count() == 0

    def test_document_accepts_pdf_and_images(self, stage, people):
        sub = checklist_service.submit_objective(
            stage.id, 0, people["executor"].id, description="Two documents", documents=[PDF, PNG],
        )
        assert len(sub.documents) == 2

    def test_document_rejects_other_types(self, stage, people):
        with pytest.raises(ValidationError):
            checklist_service.submit_objective(
                stage.id, 0, people["executor"].id, description="Plain text doc", documents=[TXT],
            )

    def test_legacy_single_fields(self, stage, people):
        sub = checklist_service.submit_objective(
            stage.id, 0, people["executor"].id, description="Single fields", image=PNG, document=PDF,
        )
        assert sub.images == [PNG]
        assert sub.documents == [PDF]

    def test_supervisor_is_notified(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Notify me")
        notes = Notification.query.filter_by(recipient_id=people["supervisor"].id).all()
        assert len(notes) == 1
        assert notes[0].category == "checklist"


# ═════════════════════════════════════════════════════════════════════════════
# Resubmission
# ═════════════════════════════════════════════════════════════════════════════


class TestResubmission:

    def test_rejected_item_can_be_resubmitted_in_place(self, stage, people):
        first = checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="First try")
        checklist_service.review_objective(
            stage.id, 0, people["supervisor"], status="REJECTED", comment="Photo is blurry",
        )
        assert checklist_service.get_item_status(stage, 0) == "REJECTED"

        again = checklist_service.submit_objective(
            stage.id, 0, people["member"].id, description="Sharper photo attached", images=[PNG],
        )
        assert again.id == first.id
        assert again.status == "UNDER_REVIEW"
        assert again.review_comment is None
        assert again.reviewed_by_id is None
        assert again.submitted_by_id == people["member"].id
        assert _submission_count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════════════


class TestReviewObjective:

    def test_approval_marks_item_and_starts_stage(self, stage, people):
        checklist_service.submit_objective(stage.id, 1, people["executor"].id, description="Rebar ok")
        sub = checklist_service.review_objective(stage.id, 1, people["supervisor"], status="approved")
        assert sub.status == "APPROVED"
        assert sub.reviewed_by_id == people["supervisor"].id
        assert sub.reviewed_at is not None
        assert stage.checklist_items[1]["marked"] is True
        assert stage.status == "IN_PROGRESS"

    def test_rejection_keeps_marked_flag(self, stage, people):
        checklist_service.update_checklist(stage.id, people["executor"].id, [
            {"text": "Excavation", "marked": True},
            {"text": "Rebar inspection", "marked": False},
            {"text": "Concrete pour", "marked": False},
        ])
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Dug the hole")
        checklist_service.review_objective(stage.id, 0, people["supervisor"], status="REJECTED")
        assert stage.checklist_items[0]["marked"] is True

    def test_only_reviewers(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Dug the hole")
        with pytest.raises(AuthorizationError):
            checklist_service.review_objective(stage.id, 0, people["buyer"], status="APPROVED")

    def test_review_permission_alone_is_not_enough(self, stage, people, make_user, grant_permission):
        auditor = grant_permission(make_user("AUDITOR", allowed_pages=["/tasks/my"]), "trabalhos:avaliar")
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Dug the hole")
        with pytest.raises(AuthorizationError):
            checklist_service.review_objective(stage.id, 0, auditor, status="APPROVED")
        assert checklist_service.get_item_status(stage, 0) == "UNDER_REVIEW"
        assert stage.checklist_items[0]["marked"] is False

    def test_project_supervisor_without_reviewer_role(self, make_user, make_project, make_stage, checklist3):
        boss = make_user("COTADOR")
        worker = make_user("EXECUTOR")
        stage = make_stage(make_project(supervisor=boss), worker, checklist=checklist3)
        checklist_service.submit_objective(stage.id, 0, worker.id, description="Dug the hole")
        sub = checklist_service.review_objective(stage.id, 0, boss, status="APPROVED")
        assert sub.status == "APPROVED"

    def test_only_under_review(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Dug the hole")
        checklist_service.review_objective(stage.id, 0, people["supervisor"], status="REJECTED")
        with pytest.raises(TransitionError):
            checklist_service.review_objective(stage.id, 0, people["supervisor"], status="APPROVED")

    def test_missing_submission(self, stage, people):
        with pytest.raises(NotFoundError):
            checklist_service.review_objective(stage.id, 0, people["supervisor"], status="APPROVED")

    def test_bad_outcome(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["executor"].id, description="Dug the hole")
        with pytest.raises(ValidationError):
            checklist_service.review_objective(stage.id, 0, people["supervisor"], status="MAYBE")

    def test_executor_notified(self, stage, people):
        checklist_service.submit_objective(stage.id, 0, people["member"].id, description="Dug the hole")
        checklist_service.review_objective(stage.id, 0, people["supervisor"], status="APPROVED")
        notes = Notification.query.filter_by(recipient_id=people["executor"].id).all()
        assert [n.severity for n in notes] == ["success"]


# ═════════════════════════════════════════════════════════════════════════════
# Checklist editing
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateChecklist:

    def test_marking_starts_work(self, stage, people):
        checklist_service.update_checklist(stage.id, people["member"].id, [
            {"texto": "Excavation", "concluido": "true"},
            {"text": "Rebar inspection", "marked": 0},
        ])
        assert stage.status == "IN_PROGRESS"
        assert stage.started is True
        assert [i["marked"] for i in stage.checklist_items] == [True, False]

    def test_unmarking_everything_resets(self, stage, people):
        checklist_service.update_checklist(stage.id, people["executor"].id, [{"text": "A", "marked": 1}])
        checklist_service.update_checklist(stage.id, people["executor"].id, [{"text": "A", "marked": "0"}])
        assert stage.status == "PENDING"

    def test_under_review_status_untouched(self, make_user, make_project, make_stage):
        worker = make_user("EXECUTOR")
        stage = make_stage(make_project(), worker, status="UNDER_REVIEW",
                           checklist=[{"text": "A", "marked": True}])
        checklist_service.update_checklist(stage.id, worker.id, [{"text": "A", "marked": False}])
        assert stage.status == "UNDER_REVIEW"

    def test_outsider_cannot_edit(self, stage, people):
        with pytest.raises(AuthorizationError):
            checklist_service.update_checklist(stage.id, people["outsider"].id, [{"text": "A", "marked": True}])

    def test_text_required(self, stage, people):
        with pytest.raises(ValidationError):
            checklist_service.update_checklist(stage.id, people["executor"].id, [{"text": "  ", "marked": True}])
