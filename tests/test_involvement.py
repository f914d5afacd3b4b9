"""
Involvement aggregator tests.

Covers:
    - involved_projects: supervisor, responsible party, executor, team member
    - each project appears once however many relations hold
    - stage_stats counts (dicts or models)
    - my_tasks: open stages only, status / project filters, per-project stats
"""

import pytest

from app.services.involvement_service import involved_projects, is_involved, my_tasks, stage_stats


@pytest.fixture()
def people(make_user):
    return {
        "worker": make_user("EXECUTOR"),
        "helper": make_user("EXECUTOR"),
        "boss": make_user("SUPERVISOR"),
        "owner": make_user("DIRETOR"),
        "stranger": make_user("EXECUTOR"),
    }


class TestInvolvedProjects:

    def test_team_member_of_one_stage(self, people, make_project, make_stage):
        p = make_project(name="P")
        other = make_project(name="Other")
        make_stage(p, people["worker"], name="S1", members=[people["helper"]])
        make_stage(other, people["worker"], name="S2")

        projects = involved_projects(people["helper"].id)
        assert [x.name for x in projects] == ["P"]

    def test_no_duplicates_across_stages_and_roles(self, people, make_project, make_stage):
        p = make_project(name="P", supervisor=people["helper"], responsibles=[people["helper"]])
        make_stage(p, people["worker"], name="S1", members=[people["helper"]])
        make_stage(p, people["helper"], name="S2", members=[people["worker"]])
        make_stage(p, people["worker"], name="S3", members=[people["helper"], people["boss"]])

        projects = involved_projects(people["helper"].id)
        assert [x.id for x in projects] == [p.id]

    def test_each_relation_counts(self, people, make_project, make_stage):
        supervised = make_project(name="Supervised", supervisor=people["boss"])
        owned = make_project(name="Owned", responsibles=[people["boss"]])
        executed = make_project(name="Executed")
        make_stage(executed, people["boss"])
        make_project(name="Unrelated")

        names = [x.name for x in involved_projects(people["boss"].id)]
        assert names == ["Supervised", "Owned", "Executed"]
        assert is_involved(supervised, people["boss"].id)
        assert is_involved(owned, people["boss"].id)
        assert is_involved(executed, people["boss"].id)

    def test_stranger_sees_nothing(self, people, make_project, make_stage):
        make_stage(make_project(supervisor=people["boss"]), people["worker"])
        assert involved_projects(people["stranger"].id) == []

    def test_is_involved_anonymous(self, people, make_project):
        assert is_involved(make_project(supervisor=people["boss"]), None) is False


class TestStageStats:

    def test_counts(self):
        stats = stage_stats([
            {"status": "PENDING"}, {"status": "PENDING"},
            {"status": "IN_PROGRESS"}, {"status": "UNDER_REVIEW"},
            {"status": "APPROVED"}, {"status": "REJECTED"},
        ])
        assert stats == {"total": 6, "pending": 2, "in_progress": 1, "under_review": 1}

    def test_empty(self):
        assert stage_stats([]) == {"total": 0, "pending": 0, "in_progress": 0, "under_review": 0}


class TestMyTasks:

    @pytest.fixture()
    def layout(self, people, make_project, make_stage):
        owned = make_project(name="Owned", responsibles=[people["owner"]])
        side = make_project(name="Side")
        return {
            "owned": owned,
            "side": side,
            "open": make_stage(owned, people["worker"], name="Open"),
            "review": make_stage(owned, people["worker"], name="Review", status="UNDER_REVIEW"),
            "done": make_stage(owned, people["worker"], name="Done", status="APPROVED"),
            "helping": make_stage(side, people["stranger"], name="Helping", members=[people["worker"]]),
        }

    def test_executor_and_member_stages(self, people, layout):
        result = my_tasks(people["worker"].id)
        names = [s["name"] for s in result["stages"]]
        assert names == ["Open", "Review", "Helping"]
        assert result["stats"] == {"total": 3, "pending": 2, "in_progress": 0, "under_review": 1}
        assert {p["name"] for p in result["projects"]} == {"Owned", "Side"}

    def test_responsible_sees_all_open_stages(self, people, layout):
        result = my_tasks(people["owner"].id)
        assert [s["name"] for s in result["stages"]] == ["Open", "Review"]
        owned = result["projects"][0]
        assert owned["name"] == "Owned"
        assert owned["stats"]["total"] == 3
        assert owned["progress"] == 67

    def test_status_filter(self, people, layout):
        result = my_tasks(people["worker"].id, status="UNDER_REVIEW")
        assert [s["name"] for s in result["stages"]] == ["Review"]

    def test_project_filter_keeps_involvement(self, people, layout):
        result = my_tasks(people["stranger"].id, project_id=layout["owned"].id)
        assert result["stages"] == []
        assert result["projects"] == []

    def test_project_filter(self, people, layout):
        result = my_tasks(people["worker"].id, project_id=layout["side"].id)
        assert [s["name"] for s in result["stages"]] == ["Helping"]
        assert [p["name"] for p in result["projects"]] == ["Side"]
