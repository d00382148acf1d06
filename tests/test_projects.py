"""Tests for project create, update, delete and close."""
import pytest
from sqlalchemy import func, select
from taskflow_core import crud, models
from taskflow_core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from taskflow_core.scopes import ListScope


def _count(db, table, **where):
    stmt = select(func.count()).select_from(table)
    for column, value in where.items():
        stmt = stmt.where(table.c[column] == value)
    return db.execute(stmt).scalar()


class TestCreateProject:
    """Test project creation."""

    def test_create_with_team(self, db, make_user):
        """Test that a project is created active with its team and primary curator."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        dev = make_user()
        project = crud.create_project(
            db, name="Notifications", department_id=1, curator_ids=[pm.id, dev.id], assignee_ids=[dev.id]
        )

        assert project.id == 1
        assert project.key == "PRJ-1"
        assert project.status == models.ProjectStatus.ACTIVE
        assert project.curator_user_id == pm.id
        assert project.department_name
        assert crud.get_team_ids(db, "project", project.id) == ([pm.id, dev.id], [dev.id])

    def test_explicit_key(self, db, make_user, make_project):
        """Test that a given key is stored after trimming."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        project = make_project([pm], [pm], key="  NOTIFY ")
        assert project.key == "NOTIFY"

    def test_duplicate_ids_ignored(self, db, make_user):
        """Test that repeated ids produce a single junction row."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        project = crud.create_project(
            db, name="Dup", department_id=1, curator_ids=[pm.id, pm.id], assignee_ids=[pm.id, pm.id, pm.id]
        )
        assert crud.get_team_ids(db, "project", project.id) == ([pm.id], [pm.id])

    def test_team_size_limits(self, db, make_user):
        """Test that teams need between one and five members each."""
        users = [make_user() for _ in range(6)]
        ids = [u.id for u in users]
        with pytest.raises(ValidationError):
            crud.create_project(db, name="Empty", department_id=1, curator_ids=[], assignee_ids=ids[:1])
        with pytest.raises(ValidationError):
            crud.create_project(db, name="Crowded", department_id=1, curator_ids=ids[:1], assignee_ids=ids)
        crud.create_project(db, name="Full", department_id=1, curator_ids=ids[:5], assignee_ids=ids[:5])

    def test_name_required(self, db, make_user):
        """Test that a blank name is rejected before anything is written."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        with pytest.raises(ValidationError):
            crud.create_project(db, name="  ", department_id=1, curator_ids=[pm.id], assignee_ids=[pm.id])
        assert db.query(models.Project).count() == 0

    def test_duplicate_key_conflict(self, db, make_user, make_project):
        """Test that a taken key fails and leaves no partial rows."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        make_project([pm], [pm], key="PRJ")
        with pytest.raises(ConflictError):
            make_project([pm], [pm], key="PRJ")
        assert db.query(models.Project).count() == 1
        assert _count(db, models.project_curators) == 1

    def test_unknown_team_member(self, db, make_user):
        """Test that an unknown user id rolls the whole create back."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        with pytest.raises(ValidationError):
            crud.create_project(db, name="Ghost", department_id=1, curator_ids=[pm.id], assignee_ids=[999])
        assert db.query(models.Project).count() == 0
        assert _count(db, models.project_curators) == 0


class TestUpdateProject:
    """Test project updates and team reconciliation."""

    def test_replace_team(self, db, make_user, make_project):
        """Test that junction rows end up equal to the new sets."""
        a, b, c, d = (make_user() for _ in range(4))
        project = make_project([a, b], [c])

        updated = crud.update_project(
            db, project.id, name="Renamed", department_id=1, curator_ids=[c.id, b.id], assignee_ids=[d.id, a.id]
        )

        assert updated.name == "Renamed"
        assert updated.curator_user_id == c.id
        assert crud.get_team_ids(db, "project", project.id) == (sorted([b.id, c.id]), sorted([a.id, d.id]))
        assert _count(db, models.project_curators, project_id=project.id) == 2

    def test_empty_key_keeps_key(self, db, make_user, make_project):
        """Test that an empty key leaves the current key in place."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        project = make_project([pm], [pm], key="KEEP")
        updated = crud.update_project(
            db, project.id, name="Other", department_id=1, curator_ids=[pm.id], assignee_ids=[pm.id]
        )
        assert updated.key == "KEEP"

    def test_missing_project(self, db, make_user):
        """Test that updating an unknown project is not found."""
        pm = make_user(models.Role.PROJECT_MANAGER)
        with pytest.raises(NotFoundError):
            crud.update_project(db, 42, name="X", department_id=1, curator_ids=[pm.id], assignee_ids=[pm.id])

    def test_department_move_checks_task_teams(self, db, make_user, make_project, make_task):
        """Test that a project cannot move away from the department of its task teams."""
        dev = make_user(department_id=1)
        ops = make_user(department_id=2)
        project = make_project([dev], [dev])
        task = make_task(project, [dev], [dev])

        with pytest.raises(PermissionDeniedError, match=crud.TEAM_OUTSIDE_DEPARTMENT):
            crud.update_project(
                db, project.id, name="Moved", department_id=2, curator_ids=[ops.id], assignee_ids=[ops.id]
            )

        db.expire_all()
        assert crud.get_project(db, project.id).department_id == 1
        assert crud.get_team_ids(db, "project", project.id) == ([dev.id], [dev.id])
        assert crud.get_task_department_id(db, task.id) == 1

    def test_department_move_without_tasks(self, db, make_user, make_project):
        """Test that a project without tasks moves with its new team."""
        dev = make_user(department_id=1)
        ops = make_user(department_id=2)
        project = make_project([dev], [dev])

        updated = crud.update_project(
            db, project.id, name="Moved", department_id=2, curator_ids=[ops.id], assignee_ids=[ops.id]
        )

        assert updated.department_id == 2
        assert crud.project_task_team_ids(db, project.id) == []

    def test_task_team_ids(self, db, make_user, make_project, make_task):
        """Test that task team ids are collected across tasks without duplicates."""
        a, b, c = make_user(), make_user(), make_user()
        project = make_project([a], [a])
        make_task(project, [a], [b])
        make_task(project, [b], [c, a])
        assert crud.project_task_team_ids(db, project.id) == sorted([a.id, b.id, c.id])

    def test_key_conflict_rolls_back_team(self, db, make_user, make_project):
        """Test that a key clash leaves the old team untouched."""
        a, b = make_user(), make_user()
        make_project([a], [a], key="TAKEN")
        project = make_project([a], [a], key="MINE")

        with pytest.raises(ConflictError):
            crud.update_project(
                db, project.id, name="X", department_id=1, curator_ids=[b.id], assignee_ids=[b.id], key="TAKEN"
            )

        db.expire_all()
        assert crud.get_project(db, project.id).key == "MINE"
        assert crud.get_team_ids(db, "project", project.id) == ([a.id], [a.id])


class TestDeleteProject:
    """Test cascading project deletion."""

    def test_delete_removes_tasks_and_team_rows(self, db, make_user, make_project, make_task):
        """Test that tasks, task teams, task chat and project teams all go."""
        a, b = make_user(), make_user()
        project = make_project([a], [b])
        task = make_task(project, [a], [b])
        project_id = project.id
        crud.post_task_message(db, task.id, a.id, "hello")

        crud.delete_project(db, project_id)

        assert crud.get_project(db, project_id) is None
        assert db.query(models.Task).count() == 0
        assert db.query(models.ChatMessage).count() == 0
        for table in (models.task_curators, models.task_assignees, models.project_curators, models.project_assignees):
            assert _count(db, table) == 0

    def test_delete_leaves_other_projects(self, db, make_user, make_project, make_task):
        """Test that only the target project's rows are removed."""
        a = make_user()
        doomed = make_project([a], [a])
        kept = make_project([a], [a])
        make_task(doomed, [a], [a])
        kept_task = make_task(kept, [a], [a])

        crud.delete_project(db, doomed.id)

        assert [t.id for t in crud.list_tasks(db, ListScope.everything())] == [kept_task.id]
        assert crud.get_team_ids(db, "project", kept.id) == ([a.id], [a.id])

    def test_delete_missing(self, db):
        """Test that deleting an unknown project is not found."""
        with pytest.raises(NotFoundError):
            crud.delete_project(db, 5)


class TestCloseProject:
    """Test closing a project with its tasks."""

    def test_close_cascades_done(self, db, make_user, make_project, make_task):
        """Test that every task of the project becomes Done."""
        a = make_user()
        project = make_project([a], [a])
        other = make_project([a], [a])
        make_task(project, [a], [a], status="In Progress")
        make_task(project, [a], [a], status="Review")
        untouched = make_task(other, [a], [a], status="New")

        closed = crud.close_project(db, project.id)

        assert closed.status == models.ProjectStatus.CLOSED
        assert {t.status for t in crud.list_tasks(db, ListScope.everything(), project_id=project.id)} == {"Done"}
        assert crud.get_task(db, untouched.id).status == "New"

    def test_close_missing(self, db, make_user, make_project, make_task):
        """Test that a missing project touches no task."""
        a = make_user()
        project = make_project([a], [a])
        task = make_task(project, [a], [a], status="New")
        with pytest.raises(NotFoundError):
            crud.close_project(db, 99)
        db.expire_all()
        assert crud.get_task(db, task.id).status == "New"


class TestListProjects:
    """Test scoped project listing."""

    def test_scopes(self, db, make_user, make_project):
        """Test everything, department and participant scopes."""
        dev1, dev2, ops = make_user(), make_user(), make_user(department_id=2)
        p1 = make_project([dev1], [dev1])
        p2 = make_project([dev2], [dev1])
        p3 = make_project([ops], [ops])

        assert [p.id for p in crud.list_projects(db, ListScope.everything())] == [p1.id, p2.id, p3.id]
        assert [p.id for p in crud.list_projects(db, ListScope.department(2))] == [p3.id]
        assert [p.id for p in crud.list_projects(db, ListScope.participant(dev1.id))] == [p1.id, p2.id]
        assert [p.id for p in crud.list_projects(db, ListScope.participant(dev2.id))] == [p2.id]

    def test_guest_without_memberships(self, db, make_user, make_project):
        """Test that a Guest with no memberships sees nothing."""
        dev = make_user()
        guest = make_user(models.Role.GUEST)
        make_project([dev], [dev])
        assert crud.list_projects(db, ListScope.participant(guest.id)) == []
