"""Shared fixtures: in-memory database, user/project factories, API client."""
import os

# Settings are cached on first use; point them away from the on-disk default
os.environ.setdefault("TASKFLOW_DATABASE_URL", "sqlite://")
os.environ.setdefault("TASKFLOW_AUTH_PEPPER", "test-pepper")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow_core import crud, models
from taskflow_core.config import Settings, get_settings
from taskflow_core.database import create_db_engine, get_db
from taskflow_core.store import init_schema

# Positions valid for the Member role, per department
MEMBER_POSITIONS = {
    1: "Разработчик отдела Поддержки текущих сервисов",
    2: "Системный администратор",
    3: "Специалист технической поддержки",
    4: "Инспектор ООИБ",
}

HEAD_POSITIONS = {
    1: "Начальник Отдела Поддержки текущих сервисов",
    2: "Начальник отдела поддержки и развития инфраструктуры",
    3: "Начальник отдела технической поддержки",
    4: "Начальник отдела ООИБ",
}

PASSWORD = "secret-password"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Factory creating a user with a position that fits the role."""
    counter = {"n": 0}

    def _make_user(role=models.Role.MEMBER, department_id=1, login=None, position=None):
        counter["n"] += 1
        role = models.Role(role)
        if position is None:
            if role == models.Role.ADMIN:
                position = "Начальник УЦС"
            elif role == models.Role.DEPUTY_ADMIN:
                position = "Заместитель начальника УЦС"
            elif role == models.Role.PROJECT_MANAGER:
                position = HEAD_POSITIONS[department_id]
            elif role == models.Role.OWNER:
                position = "Владелец"
            else:
                position = MEMBER_POSITIONS[department_id]
        return crud.create_user(
            db,
            login=login or f"user{counter['n']}",
            password=PASSWORD,
            full_name=f"User {counter['n']}",
            position=position,
            role=role,
            department_id=department_id,
        )

    return _make_user


@pytest.fixture
def make_project(db):
    """Factory creating a project whose team is given as user objects."""

    def _make_project(curators, assignees, department_id=None, name="Project", key=""):
        department_id = department_id or curators[0].department_id
        return crud.create_project(
            db,
            name=name,
            department_id=department_id,
            curator_ids=[u.id for u in curators],
            assignee_ids=[u.id for u in assignees],
            key=key,
        )

    return _make_project


@pytest.fixture
def make_task(db):
    """Factory creating a task in a project."""

    def _make_task(project, curators, assignees, title="Task", key="", status="New"):
        return crud.create_task(
            db,
            project_id=project.id,
            title=title,
            task_type="Task",
            status=status,
            priority="Medium",
            curator_ids=[u.id for u in curators],
            assignee_ids=[u.id for u in assignees],
            key=key,
        )

    return _make_task


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url="sqlite://", data_dir=tmp_path / "data", auth_pepper="test-pepper")


@pytest.fixture
def client(engine, settings):
    from taskflow_core.api.main import app

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    # Not entered as a context manager: the fixture engine is already initialized
    yield TestClient(app)
    app.dependency_overrides.clear()


def actor(user) -> dict:
    """Request headers identifying ``user`` as the actor."""
    return {"X-Actor-Login": user.login}
