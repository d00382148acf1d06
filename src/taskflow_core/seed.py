"""Demo data for a fresh installation."""
import logging
from datetime import date

from sqlalchemy.orm import Session

from . import crud, models

logger = logging.getLogger("taskflow-core.seed")

DEMO_PASSWORD = "demo12345"

DEMO_USERS = [
    # login, full name, position, role, department
    ("owner", "Сергей Волков", "Владелец системы", models.Role.OWNER, 3),
    ("admin", "Алексей Смирнов", "Начальник УЦС", models.Role.ADMIN, 3),
    ("manager", "Екатерина Петрова", "Начальник Отдела Поддержки текущих сервисов", models.Role.PROJECT_MANAGER, 1),
    ("qa_lead", "Мария Денисова", "Тестировщик отдела Поддержки текущих сервисов", models.Role.MEMBER, 1),
]


def seed_demo_data(db: Session) -> bool:
    """
    Create demo users, projects and tasks on an empty database.

    Returns:
        True if data was created, False if users already existed
    """
    if db.query(models.User.id).first() is not None:
        logger.debug("Users already present, skipping demo data")
        return False

    users = {}
    for login, full_name, position, role, department_id in DEMO_USERS:
        users[login] = crud.create_user(
            db,
            login=login,
            password=DEMO_PASSWORD,
            full_name=full_name,
            position=position,
            role=role,
            department_id=department_id,
        )

    notifications = crud.create_project(
        db,
        name="Система уведомлений",
        department_id=1,
        curator_ids=[users["manager"].id],
        assignee_ids=[users["qa_lead"].id],
        key="PRJ",
    )
    infrastructure = crud.create_project(
        db,
        name="Инфраструктура и мониторинг",
        department_id=3,
        curator_ids=[users["owner"].id],
        assignee_ids=[users["owner"].id],
        key="OPS",
    )

    crud.create_task(
        db,
        project_id=notifications.id,
        title="Release freeze checklist",
        description="Подготовка freeze релиза",
        task_type="Bug",
        status="In Progress",
        priority="High",
        curator_ids=[users["manager"].id],
        assignee_ids=[users["qa_lead"].id],
        due_date=date(2026, 2, 28),
        key="PRJ-145",
    )
    crud.create_task(
        db,
        project_id=infrastructure.id,
        title="Обновить dashboard алертов",
        description="Актуализировать панели мониторинга",
        task_type="Task",
        status="Review",
        priority="Medium",
        curator_ids=[users["owner"].id],
        assignee_ids=[users["owner"].id],
        due_date=date(2026, 2, 28),
        key="OPS-33",
    )

    logger.info(f"Seeded demo data: {len(users)} users, 2 projects, 2 tasks")
    return True
