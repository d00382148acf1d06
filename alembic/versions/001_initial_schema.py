"""Initial schema: departments, users, projects, tasks, teams, reports and chat.

Revision ID: 001
Revises:
Create Date: 2026-10-17

Delegates to the store's idempotent schema upgrade, so a database created
by the application at startup and one created by this migration are
identical. Pre-existing databases get their missing columns added and
legacy values backfilled.
"""
from typing import Sequence, Union

from alembic import op

from taskflow_core.models import Base
from taskflow_core.store import upgrade_schema

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    upgrade_schema(op.get_bind())


def downgrade() -> None:
    # Dependent tables first
    Base.metadata.drop_all(bind=op.get_bind())
