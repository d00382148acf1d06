"""Role hierarchy and role/department/position compatibility.

Roles, highest first: Owner, Admin, Deputy Admin, Project Manager, Member,
Guest. The first three are *super* roles (no department restriction); adding
Project Manager gives the *leadership* roles.

Which position a user may hold for a given role and department comes from
the staffing table shipped as ``staffing.yaml``. The table is loaded once on
first use and kept as read-only mappings.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

import yaml

from .errors import ValidationError
from .models import Role

logger = logging.getLogger("taskflow-core.roles")

STAFFING_FILE = Path(__file__).parent / "staffing.yaml"

SUPER_ROLES = frozenset({Role.OWNER, Role.ADMIN, Role.DEPUTY_ADMIN})
LEADERSHIP_ROLES = SUPER_ROLES | {Role.PROJECT_MANAGER}
USER_MANAGER_ROLES = LEADERSHIP_ROLES


def normalize_position(position: str) -> str:
    """Canonical form used for position comparison."""
    return position.strip().casefold()


@dataclass(frozen=True)
class DepartmentStaffing:
    """Staffing rules of one department."""

    id: int
    name: str
    head_position: str
    positions: frozenset[str]  # normalized


@dataclass(frozen=True)
class StaffingTable:
    """Immutable view over the staffing configuration."""

    admin_position: str
    deputy_admin_position: str
    departments: Mapping[int, DepartmentStaffing]

    def department(self, department_id: int) -> Optional[DepartmentStaffing]:
        return self.departments.get(department_id)

    @classmethod
    def from_dict(cls, data: dict) -> "StaffingTable":
        """
        Build a table from parsed YAML.

        Args:
            data: Mapping with ``admin_position``, ``deputy_admin_position``
                and ``departments`` keyed by department id

        Returns:
            StaffingTable with frozen mappings

        Raises:
            ValueError: If a required key is missing
        """
        try:
            departments = {}
            for raw_id, entry in data["departments"].items():
                dept_id = int(raw_id)
                departments[dept_id] = DepartmentStaffing(
                    id=dept_id,
                    name=entry["name"],
                    head_position=entry["head_position"],
                    positions=frozenset(normalize_position(p) for p in entry["positions"]),
                )
            return cls(
                admin_position=data["admin_position"],
                deputy_admin_position=data["deputy_admin_position"],
                departments=MappingProxyType(departments),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed staffing table: {e}") from e


@lru_cache
def get_staffing_table() -> StaffingTable:
    """Load ``staffing.yaml`` once per process."""
    with STAFFING_FILE.open(encoding="utf-8") as f:
        table = StaffingTable.from_dict(yaml.safe_load(f))
    logger.debug(f"Loaded staffing table with {len(table.departments)} departments")
    return table


def parse_role(value: Union[str, Role]) -> Role:
    """
    Parse a role name case-insensitively.

    Args:
        value: Role name such as ``"project manager"`` or a Role

    Returns:
        Matching Role

    Raises:
        ValidationError: If the name is not a known role
    """
    if isinstance(value, Role):
        return value
    wanted = (value or "").strip().casefold()
    for role in Role:
        if role.value.casefold() == wanted:
            return role
    raise ValidationError(f"Unknown role: '{value}'")


def is_super_role(role: Role) -> bool:
    return role in SUPER_ROLES


def is_leadership_role(role: Role) -> bool:
    return role in LEADERSHIP_ROLES


def can_manage_users(role: Role) -> bool:
    return role in USER_MANAGER_ROLES


def validate_role_department_position(
    role: Union[str, Role],
    department_id: int,
    position: str,
    table: Optional[StaffingTable] = None,
) -> None:
    """
    Check that a position is legal for a role in a department.

    Checks run in order: position present, department id positive,
    department known, then the role-specific rule. Owners may hold any
    position; Admin and Deputy Admin hold their fixed positions; a Project
    Manager holds the department head position; Members and Guests hold
    any position on the department's list.

    Args:
        role: Role or role name
        department_id: Target department
        position: Position title (compared case-insensitively, trimmed)
        table: Staffing table override (defaults to the packaged one)

    Raises:
        ValidationError: If the combination is not allowed
    """
    table = table or get_staffing_table()
    role = parse_role(role)
    wanted = normalize_position(position or "")

    if not wanted:
        raise ValidationError("Position is required")
    if department_id <= 0:
        raise ValidationError("Department is required")
    department = table.department(department_id)
    if department is None:
        raise ValidationError(f"Unknown department: {department_id}")

    if role == Role.OWNER:
        return
    if role == Role.ADMIN:
        if wanted != normalize_position(table.admin_position):
            raise ValidationError(f"Role Admin requires position '{table.admin_position}'")
        return
    if role == Role.DEPUTY_ADMIN:
        if wanted != normalize_position(table.deputy_admin_position):
            raise ValidationError(
                f"Role Deputy Admin requires position '{table.deputy_admin_position}'"
            )
        return
    if role == Role.PROJECT_MANAGER:
        if wanted != normalize_position(department.head_position):
            raise ValidationError(
                f"Role Project Manager requires position '{department.head_position}'"
            )
        return

    # Member and Guest
    if wanted not in department.positions:
        raise ValidationError(
            f"Position '{position.strip()}' is not available in department '{department.name}'"
        )
