"""Tests for the role hierarchy and the staffing table."""
import pytest
from taskflow_core.errors import ValidationError
from taskflow_core.models import Role
from taskflow_core.roles import (
    StaffingTable,
    can_manage_users,
    get_staffing_table,
    is_leadership_role,
    is_super_role,
    normalize_position,
    parse_role,
    validate_role_department_position,
)


class TestParseRole:
    """Test role name parsing."""

    def test_canonical_names(self):
        """Test that every canonical name parses to its role."""
        for role in Role:
            assert parse_role(role.value) == role

    def test_case_insensitive(self):
        """Test that role names are matched regardless of case and padding."""
        assert parse_role("project manager") == Role.PROJECT_MANAGER
        assert parse_role("  DEPUTY ADMIN ") == Role.DEPUTY_ADMIN

    def test_role_passthrough(self):
        """Test that a Role instance is returned unchanged."""
        assert parse_role(Role.GUEST) is Role.GUEST

    def test_unknown_role_rejected(self):
        """Test that unknown or empty names are rejected."""
        for value in ("Superuser", "", None):
            with pytest.raises(ValidationError):
                parse_role(value)


class TestRoleClasses:
    """Test the super, leadership and user-manager role sets."""

    def test_super_roles(self):
        """Test that only Owner, Admin and Deputy Admin are super roles."""
        assert {r for r in Role if is_super_role(r)} == {Role.OWNER, Role.ADMIN, Role.DEPUTY_ADMIN}

    def test_leadership_roles(self):
        """Test that leadership adds Project Manager to the super roles."""
        assert is_leadership_role(Role.PROJECT_MANAGER)
        assert is_leadership_role(Role.OWNER)
        assert not is_leadership_role(Role.MEMBER)
        assert not is_leadership_role(Role.GUEST)

    def test_user_managers(self):
        """Test that Members and Guests cannot manage users."""
        assert can_manage_users(Role.ADMIN)
        assert can_manage_users(Role.PROJECT_MANAGER)
        assert not can_manage_users(Role.MEMBER)
        assert not can_manage_users(Role.GUEST)


class TestStaffingTable:
    """Test loading of the packaged staffing table."""

    def test_four_departments(self):
        """Test that departments 1-4 are defined."""
        table = get_staffing_table()
        assert sorted(table.departments) == [1, 2, 3, 4]
        assert table.department(5) is None

    def test_loaded_once(self):
        """Test that the table is cached per process."""
        assert get_staffing_table() is get_staffing_table()

    def test_immutable(self):
        """Test that the department mapping cannot be modified."""
        table = get_staffing_table()
        with pytest.raises(TypeError):
            table.departments[9] = table.department(1)

    def test_head_position_is_listed(self):
        """Test that every department head position is one of its positions."""
        for dept in get_staffing_table().departments.values():
            assert normalize_position(dept.head_position) in dept.positions

    def test_malformed_table(self):
        """Test that a table missing keys is rejected."""
        with pytest.raises(ValueError):
            StaffingTable.from_dict({"departments": {}})


class TestValidateRoleDepartmentPosition:
    """Test the role/department/position compatibility rules."""

    def test_member_with_listed_position(self):
        """Test that a Member may hold any position of their department."""
        validate_role_department_position("Member", 2, "Системный администратор")

    def test_member_with_admin_position(self):
        """Test that a Member may not hold the Admin position."""
        with pytest.raises(ValidationError):
            validate_role_department_position("Member", 2, "Начальник УЦС")

    def test_member_position_of_other_department(self):
        """Test that positions are checked against the chosen department."""
        with pytest.raises(ValidationError):
            validate_role_department_position("Member", 1, "Системный администратор")

    def test_position_matching_ignores_case_and_padding(self):
        """Test that positions compare case-insensitively after trimming."""
        validate_role_department_position(Role.GUEST, 2, "  системный АДМИНИСТРАТОР ")

    def test_admin_requires_fixed_position(self):
        """Test that Admin and Deputy Admin hold their fixed positions."""
        validate_role_department_position(Role.ADMIN, 3, "Начальник УЦС")
        validate_role_department_position(Role.DEPUTY_ADMIN, 1, "Заместитель начальника УЦС")
        with pytest.raises(ValidationError):
            validate_role_department_position(Role.ADMIN, 3, "Заместитель начальника УЦС")

    def test_project_manager_requires_head_position(self):
        """Test that a Project Manager must be the department head."""
        validate_role_department_position(Role.PROJECT_MANAGER, 3, "Начальник отдела технической поддержки")
        with pytest.raises(ValidationError):
            validate_role_department_position(Role.PROJECT_MANAGER, 3, "Специалист технической поддержки")

    def test_owner_any_position(self):
        """Test that an Owner may hold any position."""
        validate_role_department_position(Role.OWNER, 4, "Founder")

    def test_check_order(self):
        """Test that the position is checked before the department."""
        with pytest.raises(ValidationError, match="Position is required"):
            validate_role_department_position(Role.MEMBER, 0, "  ")
        with pytest.raises(ValidationError, match="Department is required"):
            validate_role_department_position(Role.MEMBER, 0, "Системный администратор")
        with pytest.raises(ValidationError, match="Unknown department"):
            validate_role_department_position(Role.MEMBER, 7, "Системный администратор")

    def test_custom_table(self):
        """Test that an explicit staffing table overrides the packaged one."""
        table = StaffingTable.from_dict(
            {
                "admin_position": "Chief",
                "deputy_admin_position": "Deputy",
                "departments": {
                    "1": {"name": "Ops", "head_position": "Head of Ops", "positions": ["Head of Ops", "Operator"]},
                },
            }
        )
        validate_role_department_position(Role.MEMBER, 1, "operator", table=table)
        validate_role_department_position(Role.ADMIN, 1, "Chief", table=table)
        with pytest.raises(ValidationError):
            validate_role_department_position(Role.MEMBER, 2, "Operator", table=table)
