"""Visibility filters for list operations."""
from dataclasses import dataclass
from typing import Optional

ALL = "all"
DEPARTMENT = "department"
PARTICIPANT = "participant"


@dataclass(frozen=True)
class ListScope:
    """
    Which rows of a list an actor may see.

    Exactly one of three shapes:

    - ``ListScope.everything()``: no restriction (super roles)
    - ``ListScope.department(id)``: rows belonging to one department
    - ``ListScope.participant(user_id)``: rows the user curates or is
      assigned to

    :mod:`taskflow_core.crud` turns a scope into a query filter.
    """

    kind: str
    department_id: Optional[int] = None
    user_id: Optional[int] = None

    @classmethod
    def everything(cls) -> "ListScope":
        return cls(ALL)

    @classmethod
    def department(cls, department_id: int) -> "ListScope":
        return cls(DEPARTMENT, department_id=department_id)

    @classmethod
    def participant(cls, user_id: int) -> "ListScope":
        return cls(PARTICIPANT, user_id=user_id)

    @property
    def is_unrestricted(self) -> bool:
        return self.kind == ALL

