from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Enumerates every role recognised by the platform.

    ``rental`` members run the lending desk for the items they are
    responsible for; ``admin`` can do everything a rental member can plus
    reserve capacity with administrative blocks.
    """

    user = "user"
    rental = "rental"
    admin = "admin"


TEAM_ROLES = frozenset({Role.rental.value, Role.admin.value})


@dataclass(frozen=True)
class Actor:
    """Whoever is calling a booking operation."""

    id: str
    role: str = Role.user.value

    @property
    def is_team_member(self) -> bool:
        return self.role in TEAM_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin.value


def to_role_str(value: "str | Role | None") -> Optional[str]:
    """Return the *string* value of a Role or raw str."""
    if value is None:
        return None
    if isinstance(value, Role):
        return value.value
    return str(value)
