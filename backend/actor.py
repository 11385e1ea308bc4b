"""
Acting identity for a request.

Built from the bearer token claims and passed explicitly into every
service call.
"""

from dataclasses import dataclass
from typing import Optional

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_OFFICER = "officer"

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_OFFICER)
SUPERVISOR_ROLES = (ROLE_ADMIN, ROLE_MANAGER)


@dataclass(frozen=True)
class Actor:
    officer_id: int
    role: str
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES

    def __str__(self):
        return f"{self.role}:{self.officer_id}"
