# src/taskhub/core/identity.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .errors import InvalidValue


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

    @classmethod
    def parse(cls, raw: str | None) -> Role:
        value = (raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            raise InvalidValue(
                f"Invalid role {raw!r}. Must be: admin, manager, or employee", field="role"
            ) from None

    @property
    def is_privileged(self) -> bool:
        return self in (Role.ADMIN, Role.MANAGER)


@dataclass(slots=True, frozen=True)
class Actor:
    """The user on whose behalf a core operation runs."""

    id: str
    role: Role
    name: str
