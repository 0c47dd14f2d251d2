"""
Кто выполняет операцию.
Токены выдаёт внешний сервис авторизации, сюда приходят уже проверенные id и роль.
"""
from dataclasses import dataclass
from typing import Optional

from config.settings import settings
from database.models.user import UserRole
from services.exceptions import ForbiddenError, ValidationError


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: UserRole = UserRole.USER

    @classmethod
    def from_raw(cls, user_id, role: Optional[str] = None) -> "Caller":
        try:
            parsed_id = int(user_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid user id", field="userId")
        try:
            parsed_role = UserRole(role) if role else UserRole.USER
        except ValueError:
            raise ValidationError(f"Unknown role: {role}", field="role")
        return cls(user_id=parsed_id, role=parsed_role)

    @property
    def is_admin(self) -> bool:
        # ADMIN_IDS из окружения тоже дают права администратора
        return self.role == UserRole.ADMIN or self.user_id in settings.admin_ids


def require_admin(caller: Caller) -> None:
    if not caller.is_admin:
        raise ForbiddenError("Forbidden: admin role required")
