"""
Ошибки доменного слоя бронирований.
API-слой превращает их в HTTP-ответы (см. api/middlewares.py).
"""
from typing import Optional


class BookingError(Exception):
    """Базовая ошибка бронирования"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Некорректные или отсутствующие входные данные"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """Пересечение брони или неподходящий текущий статус"""

    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        required_status: Optional[str] = None
    ):
        super().__init__(message)
        self.current_status = current_status
        self.required_status = required_status


class ForbiddenError(BookingError):
    """Нет прав на операцию. Сообщение не раскрывает состояние брони"""

    status_code = 403


class DependencyError(BookingError):
    """Сбой внешнего сервиса (push, хранилище файлов)"""

    status_code = 502


class InternalError(BookingError):
    status_code = 500


class InvalidStateError(ValidationError):
    """Транспорт не подходит для операции (не сдаётся в аренду и т.п.)"""
