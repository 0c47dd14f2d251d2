"""
Атомарные переходы статусов.

Переход выполняется одним UPDATE ... WHERE id = :id AND status = :required.
Если ни одна строка не обновилась, значит статус уже другой
(или бронь параллельно изменил другой запрос) и переход отклоняется.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Dict, Type

from sqlalchemy import update, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.base import Base
from services.exceptions import ConflictError, NotFoundError


async def compare_and_set(
    session: AsyncSession,
    model: Type[Base],
    status_attr: str,
    entity_id: int,
    required: enum.Enum,
    values: Dict[str, Any]
) -> bool:
    """Обновить запись, только если её статус равен required"""
    status_column = getattr(model, status_attr)
    result = await session.execute(
        update(model)
        .where(model.id == entity_id)
        .where(status_column == required)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def current_status(
    session: AsyncSession,
    model: Type[Base],
    status_attr: str,
    entity_id: int
) -> enum.Enum:
    result = await session.execute(
        select(getattr(model, status_attr)).where(model.id == entity_id)
    )
    status = result.scalar_one_or_none()
    if status is None:
        raise NotFoundError("Booking not found")
    return status


async def transition(
    session: AsyncSession,
    model: Type[Base],
    status_attr: str,
    entity_id: int,
    required: enum.Enum,
    values: Dict[str, Any],
    conflict_message: str
) -> None:
    """
    Выполнить переход или поднять ConflictError.

    conflict_message может содержать {current} и {required}.
    """
    if await compare_and_set(session, model, status_attr, entity_id, required, values):
        return

    await session.rollback()
    current = await current_status(session, model, status_attr, entity_id)
    raise ConflictError(
        conflict_message.format(current=current.value, required=required.value),
        current_status=current.value,
        required_status=required.value,
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
