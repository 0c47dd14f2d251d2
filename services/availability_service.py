from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models.booking import Booking, ACTIVE_BOOKING_STATUSES
from services.pricing_service import to_utc


class AvailabilityService:
    """Проверка пересечения прямых броней одного транспорта"""

    @staticmethod
    async def find_conflict(
        session: AsyncSession,
        vehicle_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[int] = None
    ) -> Optional[Booking]:
        """
        Найти активную бронь, пересекающуюся с [start_at, end_at).

        Полуинтервалы [s1, e1) и [s2, e2) пересекаются, если s1 < e2 и s2 < e1.
        Смежные интервалы (конец одного равен началу другого) не конфликтуют.
        Брони без дат (per_km, fixed) ни с чем не пересекаются.
        """
        start_at = to_utc(start_at)
        end_at = to_utc(end_at)

        query = (
            select(Booking)
            .where(Booking.vehicle_id == vehicle_id)
            .where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .where(Booking.start_at < end_at)
            .where(Booking.end_at > start_at)
            .limit(1)
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)

        result = await session.execute(query)
        return result.scalars().first()

    @classmethod
    async def has_conflict(
        cls,
        session: AsyncSession,
        vehicle_id: int,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[int] = None
    ) -> bool:
        conflict = await cls.find_conflict(session, vehicle_id, start_at, end_at, exclude_booking_id)
        return conflict is not None
