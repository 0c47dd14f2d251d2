"""
Прямые брони у владельца транспорта.

pending -> confirmed -> in_progress -> completed
pending -> cancelled
"""
from datetime import datetime
from typing import Optional, Dict, Any, List

from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.base import async_session_factory
from database.models.booking import (
    Booking, BookingStatus, BookingPaymentMethod
)
from database.models.user import UserRole
from database.models.vehicle import VehicleKind
from services.access import Caller
from services.availability_service import AvailabilityService
from services.exceptions import (
    ConflictError, ForbiddenError, NotFoundError, ValidationError, InvalidStateError
)
from services.pricing_service import RentalWindow, compute_price, to_utc
from services.transitions import transition, utcnow
from services.vehicle_service import VehicleService


SORTABLE_FIELDS = {
    "createdAt": Booking.created_at,
    "startAt": Booking.start_at,
    "totalPrice": Booking.total_price,
    "status": Booking.status,
}

GUARD_MESSAGE = "Booking cannot be {action}. Current status: {{current}}. Booking must be {{required}}."


def _parse_payment_method(value) -> BookingPaymentMethod:
    if value is None or value == "":
        return BookingPaymentMethod.OFFLINE
    if isinstance(value, BookingPaymentMethod):
        return value
    try:
        return BookingPaymentMethod(value)
    except ValueError:
        raise ValidationError('paymentMethod must be either "online" or "offline"', field="paymentMethod")


def _parse_km(value, field: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        km = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if km < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return km


class BookingService:
    """Сервис прямых броней (подтверждает владелец)"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session_factory

    async def _get(self, session: AsyncSession, booking_id: int) -> Booking:
        booking = await session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    @staticmethod
    def _is_participant(booking: Booking, caller: Caller) -> bool:
        return caller.is_admin or caller.user_id in (booking.renter_id, booking.owner_id)

    async def create_booking(
        self,
        caller: Caller,
        vehicle_id: int,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        expected_km: Optional[float] = None,
        driver_required: bool = False,
        pickup_location: Optional[str] = None,
        destination: Optional[str] = None,
        payment_method: Optional[str] = None
    ) -> Booking:
        """
        Создать бронь в статусе pending.

        Стоимость считается один раз и дальше не пересчитывается.

        Raises:
            NotFoundError: Транспорт не найден, снят с публикации или удалён
            InvalidStateError: Транспорт не сдаётся в аренду
            ValidationError: Некорректный период или пробег
            ConflictError: Транспорт уже занят на это время
        """
        if vehicle_id is None:
            raise ValidationError("Valid vehicle ID is required", field="vehicleId")

        method = _parse_payment_method(payment_method)
        window = RentalWindow(
            start_at=start_at,
            end_at=end_at,
            expected_km=_parse_km(expected_km, "expectedKm"),
        )
        if (window.start_at is None) != (window.end_at is None):
            raise ValidationError("startAt and endAt must be provided together", field="startAt")

        async with self.session_factory() as session:
            vehicle = await VehicleService.get_vehicle(session, vehicle_id)
            if not vehicle.is_published:
                raise NotFoundError("Vehicle not found")
            if vehicle.vehicle_kind != VehicleKind.RENT:
                raise InvalidStateError("This vehicle is not available for rent", field="vehicleId")

            price = compute_price(vehicle, window, bool(driver_required))

            if window.has_interval:
                window.validate_interval()
                if await AvailabilityService.has_conflict(
                    session, vehicle.id, window.start_at, window.end_at
                ):
                    logger.warning(
                        f"⛔ Vehicle {vehicle.id} busy for {window.start_at} - {window.end_at}"
                    )
                    raise ConflictError("Vehicle not available for selected time")

            booking = Booking(
                vehicle_id=vehicle.id,
                renter_id=caller.user_id,
                owner_id=vehicle.owner_id,
                start_at=window.start_at,
                end_at=window.end_at,
                expected_km=window.expected_km,
                pickup_location=pickup_location,
                destination=destination,
                driver_required=bool(driver_required),
                vehicle_price=price.vehicle_price,
                driver_price=price.driver_price,
                total_price=price.total_price,
                currency=price.currency,
                payment_method=method,
                status=BookingStatus.PENDING,
            )
            session.add(booking)
            await session.commit()
            await session.refresh(booking)

        logger.info(
            f"✅ Booking created: id={booking.id}, vehicle={booking.vehicle_id}, "
            f"renter={booking.renter_id}, total={booking.total_price}"
        )
        return booking

    async def accept_booking(
        self,
        caller: Caller,
        booking_id: int,
        driver_name: Optional[str] = None,
        driver_phone: Optional[str] = None,
        driver_license: Optional[str] = None
    ) -> Booking:
        """Владелец подтверждает бронь и при необходимости назначает водителя"""
        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if booking.owner_id != caller.user_id:
                raise ForbiddenError("Not authorized to accept this booking")

            values: Dict[str, Any] = {
                "status": BookingStatus.CONFIRMED,
                "owner_accepted": True,
                "owner_accepted_at": utcnow(),
            }
            if booking.driver_required and driver_name:
                values.update(
                    driver_assigned=True,
                    driver_name=driver_name,
                    driver_phone=driver_phone,
                    driver_license=driver_license,
                )

            await transition(
                session, Booking, "status", booking_id, BookingStatus.PENDING, values,
                GUARD_MESSAGE.format(action="accepted"),
            )
            await session.commit()
            await session.refresh(booking)

        logger.info(f"✅ Booking {booking_id} accepted by owner {caller.user_id}")
        return booking

    async def decline_booking(self, caller: Caller, booking_id: int) -> Booking:
        """Владелец отклоняет бронь"""
        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if booking.owner_id != caller.user_id:
                raise ForbiddenError("Not authorized to decline this booking")

            await transition(
                session, Booking, "status", booking_id, BookingStatus.PENDING,
                {"status": BookingStatus.CANCELLED},
                GUARD_MESSAGE.format(action="declined"),
            )
            await session.commit()
            await session.refresh(booking)

        logger.info(f"❌ Booking {booking_id} declined by owner {caller.user_id}")
        return booking

    async def start_trip(self, caller: Caller, booking_id: int) -> Booking:
        """Начать поездку по подтверждённой брони"""
        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if not self._is_participant(booking, caller):
                raise ForbiddenError("Not authorized to manage this trip")

            await transition(
                session, Booking, "status", booking_id, BookingStatus.CONFIRMED,
                {"status": BookingStatus.IN_PROGRESS, "trip_started_at": utcnow()},
                GUARD_MESSAGE.format(action="started"),
            )
            await session.commit()
            await session.refresh(booking)

        logger.info(f"🚗 Trip started for booking {booking_id}")
        return booking

    async def complete_trip(
        self,
        caller: Caller,
        booking_id: int,
        actual_km: Optional[float] = None
    ) -> Booking:
        """
        Завершить поездку.
        Фактический пробег только записывается, стоимость не пересчитывается.
        """
        km = _parse_km(actual_km, "actualKm")

        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if not self._is_participant(booking, caller):
                raise ForbiddenError("Not authorized to manage this trip")

            await transition(
                session, Booking, "status", booking_id, BookingStatus.IN_PROGRESS,
                {
                    "status": BookingStatus.COMPLETED,
                    "trip_completed_at": utcnow(),
                    "actual_km": km,
                },
                GUARD_MESSAGE.format(action="completed"),
            )
            await session.commit()
            await session.refresh(booking)

        logger.info(f"🏁 Trip completed for booking {booking_id} (actual km: {km})")
        return booking

    async def get_booking(self, caller: Caller, booking_id: int) -> Booking:
        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if not self._is_participant(booking, caller):
                raise ForbiddenError("Not authorized to view this booking")
            return booking

    async def list_renter_bookings(self, caller: Caller) -> List[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.renter_id == caller.user_id)
                .order_by(Booking.created_at.desc(), Booking.id.desc())
            )
            return list(result.scalars().all())

    async def list_owner_bookings(self, caller: Caller) -> List[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.owner_id == caller.user_id)
                .order_by(Booking.created_at.desc(), Booking.id.desc())
            )
            return list(result.scalars().all())

    async def list_bookings(
        self,
        caller: Caller,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc"
    ) -> Dict[str, Any]:
        """
        Список броней с пагинацией и фильтрами.

        Владелец (client) видит брони своего транспорта, остальные свои аренды.
        Фильтр по датам применяется к дате создания брони.
        """
        page = max(int(page), 1)
        limit = max(int(limit), 1)

        if caller.role == UserRole.CLIENT:
            conditions = [Booking.owner_id == caller.user_id]
        else:
            conditions = [Booking.renter_id == caller.user_id]

        if status:
            try:
                conditions.append(Booking.status == BookingStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown booking status: {status}", field="status")
        if start_date:
            conditions.append(Booking.created_at >= to_utc(start_date))
        if end_date:
            conditions.append(Booking.created_at <= to_utc(end_date))

        sort_column = SORTABLE_FIELDS.get(sort_by)
        if sort_column is None:
            raise ValidationError(f"Cannot sort by {sort_by}", field="sortBy")
        order = sort_column.desc() if sort_order == "desc" else sort_column.asc()

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(Booking).where(*conditions)
            )
            result = await session.execute(
                select(Booking)
                .where(*conditions)
                .order_by(order, Booking.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            bookings = list(result.scalars().all())

        total_pages = -(-total // limit)
        return {
            "bookings": bookings,
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalBookings": total,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
            },
        }
