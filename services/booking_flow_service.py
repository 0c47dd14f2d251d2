"""
Брони с проверкой документов администратором.

pending -> approved -> ongoing -> completed
pending -> rejected

Все переходы выполняет только администратор. После каждого перехода
владелец брони получает уведомление (доставка в фоне, ошибки не откатывают бронь).
"""
import re
from datetime import datetime
from typing import Optional, List, Dict, Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings
from database.base import async_session_factory
from database.models.booking_flow import (
    BookingFlow, BookingFlowStatus, FlowPaymentMethod, FlowPaymentStatus
)
from database.models.vehicle import Vehicle, VehicleKind, RentType
from services.access import Caller, require_admin
from services.events import BookingEvent
from services.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.pricing_service import RentalWindow, compute_price
from services.transitions import transition, utcnow
from services.vehicle_service import VehicleService


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

GUARD_MESSAGE = "Booking cannot be {action}. Current status: {{current}}. Booking must be {{required}} first."

DEFAULT_REJECTION_REASON = "Please contact support for more details."

# Тарифы, для которых без дат цену не посчитать
INTERVAL_RENT_TYPES = (RentType.HOURLY, RentType.DAILY)


def _parse_payment_method(value) -> FlowPaymentMethod:
    if isinstance(value, FlowPaymentMethod):
        return value
    try:
        return FlowPaymentMethod(value)
    except ValueError:
        raise ValidationError(
            'paymentMethod must be either "online" or "pay_to_driver"', field="paymentMethod"
        )


class BookingFlowService:
    """Сервис броней с одобрением администратором"""

    def __init__(self, session_factory: async_sessionmaker = None, dispatcher=None):
        self.session_factory = session_factory or async_session_factory
        self.dispatcher = dispatcher

    async def _get(self, session: AsyncSession, booking_id: int) -> BookingFlow:
        booking = await session.get(BookingFlow, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    async def _vehicle_title(self, session: AsyncSession, vehicle_id: int) -> str:
        vehicle = await session.get(Vehicle, vehicle_id)
        return vehicle.title if vehicle else "your vehicle"

    async def _emit(self, event: BookingEvent) -> None:
        """Уведомление после коммита. Любая ошибка только логируется"""
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.publish(event)
        except Exception as e:
            logger.error(f"❌ Notification for booking {event.booking_flow_id} dropped: {e}")

    @staticmethod
    def _event_data(booking: BookingFlow, vehicle_title: str) -> Dict[str, Any]:
        return {
            "bookingId": str(booking.id),
            "vehicleTitle": vehicle_title,
            "bookingStatus": booking.booking_status.value,
            "paymentStatus": booking.payment_status.value,
        }

    @staticmethod
    def _price_for(vehicle: Vehicle, window: RentalWindow, driver_included: bool) -> Optional[Dict[str, Any]]:
        """Цена, если тариф позволяет её посчитать по переданным данным"""
        needs_interval = (
            vehicle.vehicle_kind == VehicleKind.RENT
            and vehicle.rent_type in INTERVAL_RENT_TYPES
        )
        if needs_interval and not window.has_interval:
            return None
        return compute_price(vehicle, window, driver_included).to_dict()

    async def create_booking(
        self,
        caller: Caller,
        phone: str,
        email: str,
        vehicle_id: int,
        payment_method: str,
        description: Optional[str] = None,
        document_images: Optional[List[str]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        expected_km: Optional[float] = None,
        driver_included: bool = False
    ) -> BookingFlow:
        """
        Создать бронь на проверку администратором.

        Args:
            caller: Пользователь, создающий бронь
            phone, email: Контакты
            vehicle_id: Любой транспорт (аренда, продажа, услуга)
            payment_method: online или pay_to_driver
            document_images: URL фото документов (до 5 штук), порядок сохраняется

        Raises:
            ValidationError: Не хватает полей, неверный email, больше 5 документов
            NotFoundError: Транспорт не найден
        """
        required = {"phone": phone, "email": email, "vehicleId": vehicle_id, "paymentMethod": payment_method}
        missing = [name for name, value in required.items() if value in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

        method = _parse_payment_method(payment_method)

        email = str(email).strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Invalid email format", field="email")

        images = list(document_images or [])
        if len(images) > settings.max_document_images:
            raise ValidationError(
                f"Maximum {settings.max_document_images} document images allowed", field="documents"
            )

        if expected_km is not None and float(expected_km) < 0:
            raise ValidationError("expectedKm must not be negative", field="expectedKm")
        window = RentalWindow(start_at=start_date, end_at=end_date, expected_km=expected_km)
        if (window.start_at is None) != (window.end_at is None):
            raise ValidationError("startDate and endDate must be provided together", field="startDate")
        if window.has_interval:
            window.validate_interval()

        async with self.session_factory() as session:
            vehicle = await VehicleService.get_vehicle(session, vehicle_id)
            price = self._price_for(vehicle, window, bool(driver_included))

            booking = BookingFlow(
                user_id=caller.user_id,
                vehicle_id=vehicle.id,
                phone=str(phone).strip(),
                email=email,
                description=description.strip() if isinstance(description, str) else None,
                start_date=window.start_at,
                end_date=window.end_at,
                expected_km=window.expected_km,
                driver_included=bool(driver_included),
                price_breakdown=price,
                payment_method=method,
                booking_status=BookingFlowStatus.PENDING,
                payment_status=FlowPaymentStatus.UNPAID,
                document_images=images,
            )
            session.add(booking)
            await session.commit()
            await session.refresh(booking)
            vehicle_title = vehicle.title

        logger.info(
            f"📝 BookingFlow created: id={booking.id}, user={caller.user_id}, "
            f"vehicle={vehicle_id}, documents={len(images)}"
        )

        await self._emit(BookingEvent(
            user_id=caller.user_id,
            type="booking_created",
            title="Booking Created",
            body=f"Your booking for {vehicle_title} has been submitted and is waiting for admin approval.",
            data=self._event_data(booking, vehicle_title),
            booking_flow_id=booking.id,
        ))
        return booking

    async def _admin_transition(
        self,
        caller: Caller,
        booking_id: int,
        required: BookingFlowStatus,
        values: Dict[str, Any],
        action: str,
        admin_notes: Optional[str] = None
    ):
        require_admin(caller)

        if admin_notes:
            values["admin_notes"] = admin_notes

        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            await transition(
                session, BookingFlow, "booking_status", booking_id, required, values,
                GUARD_MESSAGE.format(action=action),
            )
            await session.commit()
            await session.refresh(booking)
            vehicle_title = await self._vehicle_title(session, booking.vehicle_id)

        logger.info(
            f"✅ BookingFlow {booking_id} {action} by admin {caller.user_id} "
            f"-> {booking.booking_status.value}"
        )
        return booking, vehicle_title

    async def approve_booking(self, caller: Caller, booking_id: int, admin_notes: Optional[str] = None) -> BookingFlow:
        booking, vehicle_title = await self._admin_transition(
            caller, booking_id, BookingFlowStatus.PENDING,
            {"booking_status": BookingFlowStatus.APPROVED, "approved_at": utcnow()},
            "approved", admin_notes,
        )
        await self._emit(BookingEvent(
            user_id=booking.user_id,
            type="booking_approved",
            title="Booking Approved",
            body=f"Your booking for {vehicle_title} has been approved.",
            data=self._event_data(booking, vehicle_title),
            booking_flow_id=booking.id,
        ))
        return booking

    async def reject_booking(self, caller: Caller, booking_id: int, admin_notes: Optional[str] = None) -> BookingFlow:
        booking, vehicle_title = await self._admin_transition(
            caller, booking_id, BookingFlowStatus.PENDING,
            {"booking_status": BookingFlowStatus.REJECTED, "rejected_at": utcnow()},
            "rejected", admin_notes,
        )
        reason = booking.admin_notes or DEFAULT_REJECTION_REASON
        await self._emit(BookingEvent(
            user_id=booking.user_id,
            type="booking_rejected",
            title="Booking Rejected",
            body=f"Your booking for {vehicle_title} has been rejected. Reason: {reason}",
            data={**self._event_data(booking, vehicle_title), "reason": reason},
            booking_flow_id=booking.id,
        ))
        return booking

    async def start_booking(self, caller: Caller, booking_id: int, admin_notes: Optional[str] = None) -> BookingFlow:
        booking, vehicle_title = await self._admin_transition(
            caller, booking_id, BookingFlowStatus.APPROVED,
            {"booking_status": BookingFlowStatus.ONGOING, "started_at": utcnow()},
            "started", admin_notes,
        )
        await self._emit(BookingEvent(
            user_id=booking.user_id,
            type="booking_started",
            title="Trip Started",
            body=f"Your trip with {vehicle_title} has started. Have a safe journey!",
            data=self._event_data(booking, vehicle_title),
            booking_flow_id=booking.id,
        ))
        return booking

    async def complete_booking(
        self,
        caller: Caller,
        booking_id: int,
        payment_confirmed: Optional[bool] = None,
        admin_notes: Optional[str] = None
    ) -> BookingFlow:
        """
        Завершить поездку и отметить оплату.

        Для online и pay_to_driver администратор одинаково подтверждает
        получение оплаты флагом payment_confirmed=True. Платёжный шлюз не проверяется.
        """
        require_admin(caller)

        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if booking.booking_status != BookingFlowStatus.ONGOING:
                required = BookingFlowStatus.ONGOING.value
                raise ConflictError(
                    GUARD_MESSAGE.format(action="completed").format(
                        current=booking.booking_status.value, required=required
                    ),
                    current_status=booking.booking_status.value,
                    required_status=required,
                )

        if payment_confirmed is not True:
            if booking.payment_method == FlowPaymentMethod.PAY_TO_DRIVER:
                message = "Payment confirmation required. Please confirm that payment was received from the driver."
            else:
                message = "Payment confirmation required for online payment method"
            raise ValidationError(message, field="paymentConfirmed")

        now = utcnow()
        booking, vehicle_title = await self._admin_transition(
            caller, booking_id, BookingFlowStatus.ONGOING,
            {
                "booking_status": BookingFlowStatus.COMPLETED,
                "completed_at": now,
                "payment_status": FlowPaymentStatus.PAID,
                "paid_at": now,
            },
            "completed", admin_notes,
        )
        await self._emit(BookingEvent(
            user_id=booking.user_id,
            type="booking_completed",
            title="Booking Completed",
            body=(
                f"Your trip with {vehicle_title} is completed. "
                f"Payment status: {booking.payment_status.value}."
            ),
            data=self._event_data(booking, vehicle_title),
            booking_flow_id=booking.id,
        ))
        return booking

    async def list_bookings(self, caller: Caller) -> List[BookingFlow]:
        """Администратор видит все брони, пользователь только свои"""
        query = select(BookingFlow).order_by(BookingFlow.created_at.desc(), BookingFlow.id.desc())
        if not caller.is_admin:
            query = query.where(BookingFlow.user_id == caller.user_id)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_booking(self, caller: Caller, booking_id: int) -> BookingFlow:
        async with self.session_factory() as session:
            booking = await self._get(session, booking_id)
            if not caller.is_admin and booking.user_id != caller.user_id:
                raise ForbiddenError("Not authorized to view this booking")
            return booking
