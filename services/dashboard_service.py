"""
Сводка для админ-панели по обеим моделям броней.

Только чтение: сервис ничего не меняет ни в Booking, ни в BookingFlow.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List

from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from config.settings import settings
from database.base import async_session_factory
from database.models.booking import Booking, BookingStatus
from database.models.booking_flow import BookingFlow, BookingFlowStatus, FlowPaymentStatus
from database.models.user import User
from database.models.vehicle import Vehicle, VehicleKind
from services.pricing_service import PriceBreakdown, to_decimal, to_utc
from services.transitions import utcnow


# Активная аренда в терминах обеих моделей
ACTIVE_BOOKING = (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)
ACTIVE_FLOW = (BookingFlowStatus.APPROVED, BookingFlowStatus.ONGOING)

STATUS_COLORS = {
    "pending": "#FFA500",
    "approved": "#4CAF50",
    "rejected": "#F44336",
    "ongoing": "#2196F3",
    "completed": "#28A745",
    "cancelled": "#DC3545",
    "confirmed": "#4CAF50",
    "in_progress": "#2196F3",
}
DEFAULT_STATUS_COLOR = "#6C757D"

LATEST_LIMIT = 3
# Сколько последних записей брать из каждой модели перед слиянием
LATEST_FETCH = 5

EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def format_amount(amount, currency: str = None) -> str:
    """₹12,500 без копеек"""
    value = to_decimal(amount).quantize(Decimal("1"), ROUND_HALF_UP)
    return f"{currency or settings.currency_symbol}{value:,}"


def format_date(value: Optional[datetime]) -> Optional[str]:
    """Oct 5, 2026 • 3:07 PM"""
    if value is None:
        return None
    hour = value.hour % 12 or 12
    return f"{value:%b} {value.day}, {value.year} • {hour}:{value:%M} {value:%p}"


def _count_trend(change: int, period: str) -> Dict[str, str]:
    return {
        "trend": f"+{change} {period}" if change > 0 else f"{change} {period}",
        "trendType": "positive" if change >= 0 else "negative",
    }


def _percent_change(current, previous, digits: int) -> Decimal:
    if not previous:
        return Decimal("0")
    change = (to_decimal(current) - to_decimal(previous)) / to_decimal(previous) * 100
    return change.quantize(Decimal(1).scaleb(-digits), ROUND_HALF_UP)


class DashboardService:
    """KPI и последние брони для админ-панели"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session_factory

    @staticmethod
    async def _count(session: AsyncSession, model, *conditions) -> int:
        return await session.scalar(select(func.count()).select_from(model).where(*conditions)) or 0

    async def _vehicle_counts(self, session, start_of_month, start_of_last_month, *extra):
        base = (Vehicle.is_deleted.is_(False), Vehicle.is_published.is_(True), *extra)
        total = await self._count(session, Vehicle, *base)
        this_month = await self._count(session, Vehicle, *base, Vehicle.created_at >= start_of_month)
        last_month = await self._count(
            session, Vehicle, *base,
            Vehicle.created_at >= start_of_last_month, Vehicle.created_at < start_of_month
        )
        return total, this_month - last_month

    async def _active_rentals(self, session, since=None, until=None) -> int:
        booking_conditions = [Booking.status.in_(ACTIVE_BOOKING)]
        flow_conditions = [BookingFlow.booking_status.in_(ACTIVE_FLOW)]
        if since is not None:
            booking_conditions.append(Booking.created_at >= since)
            flow_conditions.append(BookingFlow.created_at >= since)
        if until is not None:
            booking_conditions.append(Booking.created_at < until)
            flow_conditions.append(BookingFlow.created_at < until)
        return (
            await self._count(session, Booking, *booking_conditions)
            + await self._count(session, BookingFlow, *flow_conditions)
        )

    async def _revenue(self, session, since, until=None) -> Decimal:
        """
        Выручка = завершённые Booking (total_price)
        + завершённые и оплаченные BookingFlow (сумма из price_breakdown).
        """
        booking_conditions = [
            Booking.status == BookingStatus.COMPLETED,
            Booking.created_at >= since,
            Booking.total_price.is_not(None),
        ]
        flow_conditions = [
            BookingFlow.booking_status == BookingFlowStatus.COMPLETED,
            BookingFlow.payment_status == FlowPaymentStatus.PAID,
            BookingFlow.created_at >= since,
        ]
        if until is not None:
            booking_conditions.append(Booking.created_at < until)
            flow_conditions.append(BookingFlow.created_at < until)

        booking_total = await session.scalar(
            select(func.coalesce(func.sum(Booking.total_price), 0)).where(*booking_conditions)
        )

        result = await session.execute(select(BookingFlow.price_breakdown).where(*flow_conditions))
        flow_total = Decimal("0")
        for payload in result.scalars().all():
            breakdown = PriceBreakdown.from_payload(payload)
            if breakdown is not None:
                flow_total += breakdown.amount

        return to_decimal(booking_total) + flow_total

    async def get_dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Собрать KPI-карточки и три последние брони.

        Args:
            now: Момент, от которого считаются месяц и неделя (по умолчанию текущее время UTC)
        """
        now = to_utc(now) or utcnow()
        start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        start_of_last_month = (start_of_month - timedelta(days=1)).replace(day=1)
        start_of_week = now - timedelta(days=7)
        start_of_last_week = start_of_week - timedelta(days=7)

        async with self.session_factory() as session:
            total_vehicles, vehicles_change = await self._vehicle_counts(
                session, start_of_month, start_of_last_month
            )
            total_sales, sales_change = await self._vehicle_counts(
                session, start_of_month, start_of_last_month,
                Vehicle.vehicle_kind == VehicleKind.SELL
            )

            active_rentals = await self._active_rentals(session)
            active_this_week = await self._active_rentals(session, since=start_of_week)
            active_last_week = await self._active_rentals(
                session, since=start_of_last_week, until=start_of_week
            )
            active_change = _percent_change(active_this_week, active_last_week, 0)

            pending_bookings = (
                await self._count(session, Booking, Booking.status == BookingStatus.PENDING)
                + await self._count(
                    session, BookingFlow, BookingFlow.booking_status == BookingFlowStatus.PENDING
                )
            )

            total_users = await self._count(session, User)
            users_this_month = await self._count(session, User, User.created_at >= start_of_month)
            users_last_month = await self._count(
                session, User,
                User.created_at >= start_of_last_month, User.created_at < start_of_month
            )

            revenue = await self._revenue(session, start_of_month)
            previous_revenue = await self._revenue(session, start_of_last_month, start_of_month)
            revenue_change = _percent_change(revenue, previous_revenue, 1)

            latest = await self._latest_bookings(session)

        kpi_cards = {
            "totalVehicles": {
                "value": total_vehicles,
                "label": "Total Vehicles",
                **_count_trend(vehicles_change, "this month"),
            },
            "activeRentals": {
                "value": active_rentals,
                "label": "Active Rentals",
                "trend": (
                    f"+{active_change}% vs last week" if active_change > 0
                    else f"{active_change}% vs last week"
                ),
                "trendType": "positive" if active_change >= 0 else "negative",
            },
            "totalSales": {
                "value": total_sales,
                "label": "Total Sales",
                **_count_trend(sales_change, "this month"),
            },
            "totalUsers": {
                "value": total_users,
                "label": "Total Users",
                **_count_trend(users_this_month - users_last_month, "this month"),
            },
            "pendingBookings": {
                "value": pending_bookings,
                "label": "Pending Bookings",
                "alert": "Needs attention" if pending_bookings > 0 else None,
                "trendType": "negative" if pending_bookings > 0 else "positive",
            },
            "monthlyRevenue": {
                "value": revenue,
                "formattedValue": format_amount(revenue),
                "label": "Monthly Revenue",
                "trend": (
                    f"+{revenue_change}% from last month" if revenue_change > 0
                    else f"{revenue_change}% from last month"
                ),
                "trendType": "positive" if revenue_change >= 0 else "negative",
            },
        }

        logger.debug(
            f"📊 Dashboard: vehicles={total_vehicles}, active={active_rentals}, "
            f"pending={pending_bookings}, revenue={revenue}"
        )
        return {"kpiCards": kpi_cards, "latestBookings": latest}

    async def _latest_bookings(self, session: AsyncSession) -> List[Dict[str, Any]]:
        bookings = await session.execute(
            select(Booking)
            .options(
                selectinload(Booking.renter),
                selectinload(Booking.owner),
                selectinload(Booking.vehicle),
            )
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(LATEST_FETCH)
        )
        flows = await session.execute(
            select(BookingFlow)
            .options(selectinload(BookingFlow.user), selectinload(BookingFlow.vehicle))
            .order_by(BookingFlow.created_at.desc(), BookingFlow.id.desc())
            .limit(LATEST_FETCH)
        )

        merged = [self._booking_row(b) for b in bookings.scalars().all()]
        merged += [self._flow_row(f) for f in flows.scalars().all()]
        merged.sort(key=lambda row: to_utc(row["createdAt"]) or EPOCH, reverse=True)
        return merged[:LATEST_LIMIT]

    @staticmethod
    def _person(user: Optional[User]) -> Dict[str, Any]:
        name = user.full_name if user and user.full_name else "Unknown"
        return {
            "id": user.id if user else None,
            "name": name,
            "initials": "".join(part[0] for part in name.split()).upper(),
            "email": user.email if user else None,
            "phone": user.phone if user else None,
        }

    @staticmethod
    def _vehicle(vehicle: Optional[Vehicle]) -> Dict[str, Any]:
        if vehicle is None:
            return {"id": None, "name": "Unknown Vehicle", "title": None}
        return {
            "id": vehicle.id,
            "name": f"{vehicle.title} {vehicle.year or ''}".strip(),
            "title": vehicle.title,
            "year": vehicle.year,
            "category": vehicle.category.value if vehicle.category else None,
            "vehicleKind": vehicle.vehicle_kind.value,
            "price": vehicle.base_price,
        }

    def _booking_row(self, booking: Booking) -> Dict[str, Any]:
        status = booking.status.value
        owner = booking.owner
        history = {}
        if booking.owner_accepted_at:
            history["ownerAcceptedAt"] = booking.owner_accepted_at
        if booking.trip_started_at:
            history["tripStartedAt"] = booking.trip_started_at
        if booking.trip_completed_at:
            history["tripCompletedAt"] = booking.trip_completed_at
        history["createdAt"] = booking.created_at
        history["updatedAt"] = booking.updated_at or booking.created_at

        amount = to_decimal(booking.total_price)
        return {
            "id": booking.id,
            "source": "booking",
            "renter": self._person(booking.renter),
            "owner": {
                "id": owner.id,
                "name": owner.full_name,
                "email": owner.email,
                "phone": owner.phone,
                "businessName": owner.business_name,
            } if owner else None,
            "vehicle": self._vehicle(booking.vehicle),
            "startDate": booking.start_at,
            "endDate": booking.end_at,
            "date": format_date(booking.start_at or booking.created_at),
            "amount": format_amount(amount, booking.currency),
            "amountValue": amount,
            "priceDetails": {
                "vehiclePrice": booking.vehicle_price,
                "driverPrice": booking.driver_price,
                "totalPrice": booking.total_price,
            },
            "status": status,
            "statusColor": status_color(status),
            "paymentStatus": booking.payment_status.value,
            "paymentMethod": booking.payment_method.value,
            "documents": [],
            "statusHistory": history,
            "driverIncluded": booking.driver_required,
            "driverInfo": {
                "driverAssigned": booking.driver_assigned,
                "driverName": booking.driver_name,
                "driverPhone": booking.driver_phone,
                "driverLicense": booking.driver_license,
            },
            "tripDetails": {
                "pickupLocation": booking.pickup_location,
                "destination": booking.destination,
                "expectedKm": booking.expected_km,
                "actualKm": booking.actual_km,
                "tripStarted": booking.trip_started,
                "tripCompleted": booking.trip_completed,
            },
            "description": None,
            "adminNotes": None,
            "createdAt": booking.created_at,
            "updatedAt": booking.updated_at or booking.created_at,
        }

    def _flow_row(self, flow: BookingFlow) -> Dict[str, Any]:
        status = flow.booking_status.value
        history = {}
        for key, value in (
            ("approvedAt", flow.approved_at),
            ("rejectedAt", flow.rejected_at),
            ("startedAt", flow.started_at),
            ("completedAt", flow.completed_at),
            ("paidAt", flow.paid_at),
        ):
            if value:
                history[key] = value
        history["createdAt"] = flow.created_at
        history["updatedAt"] = flow.updated_at or flow.created_at

        breakdown = PriceBreakdown.from_payload(flow.price_breakdown)
        amount = breakdown.amount if breakdown else Decimal("0")
        return {
            "id": flow.id,
            "source": "bookingFlow",
            "renter": self._person(flow.user),
            "owner": None,
            "vehicle": self._vehicle(flow.vehicle),
            "startDate": flow.start_date,
            "endDate": flow.end_date,
            "date": format_date(flow.start_date or flow.created_at),
            "amount": format_amount(amount, breakdown.currency if breakdown else None),
            "amountValue": amount,
            "priceDetails": flow.price_breakdown,
            "status": status,
            "statusColor": status_color(status),
            "paymentStatus": flow.payment_status.value,
            "paymentMethod": flow.payment_method.value,
            "documents": list(flow.document_images or []),
            "statusHistory": history,
            "driverIncluded": flow.driver_included,
            "driverInfo": None,
            "tripDetails": None,
            "description": flow.description,
            "adminNotes": flow.admin_notes,
            "createdAt": flow.created_at,
            "updatedAt": flow.updated_at or flow.created_at,
        }
