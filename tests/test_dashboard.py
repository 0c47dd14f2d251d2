from decimal import Decimal

import pytest

from database.models.booking import Booking, BookingStatus
from database.models.booking_flow import (
    BookingFlow, BookingFlowStatus, FlowPaymentMethod, FlowPaymentStatus
)
from database.models.vehicle import VehicleKind, RentType
from services.dashboard_service import DashboardService, format_amount, format_date
from services.pricing_service import PriceBreakdown
from tests.conftest import utc


NOW = utc(2026, 10, 15, 12, 0)


@pytest.fixture
async def catalog(make_vehicle):
    rental = await make_vehicle(title="Swift Dzire", year=2022, created_at=utc(2026, 10, 5))
    await make_vehicle(
        title="City", vehicle_kind=VehicleKind.SELL, rent_type=None,
        base_price=Decimal("650000"), created_at=utc(2026, 10, 10),
    )
    await make_vehicle(
        title="Verna", vehicle_kind=VehicleKind.SELL, rent_type=None,
        base_price=Decimal("700000"), created_at=utc(2026, 9, 10),
    )
    # Не попадают в статистику
    await make_vehicle(title="Old Auto", rent_type=RentType.FIXED, is_deleted=True, created_at=utc(2026, 10, 2))
    await make_vehicle(
        title="Hidden", vehicle_kind=VehicleKind.SELL, rent_type=None,
        is_published=False, created_at=utc(2026, 10, 3),
    )
    return rental


@pytest.fixture
async def bookings(session_factory, catalog, renter, owner):
    def booking(status, total, created_at, **extra):
        return Booking(
            vehicle_id=catalog.id,
            renter_id=renter.user_id,
            owner_id=owner.user_id,
            vehicle_price=Decimal(total),
            driver_price=Decimal("0"),
            total_price=Decimal(total),
            status=status,
            created_at=created_at,
            **extra
        )

    def flow(status, created_at, price=None, paid=False, **extra):
        return BookingFlow(
            user_id=renter.user_id,
            vehicle_id=catalog.id,
            phone="+919800000001",
            email="ravi@example.com",
            payment_method=FlowPaymentMethod.ONLINE,
            booking_status=status,
            payment_status=FlowPaymentStatus.PAID if paid else FlowPaymentStatus.UNPAID,
            price_breakdown=price,
            document_images=extra.pop("document_images", []),
            created_at=created_at,
            **extra
        )

    records = {
        "completed": booking(BookingStatus.COMPLETED, "1200", utc(2026, 10, 3)),
        "confirmed": booking(BookingStatus.CONFIRMED, "900", utc(2026, 10, 12)),
        "pending": booking(
            BookingStatus.PENDING, "400", utc(2026, 10, 14, 10),
            pickup_location="MG Road", expected_km=35,
        ),
        "completed_last_month": booking(BookingStatus.COMPLETED, "800", utc(2026, 9, 20)),
        "flow_paid": flow(BookingFlowStatus.COMPLETED, utc(2026, 10, 6), {"price": 300}, paid=True),
        "flow_ongoing": flow(
            BookingFlowStatus.ONGOING, utc(2026, 10, 5),
            PriceBreakdown.from_prices(999).to_dict(),
        ),
        "flow_approved": flow(BookingFlowStatus.APPROVED, utc(2026, 10, 13)),
        "flow_pending": flow(
            BookingFlowStatus.PENDING, utc(2026, 10, 14, 13),
            document_images=["/uploads/a.jpg", "/uploads/b.jpg"],
            description="Airport drop",
        ),
        "flow_paid_last_month": flow(
            BookingFlowStatus.COMPLETED, utc(2026, 9, 25),
            PriceBreakdown.from_prices(500).to_dict(), paid=True,
        ),
    }

    async with session_factory() as session:
        session.add_all(records.values())
        await session.commit()
    return records


@pytest.fixture
def service(session_factory):
    return DashboardService(session_factory)


async def test_kpi_cards(service, bookings, admin):
    cards = (await service.get_dashboard(now=NOW))["kpiCards"]

    assert cards["totalVehicles"]["value"] == 3
    assert cards["totalVehicles"]["trend"] == "+1 this month"

    assert cards["totalSales"]["value"] == 2
    assert cards["totalSales"]["trend"] == "0 this month"
    assert cards["totalSales"]["trendType"] == "positive"

    # confirmed + ongoing + approved
    assert cards["activeRentals"]["value"] == 3
    assert cards["activeRentals"]["trend"] == "+100% vs last week"

    assert cards["pendingBookings"]["value"] == 2
    assert cards["pendingBookings"]["alert"] == "Needs attention"
    assert cards["pendingBookings"]["trendType"] == "negative"

    # admin, owner, renter
    assert cards["totalUsers"]["value"] == 3


async def test_revenue_combines_both_models(service, bookings):
    revenue = (await service.get_dashboard(now=NOW))["kpiCards"]["monthlyRevenue"]

    # 1200 (booking) + 300 (legacy price key); unpaid ongoing flow is not counted
    assert revenue["value"] == Decimal("1500")
    assert revenue["formattedValue"] == "₹1,500"
    # прошлый месяц: 800 + 500
    assert revenue["trend"] == "+15.4% from last month"
    assert revenue["trendType"] == "positive"


async def test_latest_bookings_merge_both_models(service, bookings):
    latest = (await service.get_dashboard(now=NOW))["latestBookings"]

    assert [(row["source"], row["status"]) for row in latest] == [
        ("bookingFlow", "pending"),
        ("booking", "pending"),
        ("bookingFlow", "approved"),
    ]

    flow_row, booking_row, _ = latest
    assert flow_row["id"] == bookings["flow_pending"].id
    assert flow_row["documents"] == ["/uploads/a.jpg", "/uploads/b.jpg"]
    assert flow_row["statusColor"] == "#FFA500"
    assert flow_row["amount"] == "₹0"
    assert flow_row["date"] == "Oct 14, 2026 • 1:00 PM"
    assert flow_row["description"] == "Airport drop"
    assert flow_row["driverInfo"] is None
    assert flow_row["renter"]["name"] == "Ravi Renter"
    assert flow_row["renter"]["initials"] == "RR"

    assert booking_row["id"] == bookings["pending"].id
    assert booking_row["amount"] == "₹400"
    assert booking_row["documents"] == []
    assert booking_row["owner"]["businessName"] == "Omkar Travels"
    assert booking_row["vehicle"]["name"] == "Swift Dzire 2022"
    assert booking_row["tripDetails"]["pickupLocation"] == "MG Road"
    assert booking_row["tripDetails"]["tripStarted"] is False
    assert booking_row["driverInfo"]["driverAssigned"] is False


async def test_dashboard_does_not_modify_bookings(service, bookings, session_factory):
    await service.get_dashboard(now=NOW)

    async with session_factory() as session:
        booking = await session.get(Booking, bookings["pending"].id)
        flow = await session.get(BookingFlow, bookings["flow_ongoing"].id)
        assert booking.status == BookingStatus.PENDING
        assert flow.booking_status == BookingFlowStatus.ONGOING
        assert flow.payment_status == FlowPaymentStatus.UNPAID


async def test_empty_dashboard(service):
    data = await service.get_dashboard(now=NOW)

    assert data["latestBookings"] == []
    assert data["kpiCards"]["monthlyRevenue"]["formattedValue"] == "₹0"
    assert data["kpiCards"]["activeRentals"]["trend"] == "0% vs last week"
    assert data["kpiCards"]["pendingBookings"]["alert"] is None


def test_formatting_helpers():
    assert format_amount(Decimal("1234567.49"), "₹") == "₹1,234,567"
    assert format_date(utc(2026, 1, 5, 0, 7)) == "Jan 5, 2026 • 12:07 AM"
    assert format_date(None) is None


async def test_malformed_price_payload_does_not_break_dashboard(service, session_factory, catalog, renter):
    async with session_factory() as session:
        session.add(BookingFlow(
            user_id=renter.user_id,
            vehicle_id=catalog.id,
            phone="+919800000001",
            email="ravi@example.com",
            payment_method=FlowPaymentMethod.ONLINE,
            booking_status=BookingFlowStatus.COMPLETED,
            payment_status=FlowPaymentStatus.PAID,
            price_breakdown={"amount": "700", "components": [{"code": "vehicle", "amount": "abc"}]},
            document_images=[],
            created_at=utc(2026, 10, 14),
        ))
        session.add(BookingFlow(
            user_id=renter.user_id,
            vehicle_id=catalog.id,
            phone="+919800000001",
            email="ravi@example.com",
            payment_method=FlowPaymentMethod.ONLINE,
            booking_status=BookingFlowStatus.COMPLETED,
            payment_status=FlowPaymentStatus.PAID,
            price_breakdown={"amount": "50", "components": 5},
            document_images=[],
            created_at=utc(2026, 10, 13),
        ))
        await session.commit()

    data = await service.get_dashboard(now=NOW)

    assert data["kpiCards"]["monthlyRevenue"]["value"] == Decimal("750")
    assert [row["amount"] for row in data["latestBookings"]] == ["₹700", "₹50"]
