from decimal import Decimal

import pytest

from database.models.booking import BookingStatus, BookingPaymentMethod
from database.models.user import UserRole
from database.models.vehicle import VehicleKind, RentType
from services.access import Caller
from services.booking_service import BookingService
from services.exceptions import (
    ConflictError, ForbiddenError, NotFoundError, ValidationError, InvalidStateError
)
from tests.conftest import utc


@pytest.fixture
def service(session_factory):
    return BookingService(session_factory)


@pytest.fixture
async def hourly_vehicle(make_vehicle):
    return await make_vehicle(rent_type=RentType.HOURLY, base_price=Decimal("100"))


@pytest.fixture
async def pending(service, renter, hourly_vehicle):
    return await service.create_booking(
        renter, hourly_vehicle.id, utc(2026, 6, 1, 9, 0), utc(2026, 6, 1, 10, 31)
    )


async def test_create_prices_and_freezes_booking(pending, renter, owner, hourly_vehicle):
    assert pending.status == BookingStatus.PENDING
    assert pending.renter_id == renter.user_id
    assert pending.owner_id == owner.user_id
    assert pending.vehicle_price == Decimal("200")
    assert pending.driver_price == Decimal("0")
    assert pending.total_price == Decimal("200")
    assert pending.payment_method == BookingPaymentMethod.OFFLINE
    assert pending.owner_accepted is False


async def test_create_fixed_with_driver(service, renter, make_vehicle):
    vehicle = await make_vehicle(
        title="Tempo Traveller", rent_type=RentType.FIXED, base_price=Decimal("5000"),
        driver_available=True, driver_price=Decimal("50"),
    )

    booking = await service.create_booking(renter, vehicle.id, driver_required=True)

    assert booking.vehicle_price == Decimal("5000")
    assert booking.driver_price == Decimal("50")
    assert booking.total_price == Decimal("5050")
    assert booking.start_at is None


async def test_create_per_km_defaults_to_zero(service, renter, make_vehicle):
    vehicle = await make_vehicle(rent_type=RentType.PER_KM, base_price=Decimal("18"))

    booking = await service.create_booking(renter, vehicle.id)

    assert booking.total_price == Decimal("0")


async def test_create_rejects_non_rent_vehicle(service, renter, make_vehicle):
    vehicle = await make_vehicle(vehicle_kind=VehicleKind.SELL, rent_type=None)

    with pytest.raises(InvalidStateError):
        await service.create_booking(renter, vehicle.id)


async def test_create_rejects_unpublished_vehicle(service, renter, make_vehicle):
    vehicle = await make_vehicle(is_published=False)

    with pytest.raises(NotFoundError):
        await service.create_booking(renter, vehicle.id, utc(2026, 6, 1, 9), utc(2026, 6, 1, 10))


async def test_create_rejects_deleted_vehicle(service, renter, make_vehicle):
    vehicle = await make_vehicle(is_deleted=True)

    with pytest.raises(NotFoundError):
        await service.create_booking(renter, vehicle.id, utc(2026, 6, 1, 9), utc(2026, 6, 1, 10))


async def test_create_rejects_empty_window(service, renter, hourly_vehicle):
    with pytest.raises(ValidationError):
        await service.create_booking(renter, hourly_vehicle.id, utc(2026, 6, 1, 9), utc(2026, 6, 1, 9))


async def test_create_requires_both_dates(service, renter, hourly_vehicle):
    with pytest.raises(ValidationError):
        await service.create_booking(renter, hourly_vehicle.id, start_at=utc(2026, 6, 1, 9))


async def test_create_rejects_unknown_payment_method(service, renter, hourly_vehicle):
    with pytest.raises(ValidationError):
        await service.create_booking(
            renter, hourly_vehicle.id, utc(2026, 6, 1, 9), utc(2026, 6, 1, 10), payment_method="crypto"
        )


async def test_full_lifecycle(service, pending, owner, renter):
    confirmed = await service.accept_booking(owner, pending.id)
    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.owner_accepted is True
    assert confirmed.owner_accepted_at is not None

    started = await service.start_trip(renter, pending.id)
    assert started.status == BookingStatus.IN_PROGRESS
    assert started.trip_started is True

    completed = await service.complete_trip(owner, pending.id, actual_km=42.5)
    assert completed.status == BookingStatus.COMPLETED
    assert completed.trip_completed is True
    assert completed.actual_km == 42.5
    # Цена не пересчитывается по фактическому пробегу
    assert completed.total_price == Decimal("200")


async def test_accept_assigns_driver_when_requested(service, renter, owner, make_vehicle):
    vehicle = await make_vehicle(
        rent_type=RentType.FIXED, base_price=Decimal("1500"),
        driver_available=True, driver_price=Decimal("500"),
    )
    booking = await service.create_booking(renter, vehicle.id, driver_required=True)

    accepted = await service.accept_booking(
        owner, booking.id, driver_name="Kumar", driver_phone="+919811111111", driver_license="DL-01"
    )

    assert accepted.driver_assigned is True
    assert accepted.driver_name == "Kumar"
    assert accepted.driver_license == "DL-01"


async def test_accept_ignores_driver_when_not_requested(service, pending, owner):
    accepted = await service.accept_booking(owner, pending.id, driver_name="Kumar")

    assert accepted.driver_assigned is False
    assert accepted.driver_name is None


async def test_accept_twice_conflicts_and_keeps_state(service, pending, owner):
    first = await service.accept_booking(owner, pending.id)

    with pytest.raises(ConflictError) as exc:
        await service.accept_booking(owner, pending.id)

    assert exc.value.current_status == "confirmed"
    assert exc.value.required_status == "pending"
    assert "Current status: confirmed" in exc.value.message

    again = await service.get_booking(owner, pending.id)
    assert again.status == BookingStatus.CONFIRMED
    assert again.owner_accepted_at == first.owner_accepted_at


async def test_only_owner_can_accept_or_decline(service, pending, renter, admin):
    with pytest.raises(ForbiddenError):
        await service.accept_booking(renter, pending.id)
    with pytest.raises(ForbiddenError):
        await service.decline_booking(admin, pending.id)

    unchanged = await service.get_booking(renter, pending.id)
    assert unchanged.status == BookingStatus.PENDING


async def test_decline(service, pending, owner):
    declined = await service.decline_booking(owner, pending.id)
    assert declined.status == BookingStatus.CANCELLED

    with pytest.raises(ConflictError):
        await service.accept_booking(owner, pending.id)


async def test_declined_booking_frees_the_slot(service, pending, owner, stranger, hourly_vehicle):
    await service.decline_booking(owner, pending.id)

    booking = await service.create_booking(
        stranger, hourly_vehicle.id, utc(2026, 6, 1, 9, 30), utc(2026, 6, 1, 10, 0)
    )
    assert booking.status == BookingStatus.PENDING


async def test_start_requires_confirmed(service, pending, renter):
    with pytest.raises(ConflictError) as exc:
        await service.start_trip(renter, pending.id)

    assert exc.value.current_status == "pending"
    assert exc.value.required_status == "confirmed"


async def test_complete_requires_in_progress(service, pending, owner, renter):
    await service.accept_booking(owner, pending.id)

    with pytest.raises(ConflictError) as exc:
        await service.complete_trip(renter, pending.id, actual_km=10)

    assert exc.value.required_status == "in_progress"
    booking = await service.get_booking(renter, pending.id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.actual_km is None


async def test_trip_transitions_restricted_to_participants(service, pending, owner, stranger, admin):
    await service.accept_booking(owner, pending.id)

    with pytest.raises(ForbiddenError):
        await service.start_trip(stranger, pending.id)

    started = await service.start_trip(admin, pending.id)
    assert started.status == BookingStatus.IN_PROGRESS


async def test_complete_rejects_negative_km(service, pending, owner, renter):
    await service.accept_booking(owner, pending.id)
    await service.start_trip(renter, pending.id)

    with pytest.raises(ValidationError):
        await service.complete_trip(renter, pending.id, actual_km=-5)


async def test_unknown_booking(service, owner):
    with pytest.raises(NotFoundError):
        await service.accept_booking(owner, 9999)


async def test_get_booking_hidden_from_strangers(service, pending, stranger):
    with pytest.raises(ForbiddenError):
        await service.get_booking(stranger, pending.id)


async def test_lists_for_renter_and_owner(service, pending, renter, owner, stranger):
    assert [b.id for b in await service.list_renter_bookings(renter)] == [pending.id]
    assert [b.id for b in await service.list_owner_bookings(owner)] == [pending.id]
    assert await service.list_renter_bookings(stranger) == []


async def test_paginated_list_depends_on_role(service, renter, owner, hourly_vehicle):
    for day in (1, 2, 3):
        await service.create_booking(
            renter, hourly_vehicle.id, utc(2026, 7, day, 9), utc(2026, 7, day, 10)
        )

    as_owner = await service.list_bookings(owner, page=1, limit=2, sort_by="startAt", sort_order="asc")
    assert [b.start_at.day for b in as_owner["bookings"]] == [1, 2]
    assert as_owner["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalBookings": 3,
        "hasNextPage": True,
        "hasPrevPage": False,
    }

    as_renter = await service.list_bookings(renter, page=2, limit=2, sort_by="startAt", sort_order="asc")
    assert [b.start_at.day for b in as_renter["bookings"]] == [3]
    assert as_renter["pagination"]["hasPrevPage"] is True

    # Обычный пользователь без броней видит пустой список
    nobody = await service.list_bookings(Caller(owner.user_id, UserRole.USER))
    assert nobody["pagination"]["totalBookings"] == 0


async def test_list_filters_by_status(service, pending, owner):
    await service.accept_booking(owner, pending.id)

    confirmed = await service.list_bookings(owner, status="confirmed")
    assert [b.id for b in confirmed["bookings"]] == [pending.id]
    assert (await service.list_bookings(owner, status="pending"))["bookings"] == []

    with pytest.raises(ValidationError):
        await service.list_bookings(owner, status="lost")
    with pytest.raises(ValidationError):
        await service.list_bookings(owner, sort_by="password")
