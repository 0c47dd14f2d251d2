from decimal import Decimal

import pytest

from database.models.booking_flow import BookingFlowStatus, FlowPaymentStatus, FlowPaymentMethod
from database.models.vehicle import VehicleKind, RentType
from services.booking_flow_service import BookingFlowService, DEFAULT_REJECTION_REASON
from services.events import NotificationDispatcher
from services.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.pricing_service import PriceBreakdown
from tests.conftest import BrokenQueue, utc


DOCUMENTS = [
    "/uploads/document_front.jpg",
    "/uploads/document_back.jpg",
    "/uploads/document_selfie.jpg",
]


@pytest.fixture
def service(session_factory, dispatcher):
    return BookingFlowService(session_factory, dispatcher)


@pytest.fixture
async def vehicle(make_vehicle):
    return await make_vehicle(title="Swift Dzire", rent_type=RentType.DAILY, base_price=Decimal("2500"))


@pytest.fixture
async def pending(service, renter, vehicle):
    return await service.create_booking(
        renter,
        phone="+919800000001",
        email="Ravi@Example.com",
        vehicle_id=vehicle.id,
        payment_method="pay_to_driver",
        document_images=DOCUMENTS,
    )


async def advance(service, admin, booking_id, to):
    if to in (BookingFlowStatus.APPROVED, BookingFlowStatus.ONGOING):
        await service.approve_booking(admin, booking_id)
    if to == BookingFlowStatus.ONGOING:
        await service.start_booking(admin, booking_id)


async def test_create_starts_pending_and_unpaid(pending, renter, queue):
    assert pending.booking_status == BookingFlowStatus.PENDING
    assert pending.payment_status == FlowPaymentStatus.UNPAID
    assert pending.payment_method == FlowPaymentMethod.PAY_TO_DRIVER
    assert pending.user_id == renter.user_id
    assert pending.email == "ravi@example.com"

    assert queue.types() == ["booking_created"]
    event = queue.events[0]
    assert event.user_id == renter.user_id
    assert event.booking_flow_id == pending.id
    assert "Swift Dzire" in event.body


async def test_documents_round_trip_in_order(service, pending, renter):
    fetched = await service.get_booking(renter, pending.id)
    assert fetched.document_images == DOCUMENTS


async def test_create_with_dates_stores_price(service, renter, vehicle):
    booking = await service.create_booking(
        renter,
        phone="+919800000001",
        email="ravi@example.com",
        vehicle_id=vehicle.id,
        payment_method="online",
        start_date=utc(2026, 8, 1, 10),
        end_date=utc(2026, 8, 3, 9),
    )

    breakdown = PriceBreakdown.from_payload(booking.price_breakdown)
    assert breakdown.amount == Decimal("5000.00")
    assert breakdown.vehicle_price == Decimal("5000.00")


async def test_create_without_dates_leaves_price_empty(pending):
    assert pending.price_breakdown is None


async def test_create_allows_any_vehicle_kind(service, renter, make_vehicle):
    for_sale = await make_vehicle(title="City 2019", vehicle_kind=VehicleKind.SELL, rent_type=None,
                                  base_price=Decimal("650000"))

    booking = await service.create_booking(
        renter, phone="1", email="ravi@example.com", vehicle_id=for_sale.id, payment_method="online"
    )

    assert PriceBreakdown.from_payload(booking.price_breakdown).amount == Decimal("650000.00")


@pytest.mark.parametrize("overrides, field", [
    ({"phone": None}, "phone"),
    ({"email": ""}, "email"),
    ({"payment_method": None}, "paymentMethod"),
    ({"email": "not-an-email"}, "email"),
    ({"email": "two@@example.com"}, "email"),
    ({"payment_method": "cash"}, "paymentMethod"),
    ({"document_images": [f"/uploads/{i}.jpg" for i in range(6)]}, "documents"),
])
async def test_create_validation(service, renter, vehicle, queue, overrides, field):
    data = dict(
        phone="+919800000001",
        email="ravi@example.com",
        vehicle_id=vehicle.id,
        payment_method="online",
    )
    data.update(overrides)

    with pytest.raises(ValidationError) as exc:
        await service.create_booking(renter, **data)

    assert exc.value.field == field
    assert queue.events == []


async def test_create_rejects_inverted_dates(service, renter, vehicle):
    with pytest.raises(ValidationError):
        await service.create_booking(
            renter, phone="1", email="ravi@example.com", vehicle_id=vehicle.id, payment_method="online",
            start_date=utc(2026, 8, 3), end_date=utc(2026, 8, 1),
        )


async def test_create_unknown_vehicle(service, renter):
    with pytest.raises(NotFoundError):
        await service.create_booking(
            renter, phone="1", email="ravi@example.com", vehicle_id=4242, payment_method="online"
        )


async def test_full_lifecycle_notifies_creator(service, pending, admin, renter, queue):
    approved = await service.approve_booking(admin, pending.id, admin_notes="Documents verified")
    assert approved.booking_status == BookingFlowStatus.APPROVED
    assert approved.approved_at is not None
    assert approved.admin_notes == "Documents verified"

    ongoing = await service.start_booking(admin, pending.id)
    assert ongoing.booking_status == BookingFlowStatus.ONGOING
    assert ongoing.started_at is not None

    completed = await service.complete_booking(admin, pending.id, payment_confirmed=True)
    assert completed.booking_status == BookingFlowStatus.COMPLETED
    assert completed.payment_status == FlowPaymentStatus.PAID
    assert completed.paid_at is not None
    assert completed.completed_at is not None

    assert queue.types() == ["booking_created", "booking_approved", "booking_started", "booking_completed"]
    # Уведомления получает автор брони, а не администратор
    assert {e.user_id for e in queue.events} == {renter.user_id}
    assert "Swift Dzire" in queue.events[1].body
    assert "paid" in queue.events[3].body


async def test_reject_uses_default_reason(service, pending, admin, queue):
    rejected = await service.reject_booking(admin, pending.id)

    assert rejected.booking_status == BookingFlowStatus.REJECTED
    assert rejected.rejected_at is not None
    assert queue.events[-1].type == "booking_rejected"
    assert queue.events[-1].data["reason"] == DEFAULT_REJECTION_REASON


async def test_reject_with_reason(service, pending, admin, queue):
    await service.reject_booking(admin, pending.id, admin_notes="Licence photo is blurry")
    assert "Licence photo is blurry" in queue.events[-1].body


async def test_approve_rejected_booking_conflicts(service, pending, admin):
    await service.reject_booking(admin, pending.id)

    with pytest.raises(ConflictError) as exc:
        await service.approve_booking(admin, pending.id)

    assert exc.value.current_status == "rejected"
    assert exc.value.required_status == "pending"
    assert "Current status: rejected" in exc.value.message

    booking = await service.get_booking(admin, pending.id)
    assert booking.booking_status == BookingFlowStatus.REJECTED


async def test_start_requires_approval(service, pending, admin):
    with pytest.raises(ConflictError) as exc:
        await service.start_booking(admin, pending.id)

    assert exc.value.message == (
        "Booking cannot be started. Current status: pending. Booking must be approved first."
    )


async def test_complete_without_payment_confirmation(service, pending, admin, queue):
    await advance(service, admin, pending.id, BookingFlowStatus.ONGOING)
    published = len(queue.events)

    with pytest.raises(ValidationError) as exc:
        await service.complete_booking(admin, pending.id)
    assert exc.value.field == "paymentConfirmed"

    with pytest.raises(ValidationError):
        await service.complete_booking(admin, pending.id, payment_confirmed=False)

    booking = await service.get_booking(admin, pending.id)
    assert booking.booking_status == BookingFlowStatus.ONGOING
    assert booking.payment_status == FlowPaymentStatus.UNPAID
    assert booking.paid_at is None
    assert len(queue.events) == published


async def test_complete_requires_ongoing(service, pending, admin):
    await advance(service, admin, pending.id, BookingFlowStatus.APPROVED)

    with pytest.raises(ConflictError) as exc:
        await service.complete_booking(admin, pending.id, payment_confirmed=True)

    assert exc.value.current_status == "approved"
    assert exc.value.required_status == "ongoing"


@pytest.mark.parametrize("state", [
    BookingFlowStatus.PENDING, BookingFlowStatus.APPROVED, BookingFlowStatus.ONGOING
])
async def test_non_admin_cannot_transition(service, pending, admin, renter, state):
    await advance(service, admin, pending.id, state)

    for action in (service.approve_booking, service.reject_booking, service.start_booking):
        with pytest.raises(ForbiddenError):
            await action(renter, pending.id)
    with pytest.raises(ForbiddenError):
        await service.complete_booking(renter, pending.id, payment_confirmed=True)

    booking = await service.get_booking(renter, pending.id)
    assert booking.booking_status == state


async def test_non_admin_gets_forbidden_for_missing_booking(service, renter):
    with pytest.raises(ForbiddenError):
        await service.approve_booking(renter, 9999)


async def test_admin_gets_not_found_for_missing_booking(service, admin):
    with pytest.raises(NotFoundError):
        await service.approve_booking(admin, 9999)


async def test_notification_failure_does_not_fail_transition(session_factory, renter, admin, vehicle):
    service = BookingFlowService(session_factory, NotificationDispatcher(BrokenQueue()))

    booking = await service.create_booking(
        renter, phone="1", email="ravi@example.com", vehicle_id=vehicle.id, payment_method="online"
    )
    approved = await service.approve_booking(admin, booking.id)

    assert approved.booking_status == BookingFlowStatus.APPROVED


async def test_list_and_get_visibility(service, pending, renter, stranger, admin):
    assert [b.id for b in await service.list_bookings(renter)] == [pending.id]
    assert await service.list_bookings(stranger) == []
    assert [b.id for b in await service.list_bookings(admin)] == [pending.id]

    with pytest.raises(ForbiddenError):
        await service.get_booking(stranger, pending.id)
    assert (await service.get_booking(admin, pending.id)).id == pending.id
