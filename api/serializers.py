"""
Ответы API в формате {success, data, message} и сериализация моделей
"""
import enum
import json
from datetime import datetime, date
from decimal import Decimal
from functools import partial
from typing import Any, Dict, Optional

from aiohttp import web

from database.models.booking import Booking
from database.models.booking_flow import BookingFlow
from database.models.notification import Notification
from services.pricing_service import PriceBreakdown


def json_default(value: Any):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


dumps = partial(json.dumps, default=json_default, ensure_ascii=False)


def ok(data: Any = None, message: str = "", status: int = 200) -> web.Response:
    return web.json_response(
        {"success": True, "data": data, "message": message},
        status=status,
        dumps=dumps,
    )


def fail(message: str, status: int, data: Optional[Dict[str, Any]] = None) -> web.Response:
    return web.json_response(
        {"success": False, "data": data, "message": message},
        status=status,
        dumps=dumps,
    )


def serialize_booking(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "vehicleId": booking.vehicle_id,
        "renterId": booking.renter_id,
        "ownerId": booking.owner_id,
        "startAt": booking.start_at,
        "endAt": booking.end_at,
        "expectedKm": booking.expected_km,
        "actualKm": booking.actual_km,
        "pickupLocation": booking.pickup_location,
        "destination": booking.destination,
        "driverRequired": booking.driver_required,
        "driverAssigned": booking.driver_assigned,
        "driverName": booking.driver_name,
        "driverPhone": booking.driver_phone,
        "driverLicense": booking.driver_license,
        "vehiclePrice": booking.vehicle_price,
        "driverPrice": booking.driver_price,
        "totalPrice": booking.total_price,
        "currency": booking.currency,
        "status": booking.status,
        "ownerAccepted": booking.owner_accepted,
        "ownerAcceptedAt": booking.owner_accepted_at,
        "paymentMethod": booking.payment_method,
        "paymentStatus": booking.payment_status,
        "tripStarted": booking.trip_started,
        "tripStartedAt": booking.trip_started_at,
        "tripCompleted": booking.trip_completed,
        "tripCompletedAt": booking.trip_completed_at,
        "createdAt": booking.created_at,
        "updatedAt": booking.updated_at,
    }


def serialize_booking_flow(flow: BookingFlow) -> Dict[str, Any]:
    breakdown = PriceBreakdown.from_payload(flow.price_breakdown)
    return {
        "id": flow.id,
        "userId": flow.user_id,
        "vehicleId": flow.vehicle_id,
        "phone": flow.phone,
        "email": flow.email,
        "description": flow.description,
        "startDate": flow.start_date,
        "endDate": flow.end_date,
        "expectedKm": flow.expected_km,
        "driverIncluded": flow.driver_included,
        "priceBreakdown": flow.price_breakdown,
        "totalPrice": breakdown.amount if breakdown else None,
        "paymentMethod": flow.payment_method,
        "bookingStatus": flow.booking_status,
        "paymentStatus": flow.payment_status,
        "documentImages": list(flow.document_images or []),
        "adminNotes": flow.admin_notes,
        "approvedAt": flow.approved_at,
        "rejectedAt": flow.rejected_at,
        "startedAt": flow.started_at,
        "completedAt": flow.completed_at,
        "paidAt": flow.paid_at,
        "createdAt": flow.created_at,
        "updatedAt": flow.updated_at,
    }


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "bookingId": notification.booking_flow_id,
        "isRead": notification.is_read,
        "readAt": notification.read_at,
        "createdAt": notification.created_at,
    }
