from .user import User, UserRole
from .vehicle import Vehicle, VehicleKind, RentType, VehicleCategory
from .booking import (
    Booking, BookingStatus, BookingPaymentMethod, BookingPaymentStatus,
    ACTIVE_BOOKING_STATUSES
)
from .booking_flow import BookingFlow, BookingFlowStatus, FlowPaymentMethod, FlowPaymentStatus
from .notification import Notification

__all__ = [
    "User", "UserRole",
    "Vehicle", "VehicleKind", "RentType", "VehicleCategory",
    "Booking", "BookingStatus", "BookingPaymentMethod", "BookingPaymentStatus",
    "ACTIVE_BOOKING_STATUSES",
    "BookingFlow", "BookingFlowStatus", "FlowPaymentMethod", "FlowPaymentStatus",
    "Notification"
]
