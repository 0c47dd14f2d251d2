from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, ForeignKey, Numeric, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class BookingStatus(enum.Enum):
    PENDING = "pending"           # Ожидает решения владельца
    CONFIRMED = "confirmed"       # Подтверждена владельцем
    IN_PROGRESS = "in_progress"   # Поездка идёт
    COMPLETED = "completed"       # Завершена
    CANCELLED = "cancelled"       # Отклонена владельцем


class BookingPaymentMethod(enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class BookingPaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# Брони в этих статусах занимают транспорт
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
)


class Booking(Base):
    """Прямая бронь у владельца транспорта"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    # Связи (owner_id копируется из транспорта при создании)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    renter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Параметры поездки
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    expected_km = Column(Float, nullable=True)
    actual_km = Column(Float, nullable=True)
    pickup_location = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)

    # Водитель
    driver_required = Column(Boolean, default=False, nullable=False)
    driver_assigned = Column(Boolean, default=False, nullable=False)
    driver_name = Column(String(255), nullable=True)
    driver_phone = Column(String(20), nullable=True)
    driver_license = Column(String(100), nullable=True)

    # Финансы (фиксируются при создании)
    vehicle_price = Column(Numeric(10, 2), nullable=False)
    driver_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(8), default="₹", nullable=False)

    # Статус
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)
    owner_accepted = Column(Boolean, default=False, nullable=False)
    owner_accepted_at = Column(DateTime(timezone=True), nullable=True)

    # Оплата
    payment_method = Column(Enum(BookingPaymentMethod), default=BookingPaymentMethod.OFFLINE, nullable=False)
    payment_status = Column(Enum(BookingPaymentStatus), default=BookingPaymentStatus.PENDING, nullable=False)

    # Поездка
    trip_started_at = Column(DateTime(timezone=True), nullable=True)
    trip_completed_at = Column(DateTime(timezone=True), nullable=True)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Связи
    vehicle = relationship("Vehicle", back_populates="bookings")
    renter = relationship("User", foreign_keys=[renter_id])
    owner = relationship("User", foreign_keys=[owner_id])

    def __repr__(self):
        return f"<Booking(id={self.id}, vehicle_id={self.vehicle_id}, status={self.status.value})>"

    @property
    def trip_started(self) -> bool:
        return self.trip_started_at is not None

    @property
    def trip_completed(self) -> bool:
        return self.trip_completed_at is not None

    @property
    def price_breakdown(self):
        from services.pricing_service import PriceBreakdown
        return PriceBreakdown.from_prices(
            self.vehicle_price, self.driver_price, currency=self.currency
        )
