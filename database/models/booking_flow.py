from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, ForeignKey, Float, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class BookingFlowStatus(enum.Enum):
    PENDING = "pending"       # Ожидает проверки администратором
    APPROVED = "approved"     # Одобрена
    REJECTED = "rejected"     # Отклонена
    ONGOING = "ongoing"       # Поездка идёт
    COMPLETED = "completed"   # Завершена и оплачена


class FlowPaymentMethod(enum.Enum):
    ONLINE = "online"
    PAY_TO_DRIVER = "pay_to_driver"


class FlowPaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class BookingFlow(Base):
    """Бронь с проверкой документов администратором"""
    __tablename__ = "booking_flows"

    id = Column(Integer, primary_key=True, index=True)

    # Связи
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)

    # Контакты
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Даты и параметры поездки (необязательны)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    expected_km = Column(Float, nullable=True)
    driver_included = Column(Boolean, default=False, nullable=False)

    # Расчёт стоимости (PriceBreakdown.to_dict())
    price_breakdown = Column(JSON, nullable=True)

    # Оплата и статус
    payment_method = Column(Enum(FlowPaymentMethod), nullable=False)
    booking_status = Column(Enum(BookingFlowStatus), default=BookingFlowStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(FlowPaymentStatus), default=FlowPaymentStatus.UNPAID, nullable=False)

    # Фото документов (Aadhaar, PAN, RC...), порядок сохраняется
    document_images = Column(JSON, default=list, nullable=False)

    admin_notes = Column(Text, nullable=True)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Связи
    user = relationship("User")
    vehicle = relationship("Vehicle")

    def __repr__(self):
        return f"<BookingFlow(id={self.id}, user_id={self.user_id}, status={self.booking_status.value})>"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == FlowPaymentStatus.PAID
