from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum, ForeignKey, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class VehicleKind(enum.Enum):
    RENT = "rent"          # Аренда
    SELL = "sell"          # Продажа
    SERVICE = "service"    # Услуга (обслуживание, ремонт)


class RentType(enum.Enum):
    HOURLY = "hourly"      # Почасовая
    DAILY = "daily"        # Посуточная
    PER_KM = "per_km"      # За километр
    FIXED = "fixed"        # Фиксированная цена


class VehicleCategory(enum.Enum):
    BIKE = "bike"
    CAR = "car"
    AUTO = "auto"
    OTHER = "other"


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    year = Column(Integer, nullable=True)
    category = Column(Enum(VehicleCategory), default=VehicleCategory.OTHER, nullable=False)

    # Тип объявления и тариф
    vehicle_kind = Column(Enum(VehicleKind), nullable=False)
    rent_type = Column(Enum(RentType), nullable=True)  # Обязателен только для RENT

    # Базовая цена (смысл зависит от rent_type)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(8), default="₹", nullable=False)

    # Дополнительные тарифы для отображения
    hourly_price = Column(Numeric(10, 2), nullable=True)
    daily_price = Column(Numeric(10, 2), nullable=True)
    per_km_price = Column(Numeric(10, 2), nullable=True)

    # Водитель
    driver_available = Column(Boolean, default=False, nullable=False)
    driver_price = Column(Numeric(10, 2), default=0, nullable=False)
    driver_label = Column(String(100), nullable=True)

    # Модерация
    is_published = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Связи
    owner = relationship("User", back_populates="vehicles")
    bookings = relationship("Booking", back_populates="vehicle")

    def __repr__(self):
        return f"<Vehicle(id={self.id}, title={self.title}, kind={self.vehicle_kind.value})>"

    @property
    def is_bookable(self) -> bool:
        """Можно ли бронировать напрямую у владельца"""
        return (
            self.is_published
            and not self.is_deleted
            and self.vehicle_kind == VehicleKind.RENT
        )

    @property
    def pricing_options(self) -> list:
        from services.pricing_service import pricing_options
        return pricing_options(self)

    @property
    def driver_pricing(self):
        from services.pricing_service import driver_pricing
        return driver_pricing(self)
