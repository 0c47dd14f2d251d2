from decimal import Decimal
from typing import Optional, Dict, Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models.vehicle import Vehicle, VehicleKind, RentType, VehicleCategory
from services.exceptions import NotFoundError, ValidationError
from services.pricing_service import to_decimal, pricing_options, driver_pricing


class VehicleService:
    """Чтение каталога транспорта для модуля бронирований"""

    @staticmethod
    async def get_vehicle(session: AsyncSession, vehicle_id: int) -> Vehicle:
        """Транспорт по ID. Удалённый считается отсутствующим"""
        result = await session.execute(
            select(Vehicle)
            .where(Vehicle.id == vehicle_id)
            .where(Vehicle.is_deleted.is_(False))
        )
        vehicle = result.scalar_one_or_none()
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        return vehicle

    @staticmethod
    async def create_vehicle(
        session: AsyncSession,
        owner_id: int,
        title: str,
        vehicle_kind: VehicleKind,
        base_price: Any,
        rent_type: Optional[RentType] = None,
        **extra
    ) -> Vehicle:
        """
        Создать транспорт с проверкой инвариантов тарифа:
        rent_type задан тогда и только тогда, когда это аренда, цены неотрицательны.
        """
        if vehicle_kind == VehicleKind.RENT and rent_type is None:
            raise ValidationError("rentType is required for rent vehicles", field="rentType")
        if vehicle_kind != VehicleKind.RENT and rent_type is not None:
            raise ValidationError("rentType is only allowed for rent vehicles", field="rentType")

        for name in ("hourly_price", "daily_price", "per_km_price", "driver_price"):
            if extra.get(name) is not None and to_decimal(extra[name]) < 0:
                raise ValidationError(f"{name} must not be negative", field=name)

        price = to_decimal(base_price)
        if price < 0:
            raise ValidationError("price must not be negative", field="basePrice")

        vehicle = Vehicle(
            owner_id=owner_id,
            title=title,
            vehicle_kind=vehicle_kind,
            rent_type=rent_type,
            base_price=price,
            category=extra.pop("category", VehicleCategory.OTHER),
            **extra
        )
        session.add(vehicle)
        await session.flush()

        logger.info(f"🚗 Vehicle created: id={vehicle.id}, kind={vehicle_kind.value}, price={price}")
        return vehicle

    @staticmethod
    def vehicle_summary(vehicle: Vehicle) -> Dict[str, Any]:
        """Данные транспорта и тарифы для ответа API"""
        return {
            "id": vehicle.id,
            "ownerId": vehicle.owner_id,
            "title": vehicle.title,
            "year": vehicle.year,
            "category": vehicle.category.value if vehicle.category else None,
            "vehicleKind": vehicle.vehicle_kind.value,
            "rentType": vehicle.rent_type.value if vehicle.rent_type else None,
            "basePrice": to_decimal(vehicle.base_price),
            "currency": vehicle.currency,
            "driverAvailable": vehicle.driver_available,
            "driverPrice": to_decimal(vehicle.driver_price) if vehicle.driver_price is not None else Decimal("0"),
            "pricingOptions": pricing_options(vehicle),
            "driverPricing": driver_pricing(vehicle),
            "isPublished": vehicle.is_published,
        }
