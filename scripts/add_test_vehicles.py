import asyncio
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database.base import async_session_factory, init_db
from database.models.user import User, UserRole
from database.models.vehicle import Vehicle, VehicleKind, RentType, VehicleCategory
from services.vehicle_service import VehicleService
from sqlalchemy import select, func


async def add_test_vehicles():
    """Добавить тестового владельца и транспорт в базу данных"""
    await init_db()
    
    async with async_session_factory() as session:
        # Проверяем, есть ли уже транспорт
        count = await session.scalar(select(func.count()).select_from(Vehicle))
        
        if count > 0:
            print(f"В базе уже есть {count} единиц транспорта. Пропускаем добавление.")
            return
        
        owner = User(
            full_name="Demo Owner",
            email="owner@example.com",
            phone="+910000000000",
            role=UserRole.CLIENT,
            business_name="Demo Rentals",
        )
        session.add(owner)
        await session.flush()
        
        # Создаем тестовый транспорт
        vehicles_data = [
            {
                "title": "Royal Enfield Classic 350",
                "category": VehicleCategory.BIKE,
                "vehicle_kind": VehicleKind.RENT,
                "rent_type": RentType.HOURLY,
                "base_price": 150,
                "hourly_price": 150,
                "daily_price": 1200,
            },
            {
                "title": "Maruti Swift Dzire",
                "category": VehicleCategory.CAR,
                "vehicle_kind": VehicleKind.RENT,
                "rent_type": RentType.DAILY,
                "base_price": 2500,
                "daily_price": 2500,
                "driver_available": True,
                "driver_price": 800,
            },
            {
                "title": "Toyota Innova Crysta",
                "category": VehicleCategory.CAR,
                "vehicle_kind": VehicleKind.RENT,
                "rent_type": RentType.PER_KM,
                "base_price": 18,
                "per_km_price": 18,
                "driver_available": True,
                "driver_price": 1000,
                "driver_label": "with driver (per day)",
            },
            {
                "title": "Bajaj RE Auto",
                "category": VehicleCategory.AUTO,
                "vehicle_kind": VehicleKind.RENT,
                "rent_type": RentType.FIXED,
                "base_price": 600,
            },
            {
                "title": "Honda City 2019",
                "category": VehicleCategory.CAR,
                "vehicle_kind": VehicleKind.SELL,
                "base_price": 650000,
                "year": 2019,
            },
        ]
        
        for vehicle_data in vehicles_data:
            data = dict(vehicle_data)
            vehicle = await VehicleService.create_vehicle(
                session,
                owner_id=owner.id,
                title=data.pop("title"),
                vehicle_kind=data.pop("vehicle_kind"),
                base_price=data.pop("base_price"),
                rent_type=data.pop("rent_type", None),
                **data
            )
            print(f"Добавлен транспорт {vehicle.title}")
        
        await session.commit()
        print(f"Успешно добавлено {len(vehicles_data)} единиц транспорта!")


if __name__ == "__main__":
    asyncio.run(add_test_vehicles())
