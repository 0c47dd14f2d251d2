"""
Расчёт стоимости аренды по тарифу транспорта.

Все функции чистые: не ходят в БД и не имеют побочных эффектов,
поэтому их можно безопасно вызывать повторно.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any

from database.models.vehicle import Vehicle, VehicleKind, RentType
from services.exceptions import ValidationError


HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

CENTS = Decimal("0.01")

# Поля тарифа, которые показываются клиенту списком
PRICING_OPTION_FIELDS = (
    ("hourly_price", "per hour"),
    ("daily_price", "per day"),
    ("per_km_price", "per km"),
)

DEFAULT_DRIVER_LABEL = "with driver"

# Ключи, под которыми старые клиенты присылали сумму в priceType
LEGACY_AMOUNT_KEYS = ("price", "total", "amount")


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _payload_decimal(value: Any) -> Optional[Decimal]:
    """Сумма из сохранённого JSON. Мусор и бесконечности дают None"""
    if isinstance(value, (bool, dict, list)):
        return None
    try:
        amount = to_decimal(value)
    except ArithmeticError:
        return None
    return amount if amount.is_finite() else None


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Наивные даты считаем UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class PriceComponent:
    code: str
    label: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "label": self.label, "amount": str(self.amount)}


@dataclass
class PriceBreakdown:
    """Итоговая стоимость брони с разбивкой по составляющим"""

    amount: Decimal
    currency: str = "₹"
    components: List[PriceComponent] = field(default_factory=list)

    @classmethod
    def from_prices(cls, vehicle_price: Any, driver_price: Any = 0, currency: str = "₹") -> "PriceBreakdown":
        vehicle_amount = to_decimal(vehicle_price).quantize(CENTS, ROUND_HALF_UP)
        driver_amount = to_decimal(driver_price).quantize(CENTS, ROUND_HALF_UP)
        return cls(
            amount=vehicle_amount + driver_amount,
            currency=currency,
            components=[
                PriceComponent("vehicle", "vehicle", vehicle_amount),
                PriceComponent("driver", "driver", driver_amount),
            ],
        )

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["PriceBreakdown"]:
        """
        Восстановить разбивку из JSON.

        Понимает как собственный формат (to_dict), так и старые записи,
        где сумма лежала под ключом price, total или amount.
        """
        if not isinstance(payload, dict):
            return None

        currency = payload.get("currency") or payload.get("currency_symbol") or "₹"

        raw_components = payload.get("components")
        components = []
        for item in raw_components if isinstance(raw_components, list) else []:
            if not isinstance(item, dict):
                continue
            component_amount = _payload_decimal(item.get("amount"))
            if component_amount is None:
                continue
            components.append(PriceComponent(
                code=item.get("code", "other"),
                label=item.get("label", item.get("code", "other")),
                amount=component_amount,
            ))

        amount = None
        for key in LEGACY_AMOUNT_KEYS:
            value = payload.get(key)
            if value:
                amount = value
                break

        return cls(amount=_payload_decimal(amount) or Decimal("0"), currency=currency, components=components)

    def _component(self, code: str) -> Decimal:
        return sum((c.amount for c in self.components if c.code == code), Decimal("0"))

    @property
    def vehicle_price(self) -> Decimal:
        return self._component("vehicle")

    @property
    def driver_price(self) -> Decimal:
        return self._component("driver")

    @property
    def total_price(self) -> Decimal:
        return self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "currency": self.currency,
            "components": [c.to_dict() for c in self.components],
        }


@dataclass
class RentalWindow:
    """Запрошенный период аренды или пробег"""

    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    expected_km: Optional[float] = None

    def __post_init__(self):
        self.start_at = to_utc(self.start_at)
        self.end_at = to_utc(self.end_at)

    @property
    def has_interval(self) -> bool:
        return self.start_at is not None and self.end_at is not None

    def validate_interval(self) -> None:
        """Окончание должно быть строго позже начала"""
        if not self.has_interval:
            raise ValidationError("startAt and endAt are required", field="startAt")
        if self.end_at <= self.start_at:
            raise ValidationError("endAt must be after startAt", field="endAt")


def billable_units(window: RentalWindow, unit: timedelta) -> int:
    """
    Количество оплачиваемых единиц с округлением вверх.
    61 минута почасовой аренды = 2 часа.
    """
    window.validate_interval()
    duration = window.end_at - window.start_at
    # Целочисленное деление с округлением вверх, без float
    return -(-duration // unit)


def compute_vehicle_price(vehicle: Vehicle, window: RentalWindow) -> Decimal:
    base_price = to_decimal(vehicle.base_price)
    if base_price < 0:
        raise ValidationError("Vehicle price must not be negative", field="basePrice")

    # Продажа и услуги всегда по фиксированной цене
    rent_type = vehicle.rent_type if vehicle.vehicle_kind == VehicleKind.RENT else RentType.FIXED
    if rent_type is None:
        raise ValidationError("Vehicle has no rent type", field="rentType")

    if rent_type == RentType.HOURLY:
        return billable_units(window, HOUR) * base_price
    if rent_type == RentType.DAILY:
        return billable_units(window, DAY) * base_price
    if rent_type == RentType.PER_KM:
        km = to_decimal(window.expected_km or 0)
        if km < 0:
            raise ValidationError("expectedKm must not be negative", field="expectedKm")
        return km * base_price
    return base_price


def compute_driver_price(vehicle: Vehicle, driver_requested: bool) -> Decimal:
    if driver_requested and vehicle.driver_available:
        return to_decimal(vehicle.driver_price)
    return Decimal("0")


def compute_price(vehicle: Vehicle, window: RentalWindow, driver_requested: bool = False) -> PriceBreakdown:
    """
    Рассчитать стоимость брони.

    Args:
        vehicle: Транспорт с тарифом
        window: Период аренды (для hourly/daily) или пробег (для per_km)
        driver_requested: Клиент запросил водителя

    Returns:
        PriceBreakdown: vehicle_price + driver_price = total_price

    Raises:
        ValidationError: Пустой или неположительный период для почасового/посуточного тарифа
    """
    return PriceBreakdown.from_prices(
        compute_vehicle_price(vehicle, window),
        compute_driver_price(vehicle, driver_requested),
        currency=vehicle.currency or "₹",
    )


def pricing_options(vehicle: Vehicle) -> List[Dict[str, Any]]:
    """Список тарифов для отображения ("₹400 per hour", "₹2500 per day")"""
    currency = vehicle.currency or "₹"
    options = []
    for attr, label in PRICING_OPTION_FIELDS:
        price = getattr(vehicle, attr, None)
        if price:
            options.append({
                "label": label,
                "price": to_decimal(price),
                "currency_symbol": currency,
            })
    return options


def driver_pricing(vehicle: Vehicle) -> Optional[Dict[str, Any]]:
    """Цена водителя отдельно от списка тарифов"""
    price = to_decimal(vehicle.driver_price)
    if not vehicle.driver_available or price <= 0:
        return None
    return {
        "label": vehicle.driver_label or DEFAULT_DRIVER_LABEL,
        "price": price,
        "currency_symbol": vehicle.currency or "₹",
    }
