from aiohttp import web

from api.keys import SESSION_FACTORY
from api.params import parse_datetime, parse_float, parse_bool, path_id
from api.serializers import ok
from services.pricing_service import RentalWindow, compute_price
from services.vehicle_service import VehicleService


routes = web.RouteTableDef()


@routes.get(r"/api/vehicles/{id:\d+}/pricing")
async def vehicle_pricing(request: web.Request) -> web.Response:
    """
    Тарифы транспорта. Если переданы startAt/endAt или expectedKm,
    дополнительно возвращается расчёт стоимости (quote).
    """
    query = request.query
    window = RentalWindow(
        start_at=parse_datetime(query.get("startAt"), "startAt"),
        end_at=parse_datetime(query.get("endAt"), "endAt"),
        expected_km=parse_float(query.get("expectedKm"), "expectedKm"),
    )
    driver = parse_bool(query.get("driver"), "driver")

    async with request.app[SESSION_FACTORY]() as session:
        vehicle = await VehicleService.get_vehicle(session, path_id(request))
        data = VehicleService.vehicle_summary(vehicle)
        if window.has_interval or window.expected_km is not None:
            data["quote"] = compute_price(vehicle, window, driver).to_dict()

    return ok(data, "Vehicle pricing retrieved successfully")
