"""
Прямые брони: клиент создаёт, владелец транспорта подтверждает
"""
from aiohttp import web

from api.keys import BOOKINGS
from api.params import read_json, parse_datetime, parse_float, parse_int, parse_bool, path_id
from api.serializers import ok, serialize_booking


routes = web.RouteTableDef()


@routes.post("/api/bookings")
async def create_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKINGS].create_booking(
        request["caller"],
        vehicle_id=parse_int(data.get("vehicleId"), "vehicleId"),
        start_at=parse_datetime(data.get("startAt"), "startAt"),
        end_at=parse_datetime(data.get("endAt"), "endAt"),
        expected_km=parse_float(data.get("expectedKm"), "expectedKm"),
        driver_required=parse_bool(data.get("driverRequired"), "driverRequired"),
        pickup_location=data.get("pickupLocation"),
        destination=data.get("destination"),
        payment_method=data.get("paymentMethod"),
    )
    return ok(serialize_booking(booking), "Booking created successfully", status=201)


@routes.get("/api/bookings/me")
async def my_bookings(request: web.Request) -> web.Response:
    bookings = await request.app[BOOKINGS].list_renter_bookings(request["caller"])
    return ok([serialize_booking(b) for b in bookings], "Bookings retrieved successfully")


@routes.get("/api/bookings/list")
async def list_bookings(request: web.Request) -> web.Response:
    query = request.query
    result = await request.app[BOOKINGS].list_bookings(
        request["caller"],
        page=parse_int(query.get("page"), "page", 1),
        limit=parse_int(query.get("limit"), "limit", 10),
        status=query.get("status"),
        start_date=parse_datetime(query.get("startDate"), "startDate"),
        end_date=parse_datetime(query.get("endDate"), "endDate"),
        sort_by=query.get("sortBy", "createdAt"),
        sort_order=query.get("sortOrder", "desc"),
    )
    result["bookings"] = [serialize_booking(b) for b in result["bookings"]]
    return ok(result, "Bookings retrieved successfully")


@routes.get("/api/bookings/owner/requests")
async def owner_requests(request: web.Request) -> web.Response:
    bookings = await request.app[BOOKINGS].list_owner_bookings(request["caller"])
    return ok([serialize_booking(b) for b in bookings], "Booking requests retrieved successfully")


@routes.get(r"/api/bookings/{id:\d+}")
async def get_booking(request: web.Request) -> web.Response:
    booking = await request.app[BOOKINGS].get_booking(request["caller"], path_id(request))
    return ok(serialize_booking(booking), "Booking retrieved successfully")


@routes.post(r"/api/bookings/{id:\d+}/accept")
async def accept_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKINGS].accept_booking(
        request["caller"],
        path_id(request),
        driver_name=data.get("driverName"),
        driver_phone=data.get("driverPhone"),
        driver_license=data.get("driverLicense"),
    )
    return ok(serialize_booking(booking), "Booking accepted successfully")


@routes.post(r"/api/bookings/{id:\d+}/decline")
async def decline_booking(request: web.Request) -> web.Response:
    booking = await request.app[BOOKINGS].decline_booking(request["caller"], path_id(request))
    return ok(serialize_booking(booking), "Booking declined successfully")


@routes.post(r"/api/bookings/{id:\d+}/start")
async def start_trip(request: web.Request) -> web.Response:
    booking = await request.app[BOOKINGS].start_trip(request["caller"], path_id(request))
    return ok(serialize_booking(booking), "Trip started successfully")


@routes.post(r"/api/bookings/{id:\d+}/complete")
async def complete_trip(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKINGS].complete_trip(
        request["caller"],
        path_id(request),
        actual_km=parse_float(data.get("actualKm"), "actualKm"),
    )
    return ok(serialize_booking(booking), "Trip completed successfully")
