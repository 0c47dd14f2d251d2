"""
Брони с документами: клиент создаёт, администратор ведёт по статусам
"""
from aiohttp import web
from loguru import logger

from api.keys import BOOKING_FLOW, DOCUMENTS
from api.params import read_json, parse_datetime, parse_float, parse_int, parse_bool, path_id
from api.serializers import ok, serialize_booking_flow
from services.document_service import UploadedFile
from services.exceptions import BookingError


routes = web.RouteTableDef()


async def _read_multipart(request: web.Request):
    """Поля формы и файлы из поля documents (в порядке загрузки)"""
    form = await request.post()
    fields = {}
    files = []
    for name, value in form.items():
        if isinstance(value, web.FileField):
            if name == "documents":
                files.append(UploadedFile(
                    filename=value.filename,
                    content=value.file.read(),
                    content_type=value.content_type,
                ))
        else:
            fields[name] = value
    return fields, files


@routes.post("/api/booking-flow/bookings")
async def create_booking(request: web.Request) -> web.Response:
    """JSON с documentImages (готовые URL) или multipart с файлами documents"""
    storage = request.app[DOCUMENTS]
    stored = []

    if request.content_type.startswith("multipart/"):
        data, files = await _read_multipart(request)
        stored = storage.store_images(files) if files else []
        images = stored
    else:
        data = await read_json(request)
        images = data.get("documentImages") or []

    try:
        booking = await request.app[BOOKING_FLOW].create_booking(
            request["caller"],
            phone=data.get("phone"),
            email=data.get("email"),
            vehicle_id=parse_int(data.get("vehicleId"), "vehicleId"),
            payment_method=data.get("paymentMethod"),
            description=data.get("description"),
            document_images=images,
            start_date=parse_datetime(data.get("startDate"), "startDate"),
            end_date=parse_datetime(data.get("endDate"), "endDate"),
            expected_km=parse_float(data.get("expectedKm"), "expectedKm"),
            driver_included=parse_bool(data.get("driverIncluded"), "driverIncluded"),
        )
    except BookingError:
        if stored:
            logger.info(f"🗑️ Removing {len(stored)} uploaded document(s) of rejected booking")
            storage.discard(stored)
        raise

    return ok(serialize_booking_flow(booking), "Booking created successfully", status=201)


@routes.get("/api/booking-flow/bookings")
async def list_bookings(request: web.Request) -> web.Response:
    bookings = await request.app[BOOKING_FLOW].list_bookings(request["caller"])
    return ok([serialize_booking_flow(b) for b in bookings], "Bookings retrieved successfully")


@routes.get(r"/api/booking-flow/bookings/{id:\d+}")
async def get_booking(request: web.Request) -> web.Response:
    booking = await request.app[BOOKING_FLOW].get_booking(request["caller"], path_id(request))
    return ok(serialize_booking_flow(booking), "Booking retrieved successfully")


@routes.post(r"/api/booking-flow/bookings/{id:\d+}/approve")
async def approve_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKING_FLOW].approve_booking(
        request["caller"], path_id(request), admin_notes=data.get("adminNotes")
    )
    return ok(serialize_booking_flow(booking), "Booking approved successfully")


@routes.post(r"/api/booking-flow/bookings/{id:\d+}/reject")
async def reject_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKING_FLOW].reject_booking(
        request["caller"],
        path_id(request),
        admin_notes=data.get("adminNotes") or data.get("reason"),
    )
    return ok(serialize_booking_flow(booking), "Booking rejected successfully")


@routes.post(r"/api/booking-flow/bookings/{id:\d+}/start")
async def start_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKING_FLOW].start_booking(
        request["caller"], path_id(request), admin_notes=data.get("adminNotes")
    )
    return ok(serialize_booking_flow(booking), "Booking started successfully")


@routes.post(r"/api/booking-flow/bookings/{id:\d+}/complete")
async def complete_booking(request: web.Request) -> web.Response:
    data = await read_json(request)
    booking = await request.app[BOOKING_FLOW].complete_booking(
        request["caller"],
        path_id(request),
        payment_confirmed=parse_bool(data.get("paymentConfirmed"), "paymentConfirmed", default=None),
        admin_notes=data.get("adminNotes"),
    )
    return ok(serialize_booking_flow(booking), "Booking completed successfully")
