"""
HTTP API сервиса бронирований (aiohttp)
"""
import asyncio
import contextlib

from aiohttp import web
from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from api.keys import (
    SESSION_FACTORY, BOOKINGS, BOOKING_FLOW, DASHBOARD, NOTIFICATIONS, DISPATCHER, DOCUMENTS
)
from api.middlewares import error_middleware, identity_middleware
from api.routes.booking_flow import routes as booking_flow_routes
from api.routes.bookings import routes as bookings_routes
from api.routes.dashboard import routes as dashboard_routes
from api.routes.health import routes as health_routes
from api.routes.notifications import routes as notifications_routes
from api.routes.vehicles import routes as vehicles_routes
from config.settings import settings
from database.base import async_session_factory
from services.booking_flow_service import BookingFlowService
from services.booking_service import BookingService
from services.dashboard_service import DashboardService
from services.document_service import DocumentStorage
from services.events import MemoryEventQueue, NotificationDispatcher
from services.notification_service import NotificationService


async def _dispatcher_worker(app: web.Application):
    """Фоновая доставка уведомлений на время жизни приложения"""
    task = asyncio.create_task(app[DISPATCHER].run())
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    await app[DISPATCHER].queue.close()
    logger.info("📪 Notification dispatcher stopped")


def create_app(
    session_factory: async_sessionmaker = None,
    dispatcher: NotificationDispatcher = None,
    storage: DocumentStorage = None,
    run_dispatcher: bool = True
) -> web.Application:
    """
    Создать приложение

    Args:
        session_factory: Фабрика сессий БД (по умолчанию из database.base)
        dispatcher: Очередь уведомлений (по умолчанию в памяти процесса)
        storage: Хранилище документов
        run_dispatcher: Запускать ли воркер доставки уведомлений вместе с приложением
    """
    session_factory = session_factory or async_session_factory
    notification_service = NotificationService(session_factory)
    if dispatcher is None:
        dispatcher = NotificationDispatcher(MemoryEventQueue(), notification_service)
    elif dispatcher.notification_service is None:
        dispatcher.notification_service = notification_service
    storage = storage or DocumentStorage()

    # Несколько документов по max_file_size плюс поля формы
    max_body = settings.max_file_size * settings.max_document_images + 1024 * 1024
    app = web.Application(
        middlewares=[error_middleware, identity_middleware],
        client_max_size=max_body,
    )

    app[SESSION_FACTORY] = session_factory
    app[BOOKINGS] = BookingService(session_factory)
    app[BOOKING_FLOW] = BookingFlowService(session_factory, dispatcher)
    app[DASHBOARD] = DashboardService(session_factory)
    app[NOTIFICATIONS] = notification_service
    app[DISPATCHER] = dispatcher
    app[DOCUMENTS] = storage

    # Маршруты
    app.router.add_routes(health_routes)
    app.router.add_routes(bookings_routes)
    app.router.add_routes(booking_flow_routes)
    app.router.add_routes(vehicles_routes)
    app.router.add_routes(dashboard_routes)
    app.router.add_routes(notifications_routes)
    app.router.add_static(storage.public_url, storage.get_upload_dir())

    if run_dispatcher:
        app.cleanup_ctx.append(_dispatcher_worker)

    return app


async def run_api_server(app: web.Application, host: str = "0.0.0.0", port: int = 8080):
    """
    Запустить API сервер

    Args:
        app: Приложение из create_app
        host: Хост для прослушивания
        port: Порт для прослушивания
    """
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"🌐 API сервер запущен на http://{host}:{port}")
    logger.info(f"   - Прямые брони: http://{host}:{port}/api/bookings")
    logger.info(f"   - Брони с документами: http://{host}:{port}/api/booking-flow/bookings")
    logger.info(f"   - Health check: GET http://{host}:{port}/health")

    try:
        # Держим сервер запущенным
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
