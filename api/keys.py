"""Ключи сервисов в web.Application"""
from aiohttp import web
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.booking_flow_service import BookingFlowService
from services.booking_service import BookingService
from services.dashboard_service import DashboardService
from services.document_service import DocumentStorage
from services.events import NotificationDispatcher
from services.notification_service import NotificationService


SESSION_FACTORY = web.AppKey("session_factory", async_sessionmaker)
BOOKINGS = web.AppKey("bookings", BookingService)
BOOKING_FLOW = web.AppKey("booking_flow", BookingFlowService)
DASHBOARD = web.AppKey("dashboard", DashboardService)
NOTIFICATIONS = web.AppKey("notifications", NotificationService)
DISPATCHER = web.AppKey("dispatcher", NotificationDispatcher)
DOCUMENTS = web.AppKey("documents", DocumentStorage)
