import asyncio

from loguru import logger

from api.app import create_app, run_api_server
from config.settings import settings
from database.base import init_db
from services.events import create_event_queue, NotificationDispatcher
from services.notification_service import NotificationService


async def main():
    """Главная функция запуска API"""

    # Настройка логирования
    logger.add(
        "logs/api.log",
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    logger.info("🚀 Запуск сервиса бронирований...")

    # Очередь уведомлений: Redis, если доступен, иначе память
    queue = await create_event_queue(settings.redis_url)
    dispatcher = NotificationDispatcher(queue, NotificationService())

    try:
        # Инициализация базы данных
        logger.info("🗄️ Инициализация базы данных...")
        await init_db()
        logger.info("✅ База данных инициализирована")

        app = create_app(dispatcher=dispatcher)
        await run_api_server(app, settings.api_host, settings.api_port)

    except Exception as e:
        logger.error(f"❌ Ошибка при запуске: {e}")
        raise


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 Сервис остановлен пользователем")
    except Exception as e:
        logger.error(f"💥 Критическая ошибка: {e}")
        raise
