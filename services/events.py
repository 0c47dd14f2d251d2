"""
События после смены статуса брони и доставка уведомлений.

Сервис бронирований только публикует событие в очередь.
Отдельный воркер (NotificationDispatcher.run) забирает события и
вызывает NotificationService. Ошибки доставки не влияют на саму бронь.
"""
import asyncio
import json
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

import redis.asyncio as redis
from loguru import logger


EVENTS_KEY = "booking:events"


@dataclass
class BookingEvent:
    user_id: int
    type: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    booking_flow_id: Optional[int] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, raw) -> "BookingEvent":
        if isinstance(raw, bytes):
            raw = raw.decode()
        return cls(**json.loads(raw))


class MemoryEventQueue:
    """Очередь в памяти процесса (если Redis недоступен)"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    async def put(self, event: BookingEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> BookingEvent:
        return await self._queue.get()

    async def close(self) -> None:
        pass


class RedisEventQueue:
    """Очередь событий в списке Redis (переживает рестарт процесса)"""

    def __init__(self, client: redis.Redis, key: str = EVENTS_KEY):
        self.redis = client
        self.key = key

    async def put(self, event: BookingEvent) -> None:
        await self.redis.lpush(self.key, event.to_json())

    async def get(self) -> BookingEvent:
        _, raw = await self.redis.brpop(self.key, timeout=0)
        return BookingEvent.from_json(raw)

    async def close(self) -> None:
        await self.redis.aclose()


async def create_event_queue(redis_url: str):
    """Redis, если доступен, иначе очередь в памяти"""
    try:
        client = redis.from_url(redis_url)
        await client.ping()
        logger.info("✅ Подключение к Redis успешно, события пойдут в Redis")
        return RedisEventQueue(client)
    except Exception as e:
        logger.warning(f"⚠️ Redis недоступен ({e}), используем очередь в памяти")
        return MemoryEventQueue()


class NotificationDispatcher:
    """Публикация событий и фоновая доставка уведомлений"""

    def __init__(self, queue, notification_service=None):
        self.queue = queue
        self.notification_service = notification_service

    async def publish(self, event: BookingEvent) -> bool:
        """
        Поставить событие в очередь. Никогда не бросает исключений:
        бронь уже сохранена, потеря уведомления допустима.
        """
        try:
            await self.queue.put(event)
            logger.debug(f"📨 Event queued: {event.type} -> user {event.user_id}")
            return True
        except Exception as e:
            logger.error(f"❌ Не удалось поставить событие {event.type} в очередь: {e}")
            return False

    async def deliver(self, event: BookingEvent) -> bool:
        try:
            await self.notification_service.notify(
                user_id=event.user_id,
                type=event.type,
                title=event.title,
                body=event.body,
                data=event.data,
                booking_flow_id=event.booking_flow_id,
            )
            return True
        except Exception as e:
            logger.error(f"❌ Ошибка доставки уведомления {event.type} пользователю {event.user_id}: {e}")
            return False

    async def run(self):
        """Бесконечный цикл воркера"""
        logger.info("📬 Notification dispatcher started")
        while True:
            try:
                event = await self.queue.get()
            except Exception as e:
                logger.error(f"❌ Ошибка чтения очереди событий: {e}")
                await asyncio.sleep(5)
                continue
            await self.deliver(event)
