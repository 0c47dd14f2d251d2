"""
Уведомления пользователей: запись в БД и push через Expo
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

import aiohttp
from loguru import logger
from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import settings
from database.base import async_session_factory
from database.models.notification import Notification
from database.models.user import User
from services.access import Caller
from services.exceptions import NotFoundError, ForbiddenError, ValidationError
from services.transitions import utcnow


EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")

# Expo принимает не больше 100 сообщений за запрос
EXPO_CHUNK_SIZE = 100


def is_expo_push_token(token) -> bool:
    return isinstance(token, str) and bool(EXPO_TOKEN_RE.match(token))


@dataclass
class PushResult:
    success_count: int = 0
    failure_count: int = 0
    invalid_tokens: List[str] = field(default_factory=list)


class ExpoPushClient:
    """Отправка push-уведомлений через Expo Push API"""

    def __init__(self, url: str = None):
        self.url = url or settings.expo_push_url

    @staticmethod
    def _build_message(token: str, title: str, body: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": {**data, "title": title, "body": body},
            "priority": "high",
            "channelId": "default",
        }

    async def send(self, tokens: List[str], title: str, body: str, data: Dict[str, Any] = None) -> PushResult:
        """
        Отправить уведомление на несколько устройств.

        Невалидные токены и токены с ошибкой DeviceNotRegistered
        попадают в invalid_tokens, чтобы их можно было удалить у пользователя.
        """
        data = data or {}
        result = PushResult()

        valid = [t for t in tokens if is_expo_push_token(t)]
        result.invalid_tokens.extend(t for t in tokens if not is_expo_push_token(t))
        result.failure_count += len(result.invalid_tokens)

        if not valid:
            return result

        messages = [self._build_message(t, title, body, data) for t in valid]

        async with aiohttp.ClientSession() as session:
            for start in range(0, len(messages), EXPO_CHUNK_SIZE):
                chunk = messages[start:start + EXPO_CHUNK_SIZE]
                chunk_tokens = valid[start:start + EXPO_CHUNK_SIZE]
                try:
                    async with session.post(
                        self.url,
                        json=chunk,
                        headers={"Accept": "application/json"},
                        timeout=aiohttp.ClientTimeout(total=10),
                    ) as response:
                        payload = await response.json(content_type=None)
                        if response.status != 200:
                            logger.error(f"Expo push error: {response.status} - {payload}")
                            result.failure_count += len(chunk)
                            continue
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    logger.error(f"Error sending Expo notification chunk: {e}")
                    result.failure_count += len(chunk)
                    continue

                tickets = payload.get("data") if isinstance(payload, dict) else None
                if not isinstance(tickets, list):
                    logger.error(f"Unexpected Expo push response: {payload}")
                    result.failure_count += len(chunk)
                    continue

                for token, ticket in zip(chunk_tokens, tickets):
                    if not isinstance(ticket, dict):
                        result.failure_count += 1
                        continue
                    if ticket.get("status") == "ok":
                        result.success_count += 1
                        continue
                    result.failure_count += 1
                    details = ticket.get("details")
                    if isinstance(details, dict) and details.get("error") == "DeviceNotRegistered":
                        result.invalid_tokens.append(token)

        return result


class NotificationService:
    """Создание и отправка уведомлений"""

    def __init__(self, session_factory: async_sessionmaker = None, push_client: ExpoPushClient = None):
        self.session_factory = session_factory or async_session_factory
        self.push_client = push_client or ExpoPushClient()

    async def notify(
        self,
        user_id: int,
        type: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        booking_flow_id: Optional[int] = None
    ) -> Notification:
        """
        Сохранить уведомление и отправить push на все устройства пользователя.

        Raises:
            NotFoundError: Пользователь не найден
        """
        data = data or {}

        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if not user:
                logger.error(f"Security: attempted to notify non-existent user {user_id}")
                raise NotFoundError(f"User {user_id} not found")

            notification = Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=body,
                data=data,
                booking_flow_id=booking_flow_id,
            )
            session.add(notification)
            await session.commit()
            await session.refresh(notification)
            logger.info(f"📧 Notification created for user {user_id}, type: {type}")

            tokens = list(user.push_tokens or [])
            if not tokens:
                logger.info(f"⚠️ User {user_id} has no push tokens, notification saved but not sent")
                return notification
            if not settings.notifications_enabled:
                return notification

            payload = {"notificationId": str(notification.id), "type": type, **data}
            if booking_flow_id:
                payload["bookingId"] = str(booking_flow_id)

            result = await self.push_client.send(tokens, title, body, payload)
            logger.info(
                f"📊 Push sent to user {user_id}: "
                f"{result.success_count} successful, {result.failure_count} failed"
            )

            if result.invalid_tokens:
                user.push_tokens = [t for t in tokens if t not in result.invalid_tokens]
                await session.commit()
                logger.info(f"Removed {len(result.invalid_tokens)} invalid push tokens for user {user_id}")

        return notification

    async def list_notifications(
        self,
        caller: Caller,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False
    ) -> Dict[str, Any]:
        page = max(int(page), 1)
        limit = max(int(limit), 1)

        conditions = [Notification.user_id == caller.user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        async with self.session_factory() as session:
            result = await session.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            notifications = list(result.scalars().all())

            total = await session.scalar(
                select(func.count()).select_from(Notification)
                .where(Notification.user_id == caller.user_id)
            )
            unread = await session.scalar(
                select(func.count()).select_from(Notification)
                .where(Notification.user_id == caller.user_id)
                .where(Notification.is_read.is_(False))
            )

        return {
            "notifications": notifications,
            "unreadCount": unread,
            "totalCount": total,
            "pagination": {
                "currentPage": page,
                "totalPages": -(-total // limit),
                "hasNextPage": (page - 1) * limit + len(notifications) < total,
                "hasPrevPage": page > 1,
            },
        }

    async def mark_as_read(self, caller: Caller, notification_id: int) -> Notification:
        async with self.session_factory() as session:
            notification = await session.get(Notification, notification_id)
            if not notification:
                raise NotFoundError("Notification not found")
            if notification.user_id != caller.user_id and not caller.is_admin:
                raise ForbiddenError("Not authorized to update this notification")

            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                await session.commit()
                await session.refresh(notification)

        return notification

    async def get_notification(self, caller: Caller, notification_id: int) -> Notification:
        async with self.session_factory() as session:
            notification = await session.get(Notification, notification_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if notification.user_id != caller.user_id and not caller.is_admin:
            raise ForbiddenError("Not authorized to view this notification")
        return notification

    async def mark_all_as_read(self, caller: Caller) -> int:
        """Отметить все непрочитанные уведомления пользователя, вернуть их число"""
        async with self.session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(Notification.user_id == caller.user_id)
                .where(Notification.is_read.is_(False))
                .values(is_read=True, read_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.info(f"📖 Marked {result.rowcount} notifications as read for user {caller.user_id}")
        return result.rowcount

    async def delete_notification(self, caller: Caller, notification_id: int) -> None:
        async with self.session_factory() as session:
            notification = await session.get(Notification, notification_id)
            if not notification:
                raise NotFoundError("Notification not found")
            if notification.user_id != caller.user_id and not caller.is_admin:
                raise ForbiddenError("Not authorized to delete this notification")

            await session.delete(notification)
            await session.commit()

        logger.info(f"🗑 Notification {notification_id} deleted by user {caller.user_id}")

    async def clear_all_read(self, caller: Caller) -> int:
        """Удалить прочитанные уведомления пользователя"""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(Notification)
                .where(Notification.user_id == caller.user_id)
                .where(Notification.is_read.is_(True))
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.info(f"🗑 Deleted {result.rowcount} read notifications for user {caller.user_id}")
        return result.rowcount

    async def register_push_token(self, caller: Caller, token: Any) -> List[str]:
        """
        Привязать Expo push-токен к пользователю.
        У пользователя может быть несколько устройств, повторный токен не дублируется.

        Raises:
            ValidationError: Токен не похож на Expo push-токен
            NotFoundError: Пользователь не найден
        """
        token = token.strip() if isinstance(token, str) else token
        if not is_expo_push_token(token):
            raise ValidationError("Valid push token is required", field="pushToken")

        async with self.session_factory() as session:
            user = await session.get(User, caller.user_id)
            if not user:
                logger.error(f"Security: user {caller.user_id} not found while registering push token")
                raise NotFoundError("User not found")

            tokens = list(user.push_tokens or [])
            if token in tokens:
                logger.info(f"ℹ️ Push token already registered for user {caller.user_id}")
                return tokens

            # JSON-колонка отслеживается только при присваивании нового списка
            user.push_tokens = tokens + [token]
            await session.commit()

        logger.info(f"✅ Push token added for user {caller.user_id}, total: {len(tokens) + 1}")
        return tokens + [token]

    async def remove_push_token(self, caller: Caller, token: Any) -> Dict[str, Any]:
        if not isinstance(token, str) or not token.strip():
            raise ValidationError("Push token is required", field="pushToken")
        token = token.strip()

        async with self.session_factory() as session:
            user = await session.get(User, caller.user_id)
            if not user:
                raise NotFoundError("User not found")

            tokens = list(user.push_tokens or [])
            remaining = [t for t in tokens if t != token]
            removed = len(remaining) < len(tokens)
            if removed:
                user.push_tokens = remaining
                await session.commit()
                logger.info(f"Push token removed for user {caller.user_id}")

        return {"pushTokens": remaining, "removed": removed}
