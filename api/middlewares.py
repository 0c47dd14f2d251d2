"""
Middleware API: пользователь из заголовков и преобразование ошибок в ответы
"""
import hmac

from aiohttp import web
from loguru import logger

from api.serializers import fail
from config.settings import settings
from services.access import Caller
from services.exceptions import (
    BookingError, ValidationError, ConflictError, ForbiddenError, DependencyError
)


USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"
GATEWAY_SECRET_HEADER = "X-Gateway-Secret"

PUBLIC_PATHS = ("/health",)


def _is_public(request: web.Request) -> bool:
    path = request.path
    return path in PUBLIC_PATHS or path.startswith(settings.public_upload_url.rstrip("/") + "/")


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ForbiddenError as e:
        # Без подробностей о состоянии брони
        logger.warning(f"🚫 {request.method} {request.path}: {e.message}")
        return fail(e.message, e.status_code)
    except ConflictError as e:
        data = None
        if e.current_status:
            data = {"currentStatus": e.current_status, "requiredStatus": e.required_status}
        return fail(e.message, e.status_code, data)
    except ValidationError as e:
        return fail(e.message, e.status_code, {"field": e.field} if e.field else None)
    except DependencyError as e:
        logger.error(f"❌ {request.method} {request.path}: {e.message}")
        return fail(e.message, e.status_code)
    except BookingError as e:
        return fail(e.message, e.status_code)
    except Exception:
        logger.exception(f"💥 Unhandled error on {request.method} {request.path}")
        return fail("Server error", 500)


@web.middleware
async def identity_middleware(request: web.Request, handler):
    """
    Токен проверяет внешний сервис авторизации,
    сюда приходят X-User-Id и X-User-Role.
    Если задан GATEWAY_SECRET, шлюз подтверждает себя заголовком X-Gateway-Secret.
    """
    if _is_public(request):
        return await handler(request)

    if settings.gateway_secret:
        secret = request.headers.get(GATEWAY_SECRET_HEADER, "")
        if not hmac.compare_digest(secret.encode(), settings.gateway_secret.encode()):
            logger.warning(f"🚫 Request without valid gateway secret: {request.method} {request.path}")
            return fail("Authentication required", 401)

    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        return fail("Authentication required", 401)

    try:
        request["caller"] = Caller.from_raw(user_id, request.headers.get(USER_ROLE_HEADER))
    except ValidationError as e:
        return fail(e.message, 401)

    return await handler(request)
