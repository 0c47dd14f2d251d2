"""
Разбор параметров запроса.
Ошибки формата превращаются в ValidationError с именем поля.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from aiohttp import web

from services.exceptions import ValidationError


TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off", ""}


async def read_json(request: web.Request) -> Dict[str, Any]:
    """Тело запроса как dict. Пустое тело = {}"""
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        # fromisoformat до 3.11 не понимает суффикс Z
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO 8601 date", field=field)


def parse_int(value: Any, field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


def parse_float(value: Any, field: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)


def parse_bool(value: Any, field: str, default: Optional[bool] = False) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be true or false", field=field)


def path_id(request: web.Request, name: str = "id") -> int:
    return parse_int(request.match_info[name], name)
