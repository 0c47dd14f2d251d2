from aiohttp import web

from api.keys import NOTIFICATIONS
from api.params import read_json, parse_int, parse_bool, path_id
from api.serializers import ok, serialize_notification


routes = web.RouteTableDef()


@routes.get("/api/notifications")
async def list_notifications(request: web.Request) -> web.Response:
    query = request.query
    result = await request.app[NOTIFICATIONS].list_notifications(
        request["caller"],
        page=parse_int(query.get("page"), "page", 1),
        limit=parse_int(query.get("limit"), "limit", 20),
        unread_only=parse_bool(query.get("unreadOnly"), "unreadOnly"),
    )
    result["notifications"] = [serialize_notification(n) for n in result["notifications"]]
    return ok(result, "Notifications retrieved successfully")


@routes.post(r"/api/notifications/{id:\d+}/read")
async def mark_as_read(request: web.Request) -> web.Response:
    notification = await request.app[NOTIFICATIONS].mark_as_read(request["caller"], path_id(request))
    return ok(serialize_notification(notification), "Notification marked as read")


@routes.post("/api/notifications/read-all")
async def mark_all_as_read(request: web.Request) -> web.Response:
    count = await request.app[NOTIFICATIONS].mark_all_as_read(request["caller"])
    return ok({"modifiedCount": count}, f"Marked {count} notifications as read")


@routes.delete("/api/notifications/clear-all")
async def clear_all_read(request: web.Request) -> web.Response:
    count = await request.app[NOTIFICATIONS].clear_all_read(request["caller"])
    return ok({"deletedCount": count}, f"Deleted {count} read notifications")


@routes.get(r"/api/notifications/{id:\d+}")
async def get_notification(request: web.Request) -> web.Response:
    notification = await request.app[NOTIFICATIONS].get_notification(request["caller"], path_id(request))
    return ok(serialize_notification(notification), "Notification found successfully")


@routes.delete(r"/api/notifications/{id:\d+}")
async def delete_notification(request: web.Request) -> web.Response:
    await request.app[NOTIFICATIONS].delete_notification(request["caller"], path_id(request))
    return ok(None, "Notification deleted successfully")


@routes.post("/api/notifications/push-token")
async def register_push_token(request: web.Request) -> web.Response:
    body = await read_json(request)
    tokens = await request.app[NOTIFICATIONS].register_push_token(request["caller"], body.get("pushToken"))
    return ok({"pushTokens": tokens, "totalTokens": len(tokens)}, "Push token updated successfully")


@routes.delete("/api/notifications/push-token")
async def remove_push_token(request: web.Request) -> web.Response:
    body = await read_json(request)
    result = await request.app[NOTIFICATIONS].remove_push_token(request["caller"], body.get("pushToken"))
    message = "Push token removed successfully" if result["removed"] else "No tokens to remove"
    return ok(result, message)
