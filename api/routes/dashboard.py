from aiohttp import web

from api.keys import DASHBOARD
from api.serializers import ok
from services.access import require_admin


routes = web.RouteTableDef()


@routes.get("/api/dashboard")
async def get_dashboard(request: web.Request) -> web.Response:
    """KPI и последние брони, только для администратора"""
    require_admin(request["caller"])
    data = await request.app[DASHBOARD].get_dashboard()
    return ok(data, "Dashboard data retrieved successfully")
