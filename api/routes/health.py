from aiohttp import web


routes = web.RouteTableDef()


@routes.get("/health")
async def health_check(request: web.Request) -> web.Response:
    """Health check endpoint"""
    return web.Response(status=200, text="OK")
