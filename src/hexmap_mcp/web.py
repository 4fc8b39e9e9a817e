"""
Hexmap web dashboard - the module map served over HTTP

A lightweight aiohttp server that hosts one hex map.  The page reports its
size and clicks back to the server; the server keeps the layout state and
returns freshly rendered PNG frames.

Usage:
    hexmap-web [--port 8901] [--host 127.0.0.1] [--admin-url http://127.0.0.1:8900]
"""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from . import config
from .client import AdminClient
from .controller import LayoutController
from .renderer import LayoutRenderer
from .surface import BufferedSurface

logger = logging.getLogger(__name__)

CONTROLLER_KEY = web.AppKey("controller", LayoutController)
RENDERER_KEY = web.AppKey("renderer", LayoutRenderer)

INDEX_HTML = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>Hexmap</title>
<style>html,body{margin:0;height:100%;overflow:hidden}#map{display:block;width:100%;height:100%}</style>
</head>
<body>
<img id="map" alt="module map">
<script>
var img = document.getElementById('map');
function redraw() { img.src = '/api/layout.png?t=' + Date.now(); }
function post(path, body) {
  return fetch(path, {method: 'POST', headers: {'Content-Type': 'application/json'},
                      body: JSON.stringify(body || {})}).then(redraw);
}
function reportSize() { post('/api/viewport', {width: window.innerWidth, height: window.innerHeight}); }
img.addEventListener('click', function(e) { post('/api/click', {x: e.offsetX, y: e.offsetY}); });
window.addEventListener('resize', reportSize);
document.addEventListener('visibilitychange', function() {
  post(document.hidden ? '/api/deactivate' : '/api/activate');
});
reportSize();
post('/api/refresh');
</script>
</body>
</html>
"""


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_json(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    data = await request.json()
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


async def handle_index(request):
    return web.Response(text=INDEX_HTML, content_type="text/html")


async def handle_layout(request):
    """Current layout as JSON."""
    return web.json_response(request.app[CONTROLLER_KEY].describe())


async def handle_layout_png(request):
    """Full redraw of the last presented frame."""
    controller = request.app[CONTROLLER_KEY]
    if controller.frame is None:
        await controller.recompute()
    if controller.frame is None:
        return _error("Nothing to draw yet", status=503)
    png = request.app[RENDERER_KEY].render(controller.frame)
    return web.Response(body=png, content_type="image/png", headers={"Cache-Control": "no-store"})


async def handle_viewport(request):
    """Resize hook: the page reports its drawing surface size."""
    controller = request.app[CONTROLLER_KEY]
    try:
        data = await _read_json(request)
        width = float(data["width"])
        height = float(data["height"])
    except (KeyError, TypeError, ValueError) as e:
        return _error(f"Invalid viewport: {e}")
    controller.surface.resize(width, height)
    await controller.resize()
    return web.json_response(controller.describe())


async def handle_activate(request):
    controller = request.app[CONTROLLER_KEY]
    await controller.activate()
    return web.json_response(controller.describe())


async def handle_deactivate(request):
    controller = request.app[CONTROLLER_KEY]
    controller.deactivate()
    return web.json_response(controller.describe())


async def handle_refresh(request):
    controller = request.app[CONTROLLER_KEY]
    await controller.refresh()
    return web.json_response(controller.describe())


async def handle_click(request):
    """Click at {x, y} on the surface, or on a module by {name}."""
    controller = request.app[CONTROLLER_KEY]
    try:
        data = await _read_json(request)
        if "name" in data:
            controller.click_node(str(data["name"]))
        else:
            controller.click_at(float(data["x"]), float(data["y"]))
    except (KeyError, TypeError, ValueError) as e:
        return _error(str(e))
    return web.json_response(controller.describe())


async def handle_dismiss(request):
    controller = request.app[CONTROLLER_KEY]
    controller.click_outside()
    return web.json_response(controller.describe())


async def handle_toggle(request):
    controller = request.app[CONTROLLER_KEY]
    await controller.toggle(request.match_info["name"])
    return web.json_response(controller.describe())


async def handle_update(request):
    """Save edited popup fields: body is {key: text, ...}."""
    controller = request.app[CONTROLLER_KEY]
    try:
        data = await _read_json(request)
    except ValueError as e:
        return _error(f"Invalid JSON: {e}")
    fields = {str(k): str(v) for k, v in data.items()}
    await controller.save(request.match_info["name"], fields)
    return web.json_response(controller.describe())


async def _close_client(app: web.Application):
    client = app[CONTROLLER_KEY].client
    if client is not None:
        await client.close()


def create_app(
    client: Optional[AdminClient] = None,
    width: float = 0,
    height: float = 0,
    theme: str = config.THEME,
    frame_interval: float = 0.05,
) -> web.Application:
    """Create the aiohttp application."""
    app = web.Application()
    surface = BufferedSurface(width, height, frame_interval=frame_interval)
    app[CONTROLLER_KEY] = LayoutController(surface, client=client or AdminClient())
    app[RENDERER_KEY] = LayoutRenderer(theme=theme)

    app.router.add_get('/', handle_index)
    app.router.add_get('/api/layout', handle_layout)
    app.router.add_get('/api/layout.png', handle_layout_png)
    app.router.add_post('/api/viewport', handle_viewport)
    app.router.add_post('/api/activate', handle_activate)
    app.router.add_post('/api/deactivate', handle_deactivate)
    app.router.add_post('/api/refresh', handle_refresh)
    app.router.add_post('/api/click', handle_click)
    app.router.add_post('/api/dismiss', handle_dismiss)
    app.router.add_post('/api/toggle/{name}', handle_toggle)
    app.router.add_post('/api/update/{name}', handle_update)

    app.on_cleanup.append(_close_client)
    return app


async def main(host: str = '127.0.0.1', port: int = 8901, admin_url: str = config.ADMIN_URL):
    """Run the web server."""
    app = create_app(client=AdminClient(base_url=admin_url))

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Hexmap dashboard running at http://{host}:{port}")
    logger.info(f"Config API: {admin_url}")

    try:
        # Keep running
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()


def run():
    import argparse

    parser = argparse.ArgumentParser(description='Hexmap web dashboard')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8901, help='Port to listen on')
    parser.add_argument('--admin-url', default=config.ADMIN_URL, help='Base URL of the config API')
    args = parser.parse_args()

    config.setup_logging()
    try:
        asyncio.run(main(host=args.host, port=args.port, admin_url=args.admin_url))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    run()
