from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

from aiohttp import web  # type: ignore[reportMissingImports]

from ...event_bus import EventBus, TOPIC_NAV_COMMAND, UI_TOPICS

logger = logging.getLogger(__name__)

StateProvider = Callable[[], Dict[str, Any]]

# POST path -> nav.command action
COMMAND_ROUTES = {
    "/api/destination/clear": "clear_destination",
    "/api/start": "start",
    "/api/tracking/toggle": "toggle_tracking",
    "/api/center": "center",
    "/api/route/retry": "retry_route",
    "/api/permission/retry": "retry_permission",
}

INDEX_HTML = """
<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>CarNav</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
      html,body,#map{height:100%;margin:0;font-family:system-ui,Arial}
      #search{position:absolute;top:10px;left:10px;right:10px;z-index:1000;background:#fff;padding:8px;border-radius:6px;box-shadow:0 2px 6px #0004}
      #search input{width:70%;padding:6px}
      #info{position:absolute;bottom:20px;left:20px;z-index:1000;background:#fff;padding:8px;border-radius:6px;font-weight:bold;display:none}
      #buttons{position:absolute;bottom:20px;right:20px;z-index:1000;display:flex;flex-direction:column;gap:8px}
      #banner{position:absolute;top:70px;left:10px;right:10px;z-index:1000;background:#c62828;color:#fff;padding:6px;border-radius:6px;display:none}
    </style>
  </head>
  <body>
    <div id="map"></div>
    <div id="search">
      <form id="form"><input id="query" placeholder="Enter destination..." />
      <button type="submit">Go</button> <button type="button" id="clear">Clear</button>
      <span id="status"></span></form>
    </div>
    <div id="banner"></div>
    <div id="info"></div>
    <div id="buttons">
      <button id="start">Start</button>
      <button id="center">Center</button>
      <button id="tracking">Pause tracking</button>
    </div>
    <script>
      const map = L.map('map').setView([0, 0], __DEFAULT_ZOOM__);
      L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {subdomains: ['a','b','c']}).addTo(map);
      const me = L.circleMarker([0, 0], {radius: 8, color: '#1976d2'}).addTo(map);
      let dest = null, line = null;
      const post = (path, body) => fetch(path, {method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify(body || {})});
      document.getElementById('form').onsubmit = (e) => { e.preventDefault(); post('/api/destination', {query: document.getElementById('query').value}); };
      document.getElementById('clear').onclick = () => { document.getElementById('query').value = ''; post('/api/destination/clear'); };
      document.getElementById('start').onclick = () => post('/api/start');
      document.getElementById('center').onclick = () => post('/api/center');
      document.getElementById('tracking').onclick = () => post('/api/tracking/toggle');
      const ll = (p) => [p.lat, p.lon];
      function render(s){
        if(s.current_position){ me.setLatLng(ll(s.current_position)); }
        me.setStyle({color: s.tracking ? '#1976d2' : '#9e9e9e'});
        document.getElementById('tracking').textContent = s.tracking ? 'Pause tracking' : 'Resume tracking';
        document.getElementById('status').textContent = s.searching ? 'Searching...' : (s.loading ? 'Waiting for GPS...' : s.mode);
        if(dest){ map.removeLayer(dest); dest = null; }
        if(line){ map.removeLayer(line); line = null; }
        if(s.destination){ dest = L.marker(ll(s.destination)).addTo(map); }
        const info = document.getElementById('info');
        if(s.route && s.destination){
          line = L.polyline(s.route.points, {color: '#1976d2', weight: 4}).addTo(map);
          info.textContent = s.distance_text + ' · ' + s.duration_text;
          info.style.display = 'block';
        } else { info.style.display = 'none'; }
      }
      function camera(c){
        if(c.command === 'recenter'){ map.setView(ll(c.point), c.zoom === null ? map.getZoom() : c.zoom); }
        if(c.command === 'zoom_to'){ map.setView(ll(c.point), c.zoom); }
        if(c.command === 'fit_bounds'){ map.fitBounds(c.points.map(ll), {padding: [c.padding_px, c.padding_px]}); }
      }
      function banner(e){
        const b = document.getElementById('banner');
        b.textContent = e.message; b.style.display = 'block';
        setTimeout(() => { b.style.display = 'none'; }, 4000);
      }
      fetch('/api/state').then(r => r.json()).then(render);
      const es = new EventSource('/api/sse');
      es.onmessage = (ev) => {
        try{
          const msg = JSON.parse(ev.data);
          if(msg.topic === 'nav.state'){ render(msg.data); }
          if(msg.topic === 'nav.camera'){ camera(msg.data); }
          if(msg.topic === 'nav.error'){ banner(msg.data); }
        }catch(e){console.error(e)}
      };
    </script>
  </body>
</html>
"""


class WebServer:
    def __init__(
        self,
        events: EventBus,
        state_provider: StateProvider,
        host: str = "0.0.0.0",
        port: int = 8080,
        default_zoom: float = 15.0,
    ) -> None:
        self._events = events
        self._state_provider = state_provider
        self._host = host
        self._port = port
        self._index_html = INDEX_HTML.replace("__DEFAULT_ZOOM__", repr(float(default_zoom)))
        self._task: asyncio.Task | None = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="web-server")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([
            web.get('/', self._handle_index),
            web.get('/api/sse', self._handle_sse),
            web.get('/api/state', self._handle_state),
            web.post('/api/destination', self._handle_destination),
        ])
        for path in COMMAND_ROUTES:
            app.router.add_post(path, self._handle_command)
        return app

    async def _run(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info("Web server listening on http://%s:%d", self._host, self._port)

        try:
            while True:
                await asyncio.sleep(60)
        finally:
            if self._runner is not None:
                await self._runner.cleanup()
                self._runner = None

    async def _handle_index(self, request: web.Request) -> web.Response:
        return web.Response(text=self._index_html, content_type='text/html')

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self._state_provider())

    async def _handle_destination(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(text="Body must be JSON")
        if not isinstance(body, dict) or not isinstance(body.get("query"), str):
            raise web.HTTPBadRequest(text="Expected {\"query\": string}")
        await self._events.publish(TOPIC_NAV_COMMAND, {"action": "submit_destination", "query": body["query"]})
        return web.json_response({"ok": True})

    async def _handle_command(self, request: web.Request) -> web.Response:
        action = COMMAND_ROUTES[request.path]
        await self._events.publish(TOPIC_NAV_COMMAND, {"action": action})
        return web.json_response({"ok": True})

    async def _handle_sse(self, request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(status=200, reason='OK', headers={'Content-Type': 'text/event-stream', 'Cache-Control': 'no-cache'})
        await resp.prepare(request)

        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=100)

        async def forward(topic: str) -> None:
            async for ev in self._events.subscribe(topic):
                await queue.put({"topic": topic, "data": ev})

        tasks = [asyncio.create_task(forward(topic)) for topic in UI_TOPICS]

        async def sender() -> None:
            try:
                while True:
                    item = await queue.get()
                    data = json.dumps(item)
                    await resp.write(f"data: {data}\n\n".encode())
            except (asyncio.CancelledError, ConnectionResetError):
                pass

        send_task = asyncio.create_task(sender())
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            for t in tasks:
                t.cancel()
            send_task.cancel()
        return resp
