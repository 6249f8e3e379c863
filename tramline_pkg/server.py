"""
Development server: serves the output tree over HTTP and tells connected
browsers to reload when the output changes.
"""

import os
import time
import asyncio
import logging
import mimetypes
import threading
import posixpath
from functools import partial
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Callable, Optional, Sequence, Set
from urllib.parse import unquote, urlsplit

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

DEFAULT_PORT = 3000
RELOAD_MESSAGE = 'reload'

logger = logging.getLogger('Tramline.server')

LIVE_RELOAD_SCRIPT = (
    "<script>(function(){{var ws=new WebSocket('ws://'+location.hostname+':{port}');"
    "ws.onmessage=function(e){{if(e.data==='{message}')window.location.reload();}};}})();</script>"
)


def resolve_request_path(root: str, request_path: str) -> Optional[str]:
    """
    Map a URL path onto a file under root.

    Directories resolve to their index.html and extensionless paths fall
    back to ``<path>.html``. Returns None when nothing matches or the path
    escapes root.
    """
    path = unquote(urlsplit(request_path).path)
    path = posixpath.normpath('/' + path.lstrip('/'))
    root = os.path.abspath(root)
    candidate = os.path.abspath(os.path.join(root, *[p for p in path.split('/') if p]))
    if candidate != root and not candidate.startswith(root + os.sep):
        return None

    if os.path.isdir(candidate):
        candidate = os.path.join(candidate, 'index.html')
    elif not os.path.exists(candidate) and not os.path.splitext(candidate)[1]:
        candidate = candidate + '.html'
    return candidate if os.path.isfile(candidate) else None


class TramlineRequestHandler(BaseHTTPRequestHandler):
    """Serves files from the output tree; 404 for anything else."""

    def __init__(self, *args, directory=None, reload_port=None, **kwargs):
        self.directory = directory
        self.reload_port = reload_port
        super().__init__(*args, **kwargs)

    def do_GET(self):
        self.send_file(include_body=True)

    def do_HEAD(self):
        self.send_file(include_body=False)

    def send_file(self, include_body=True):
        file_path = resolve_request_path(self.directory, self.path)
        if file_path is None:
            body = b'File not found'
            self.send_response(404)
            self.send_header('Content-Type', 'text/plain; charset=utf-8')
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            if include_body:
                self.wfile.write(body)
            return

        try:
            with open(file_path, 'rb') as f:
                content = f.read()
        except (IOError, OSError, PermissionError) as e:
            logger.error(f"Error serving {self.path}: {e}")
            self.send_error(500, 'Internal Server Error')
            return

        content_type = mimetypes.guess_type(file_path)[0] or 'application/octet-stream'
        if content_type == 'text/html':
            if self.reload_port and b'</body>' in content:
                script = LIVE_RELOAD_SCRIPT.format(port=self.reload_port, message=RELOAD_MESSAGE)
                content = content.replace(b'</body>', script.encode('utf-8') + b'</body>', 1)
            content_type = 'text/html; charset=utf-8'

        self.send_response(200)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(content)))
        self.end_headers()
        if include_body:
            self.wfile.write(content)

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


class LiveReloadBroadcaster:
    """
    Websocket server on its own event loop thread.

    The connection set is only touched from that loop, so registration,
    removal and broadcast never interleave.
    """

    def __init__(self, host: str = 'localhost', port: int = DEFAULT_PORT + 1):
        self.host = host
        self.port = port
        self.connections: Set = set()
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.server = None
        self.thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    async def handler(self, websocket, *args):
        self.connections.add(websocket)
        logger.debug(f"Live reload client connected (total: {len(self.connections)})")
        try:
            await websocket.wait_closed()
        finally:
            self.connections.discard(websocket)
            logger.debug(f"Live reload client disconnected (total: {len(self.connections)})")

    async def broadcast(self, message: str = RELOAD_MESSAGE) -> int:
        """Send message to every open connection; returns how many got it."""
        sent = 0
        for websocket in list(self.connections):
            try:
                await websocket.send(message)
                sent += 1
            except Exception as e:
                logger.debug(f"Dropping live reload client: {e}")
                self.connections.discard(websocket)
        return sent

    def notify(self) -> None:
        """Schedule a broadcast from any thread."""
        if self.loop is None or not self.loop.is_running():
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(), self.loop)

    def _run(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        async def start():
            self.server = await websockets.serve(self.handler, self.host, self.port)

        self.loop.run_until_complete(start())
        self._ready.set()
        self.loop.run_forever()

    def start(self) -> None:
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()
        self._ready.wait(timeout=5)
        logger.info(f"Live reload on ws://{self.host}:{self.port}")

    def stop(self) -> None:
        if self.loop is None:
            return

        async def shutdown():
            if self.server is not None:
                self.server.close()
                await self.server.wait_closed()

        if self.loop.is_running():
            asyncio.run_coroutine_threadsafe(shutdown(), self.loop).result(timeout=5)
            self.loop.call_soon_threadsafe(self.loop.stop)
        if self.thread is not None:
            self.thread.join(timeout=5)


def is_within(path: str, directory: str) -> bool:
    path = os.path.abspath(path)
    directory = os.path.abspath(directory)
    return path == directory or path.startswith(directory + os.sep)


class ChangeHandler(FileSystemEventHandler):
    """Routes filesystem events to a rebuild (source) or a broadcast (output)."""

    def __init__(self, output_dir: str, on_source_change: Optional[Callable[[str], None]],
                 on_output_change: Optional[Callable[[], None]], delay: float = 0.5,
                 ignore_dirs: Sequence[str] = ()):
        self.output_dir = os.path.abspath(output_dir)
        self.on_source_change = on_source_change
        self.on_output_change = on_output_change
        self.delay = delay
        self.ignore_dirs = [os.path.abspath(d) for d in ignore_dirs]
        self.last_rebuild = 0.0
        self.last_broadcast = 0.0

    def on_any_event(self, event):
        if event.is_directory or event.event_type in ('opened', 'closed_no_write'):
            return
        path = event.src_path
        if any(is_within(path, d) for d in self.ignore_dirs):
            return
        now = time.time()
        if is_within(path, self.output_dir):
            if self.on_output_change is not None and now - self.last_broadcast > self.delay:
                self.last_broadcast = now
                self.on_output_change()
        elif self.on_source_change is not None:
            if os.path.basename(path).startswith('.'):
                return
            if now - self.last_rebuild > self.delay:
                self.last_rebuild = now
                self.on_source_change(path)


class DevServer:
    """HTTP server over the output tree plus optional live reload."""

    def __init__(self, output_dir: str, port: int = DEFAULT_PORT, live_reload: bool = True,
                 source_dir: Optional[str] = None, rebuild: Optional[Callable[[], None]] = None,
                 host: str = 'localhost', ignore_dirs: Sequence[str] = ()):
        self.output_dir = os.path.abspath(output_dir)
        self.port = port
        self.host = host
        self.live_reload = live_reload
        self.source_dir = source_dir
        self.rebuild = rebuild
        self.ignore_dirs = list(ignore_dirs)
        self.broadcaster = LiveReloadBroadcaster(host, port + 1) if live_reload else None
        self.observer = None
        self.httpd = None

    def create_http_server(self) -> ThreadingHTTPServer:
        handler = partial(
            TramlineRequestHandler,
            directory=self.output_dir,
            reload_port=self.broadcaster.port if self.broadcaster else None,
        )
        self.httpd = ThreadingHTTPServer((self.host, self.port), handler)
        return self.httpd

    def handle_source_change(self, path: str) -> None:
        logger.info(f"Rebuilding after change to {path}")
        try:
            self.rebuild()
        except Exception as e:
            logger.error(f"Rebuild failed: {e}")

    def start_watching(self) -> None:
        event_handler = ChangeHandler(
            self.output_dir,
            self.handle_source_change if self.rebuild else None,
            self.broadcaster.notify if self.broadcaster else None,
            ignore_dirs=self.ignore_dirs,
        )
        self.observer = Observer()
        os.makedirs(self.output_dir, exist_ok=True)
        watch_source = bool(self.source_dir and self.rebuild)
        if watch_source:
            self.observer.schedule(event_handler, self.source_dir, recursive=True)
        if not (watch_source and is_within(self.output_dir, self.source_dir)):
            self.observer.schedule(event_handler, self.output_dir, recursive=True)
        self.observer.start()

    def serve_forever(self) -> None:
        if self.broadcaster:
            self.broadcaster.start()
        if self.broadcaster or self.rebuild:
            self.start_watching()
        httpd = self.create_http_server()
        logger.info(f"Serving {self.output_dir} at http://{self.host}:{self.port}/")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Serving stopped")
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self.httpd is not None:
            self.httpd.server_close()
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=5)
        if self.broadcaster is not None:
            self.broadcaster.stop()
