"""
HTTP API
========
JSON-over-HTTP transport for the engine, on the standard library's
threading HTTP server.

Routes:
    GET  /api/health          liveness
    GET  /api/status          engine + event channel status
    POST /api/initialize      body: engine config
    POST /api/load            body: {"filename": "sample.csv"}
    POST /api/train           synchronous training, returns the tree
    POST /api/train/async     background training, returns the job
    GET  /api/train/status    last background job
    POST /api/process         body: {open, high, low, close, volume}
    GET  /api/tree            tree snapshot
    GET  /api/nodes/<id>      one node
    GET  /api/events?since=N  buffered NODE_CREATED / DECISION_TRIGGERED events

Engine errors become {"error": message} responses; the server keeps running.
"""

import json
import logging
import re
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union
from urllib.parse import parse_qs, urlparse

from .core.exceptions import (
    DataLoadError,
    InsufficientDataError,
    InvalidConfigError,
    InvalidStateError,
)
from .events import EventLog, NotificationChannel
from .monitoring.metrics import metrics
from .session import EngineContext

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, Any]]

_NODE_ROUTE = re.compile(r'^/api/nodes/(\d+)$')


class BadRequest(Exception):
    """Malformed HTTP request body or parameters."""
    pass


class STDSApi:
    """
    Route table and handlers, independent of the socket layer.

    Example:
        api = STDSApi(context, event_log, data_dir="data")
        status, body = api.dispatch("GET", "/api/health", {}, None)
    """

    def __init__(
        self,
        context: EngineContext,
        event_log: Optional[EventLog] = None,
        data_dir: Union[str, Path] = "data",
    ):
        self.context = context
        self.event_log = event_log
        self.data_dir = Path(data_dir)

        self._routes: Dict[Tuple[str, str], Callable[..., Response]] = {
            ('GET', '/api/health'): self.health,
            ('GET', '/api/status'): self.status,
            ('POST', '/api/initialize'): self.initialize,
            ('POST', '/api/load'): self.load,
            ('POST', '/api/train'): self.train,
            ('POST', '/api/train/async'): self.train_async,
            ('GET', '/api/train/status'): self.train_status,
            ('POST', '/api/process'): self.process,
            ('GET', '/api/tree'): self.tree,
            ('GET', '/api/events'): self.events,
        }

    def dispatch(self, method: str, path: str, query: Dict[str, list], body: Any) -> Response:
        """Route one request and map engine errors to HTTP statuses."""
        try:
            handler = self._routes.get((method, path))
            if handler is not None:
                return handler(query=query, body=body)

            match = _NODE_ROUTE.match(path)
            if match and method == 'GET':
                return self.node(int(match.group(1)))

            return 404, {'error': f"No route for {method} {path}"}

        except (BadRequest, InvalidConfigError, DataLoadError) as e:
            return self._error(400, path, e)
        except InvalidStateError as e:
            return self._error(409, path, e)
        except InsufficientDataError as e:
            return self._error(422, path, e)
        except Exception as e:
            logger.exception(f"Unhandled error on {method} {path}")
            metrics.record_error(path, type(e).__name__)
            return 500, {'error': str(e)}

    def _error(self, status: int, path: str, error: Exception) -> Response:
        logger.warning(f"{path} -> {status}: {error}")
        metrics.record_error(path, type(error).__name__)
        return status, {'error': str(error), 'type': type(error).__name__}

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def health(self, **_) -> Response:
        return 200, {'status': 'ok', 'timestamp': int(time.time() * 1000)}

    def status(self, **_) -> Response:
        return 200, self.context.get_status()

    def initialize(self, body: Any = None, **_) -> Response:
        if body is not None and not isinstance(body, dict):
            raise BadRequest("Config must be a JSON object")
        handle = self.context.initialize(body or None)
        return 200, {'success': True, 'config': handle.engine.config.to_dict()}

    def load(self, body: Any = None, **_) -> Response:
        if not isinstance(body, dict) or not isinstance(body.get('filename'), str):
            raise BadRequest("Body must be {\"filename\": <name>}")

        path = self._resolve_data_file(body['filename'])
        bars = self.context.handle().load_data(path)
        return 200, {'success': True, 'bars': bars}

    def train(self, **_) -> Response:
        handle = self.context.handle()
        report = handle.train()
        return 200, {
            'success': True,
            'report': report.to_dict(),
            'tree': handle.get_tree_snapshot().to_dict(),
        }

    def train_async(self, **_) -> Response:
        job = self.context.train_async()
        return 202, {'success': True, 'job': job.to_dict()}

    def train_status(self, **_) -> Response:
        job = self.context.last_job
        return 200, {'job': job.to_dict() if job else None}

    def process(self, body: Any = None, **_) -> Response:
        if not isinstance(body, dict):
            raise BadRequest("Bar must be a JSON object")

        decision = self.context.handle().process_new_data(body)
        return 200, {
            'decision': decision,
            'data': {k: body.get(k) for k in ('open', 'high', 'low', 'close', 'volume')},
            'timestamp': int(time.time() * 1000),
        }

    def tree(self, **_) -> Response:
        return 200, self.context.handle().get_tree_snapshot().to_dict()

    def node(self, node_id: int) -> Response:
        try:
            return 200, self.context.handle().get_node(node_id)
        except KeyError:
            return 404, {'error': f"Node {node_id} not found"}

    def events(self, query: Dict[str, list] = None, **_) -> Response:
        if self.event_log is None:
            return 200, {'events': [], 'last': 0}

        query = query or {}
        try:
            since = int(query.get('since', ['0'])[0])
            limit = int(query['limit'][0]) if 'limit' in query else None
        except ValueError:
            raise BadRequest("since and limit must be integers")

        return 200, {
            'events': self.event_log.since(since, limit),
            'last': self.event_log.last_sequence,
        }

    def _resolve_data_file(self, filename: str) -> Path:
        base = self.data_dir.resolve()
        path = (base / filename).resolve()
        if base != path and base not in path.parents:
            raise DataLoadError(f"Data file outside data directory: {filename}")
        return path


class APIRequestHandler(BaseHTTPRequestHandler):
    """HTTP handler delegating to the server's STDSApi."""

    server_version = "STDS/1.0"

    def do_GET(self):
        self._handle('GET')

    def do_POST(self):
        self._handle('POST')

    def do_OPTIONS(self):
        self.send_response(204)
        self._send_cors_headers()
        self.end_headers()

    def _handle(self, method: str):
        parsed = urlparse(self.path)
        query = parse_qs(parsed.query)

        try:
            body = self._read_json()
        except BadRequest as e:
            self._send_json(400, {'error': str(e)})
            return

        status, payload = self.server.api.dispatch(method, parsed.path, query, body)
        self._send_json(status, payload)

    def _read_json(self) -> Any:
        try:
            length = int(self.headers.get('Content-Length') or 0)
        except ValueError:
            raise BadRequest(f"Invalid Content-Length: {self.headers.get('Content-Length')!r}")
        if length < 0:
            raise BadRequest(f"Invalid Content-Length: {length}")
        if length == 0:
            return None
        raw = self.rfile.read(length)
        try:
            return json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadRequest(f"Invalid JSON body: {e}")

    def _send_json(self, status: int, payload: Dict[str, Any]):
        data = json.dumps(payload).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(data)))
        self._send_cors_headers()
        self.end_headers()
        self.wfile.write(data)

    def _send_cors_headers(self):
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type')

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


class STDSHTTPServer(ThreadingHTTPServer):
    """Threading HTTP server carrying the API object for its handlers."""

    daemon_threads = True

    def __init__(self, address: Tuple[str, int], api: STDSApi):
        super().__init__(address, APIRequestHandler)
        self.api = api


def create_server(
    context: EngineContext,
    host: str = "0.0.0.0",
    port: int = 3001,
    event_log: Optional[EventLog] = None,
    data_dir: Union[str, Path] = "data",
) -> STDSHTTPServer:
    """Bind the API server (port 0 picks a free port)."""
    api = STDSApi(context, event_log=event_log, data_dir=data_dir)
    server = STDSHTTPServer((host, port), api)
    logger.info(f"STDS API bound on http://{host}:{server.server_address[1]}")
    return server


def start_server_thread(server: STDSHTTPServer) -> threading.Thread:
    """Serve on a daemon thread (tests and embedding)."""
    thread = threading.Thread(
        target=server.serve_forever,
        daemon=True,
        name="STDSServer"
    )
    thread.start()
    return thread


def build_event_log(channel: NotificationChannel, maxlen: int = 1000) -> EventLog:
    """Create an EventLog subscribed to `channel`."""
    event_log = EventLog(maxlen=maxlen)
    channel.subscribe(event_log.record)
    return event_log
