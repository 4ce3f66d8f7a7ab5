"""
Health and metrics HTTP endpoint.

Serves two paths from a small WSGI app on a daemon thread, so probes are
answered even while the event loop is busy delivering a notification:

    GET <health_path>   200 "healthy" | 503 "unhealthy: <reason>"
    GET <metrics_path>  Prometheus text exposition of the forwarder registry
"""

import logging
import threading
from typing import Any, Callable, Iterable, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

logger = logging.getLogger(__name__)

# Returns (healthy, reason); reason is shown to the prober when unhealthy.
HealthCheck = Callable[[], tuple[bool, str]]


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("HTTP %s", format % args)


class HealthServer:
    """
    Usage (Forwarder):
        server = HealthServer(forwarder.health_status, metrics.registry, port=8080)
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        health_check: HealthCheck,
        registry: CollectorRegistry,
        port: int = 8080,
        health_path: str = "/health",
        metrics_path: str = "/metrics",
        host: str = "0.0.0.0",
    ) -> None:
        self._health_check = health_check
        self._metrics_app = make_wsgi_app(registry)
        self._host = host
        self._port = port
        self.health_path = health_path
        self.metrics_path = metrics_path
        self._server: Optional[WSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when started with port 0."""
        if self._server is not None:
            return self._server.server_port
        return self._port

    def wsgi_app(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")
        if path == self.health_path:
            healthy, reason = self._health_check()
            if healthy:
                start_response("200 OK", [("Content-Type", "text/plain; charset=utf-8")])
                return [b"healthy\n"]
            start_response(
                "503 Service Unavailable", [("Content-Type", "text/plain; charset=utf-8")]
            )
            return [f"unhealthy: {reason}\n".encode("utf-8")]
        if path == self.metrics_path:
            return self._metrics_app(environ, start_response)
        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"not found\n"]

    def start(self) -> None:
        if self._server is not None:
            return
        self._server = make_server(self._host, self._port, self.wsgi_app, handler_class=_QuietHandler)
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )
        self._thread.start()
        logger.info(
            "HealthServer started | port=%d | health=%s | metrics=%s",
            self.port,
            self.health_path,
            self.metrics_path,
        )

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        logger.info("HealthServer stopped")
