"""HTTP echo server used as the backend behind the proxy.

Every response is a plain-text description of the request it answers, so a
test can tell which backend port, version and headers a request reached.
"""

import asyncio
import socket
import ssl
import threading
from pathlib import Path
from typing import List, Optional

from aiohttp import web

from ..core.errors import BackendStartError, BackendStopError
from ..core.log import Logger, get_logger, log_agent_event
from ..core.types import TimeoutConfig

_module_logger = get_logger(__name__)


def _build_ssl_context(
    tls_cert_path: Optional[Path], tls_key_path: Optional[Path]
) -> Optional[ssl.SSLContext]:
    if tls_cert_path is None and tls_key_path is None:
        return None
    if tls_cert_path is None or tls_key_path is None:
        raise BackendStartError(
            "Both a TLS certificate and a TLS key are required to enable TLS",
            details={"tls_cert_path": tls_cert_path, "tls_key_path": tls_key_path},
        )
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(str(tls_cert_path), str(tls_key_path))
    except (OSError, ssl.SSLError) as e:
        raise BackendStartError(f"Invalid TLS material: {e}") from e
    return context


class EchoServer:
    """aiohttp echo server listening on several loopback ports.

    The server runs on a private event loop in a daemon thread, so it can be
    driven from synchronous test code.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        timeouts: Optional[TimeoutConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._host = host
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger or _module_logger
        self._version = ""
        self._ports: List[int] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._runner: Optional[web.AppRunner] = None

    @property
    def ports(self) -> List[int]:
        return list(self._ports)

    @property
    def version(self) -> str:
        return self._version

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    def start(
        self,
        port_count: int,
        tls_cert_path: Optional[Path] = None,
        tls_key_path: Optional[Path] = None,
        version: str = "",
    ) -> List[int]:
        """Listen on ``port_count`` fresh loopback ports and return them in order."""
        if self._runner is not None:
            raise BackendStartError("Echo server is already running")
        if port_count < 0:
            raise BackendStartError(f"Invalid port count: {port_count}")

        ssl_context = _build_ssl_context(tls_cert_path, tls_key_path)
        self._version = version

        sockets: List[socket.socket] = []
        try:
            for _ in range(port_count):
                sockets.append(self._bind_socket())
        except OSError as e:
            for sock in sockets:
                sock.close()
            raise BackendStartError(f"Failed to bind echo server port: {e}") from e

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="EchoServerLoop", daemon=True
        )
        self._thread.start()

        future = asyncio.run_coroutine_threadsafe(
            self._start_sites(sockets, ssl_context), self._loop
        )
        try:
            self._runner = future.result(timeout=self._timeouts.backend_startup)
        except Exception as e:  # pylint: disable=broad-exception-caught
            future.cancel()
            for sock in sockets:
                sock.close()
            self._shutdown_loop()
            raise BackendStartError(f"Echo server failed to start: {e}") from e

        self._ports = [sock.getsockname()[1] for sock in sockets]
        log_agent_event(
            self._logger, "started", component="backend",
            ports=self._ports, version=version, tls=ssl_context is not None,
        )
        return list(self._ports)

    def stop(self) -> None:
        """Close every listener and the event loop. Safe to call repeatedly."""
        if self._loop is None:
            return
        try:
            if self._runner is not None:
                future = asyncio.run_coroutine_threadsafe(
                    self._runner.cleanup(), self._loop
                )
                future.result(timeout=self._timeouts.backend_shutdown)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise BackendStopError(f"Echo server failed to stop: {e}") from e
        finally:
            self._runner = None
            self._shutdown_loop()
        log_agent_event(
            self._logger, "stopped", component="backend", ports=self._ports
        )
        self._ports = []

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, 0))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _shutdown_loop(self) -> None:
        loop, thread = self._loop, self._thread
        self._loop = None
        self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=self._timeouts.backend_shutdown)
        if not loop.is_running():
            loop.close()

    async def _start_sites(
        self, sockets: List[socket.socket], ssl_context: Optional[ssl.SSLContext]
    ) -> web.AppRunner:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        try:
            for sock in sockets:
                site = web.SockSite(runner, sock, ssl_context=ssl_context)
                await site.start()
        except Exception:
            await runner.cleanup()
            raise
        return runner

    async def _handle(self, request: web.Request) -> web.Response:
        status = 200
        requested = request.query.get("status")
        if requested is not None:
            try:
                status = int(requested)
            except ValueError:
                return web.Response(status=400, text=f"Invalid status: {requested}\n")

        sockname = request.transport.get_extra_info("sockname") if request.transport else None
        body = await request.text()

        lines = [
            f"ServiceVersion={self._version}",
            f"ServicePort={sockname[1] if sockname else ''}",
            f"StatusCode={status}",
            f"Method={request.method}",
            f"URL={request.path_qs}",
            f"Proto=HTTP/{request.version.major}.{request.version.minor}",
            f"Host={request.host}",
            f"RemoteAddr={request.remote}",
        ]
        lines.extend(
            f"RequestHeader={key}:{value}" for key, value in request.headers.items()
        )
        lines.append(f"Hostname={socket.gethostname()}")
        if body:
            lines.append(f"Body={body}")

        if status < 200 or status in (204, 304):
            # These statuses must not carry a body
            return web.Response(status=status)
        return web.Response(status=status, text="\n".join(lines) + "\n")
