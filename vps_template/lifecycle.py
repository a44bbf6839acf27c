"""VPS Template - Server Lifecycle

STARTING -> SERVING -> SHUTTING_DOWN -> STOPPED

- STARTING: bind the listening socket; bind failure is fatal
- SERVING: uvicorn runs on a daemon thread, the main thread waits for
  SIGINT/SIGTERM; an unexpected listener failure is fatal
- SHUTTING_DOWN: stop accepting, let in-flight requests finish until the
  deadline (30s by default), then force-close what is left
- STOPPED: terminal

run() returns the process exit code: 0 after a signal (even when the
deadline expired), 1 on bind or listener failure.
"""
import enum
import queue
import signal
import socket
import threading

import uvicorn

from vps_template.core.context import AppContext

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
# Extra time given to uvicorn to unwind after force_exit.
FORCE_CLOSE_GRACE = 5.0


class LifecycleState(enum.IntEnum):
    STARTING = 0
    SERVING = 1
    SHUTTING_DOWN = 2
    STOPPED = 3


class ListenerStopped(RuntimeError):
    """uvicorn returned although nobody asked it to stop."""


class _SignalHandlers:
    """Route shutdown signals into a queue for the duration of the block."""

    def __init__(self, channel: queue.SimpleQueue):
        self._channel = channel
        self._previous: dict = {}

    def _handle(self, signum, _frame):
        # SimpleQueue.put is reentrant, safe to call from a signal handler
        self._channel.put(signum)

    def __enter__(self):
        for signum in SHUTDOWN_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        return False


class LifecycleManager:
    """Owns the listener socket, the serving thread and the shutdown handshake."""

    def __init__(
        self,
        app,
        ctx: AppContext,
        host: str | None = None,
        port: int | None = None,
        shutdown_timeout: float | None = None,
    ):
        server_config = ctx.config.server
        self.app = app
        self.log = ctx.log
        self.host = server_config.host if host is None else host
        self.port = server_config.port if port is None else port
        self.shutdown_timeout = server_config.shutdown_timeout if shutdown_timeout is None else shutdown_timeout
        self._state = LifecycleState.STARTING
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._events: queue.SimpleQueue = queue.SimpleQueue()
        self._stop_requested = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, new: LifecycleState):
        if new != self._state + 1:
            raise RuntimeError(f"invalid lifecycle transition {self._state.name} -> {new.name}")
        self.log.debug("lifecycle_transition", old=self._state.name, new=new.name)
        self._state = new

    # ── STARTING ─────────────────────────────────────────────────────
    def bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(socket.SOMAXCONN)
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        self._socket = sock
        self.port = sock.getsockname()[1]
        return sock

    # ── SERVING ──────────────────────────────────────────────────────
    def start(self) -> threading.Thread:
        """Serve on a daemon thread. bind() must have succeeded."""
        if self._socket is None:
            raise RuntimeError("start() called before bind()")
        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=self.shutdown_timeout,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._serve, name="http-listener", daemon=True)
        self.log.info("server_starting", host=self.host, port=self.port)
        self._thread.start()
        self._transition(LifecycleState.SERVING)
        return self._thread

    def _serve(self):
        try:
            self._server.run(sockets=[self._socket])
        except BaseException as e:
            self._events.put(e)
            return
        if not self._stop_requested:
            self._events.put(ListenerStopped("listener exited without a shutdown request"))

    def wait(self):
        """Block until a shutdown signal (returns its number) or a listener failure (returns the exception)."""
        return self._events.get()

    # ── SHUTTING_DOWN / STOPPED ──────────────────────────────────────
    def shutdown(self) -> bool:
        """Graceful stop bounded by shutdown_timeout. Returns True if the deadline expired."""
        self._transition(LifecycleState.SHUTTING_DOWN)
        self._stop_requested = True
        timed_out = False
        if self._server is not None and self._thread is not None:
            self._server.should_exit = True
            self._thread.join(self.shutdown_timeout)
            if self._thread.is_alive():
                timed_out = True
                self.log.warning(
                    "server_forced_shutdown",
                    error="graceful shutdown deadline exceeded",
                    timeout_seconds=self.shutdown_timeout,
                )
                self._server.force_exit = True
                self._thread.join(FORCE_CLOSE_GRACE)
        if self._socket is not None:
            self._socket.close()
        self._transition(LifecycleState.STOPPED)
        return timed_out

    def run(self) -> int:
        try:
            self.bind()
        except OSError as e:
            self.log.error("server_failed_to_start", host=self.host, port=self.port, error=str(e))
            return 1

        with _SignalHandlers(self._events):
            self.start()
            event = self.wait()
            if isinstance(event, BaseException):
                self.log.error("server_failed", error=str(event), error_type=type(event).__name__)
                self._stop_requested = True
                if self._socket is not None:
                    self._socket.close()
                return 1

            self.log.info("server_shutting_down", signal=signal.Signals(event).name)
            self.shutdown()

        self.log.info("server_exited")
        return 0
