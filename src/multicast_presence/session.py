"""
AsyncMulticastSession / MulticastSession — the multicast presence engine.

A session is Stopped or Running. start() opens the group socket and spawns
the receiver and broadcaster loops; stop() cancels both, waits for them
(final disconnect included), closes the socket and clears the presence
table. Only one exclusive session may be Running per process.
"""

import asyncio
import logging
import threading
import time
import uuid
from enum import Enum
from typing import Any, AsyncGenerator, Callable, Optional

from multicast_presence.broadcaster import Broadcaster
from multicast_presence.errors import AlreadyRunningError, ConfigurationError, NotRunningError, SocketError
from multicast_presence.models.config import (
    DEFAULT_ADDRESS,
    DEFAULT_MESSAGE,
    DEFAULT_PORT,
    EngineSettings,
    SessionConfig,
    check_message,
)
from multicast_presence.models.device import DeviceInfo
from multicast_presence.models.events import EngineEvent
from multicast_presence.presence import PresenceTable
from multicast_presence.receiver import Receiver
from multicast_presence.transport.multicast import MulticastSocket

logger = logging.getLogger("multicast_presence.session")

EventHandler = Callable[[str, Any], None]
SocketFactory = Callable[[SessionConfig, EngineSettings], MulticastSocket]

# Held by whichever exclusive session is Running in this process.
_process_slot = threading.Lock()


class SessionState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class AsyncMulticastSession:
    """Async multicast session (primary)."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        socket_factory: Optional[SocketFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        exclusive: bool = True,
    ):
        """exclusive=False lets several sessions run side by side in one
        process (tests, local peers); by default only one may be Running."""
        self.settings = settings or EngineSettings()
        self._exclusive = exclusive
        self._holds_slot = False
        self._socket_factory = socket_factory or MulticastSocket.open
        self._table = PresenceTable(clock)

        # Guards the fields read by the query methods from any thread.
        self._lock = threading.Lock()
        self._state = SessionState.STOPPED
        self._instance_id: Optional[str] = None
        self._config: Optional[SessionConfig] = None
        self._sent_count = 0

        # Serializes start/stop.
        self._transition = asyncio.Lock()
        self._sock: Optional[MulticastSocket] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: list[asyncio.Task] = []
        self._receiver: Optional[Receiver] = None
        self._broadcaster: Optional[Broadcaster] = None

        self._event_handlers: list[EventHandler] = []

    # -- events --

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]:
        """Add an event handler. Returns a cleanup function."""
        self._event_handlers.append(handler)
        def remove() -> None:
            try:
                self._event_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def on_event(self, handler: Optional[EventHandler]) -> None:
        """Set a single event handler (replaces all)."""
        self._event_handlers.clear()
        if handler is not None:
            self._event_handlers.append(handler)

    def _emit(self, event: str, data: Any) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(event, data)
            except Exception:
                logger.exception("Event handler failed for %s", event)

    async def subscribe(self) -> AsyncGenerator[tuple[str, Any], None]:
        """Yield (event, data) pairs for as long as the session is running."""
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        remove = self.add_event_handler(lambda event, data: queue.put_nowait((event, data)))
        try:
            while self.running or not queue.empty():
                try:
                    yield await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
        finally:
            remove()

    # -- commands --

    async def start(
        self,
        ip: str = DEFAULT_ADDRESS,
        port: int = DEFAULT_PORT,
        message: str = DEFAULT_MESSAGE,
        interface: Optional[str] = None,
        *,
        config: Optional[SessionConfig] = None,
    ) -> str:
        """Join the group and start both loops. Returns the new instance id."""
        async with self._transition:
            if self.running:
                raise AlreadyRunningError()
            if self._exclusive:
                if not _process_slot.acquire(blocking=False):
                    raise AlreadyRunningError("Another multicast session is already running")
                self._holds_slot = True

            try:
                if config is not None:
                    cfg = config.model_copy()
                else:
                    cfg = SessionConfig.parse(address=ip, port=port, message=message, interface=interface)
                self._table.clear()
                sock = self._socket_factory(cfg, self.settings)
            except (ConfigurationError, SocketError) as e:
                self._release_slot()
                logger.error("Start failed: %s", e)
                self._emit(EngineEvent.ERROR, str(e))
                raise
            except Exception as e:
                self._release_slot()
                logger.exception("Start failed unexpectedly")
                self._emit(EngineEvent.ERROR, f"Start failed: {e}")
                raise
            except BaseException:
                self._release_slot()
                raise

            instance_id = str(uuid.uuid4())
            with self._lock:
                self._instance_id = instance_id
                self._config = cfg
                self._sent_count = 0
                self._state = SessionState.RUNNING

            self._sock = sock
            self._stop_event = asyncio.Event()
            self._receiver = Receiver(
                sock, instance_id, self._table, self._emit, self._stop_event,
                timeout=self.settings.receive_timeout,
            )
            self._broadcaster = Broadcaster(
                sock, instance_id, self._current_message, self._record_sent, self._emit, self._stop_event,
                period=self.settings.broadcast_period,
            )
            self._tasks = [
                asyncio.create_task(self._receiver.run(), name="multicast-receiver"),
                asyncio.create_task(self._broadcaster.run(), name="multicast-broadcaster"),
            ]
            logger.info("Session %s started on %s:%d", instance_id, cfg.address, cfg.port)
            self._emit(EngineEvent.STATUS, "Session started")
            return instance_id

    async def stop(self) -> None:
        """Stop both loops, close the socket and forget all peers."""
        async with self._transition:
            if not self.running:
                raise NotRunningError()

            self._stop_event.set()  # type: ignore[union-attr]
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for task, result in zip(self._tasks, results):
                if isinstance(result, BaseException):
                    logger.error("%s ended with %r", task.get_name(), result)

            self._sock.close()  # type: ignore[union-attr]
            self._table.clear()
            with self._lock:
                instance_id = self._instance_id
                self._instance_id = None
                self._config = None
                self._state = SessionState.STOPPED

            self._sock = None
            self._stop_event = None
            self._tasks = []
            self._receiver = None
            self._broadcaster = None
            self._release_slot()
            logger.info("Session %s stopped", instance_id)
            self._emit(EngineEvent.STATUS, "Session stopped")

    async def close(self) -> None:
        """Stop if running. Safe to call in any state."""
        if self.running:
            await self.stop()

    def update_message(self, message: str) -> None:
        """Replace the broadcast text. No-op while stopped."""
        with self._lock:
            if self._config is None:
                return
            self._config.message = check_message(message)

    # -- queries --

    @property
    def running(self) -> bool:
        with self._lock:
            return self._state == SessionState.RUNNING

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def config(self) -> Optional[SessionConfig]:
        with self._lock:
            return self._config.model_copy() if self._config else None

    @property
    def dropped_count(self) -> int:
        """Malformed datagrams dropped during the current Running period."""
        return self._receiver.dropped_count if self._receiver else 0

    def get_status(self) -> bool:
        return self.running

    def get_instance_id(self) -> Optional[str]:
        with self._lock:
            return self._instance_id

    def get_sent_count(self) -> int:
        with self._lock:
            return self._sent_count

    def get_active_devices(self) -> list[DeviceInfo]:
        return self._table.snapshot()

    # -- internals --

    def _release_slot(self) -> None:
        if self._holds_slot:
            self._holds_slot = False
            _process_slot.release()

    def _current_message(self) -> str:
        with self._lock:
            return self._config.message if self._config else ""

    def _record_sent(self) -> int:
        with self._lock:
            self._sent_count += 1
            return self._sent_count


class MulticastSession:
    """Sync wrapper around AsyncMulticastSession.

    Runs the event loop on a daemon thread so the loops keep running between
    calls. Event handlers are invoked on that thread.
    """

    def __init__(self, **kwargs: Any):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="multicast-session", daemon=True)
        self._thread.start()
        self._async = AsyncMulticastSession(**kwargs)

    def _run(self, coro: Any) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    @property
    def running(self) -> bool:
        return self._async.running

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]:
        return self._async.add_event_handler(handler)

    def on_event(self, handler: Optional[EventHandler]) -> None:
        self._async.on_event(handler)

    def start(
        self,
        ip: str = DEFAULT_ADDRESS,
        port: int = DEFAULT_PORT,
        message: str = DEFAULT_MESSAGE,
        interface: Optional[str] = None,
        *,
        config: Optional[SessionConfig] = None,
    ) -> str:
        return self._run(self._async.start(ip, port, message, interface, config=config))

    def stop(self) -> None:
        self._run(self._async.stop())

    def update_message(self, message: str) -> None:
        self._async.update_message(message)

    def get_status(self) -> bool:
        return self._async.get_status()

    def get_instance_id(self) -> Optional[str]:
        return self._async.get_instance_id()

    def get_sent_count(self) -> int:
        return self._async.get_sent_count()

    def get_active_devices(self) -> list[DeviceInfo]:
        return self._async.get_active_devices()

    def close(self) -> None:
        """Stop the session if running and shut down the loop thread."""
        if self._loop.is_closed():
            return
        self._run(self._async.close())
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
