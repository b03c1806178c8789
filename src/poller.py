"""Poller module for the background sampling loop.

Owns a single worker thread that invokes an emit callback on a fixed
interval. Lifecycle is IDLE -> RUNNING -> STOPPED; a stopped poller cannot
be restarted, build a new one instead.
"""

import enum
import logging
import threading
import time
from typing import Callable, Optional


logger = logging.getLogger(__name__)

EmitCallback = Callable[[threading.Event], None]


class PollerStateError(RuntimeError):
    """Raised when start() is called on a poller that is not idle."""
    pass


class PollerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Poller:
    """Runs an emit callback on a fixed interval in a background thread.

    Ticks never overlap: the callback runs synchronously on the poller
    thread and the wait for the next tick only starts once it returns, so a
    slow callback stretches the effective interval.
    """

    def __init__(
        self, poll_interval: float, emit: EmitCallback, name: str = "poller"
    ) -> None:
        """Initialize the poller.

        Args:
            poll_interval: Seconds between ticks, must be > 0
            emit: Callback invoked once per tick with the poller's stop event
            name: Thread name, also used in log messages

        Raises:
            ValueError: If poll_interval is not positive
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval!r}")

        self._poll_interval = poll_interval
        self._emit = emit
        self._name = name
        self._lock = threading.Lock()
        self._state = PollerState.IDLE
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def state(self) -> PollerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is PollerState.RUNNING

    def start(self) -> None:
        """Launch the polling thread and return immediately.

        Raises:
            PollerStateError: If the poller is already running or stopped
        """
        with self._lock:
            if self._state is not PollerState.IDLE:
                raise PollerStateError(
                    f"cannot start {self._name}: poller is {self._state.value}"
                )

            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=self._name,
                daemon=True,
            )
            self._state = PollerState.RUNNING
            self._thread.start()

        logger.info(f"Started {self._name} (interval: {self._poll_interval}s)")

    def stop(self) -> None:
        """Signal the polling thread to exit and wait until it has.

        Once this returns no further emit invocation happens. Safe to call
        more than once and on a poller that was never started.
        """
        with self._lock:
            previous = self._state
            self._state = PollerState.STOPPED
            self._stop_event.set()
            thread = self._thread

        if thread is None:
            return

        if thread is threading.current_thread():
            # Called from inside the emit callback; the loop exits after it returns.
            logger.debug(f"{self._name} stop requested from its own thread")
            return

        thread.join()
        if previous is PollerState.RUNNING:
            logger.info(f"Stopped {self._name}")

    def _run(self, stop_event: threading.Event) -> None:
        """Poll until stop_event is set.

        Args:
            stop_event: Event signalling shutdown
        """
        sleep_time = self._poll_interval

        while not stop_event.wait(timeout=sleep_time):
            cycle_start = time.monotonic()
            self._tick(stop_event)

            # Sleep for remainder of poll interval
            elapsed = time.monotonic() - cycle_start
            sleep_time = max(0, self._poll_interval - elapsed)

        logger.debug(f"{self._name} loop exited")

    def _tick(self, stop_event: threading.Event) -> None:
        try:
            self._emit(stop_event)
        except Exception:
            logger.exception(f"Error during {self._name} tick, continuing")
