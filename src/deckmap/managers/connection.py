"""
Connection management for the control deck.

Handles the device connection lifecycle, health monitoring and the retry
policy: a failed attempt is retried after ``retry_interval`` seconds and a
lost device after ``reconnect_interval`` seconds.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from ..device.gateway import DeviceGateway
from ..device.manager import DeviceManager

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages the device connection lifecycle.

    Responsibilities:
    - Discovery and connection, each bounded by ``connect_timeout``
    - Connection health monitoring (hot-unplug detection)
    - Automatic reconnection with a fixed backoff
    """

    CONNECT_TIMEOUT = 7.0  # Seconds allowed for discovery and for opening
    RETRY_INTERVAL = 3.0  # Seconds before retrying a failed connection
    RECONNECT_INTERVAL = 2.0  # Seconds before reconnecting after a disconnect
    CONNECTION_CHECK_INTERVAL = 0.5  # How often to check connection status

    def __init__(
        self,
        device_manager: DeviceManager,
        on_connected: Optional[Callable[[DeviceGateway], None]] = None,
        on_disconnected: Optional[Callable[[Optional[str]], None]] = None,
        connect_timeout: float = CONNECT_TIMEOUT,
        retry_interval: float = RETRY_INTERVAL,
        reconnect_interval: float = RECONNECT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the connection manager.

        Args:
            device_manager: Device discovery and opening
            on_connected: Callback when a device connects (receives the gateway)
            on_disconnected: Callback when the device goes away (receives the reason)
            connect_timeout: Bound on discovery and on opening, in seconds
            retry_interval: Delay after a failed attempt
            reconnect_interval: Delay after a disconnect
            clock: Monotonic time source
        """
        self.device_manager = device_manager
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self.connect_timeout = connect_timeout
        self.retry_interval = retry_interval
        self.reconnect_interval = reconnect_interval
        self._clock = clock

        self.gateway: Optional[DeviceGateway] = None
        self.running = False
        self.shutting_down = False
        self.last_error: Optional[str] = None

        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="connect")
        self._monitor_thread: Optional[threading.Thread] = None
        self._next_attempt = 0.0
        self._last_connection_check = 0.0

    def _bounded(self, func, *args, what: str):
        future = self._executor.submit(func, *args)
        try:
            return future.result(timeout=self.connect_timeout)
        except FutureTimeoutError:
            raise TimeoutError(f"{what} timed out after {self.connect_timeout:g}s")

    def connect(self) -> bool:
        """
        Discover and open a device.

        Returns:
            True if a device is connected after the call
        """
        with self._lock:
            if self.gateway is not None:
                return True

            try:
                logger.debug("Looking for a device...")
                deck = self._bounded(self.device_manager.discover, what="Device discovery")
                if deck is None:
                    raise LookupError("no device found")
                gateway = self._bounded(self.device_manager.connect, deck, what="Device connection")
            except Exception as e:
                self.last_error = str(e)
                self._next_attempt = self._clock() + self.retry_interval
                logger.info(f"Connection failed ({e}), retrying in {self.retry_interval:g}s")
                return False

            self.gateway = gateway
            self.last_error = None
            logger.info(f"Connected: {gateway.device_type}")

        if self.on_connected:
            self.on_connected(gateway)
        return True

    def disconnect(self, error: Optional[str] = None) -> None:
        """
        Release the device.

        Handles both voluntary and involuntary disconnection. Always clears
        the gateway reference and schedules the next connection attempt.
        """
        with self._lock:
            gateway = self.gateway
            if gateway is None:
                return
            self.gateway = None
            self._next_attempt = self._clock() + self.reconnect_interval

        clean = gateway.close()
        if clean:
            logger.info("Device disconnected")
        else:
            logger.info("Device disconnected (device was already unavailable)")

        if self.on_disconnected:
            self.on_disconnected(error)

    def is_connected(self) -> bool:
        gateway = self.gateway
        return gateway is not None and gateway.is_connected()

    def start_monitoring(self) -> None:
        """Start the background thread watching the connection."""
        if self._monitor_thread and self._monitor_thread.is_alive():
            logger.warning("Connection monitoring already running")
            return

        self.running = True
        self._monitor_thread = threading.Thread(target=self._monitor_loop, daemon=True, name="ConnectionMonitor")
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop the connection monitoring thread."""
        self.running = False
        self.shutting_down = True

        if self._monitor_thread:
            self._monitor_thread.join(timeout=3)
            self._monitor_thread = None

        self._executor.shutdown(wait=False)
        logger.debug("Connection monitoring stopped")

    def _monitor_loop(self) -> None:
        """Main monitoring loop (runs in background thread)."""
        while self.running:
            try:
                now = self._clock()
                if now - self._last_connection_check >= self.CONNECTION_CHECK_INTERVAL:
                    self.check_connection(now)
                    self._last_connection_check = now
                time.sleep(0.05)
            except Exception as e:
                logger.error(f"Error in connection monitor: {e}", exc_info=True)
                time.sleep(1)

    def check_connection(self, now: Optional[float] = None) -> None:
        """
        Detect a lost device and reconnect when the backoff has elapsed.

        Args:
            now: Current monotonic time (defaults to the clock)
        """
        if now is None:
            now = self._clock()

        if self.gateway is not None and not self.is_connected():
            logger.info("Device removed")
            self.disconnect("device removed")

        if self.gateway is None and not self.shutting_down and now >= self._next_attempt:
            self.connect()
