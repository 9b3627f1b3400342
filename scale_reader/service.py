"""Scale reader service: poll loop, reconnection, and capture orchestration."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import List, Optional

import serial

from scale_reader import protocol
from scale_reader.capture import AutoCaptureController
from scale_reader.diagnostics import summarize_line_timing
from scale_reader.errors import PortNotFound, ScaleNotConnected, SerialIOError
from scale_reader.framing import LineFramer
from scale_reader.gauge import WeightGauge
from scale_reader.models import (
    CaptureLockState,
    ScaleReading,
    ScaleSettings,
    ScaleStatus,
    SerialSettings,
    SpeedTestResult,
)
from scale_reader.parsing import WeightLineParser
from scale_reader.persistence import ScaleStoreLike
from scale_reader.raw_capture import RawCaptureRendezvous
from scale_reader.stability import StabilityWindow
from scale_reader.transport import PortConnection

logger = logging.getLogger(__name__)


class ScaleReaderService:
    """Long-lived owner of one scale connection.

    A single background thread runs the poll loop: reconnect when the port
    is closed, otherwise drain bytes, frame lines, and push each line through
    parse -> stability -> auto-capture in order. Other threads only touch the
    weight gauge, the raw-capture slot, and the store.

    Construct once at process start and hand the instance to whoever needs it.
    """

    def __init__(
        self,
        store: ScaleStoreLike,
        connection: Optional[PortConnection] = None,
        serial_settings: Optional[SerialSettings] = None,
        weight_multiplier: float = protocol.WEIGHT_MULTIPLIER,
        poll_interval_s: float = protocol.POLL_INTERVAL_S,
        reconnect_delay_s: float = protocol.RECONNECT_DELAY_S,
        settings_ttl_s: float = protocol.SETTINGS_TTL_S,
    ) -> None:
        """Initialize service (does not connect or start the loop).

        Args:
            store: Persistence collaborator for settings and readings.
            connection: Pre-built PortConnection (for testing). If None, one is
                       created from serial_settings.
            serial_settings: Serial line parameters. Ignored if connection is given.
            weight_multiplier: Calibration factor applied to every parsed weight.
            poll_interval_s: Poll loop tick. Default 100ms.
            reconnect_delay_s: Minimum time between reconnect attempts. Default 5s.
            settings_ttl_s: How long fetched settings are reused. Default 2s.
        """
        self._store = store
        self._connection = connection if connection is not None else PortConnection(serial_settings)

        self._framer = LineFramer()
        self._parser = WeightLineParser(weight_multiplier)
        self._capture_controller = AutoCaptureController(StabilityWindow())
        self._gauge = WeightGauge()
        self._raw_capture = RawCaptureRendezvous()

        self._poll_interval = poll_interval_s
        self._reconnect_delay = reconnect_delay_s
        self._settings_ttl = settings_ttl_s

        self._settings = ScaleSettings()
        self._last_settings_refresh: Optional[float] = None
        self._last_reconnect_attempt: Optional[float] = None

        # Threading for the poll loop
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Serializes start/stop, and connect/detect between the loop and callers
        self._lifecycle_lock = threading.Lock()
        self._connect_lock = threading.RLock()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self) -> bool:
        """Connect once and start the poll loop.

        The loop starts even if the first connection attempt fails; it keeps
        retrying on the reconnect schedule. Calling start() on a running
        service does nothing. If a previous loop did not stop in time,
        start() waits for it once more and refuses to start a second loop
        while it is still alive.

        Returns:
            True if the scale is connected after the first attempt
        """
        with self._lifecycle_lock:
            if self.is_running():
                return self.is_connected()

            if not self._join_stale_thread():
                logger.error("Previous poll loop is still running, not starting another")
                return False

            # Each run gets its own event so a late-exiting loop still sees its stop
            self._stop_event = threading.Event()
            connected = self.connect()
            if not connected:
                logger.warning(
                    f"Scale not connected, retrying every {self._reconnect_delay:.0f}s"
                )

            self._thread = threading.Thread(
                target=self._poll_loop,
                args=(self._stop_event,),
                name="ScaleReader",
                daemon=True,
            )
            self._thread.start()
            return connected

    def stop(self) -> None:
        """Stop the poll loop, then close the port.

        Any raw capture in flight completes immediately with what it has.
        A loop that outlives the join timeout keeps its handle and closes
        the port itself when it exits.
        """
        with self._lifecycle_lock:
            self._stop_event.set()
            self._raw_capture.cancel()

            if self._thread and self._thread.is_alive():
                logger.debug("Stopping poll thread...")
                self._thread.join(timeout=protocol.STOP_JOIN_TIMEOUT_S)
                if self._thread.is_alive():
                    logger.warning("Poll thread did not stop cleanly, closing port anyway")
                else:
                    self._thread = None
            else:
                self._thread = None

            self._connection.close()

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    def is_connected(self) -> bool:
        return self._connection.is_open

    # ========================================================================
    # Connection Management
    # ========================================================================

    def connect(self) -> bool:
        """Open the configured port, auto-detecting it if it is missing.

        Failures are logged and reported as False; they never raise.

        Returns:
            True if the port is open
        """
        with self._connect_lock:
            self._last_reconnect_attempt = time.monotonic()
            port_name = self._resolve_port_name()

            try:
                if not self._connection.port_exists(port_name):
                    logger.info(f"Configured port {port_name} not present, auto-detecting")
                    detected = self.detect_port()
                    if detected is None:
                        available = ", ".join(self._connection.list_ports()) or "none"
                        raise PortNotFound(
                            f"Port {port_name} not found. Available ports: {available}"
                        )
                    port_name = detected

                # Nothing from before the disconnect may count toward a capture
                self._framer.reset()
                self._capture_controller.reset()
                self._connection.open(port_name)
            except SerialIOError as e:
                logger.error(f"Failed to connect to scale: {e}")
                return False

            logger.info(f"Scale connected on {port_name}")
            return True

    def detect_port(self, timeout_per_port_s: Optional[float] = None) -> Optional[str]:
        """Scan candidate ports for a scale and persist the one found.

        Args:
            timeout_per_port_s: Listen time per candidate. Defaults to the
                               serial settings' detect_timeout_s.

        Returns:
            Detected port name, or None
        """
        with self._connect_lock:
            port_name = self._connection.detect(timeout_per_port_s)
            if port_name is None:
                return None

            try:
                self._store.save_detected_port(port_name)
                logger.info(f"Saved detected scale port {port_name}")
            except Exception as e:
                logger.error(f"Failed to save detected port {port_name}: {e}", exc_info=True)

            # Pick up the new port name on the next settings read
            self._last_settings_refresh = None
            return port_name

    def list_ports(self) -> List[str]:
        """Enumerate candidate serial ports."""
        return self._connection.list_ports()

    # ========================================================================
    # Readouts
    # ========================================================================

    @property
    def current_weight(self) -> Optional[float]:
        """Most recent meaningful weight, or None before the first sample."""
        return self._gauge.get()

    @property
    def gauge(self) -> WeightGauge:
        """Weight gauge, for subscribing to weight-changed events."""
        return self._gauge

    @property
    def lock_state(self) -> CaptureLockState:
        return self._capture_controller.state

    @property
    def settings(self) -> ScaleSettings:
        """Settings as last fetched from the store."""
        return self._settings

    def status(self) -> ScaleStatus:
        return ScaleStatus(
            connected=self.is_connected(),
            running=self.is_running(),
            port_name=self._connection.port_name,
            current_weight=self.current_weight,
            lock_state=self.lock_state,
        )

    # ========================================================================
    # Captures
    # ========================================================================

    def capture_reading(self, weight: Optional[float] = None) -> ScaleReading:
        """Commit one reading on explicit user request.

        Independent of auto-capture and of the lock state.

        Args:
            weight: Weight to commit. If None, the live weight is used.

        Returns:
            The committed ScaleReading

        Raises:
            ScaleNotConnected: If weight is None and no live weight exists
        """
        if weight is None:
            weight = self.current_weight if self.is_connected() else None
            if weight is None:
                raise ScaleNotConnected("No live weight available from the scale")

        reading = self._commit_reading(weight)
        logger.info(f"Manual capture committed: {weight:.2f}")
        return reading

    def capture_raw_lines(self, count: int, timeout_s: float) -> List[str]:
        """Collect the next count raw lines, or fewer if timeout_s elapses.

        Returns an empty list immediately when the scale is not connected.

        Raises:
            CaptureConflict: If a raw capture or speed test is already running
        """
        if not self.is_connected():
            return []
        return [line.text for line in self._raw_capture.capture(count, timeout_s)]

    def run_speed_test(self, samples: int, timeout_s: float) -> SpeedTestResult:
        """Measure line arrival timing over up to samples lines.

        Raises:
            CaptureConflict: If a raw capture or speed test is already running
        """
        if not self.is_connected():
            return summarize_line_timing(samples, [])
        lines = self._raw_capture.capture(samples, timeout_s)
        return summarize_line_timing(samples, lines)

    # ========================================================================
    # Line Pipeline
    # ========================================================================

    def process_line(self, line: str, received_at: Optional[float] = None) -> None:
        """Push one framed line through parse -> stability -> auto-capture.

        Args:
            line: One line, terminators removed
            received_at: Monotonic arrival time (defaults to now)
        """
        line = line.strip()
        if not line:
            return

        logger.debug(f"Raw scale data: {line}")
        self._raw_capture.record(line, received_at)

        weight = self._parser.parse(line)
        if weight is None:
            return

        self._refresh_settings()
        decision = self._capture_controller.process(
            weight,
            self._settings.auto_capture_enabled,
            self._settings.auto_capture_threshold_percent,
        )

        if decision.capture_weight is not None:
            self._commit_auto_capture(decision.capture_weight)

        self._gauge.set(decision.display_weight)

    # ========================================================================
    # Internal Helpers
    # ========================================================================

    def _poll_loop(self, stop_event: threading.Event) -> None:
        """Background thread loop: reconnect or drain, once per tick."""
        logger.info(f"Scale poll loop started (thread {threading.get_ident()})")

        while not stop_event.is_set():
            try:
                if not self._connection.is_open:
                    if self._reconnect_due():
                        self.connect()
                else:
                    self._poll_once()

            except serial.SerialTimeoutException as e:
                logger.debug(f"Serial timeout, continuing: {e}")

            except (SerialIOError, serial.SerialException, OSError) as e:
                logger.warning(f"Scale connection lost, will reconnect: {e}")
                self._connection.close()

            except Exception as e:
                logger.error(f"Error in scale poll loop: {e}", exc_info=True)

            if stop_event.wait(timeout=self._poll_interval):
                break

        # A connect that finished after stop() must not leave the port open
        self._connection.close()
        logger.info("Scale poll loop stopped")

    def _join_stale_thread(self) -> bool:
        """Wait once more for a loop that outlived stop(). True if none is left."""
        if self._thread is None:
            return True
        if self._thread.is_alive():
            self._thread.join(timeout=protocol.STOP_JOIN_TIMEOUT_S)
            if self._thread.is_alive():
                return False
        self._thread = None
        return True

    def _poll_once(self) -> None:
        text = self._connection.read_available()
        if not text:
            return

        received_at = time.monotonic()
        for line in self._framer.feed(text):
            self.process_line(line, received_at)

    def _reconnect_due(self) -> bool:
        if self._last_reconnect_attempt is None:
            return True
        return time.monotonic() - self._last_reconnect_attempt >= self._reconnect_delay

    def _refresh_settings(self, force: bool = False) -> ScaleSettings:
        """Re-read settings from the store at most once per TTL."""
        now = time.monotonic()
        if (
            not force
            and self._last_settings_refresh is not None
            and now - self._last_settings_refresh < self._settings_ttl
        ):
            return self._settings

        self._last_settings_refresh = now
        try:
            settings = self._store.get_settings()
        except Exception as e:
            logger.warning(f"Failed to refresh settings, keeping previous values: {e}")
            return self._settings

        self._settings = settings if settings is not None else ScaleSettings()
        return self._settings

    def _resolve_port_name(self) -> str:
        settings = self._refresh_settings(force=True)
        return settings.configured_port_name or self._connection.settings.port

    def _commit_reading(self, weight: float) -> ScaleReading:
        pallet = self._store.get_active_pallet()
        reading = self._store.commit_reading(
            weight,
            datetime.now(timezone.utc),
            pallet.pallet_id if pallet is not None else None,
        )
        if pallet is not None:
            new_pallet = self._store.advance_pallet_if_full(pallet)
            if new_pallet is not None:
                logger.info(f"Pallet {pallet.pallet_id} full, started {new_pallet.pallet_id}")
        return reading

    def _commit_auto_capture(self, weight: float) -> None:
        # The controller has already locked; a store failure is reported, not retried
        try:
            reading = self._commit_reading(weight)
            logger.info(f"Auto-captured reading {weight:.2f} (pallet {reading.pallet_id})")
        except Exception as e:
            logger.error(f"Failed to persist auto-captured reading {weight:.2f}: {e}", exc_info=True)
