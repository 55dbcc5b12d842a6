"""
Scanner feed - the barcode scanner as a message producer.

Keyboard-wedge scanners type into whatever has focus. The station reads the
complete scan text (already debounced by the input layer) and hands it to
submit(); a single consumer thread applies scans to the engine strictly in
arrival order, so the engine never sees two scans at once.
"""

import queue
import threading
from typing import Callable, Optional, Tuple

from logger import get_logger

logger = get_logger(__name__)

_STOP = object()

ScanCallback = Callable[[str, object, str], None]


class ScannerFeed:
    """
    Attributes:
        engine: ReconciliationEngine receiving the scans
        on_result: Called with (text, ScanResult, status) after each scan
    """

    def __init__(self, engine, on_result: Optional[ScanCallback] = None, sync_mode: bool = False):
        self.engine = engine
        self.on_result = on_result
        self._sync_mode = sync_mode
        self._closed = False

        if sync_mode:
            return

        self._queue: "queue.Queue" = queue.Queue()
        self._thread = threading.Thread(target=self._run, daemon=True, name="scanner-feed")
        self._thread.start()

    def submit(self, text: str):
        """Queue one scan; never blocks the caller."""
        if self._closed:
            logger.warning(f"Scan ignored after shutdown: {text!r}")
            return
        if self._sync_mode:
            self._apply(text)
            return
        self._queue.put(text)

    def drain(self):
        """Block until every queued scan has been applied."""
        if self._sync_mode:
            return
        self._queue.join()

    def shutdown(self):
        """Apply what is queued, then stop the consumer. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._sync_mode:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=10)

    def _apply(self, text: str) -> Tuple[object, str]:
        result, status = self.engine.process_scan(text)
        if self.on_result is not None:
            self.on_result(text, result, status)
        return result, status

    def _run(self):
        while True:
            text = self._queue.get()
            try:
                if text is _STOP:
                    return
                self._apply(text)
            except Exception:
                logger.exception(f"Scan {text!r} could not be applied")
            finally:
                self._queue.task_done()
