from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..backend import BackendStatus
from ..config import poll_interval_from_env
from ..errors import BackendError

if TYPE_CHECKING:
    from .backend import VaultBackend

logger = logging.getLogger(__name__)

WRITE_DEBOUNCE = 10.0
SYNC_TIMEOUT = 5.0


class Poller:
    """Periodically syncs a vault backend and reports status changes.

    A tick is skipped while the backend's last local write is less than
    ``WRITE_DEBOUNCE`` seconds old. ``on_change`` receives the new status
    only when a tick changed it.
    """

    def __init__(
        self,
        backend: VaultBackend,
        interval: float | None = None,
        on_change: Callable[[BackendStatus], None] | None = None,
    ):
        self.backend = backend
        self.interval = interval if interval else poll_interval_from_env()
        self.on_change = on_change
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("poller already started")
        self._thread = threading.Thread(target=self._run, name="vault-poller", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self.interval):
            self.poll()

    def poll(self) -> None:
        """Run one tick."""
        since_write = self.backend.seconds_since_last_write()
        if since_write is not None and since_write < WRITE_DEBOUNCE:
            logger.debug("Skipping vault sync, last write %.1fs ago", since_write)
            return

        old_status = self.backend.get_status()
        try:
            self.backend.sync_from_vault(timeout=SYNC_TIMEOUT)
        except BackendError as exc:
            logger.debug("Vault poll: %s", exc)

        new_status = self.backend.get_status()
        if new_status != old_status and self.on_change is not None:
            try:
                self.on_change(new_status)
            except Exception:
                logger.exception("Status observer failed")

    def stop(self) -> None:
        """Signal the loop and wait for it to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
