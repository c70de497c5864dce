"""Client-side polling of export status until a terminal state."""
import logging
import threading
from typing import Any, Callable, Optional

import httpx

from record_transfer.errors import ExportFailedError, PollError

ACTIVE_STATUSES = ("queued", "processing")

logger = logging.getLogger(__name__)


class HttpExportStatusClient:
    """Fetches export snapshots from the API."""

    def __init__(
        self,
        base_url: str,
        team_id: str,
        user_id: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._headers = {"X-Team-Id": team_id, "X-User-Id": user_id}

    def __call__(self, export_id: str) -> dict[str, Any]:
        response = self._client.get(f"/api/exports/{export_id}", headers=self._headers)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self._client.close()


class ExportStatusPoller:
    """
    Re-reads export status at a fixed interval until it is terminal.

    A failing status request stops the loop with PollError instead of
    retrying forever. ``stop()`` abandons polling from another thread; it
    does not cancel the export itself.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], dict[str, Any]],
        interval: float = 2.0,
        max_polls: Optional[int] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        on_update: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> None:
        self._fetch_status = fetch_status
        self.interval = interval
        self.max_polls = max_polls
        self._stopped = threading.Event()
        self._sleep = sleep or self._stopped.wait
        self._on_update = on_update
        self.polls = 0

    def stop(self) -> None:
        self._stopped.set()

    def poll(self, export_id: str) -> dict[str, Any]:
        """
        Poll until the export completes.

        Returns:
            The completed snapshot, including ``download_url``

        Raises:
            ExportFailedError: The export reached ``failed``
            PollError: A request errored, the budget ran out or polling was stopped
        """
        self.polls = 0
        while not self._stopped.is_set():
            self.polls += 1
            try:
                snapshot = self._fetch_status(export_id)
            except Exception as e:
                raise PollError(f"Status request for export {export_id} failed: {e}") from e

            if self._on_update:
                self._on_update(snapshot)

            status = snapshot.get("status")
            if status == "completed":
                logger.info(f"Export {export_id} completed after {self.polls} polls")
                return snapshot
            if status == "failed":
                raise ExportFailedError(export_id, snapshot.get("error"))
            if status not in ACTIVE_STATUSES:
                raise PollError(f"Export {export_id} reported unknown status {status!r}")
            if self.max_polls is not None and self.polls >= self.max_polls:
                raise PollError(f"Export {export_id} still {status} after {self.polls} polls")

            self._sleep(self.interval)

        raise PollError(f"Polling for export {export_id} was stopped")
