import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .backends.base import AbstractChainBackend
from .constants import EVENT_POLL_INTERVAL_SECONDS
from .core.escrow import AgreementEvent

logger = logging.getLogger(__name__)


class AgreementWatcher:
    """
    Polls the factory for AgreementCreated events and hands each new one to `on_event`.
    Each event is delivered once; a failed poll is retried on the next tick.
    Without `from_block`, watching starts at the chain head of the first poll.
    """

    def __init__(self, backend: AbstractChainBackend, interval_seconds: float = EVENT_POLL_INTERVAL_SECONDS,
                 on_event: Optional[Callable[[AgreementEvent], None]] = None, from_block: Optional[int] = None):
        self.backend = backend
        self.interval_seconds = interval_seconds
        self.on_event = on_event or (lambda event: None)
        self.next_block = from_block
        self._seen: Dict[Tuple[str, str], int] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> List[AgreementEvent]:
        try:
            head = self.backend.block_number()
            if self.next_block is None:
                self.next_block = head
                logger.info(f"Watching for agreements from block {head}")
            from_block = min(self.next_block, head)
            events = self.backend.get_created_events(from_block=from_block, to_block=head)
        except Exception as e:
            logger.error(f"Agreement event poll failed (from block {self.next_block}): {e}")
            return []

        delivered = []
        for event in sorted(events, key=lambda ev: ev.block_number):
            key = (event.transaction_hash, event.args.get("agreementAddress", ""))
            if key in self._seen:
                continue
            self._seen[key] = event.block_number
            try:
                self.on_event(event)
            except Exception as e:
                logger.error(f"Agreement event handler failed for {event.transaction_hash}: {e}")
            delivered.append(event)

        # Re-scan the head block next time; duplicates are filtered above.
        self.next_block = max(self.next_block, head)
        self._seen = {key: block for key, block in self._seen.items() if block >= self.next_block}

        if delivered:
            logger.info(f"Delivered {len(delivered)} new agreement event(s)")
        return delivered

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="agreement-watcher", daemon=True)
        self._thread.start()
        logger.info(f"Agreement watcher started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Agreement watcher stopped")
