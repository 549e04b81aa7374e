"""Single-slot result channel and the detached worker that fills it."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
import queue
import threading

from .provider import QueryResult

LOGGER = logging.getLogger(__name__)


class PollStatus(str, Enum):
    """What a non-blocking receive observed."""

    PENDING = "PENDING"
    READY = "READY"
    DISCONNECTED = "DISCONNECTED"


@dataclass(frozen=True)
class PollOutcome:
    status: PollStatus
    result: QueryResult | None = None


class ResultSender:
    """Sending half; usable for exactly one value, then closed."""

    def __init__(self, slot: queue.Queue[QueryResult], closed: threading.Event) -> None:
        self._slot = slot
        self._closed = closed

    def send(self, result: QueryResult) -> None:
        if self._closed.is_set():
            raise RuntimeError("result channel already closed")
        self._slot.put_nowait(result)
        self._closed.set()

    def close(self) -> None:
        self._closed.set()


class ResultReceiver:
    """Receiving half owned by the UI thread."""

    def __init__(self, slot: queue.Queue[QueryResult], closed: threading.Event) -> None:
        self._slot = slot
        self._closed = closed

    def try_recv(self) -> PollOutcome:
        # Read the closed flag first: a sender always fills the slot before
        # closing, so a closed channel with an empty slot never had a value.
        closed = self._closed.is_set()
        try:
            result = self._slot.get_nowait()
        except queue.Empty:
            if closed:
                return PollOutcome(PollStatus.DISCONNECTED)
            return PollOutcome(PollStatus.PENDING)
        return PollOutcome(PollStatus.READY, result)


def result_channel() -> tuple[ResultSender, ResultReceiver]:
    slot: queue.Queue[QueryResult] = queue.Queue(maxsize=1)
    closed = threading.Event()
    return ResultSender(slot, closed), ResultReceiver(slot, closed)


class QueryTask:
    """Handle for one in-flight query.

    The worker thread is a daemon: it is never joined, cancelled or timed
    out, and is simply abandoned if the application exits first.
    """

    def __init__(self, user_text: str, receiver: ResultReceiver) -> None:
        self.user_text = user_text
        self.receiver = receiver

    @classmethod
    def spawn(cls, user_text: str, job: Callable[[], QueryResult]) -> QueryTask:
        sender, receiver = result_channel()

        def _worker() -> None:
            try:
                sender.send(job())
            except Exception as exc:  # noqa: BLE001 - surfaced as a disconnect.
                LOGGER.warning(
                    "query_task.worker.crashed",
                    extra={
                        "event": "query_task.worker.crashed",
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
            finally:
                sender.close()

        threading.Thread(target=_worker, name="cmdk-query", daemon=True).start()
        return cls(user_text, receiver)

    def poll(self) -> PollOutcome:
        return self.receiver.try_recv()
