"""
Per-job progress broadcast.

A publish/subscribe channel keyed by job id. Subscribers only see events
published after they subscribe, plus one synthetic ``connected`` event sent
to them alone at subscription time. Delivery runs on the event loop thread,
so events for one job reach each subscriber in publication order.
"""
import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    CONNECTED = "connected"
    UPLOAD = "upload"
    PROCESSING = "processing"
    PDF = "pdf"
    OCR = "ocr"
    AI = "ai"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STAGES = (Stage.COMPLETE, Stage.ERROR)


@dataclass
class ProgressEvent:
    stage: Stage
    progress: int
    message: str
    detail: Optional[dict] = None
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data


Listener = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``subscribe``; pass it to ``unsubscribe``"""
    job_id: str
    listener: Listener
    token: int


class ProgressChannel:
    """Fan-out of ProgressEvents to the listeners of each job"""

    def __init__(self):
        self._listeners: Dict[str, List[Subscription]] = defaultdict(list)
        self._next_token = 0

    def subscribe(self, job_id: str, listener: Listener) -> Subscription:
        self._next_token += 1
        subscription = Subscription(job_id, listener, self._next_token)
        self._listeners[job_id].append(subscription)
        self._deliver(subscription, ProgressEvent(Stage.CONNECTED, 0, "Connected to progress stream"))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a listener; unsubscribing twice is harmless"""
        subscriptions = self._listeners.get(subscription.job_id)
        if not subscriptions:
            return
        self._listeners[subscription.job_id] = [s for s in subscriptions if s.token != subscription.token]
        if not self._listeners[subscription.job_id]:
            del self._listeners[subscription.job_id]

    def publish(self, job_id: str, event: ProgressEvent) -> None:
        # Copy: listeners may unsubscribe while being notified
        for subscription in list(self._listeners.get(job_id, ())):
            self._deliver(subscription, event)

    def emit(self, job_id: Optional[str], stage: Stage, progress: int, message: str,
             detail: Optional[dict] = None) -> None:
        """Build and publish an event; a None job id is a no-op"""
        if job_id is None:
            return
        self.publish(job_id, ProgressEvent(stage, progress, message, detail))

    def listener_count(self, job_id: str) -> int:
        return len(self._listeners.get(job_id, ()))

    def _deliver(self, subscription: Subscription, event: ProgressEvent) -> None:
        try:
            subscription.listener(event)
        except Exception:
            logger.exception("Progress listener failed for job %s", subscription.job_id)

    async def stream(self, job_id: str) -> AsyncIterator[ProgressEvent]:
        """
        Yield events for a job until a terminal event arrives.

        The subscription is always released when the consumer stops
        iterating, including on client disconnect.
        """
        queue: asyncio.Queue = asyncio.Queue()
        subscription = self.subscribe(job_id, queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            self.unsubscribe(subscription)
