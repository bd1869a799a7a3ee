"""
Job event channel and NDJSON event log.

Every job state transition is published as a STATUS event and progress
messages as LOG events on one multiplexed channel. Subscribers read from
their own queue, so events of one job arrive in publication order.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..ids import is_valid_job_id

logger = logging.getLogger(__name__)

EVENTS_FILE = "events.ndjson"


class EventTypes:
    """Standard event types."""
    STATUS = "STATUS"
    LOG = "LOG"


@dataclass
class JobEvent:
    job_id: str
    type: str
    data: Dict[str, Any]
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def is_terminal_status(self) -> bool:
        return self.type == EventTypes.STATUS and bool(self.data.get("terminal"))

    def to_dict(self) -> Dict[str, Any]:
        return {"ts": self.ts, "job_id": self.job_id, "type": self.type, "data": self.data}


class Subscription:
    """
    One listener's view of the channel.

    Iterating yields events until the channel closes; a subscription
    filtered to a single job also ends after that job's terminal status.
    """

    def __init__(self, channel: "EventChannel", job_id: Optional[str] = None):
        self._channel = channel
        self.job_id = job_id
        self._queue: "asyncio.Queue[Optional[JobEvent]]" = asyncio.Queue()
        self._finished = False

    def _offer(self, event: Optional[JobEvent]) -> None:
        if event is None or self.job_id is None or event.job_id == self.job_id:
            self._queue.put_nowait(event)

    async def get(self) -> Optional[JobEvent]:
        """Next event, or None once the subscription has ended."""
        if self._finished:
            return None
        event = await self._queue.get()
        if event is None:
            self._finished = True
        elif self.job_id is not None and event.is_terminal_status:
            self._finished = True
            self.close()
        return event

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> JobEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventChannel:
    """Multiplexed channel carrying job-id-tagged events."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._sinks: List[Callable[[JobEvent], None]] = []
        self._history: Dict[str, List[JobEvent]] = {}

    def subscribe(self, job_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, job_id)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def add_sink(self, sink: Callable[[JobEvent], None]) -> None:
        """Attach a synchronous writer that sees every event (e.g. NdjsonEventSink)."""
        self._sinks.append(sink)

    def history(self, job_id: str) -> List[JobEvent]:
        """Events published so far for one job, oldest first."""
        return list(self._history.get(job_id, []))

    def forget(self, job_id: str) -> None:
        """Drop a job's in-memory history; the NDJSON log on disk is kept."""
        self._history.pop(job_id, None)

    def publish(self, event: JobEvent) -> None:
        self._history.setdefault(event.job_id, []).append(event)
        for sink in self._sinks:
            try:
                sink(event)
            except (OSError, ValueError) as e:
                logger.warning(f"Event sink failed for {event.job_id}: {e}")
        for subscription in list(self._subscriptions):
            subscription._offer(event)

    def emit(self, job_id: str, event_type: str, data: Dict[str, Any]) -> JobEvent:
        event = JobEvent(job_id=job_id, type=event_type, data=data)
        self.publish(event)
        return event

    def close(self) -> None:
        """End every subscription."""
        for subscription in list(self._subscriptions):
            subscription._offer(None)
        self._subscriptions.clear()


class NdjsonEventSink:
    """Appends each event to <home>/<job_id>/events.ndjson."""

    def __init__(self, home: Path):
        self.home = Path(home)

    def path_for(self, job_id: str) -> Path:
        if not is_valid_job_id(job_id):
            raise ValueError(f"Invalid job ID: {job_id}")
        return self.home / job_id / EVENTS_FILE

    def __call__(self, event: JobEvent) -> None:
        path = self.path_for(event.job_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(json.dumps(event.to_dict()) + "\n")
            f.flush()


def read_events(home: Path, job_id: str) -> List[Dict[str, Any]]:
    """
    Read all events of a job.

    Args:
        home: Event log root (Settings.home)
        job_id: Job ID

    Returns:
        List of events, malformed lines skipped
    """
    logs_file = NdjsonEventSink(home).path_for(job_id)
    if not logs_file.exists():
        return []

    events = []
    with open(logs_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines
    return events
