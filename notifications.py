"""Sequenced event notification channel for execution lifecycle callbacks."""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Protocol, Union

from execution_tree import ExecutionNode

LOGGER_NAME = "run_reporter.notifications"


class EventKind(str, Enum):
    """Transport-level notification types."""
    NODE_EVENT = "ExNode"
    RUN_COMPLETE = "ExecConfigComplete"


class NodePhase(str, Enum):
    """Lifecycle callback that produced a node event."""
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class NodeSnapshot:
    """Point-in-time copy of a node's result, taken when the event fires."""

    node_id: int
    phase: NodePhase
    status: str
    running_duration_ms: Optional[int] = None
    failure_message: Optional[str] = None

    @classmethod
    def from_node(cls, node: ExecutionNode, phase: NodePhase) -> "NodeSnapshot":
        duration = None
        failure = None
        if node.result is not None:
            duration = node.result.running_duration_ms
            if node.result.thrown is not None:
                failure = node.result.thrown.message
        return cls(
            node_id=node.id,
            phase=phase,
            status=node.status.value,
            running_duration_ms=duration,
            failure_message=failure,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


@dataclass(frozen=True)
class RunOutcome:
    """Payload of the single completion event of a run."""

    succeeded: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NotificationEvent:
    kind: EventKind
    sequence_number: int
    source: str
    payload: Union[NodeSnapshot, RunOutcome, None] = None

    def to_transport(self) -> Dict[str, Any]:
        """Shape the event for the remote notification transport."""
        return {
            "type": self.kind.value,
            "source": self.source,
            "sequenceNumber": self.sequence_number,
            "userData": self.payload.to_dict() if self.payload is not None else None,
        }


class SequenceCounter:
    """Strictly increasing sequence numbers starting at 1.

    Owned by a single control server instance; not thread-safe.
    """

    def __init__(self) -> None:
        self._last = 0

    @property
    def current(self) -> int:
        return self._last

    def next_sequence(self) -> int:
        self._last += 1
        return self._last


class EventSubscriber(Protocol):
    def on_event(self, event: NotificationEvent) -> None:
        ...


class NotificationChannel:
    """Synchronous fire-and-forget broadcast to registered subscribers."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._subscribers: List[EventSubscriber] = []

    @property
    def subscribers(self) -> List[EventSubscriber]:
        return list(self._subscribers)

    def subscribe(self, subscriber: EventSubscriber) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: EventSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def broadcast(self, event: NotificationEvent) -> None:
        self.logger.debug(
            "broadcast %s seq=%s to %d subscriber(s)",
            event.kind.value,
            event.sequence_number,
            len(self._subscribers),
        )
        for subscriber in list(self._subscribers):
            try:
                subscriber.on_event(event)
            except Exception:
                # Fire-and-forget: log and keep delivering to the rest
                self.logger.exception(
                    "Subscriber %r failed on event seq=%s", subscriber, event.sequence_number
                )


class EventLog:
    """Bounded in-memory mirror of the event stream for polling clients."""

    def __init__(self, maxlen: int = 1000):
        self._events: Deque[NotificationEvent] = deque(maxlen=maxlen)
        # Appended from the run thread, read by polling clients
        self._lock = threading.Lock()

    def on_event(self, event: NotificationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def events(self) -> List[NotificationEvent]:
        with self._lock:
            return list(self._events)

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return self._events[-1].sequence_number if self._events else 0

    def events_since(self, sequence_number: int = 0) -> List[NotificationEvent]:
        with self._lock:
            snapshot = list(self._events)
        return [e for e in snapshot if e.sequence_number > sequence_number]
