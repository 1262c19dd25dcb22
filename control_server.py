"""Control server that owns one execution run and relays lifecycle events.

The server wraps an external runner (anything satisfying ``Runner``), turns
its lifecycle callbacks into sequenced ``NotificationEvent`` objects and
broadcasts them on a ``NotificationChannel``. Its own ``EventLog`` is always
subscribed so the remote transport can mirror the stream.
"""
from __future__ import annotations

import importlib
import logging
import threading
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from exceptions import RunnerFactoryError, ServerStateError
from execution_tree import ExecutionNode, RunFailure
from notifications import (
    EventKind,
    EventLog,
    EventSubscriber,
    NodePhase,
    NodeSnapshot,
    NotificationChannel,
    NotificationEvent,
    RunOutcome,
    SequenceCounter,
)


class ExecutionListener(Protocol):
    """Lifecycle callbacks a runner invokes while executing."""

    def on_node_started(self, node: ExecutionNode) -> None: ...

    def on_node_finished(self, node: ExecutionNode) -> None: ...

    def on_node_failed(self, node: ExecutionNode, cause: Optional[BaseException] = None) -> None: ...

    def on_node_ignored(self, node: ExecutionNode) -> None: ...


class Runner(Protocol):
    """Boundary of the external execution runner."""

    def prepare_execution_config(self, config: Any) -> ExecutionNode: ...

    def run(self) -> ExecutionNode: ...

    def add_notifier(self, listener: ExecutionListener) -> None: ...

    def get_failures(self) -> List[RunFailure]: ...


RunnerFactory = Callable[[], Runner]


class ServerState(str, Enum):
    IDLE = "idle"
    CONFIGURED = "configured"
    RUNNING = "running"


def resolve_runner_factory(path: Optional[str]) -> RunnerFactory:
    """Import a runner factory given as ``package.module:attribute``."""
    if not path:
        raise RunnerFactoryError("No runner factory configured")
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise RunnerFactoryError("Runner factory must look like 'module:attribute'", path)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise RunnerFactoryError(f"Cannot import runner module: {exc}", path) from exc
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise RunnerFactoryError(f"Runner factory {attr!r} not found in {module_name}", path)
    return factory


class ControlServer:
    """Drives a single run at a time and broadcasts its events.

    Not reentrant: callers serialize ``prepare``/``run`` externally.
    """

    def __init__(
        self,
        runner_factory: RunnerFactory,
        source: str = "run-reporter",
        event_log_size: int = 1000,
        shutdown_signal: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger("run_reporter.control")
        self.source = source
        self._runner_factory = runner_factory
        self._runner: Optional[Runner] = None
        self._root: Optional[ExecutionNode] = None
        self._state = ServerState.IDLE
        self._run_started = False
        self._shutdown_signal = shutdown_signal or threading.Event()

        self.sequence = SequenceCounter()
        self.channel = NotificationChannel(logger=self.logger)
        self.events = EventLog(maxlen=event_log_size)
        self.channel.subscribe(self.events)

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def root_node(self) -> Optional[ExecutionNode]:
        """Tree from the last prepare or run."""
        return self._root

    # -- run lifecycle -----------------------------------------------------

    def prepare(self, config: Any) -> ExecutionNode:
        if self._state is ServerState.RUNNING:
            raise ServerStateError("prepare", self._state.value)
        if self._runner is not None:
            self.logger.info("Discarding previously prepared runner")
        self._runner = self._runner_factory()
        self._run_started = False
        self._root = self._runner.prepare_execution_config(config)
        self._state = ServerState.CONFIGURED
        self.logger.info("Run prepared (root node id=%s)", self._root.id)
        return self._root

    def run(self) -> ExecutionNode:
        if self._state is not ServerState.CONFIGURED or self._runner is None:
            raise ServerStateError("run", self._state.value)

        # Listener goes on first so the run's own callbacks are never missed
        self._runner.add_notifier(self)
        self._state = ServerState.RUNNING
        self._run_started = True
        outcome = RunOutcome(succeeded=False)
        self.logger.info("Run started")
        try:
            self._root = self._runner.run()
            outcome = RunOutcome(succeeded=True)
        except BaseException as exc:
            outcome = RunOutcome(succeeded=False, error=f"{type(exc).__name__}: {exc}")
            self.logger.error("Run failed: %s", exc)
            raise
        finally:
            self._state = ServerState.IDLE
            self._publish(EventKind.RUN_COMPLETE, outcome)
            self.logger.info("Run complete (last sequence=%s)", self.sequence.current)
        return self._root

    def get_failures(self) -> List[RunFailure]:
        if not self._run_started or self._runner is None:
            raise ServerStateError("get failures", "not started")
        return list(self._runner.get_failures())

    def add_listener(self, listener: ExecutionListener) -> None:
        """Attach an extra execution listener to the prepared runner."""
        if self._runner is None:
            raise ServerStateError("add listener", self._state.value)
        self._runner.add_notifier(listener)

    # -- shutdown latch ----------------------------------------------------

    def shutdown(self) -> None:
        if not self._shutdown_signal.is_set():
            self.logger.info("Shutdown requested")
        self._shutdown_signal.set()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_signal.wait(timeout)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown_signal.is_set()

    # -- subscribers -------------------------------------------------------

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self.channel.subscribe(subscriber)

    def unsubscribe(self, subscriber: EventSubscriber) -> None:
        self.channel.unsubscribe(subscriber)

    # -- execution listener callbacks --------------------------------------

    def on_node_started(self, node: ExecutionNode) -> None:
        self._notify_node(node, NodePhase.STARTED)

    def on_node_finished(self, node: ExecutionNode) -> None:
        self._notify_node(node, NodePhase.FINISHED)

    def on_node_failed(self, node: ExecutionNode, cause: Optional[BaseException] = None) -> None:
        self._notify_node(node, NodePhase.FAILED)

    def on_node_ignored(self, node: ExecutionNode) -> None:
        self._notify_node(node, NodePhase.IGNORED)

    def _notify_node(self, node: ExecutionNode, phase: NodePhase) -> None:
        event = self._publish(EventKind.NODE_EVENT, NodeSnapshot.from_node(node, phase))
        self.logger.debug(
            "node event id=%s phase=%s seq=%s", node.id, phase.value, event.sequence_number
        )

    def _publish(self, kind: EventKind, payload: Any) -> NotificationEvent:
        event = NotificationEvent(
            kind=kind,
            sequence_number=self.sequence.next_sequence(),
            source=self.source,
            payload=payload,
        )
        self.channel.broadcast(event)
        return event
