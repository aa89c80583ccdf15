"""Metrics processor: buffers metric messages and flushes them to a transport."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import replace

from gamelift_metrics.model import (
    DerivedMetric,
    Metric,
    MetricConfigurationError,
    MetricMessage,
    MetricType,
    ValidationError,
    validate_tag_key,
    validate_tag_value,
)

DEFAULT_BUFFER_SIZE = 10000
DEFAULT_INGRESS_CHANNEL_SIZE = 4096
DEFAULT_PROCESS_INTERVAL = 10.0
DEFAULT_MAX_WORKERS = 10
ENABLE_DIMENSIONAL_METRICS_ENV_VAR = "GAMELIFT_ENABLE_DIMENSIONAL_METRICS"
ENV_PROCESS_ID = "GAMELIFT_SDK_PROCESS_ID"
SERVER_UP_KEY = "up"

_BATCH_SIZE = 1024
_POLL_SECONDS = 0.02
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Destination that metric messages are sent to."""

    @abstractmethod
    def send(self, messages: list[MetricMessage]) -> None:
        """Deliver a batch of messages; raise on failure."""

    @abstractmethod
    def close(self) -> None:
        """Release any resources held by the transport."""


def dimensional_metrics_enabled_from_env() -> bool:
    """Read the dimensional-metrics switch from the environment; off by default."""
    value = os.environ.get(ENABLE_DIMENSIONAL_METRICS_ENV_VAR, "")
    if value in _TRUE_WORDS:
        return True
    return False if value in _FALSE_WORDS else False


def create_tags_key(tags: dict[str, str] | None) -> str:
    """Return a stable 'k=v,k=v' string for a tag set, sorted."""
    if not tags:
        return ""
    return ",".join(sorted(f"{k}={v}" for k, v in tags.items()))


class _ServerUpMetric(Metric):
    """Placeholder metric registered for the 'up' heartbeat."""

    def __init__(self) -> None:
        self._tags: dict[str, str] = {}

    @property
    def key(self) -> str:
        return SERVER_UP_KEY

    @property
    def metric_type(self) -> MetricType:
        return MetricType.GAUGE

    @property
    def derived_metrics(self) -> list[DerivedMetric]:
        return []

    @property
    def current_value(self) -> float:
        return 1.0

    @property
    def tags(self) -> dict[str, str]:
        return dict(self._tags)

    def set_tag(self, key: str, value: str) -> None:
        validate_tag_key(key)
        validate_tag_value(value)
        self._tags[key] = value

    def set_tags(self, tags: dict[str, str]) -> None:
        for key, value in tags.items():
            self.set_tag(key, value)

    def remove_tag(self, key: str) -> None:
        self._tags.pop(key, None)


class Processor:
    """Ingests metric messages without blocking and flushes them periodically."""

    def __init__(
        self,
        transport: Transport,
        *,
        global_tags: dict[str, str] | None = None,
        process_interval: float = DEFAULT_PROCESS_INTERVAL,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        ingress_channel_size: int = DEFAULT_INGRESS_CHANNEL_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
        enable_dimensional_metrics: bool | None = None,
    ) -> None:
        if transport is None:
            raise MetricConfigurationError("transport is required")
        if process_interval <= 0:
            raise MetricConfigurationError("process interval must be positive")
        if buffer_size <= 0:
            raise MetricConfigurationError("buffer size must be positive")
        if ingress_channel_size <= 0:
            raise MetricConfigurationError("ingress channel size must be positive")
        if max_workers <= 0:
            raise MetricConfigurationError("max workers must be positive")

        self.transport = transport
        self._interval = float(process_interval)
        self._buffer_size = buffer_size
        self._ingress_size = ingress_channel_size
        self._max_workers = max_workers
        self._dimensional = (
            dimensional_metrics_enabled_from_env()
            if enable_dimensional_metrics is None
            else bool(enable_dimensional_metrics)
        )
        self._lock = threading.Lock()
        self._global_tags: dict[str, str] = dict(global_tags or {})
        self._metrics: dict[str, Metric] = {}
        self._message_queue: queue.Queue[MetricMessage] = queue.Queue(buffer_size)
        self._ingress: queue.Queue[MetricMessage] = queue.Queue(ingress_channel_size)
        self._shutdown = threading.Event()
        self._threads: list[threading.Thread] = []
        self._server_up: Metric | None = None
        self._started = False
        self._set_default_global_tags()

    @property
    def logger(self) -> logging.Logger:
        return logger

    @property
    def dimensional_metrics_enabled(self) -> bool:
        return self._dimensional

    @property
    def started(self) -> bool:
        with self._lock:
            return self._started

    @property
    def global_tags(self) -> dict[str, str]:
        """A copy of the current global tags."""
        with self._lock:
            return dict(self._global_tags)

    def set_global_tag(self, key: str, value: str) -> None:
        """Set a tag applied to every flushed metric; raises ValidationError."""
        try:
            validate_tag_key(key)
            validate_tag_value(value)
        except ValidationError as exc:
            logger.error("failed to validate global tag: %s", exc)
            raise
        with self._lock:
            self._global_tags[key] = value

    def remove_global_tag(self, key: str) -> None:
        with self._lock:
            self._global_tags.pop(key, None)

    def start(self) -> None:
        """Start the dispatcher and worker threads."""
        with self._lock:
            if self._started:
                raise MetricConfigurationError("processor already started")
            self._shutdown = threading.Event()
            dispatcher = threading.Thread(
                target=self._dispatch,
                args=(self._ingress, self._message_queue, self._shutdown),
                daemon=True,
            )
            workers = [
                threading.Thread(
                    target=self._work,
                    args=(self._message_queue, self._shutdown),
                    daemon=True,
                )
                for _ in range(self._max_workers)
            ]
            self._threads = [dispatcher, *workers]
            self._started = True
            if self._server_up is None:
                self._server_up = _ServerUpMetric()
                self._metrics[SERVER_UP_KEY] = self._server_up
            for thread in self._threads:
                thread.start()

    def stop(self) -> None:
        """Send up=0, stop all threads and close the transport; idempotent."""
        with self._lock:
            if not self._started:
                return
            if self._server_up is not None:
                final = MetricMessage(
                    key=SERVER_UP_KEY,
                    type=MetricType.GAUGE,
                    value=0.0,
                    tags=dict(self._global_tags),
                    sample_rate=1.0,
                )
                try:
                    self.transport.send([final])
                except Exception as exc:  # noqa: BLE001
                    logger.error("failed to send up=0 on shutdown: %s", exc)
            self._shutdown.set()
            threads = self._threads

        for thread in threads:
            thread.join()

        with self._lock:
            self._threads = []
            self._message_queue = queue.Queue(self._buffer_size)
            self._ingress = queue.Queue(self._ingress_size)
            try:
                self.transport.close()
            except Exception as exc:  # noqa: BLE001
                logger.error("failed to close transport during stop: %s", exc)
            self._started = False

    def get_metric(self, key: str) -> Metric | None:
        """Return the metric registered under key, or None."""
        with self._lock:
            return self._metrics.get(key)

    def list_metrics(self) -> list[Metric]:
        with self._lock:
            return list(self._metrics.values())

    def unregister_metric(self, key: str) -> None:
        with self._lock:
            self._metrics.pop(key, None)

    def enqueue_metric(self, message: MetricMessage) -> None:
        """Queue a message for processing, blocking if the ingress queue is full."""
        with self._lock:
            ingress = self._ingress
        ingress.put(message)

    def register_metric(self, metric: Metric) -> None:
        """Register a metric under its composite key; the first one wins."""
        key = self.composite_key(metric.key, metric.tags)
        with self._lock:
            self._metrics.setdefault(key, metric)

    def flush_messages(self, messages: list[MetricMessage]) -> None:
        """Send messages plus derived metrics, with global tags merged in."""
        if not messages:
            return
        global_tags = self.global_tags
        batch = list(messages)
        try:
            batch.extend(self.emit_derived_metrics())
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to emit derived metrics: %s", exc)
        merged = [replace(msg, tags={**(msg.tags or {}), **global_tags}) for msg in batch]
        self.transport.send(merged)

    def emit_derived_metrics(self) -> list[MetricMessage]:
        """Collect messages from every derived metric and reset them."""
        result: list[MetricMessage] = []
        with self._lock:
            for metric in self._metrics.values():
                for derived in metric.derived_metrics:
                    source_tags = metric.tags
                    for msg in derived.emit_metrics(metric):
                        msg.tags = dict(source_tags) if source_tags is not None else {}
                        result.append(msg)
                    derived.reset()
        return result

    def composite_key(self, metric_key: str, tags: dict[str, str] | None) -> str:
        """Identity of a metric: key alone, or key plus tags if dimensional."""
        if not self._dimensional:
            return metric_key
        tags_key = create_tags_key(tags)
        return f"{metric_key}|{tags_key}" if tags_key else metric_key

    def on_game_session_started(self, session_id: str) -> None:
        """Record the session id as a global tag."""
        if not session_id:
            return
        try:
            self.set_global_tag("session_id", session_id)
        except ValidationError as exc:
            logger.error("Error setting global session_id: %s", exc)

    def _set_default_global_tags(self) -> None:
        try:
            self.set_global_tag("process_pid", str(os.getpid()))
        except ValidationError as exc:
            logger.error("Error setting global tag process_pid: %s", exc)
        process_id = os.environ.get(ENV_PROCESS_ID, "")
        if process_id:
            try:
                self.set_global_tag("gamelift_process_id", process_id)
            except ValidationError as exc:
                logger.error("Error setting global gamelift_process_id: %s", exc)

    def _dispatch(
        self,
        ingress: queue.Queue[MetricMessage],
        messages: queue.Queue[MetricMessage],
        shutdown: threading.Event,
    ) -> None:
        while not shutdown.is_set():
            try:
                message = ingress.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                messages.put_nowait(message)
            except queue.Full:
                pass  # dropped when the buffer is full

    def _work(self, messages: queue.Queue[MetricMessage], shutdown: threading.Event) -> None:
        batch: list[MetricMessage] = []
        next_tick = time.monotonic() + self._interval
        while True:
            if shutdown.is_set():
                while True:
                    try:
                        batch.append(messages.get_nowait())
                    except queue.Empty:
                        break
                self._safe_flush(batch, "on shutdown")
                return

            timeout = min(_POLL_SECONDS, max(0.0, next_tick - time.monotonic()))
            try:
                message = messages.get(timeout=timeout)
            except queue.Empty:
                pass
            else:
                if len(batch) >= _BATCH_SIZE:
                    self._safe_flush(batch, "on overflow")
                    batch = []
                batch.append(message)

            now = time.monotonic()
            if now >= next_tick:
                self._send_server_up_heartbeat()
                self._safe_flush(batch, "on interval")
                batch = []
                next_tick += self._interval
                if next_tick <= now:
                    next_tick = now + self._interval

    def _safe_flush(self, batch: list[MetricMessage], when: str) -> None:
        try:
            self.flush_messages(batch)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to flush messages %s: %s", when, exc)

    def _send_server_up_heartbeat(self) -> None:
        with self._lock:
            if not self._started or self._server_up is None:
                return
            tags = dict(self._global_tags)
        heartbeat = MetricMessage(
            key=SERVER_UP_KEY, type=MetricType.GAUGE, value=1.0, tags=tags, sample_rate=1.0
        )
        try:
            self.transport.send([heartbeat])
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to send up heartbeat: %s", exc)