"""Process-wide metrics processor and convenience functions that use it."""

from __future__ import annotations

import threading

from gamelift_metrics.model import Metric, MetricConfigurationError
from gamelift_metrics.processor import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_INGRESS_CHANNEL_SIZE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PROCESS_INTERVAL,
    Processor,
    Transport,
)

_lock = threading.RLock()
_global_processor: Processor | None = None


def set_global_processor(processor: Processor) -> None:
    """Install processor as the global one, unless one is already installed."""
    global _global_processor
    with _lock:
        if _global_processor is None:
            _global_processor = processor


def get_global_processor() -> Processor | None:
    """Return the global processor, or None if none has been initialised."""
    with _lock:
        return _global_processor


def has_global_processor() -> bool:
    """Return True if a global processor exists."""
    with _lock:
        return _global_processor is not None


def reset_global_processor() -> None:
    """Forget the global processor so that a new one can be initialised."""
    global _global_processor
    with _lock:
        _global_processor = None


def init_metrics_processor(
    transport: Transport | None,
    *,
    global_tags: dict[str, str] | None = None,
    process_interval: float = DEFAULT_PROCESS_INTERVAL,
    enable_derived_metrics: bool = True,
    enable_dimensional_metrics: bool | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    ingress_channel_size: int = DEFAULT_INGRESS_CHANNEL_SIZE,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> Processor:
    """Create the global processor; raise MetricConfigurationError if it exists.

    ``enable_derived_metrics`` is accepted for configuration compatibility;
    derived metrics are always computed when a metric carries them.
    """
    if has_global_processor():
        raise MetricConfigurationError("metrics processor already initialized")
    tags = dict(global_tags or {})
    if any(key == "" for key in tags):
        raise MetricConfigurationError(
            "failed to apply option: tag key cannot be empty"
        )
    if transport is None:
        raise MetricConfigurationError("transport is required")

    global _global_processor
    with _lock:
        if _global_processor is not None:
            raise MetricConfigurationError("metrics processor already initialized")
        try:
            processor = Processor(
                transport,
                global_tags=tags,
                process_interval=process_interval,
                buffer_size=buffer_size,
                ingress_channel_size=ingress_channel_size,
                max_workers=max_workers,
                enable_dimensional_metrics=enable_dimensional_metrics,
            )
        except MetricConfigurationError as exc:
            raise MetricConfigurationError(f"failed to apply option: {exc}") from exc
        _global_processor = processor
        return processor


def on_game_session_started(session_id: str) -> None:
    """Tag every metric of the global processor with the new session id."""
    processor = get_global_processor()
    if processor is not None:
        processor.on_game_session_started(session_id)


def start_metrics_processor() -> None:
    """Start the global processor; raise if it has not been initialised."""
    processor = get_global_processor()
    if processor is None:
        raise MetricConfigurationError(
            "metrics processor not initialized - call init_metrics_processor() first"
        )
    processor.start()


def terminate_metrics_processor() -> None:
    """Stop the global processor if there is one."""
    processor = get_global_processor()
    if processor is not None:
        processor.stop()


def set_global_tag(key: str, value: str) -> None:
    """Set a global tag on the global processor."""
    processor = get_global_processor()
    if processor is None:
        raise MetricConfigurationError("metrics processor not initialized")
    processor.set_global_tag(key, value)


def remove_global_tag(key: str) -> None:
    processor = get_global_processor()
    if processor is not None:
        processor.remove_global_tag(key)


def get_global_tags() -> dict[str, str]:
    processor = get_global_processor()
    return {} if processor is None else processor.global_tags


def get_metric(key: str) -> Metric | None:
    processor = get_global_processor()
    return None if processor is None else processor.get_metric(key)


def list_metrics() -> list[Metric]:
    processor = get_global_processor()
    return [] if processor is None else processor.list_metrics()


def unregister_metric(key: str) -> None:
    processor = get_global_processor()
    if processor is not None:
        processor.unregister_metric(key)