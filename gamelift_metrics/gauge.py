"""Gauge metric: a single value that can go up or down."""

from __future__ import annotations

import logging
import threading

from gamelift_metrics.model import (
    DerivedMetric,
    Metric,
    MetricConfigurationError,
    MetricMessage,
    MetricOperation,
    MetricType,
    ValidationError,
    validate_tag_key,
    validate_tag_value,
)
from gamelift_metrics.samplers import Sampler

logger = logging.getLogger(__name__)


def _validate_tag(key: str, value: str) -> None:
    validate_tag_key(key)
    validate_tag_value(value)


class Gauge(Metric):
    """A point-in-time value. Set sends absolute values, adjustments send deltas."""

    def __init__(
        self,
        key: str,
        processor,
        *,
        tags: dict[str, str] | None = None,
        derived_metrics: list[DerivedMetric] | None = None,
        sampler: Sampler | None = None,
    ) -> None:
        self._key = key
        self._processor = processor
        self._tags = dict(tags or {})
        self._derived = list(derived_metrics or [])
        self._sampler = sampler
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def key(self) -> str:
        return self._key

    @property
    def metric_type(self) -> MetricType:
        return MetricType.GAUGE

    @property
    def derived_metrics(self) -> list[DerivedMetric]:
        return list(self._derived)

    @property
    def current_value(self) -> float:
        with self._lock:
            return self._value

    @property
    def tags(self) -> dict[str, str]:
        with self._lock:
            return dict(self._tags)

    @property
    def processor(self):
        return self._processor

    def set_tag(self, key: str, value: str) -> None:
        _validate_tag(key, value)
        with self._lock:
            self._tags[key] = value

    def set_tags(self, tags: dict[str, str]) -> None:
        for key, value in tags.items():
            _validate_tag(key, value)
        with self._lock:
            self._tags.update(tags)

    def remove_tag(self, key: str) -> None:
        with self._lock:
            self._tags.pop(key, None)

    def set(self, value: float) -> None:
        self._update(value, MetricOperation.SET)
        self._enqueue(value)

    def add(self, value: float) -> None:
        self._update(value, MetricOperation.ADJUST)
        self._enqueue(value)

    def subtract(self, value: float) -> None:
        self._update(-value, MetricOperation.ADJUST)
        self._enqueue(-value)

    def increment(self) -> None:
        self.add(1.0)

    def decrement(self) -> None:
        self.add(-1.0)

    def reset(self) -> None:
        self.set(0.0)

    def with_tag(self, key: str, value: str) -> Gauge:
        return self.with_tags({key: value})

    def with_tags(self, tags: dict[str, str]) -> Gauge:
        """Return a registered tagged variant, or tag self when not dimensional."""
        if not tags:
            return self
        if not self._dimensional():
            self._apply_valid_tags(tags)
            return self
        variant = self._variant(tags)
        self._processor.register_metric(variant)
        return variant

    def with_dimensional_tag(self, key: str, value: str) -> Gauge:
        return self.with_dimensional_tags({key: value})

    def with_dimensional_tags(self, tags: dict[str, str]) -> Gauge:
        """Return an unregistered tagged variant, or self when not dimensional."""
        if not tags or not self._dimensional():
            return self
        return self._variant(tags)

    def _dimensional(self) -> bool:
        return bool(self._processor.dimensional_metrics_enabled)

    def _valid_tags(self, tags: dict[str, str]) -> dict[str, str]:
        valid = {}
        for key, value in tags.items():
            try:
                _validate_tag(key, value)
            except ValidationError as exc:
                logger.warning("ignoring invalid tag %r=%r: %s", key, value, exc)
                continue
            valid[key] = value
        return valid

    def _apply_valid_tags(self, tags: dict[str, str]) -> None:
        valid = self._valid_tags(tags)
        with self._lock:
            self._tags.update(valid)

    def _variant(self, tags: dict[str, str]) -> Gauge:
        combined = {**self.tags, **self._valid_tags(tags)}
        return Gauge(
            self._key,
            self._processor,
            tags=combined,
            derived_metrics=[derived.clone() for derived in self._derived],
            sampler=self._sampler,
        )

    def _update(self, value: float, operation: MetricOperation) -> None:
        with self._lock:
            if operation is MetricOperation.SET:
                self._value = float(value)
            else:
                self._value += value

    def _enqueue(self, value: float) -> None:
        sampler = self._sampler
        if sampler is not None and not sampler.should_sample():
            return
        rate = getattr(sampler, "sample_rate", 1.0) if sampler is not None else 1.0
        message = MetricMessage(
            key=self._key,
            type=MetricType.GAUGE,
            value=float(value),
            tags=self.tags,
            sample_rate=rate,
        )
        for derived in self._derived:
            derived.handle_message(message)
        self._processor.enqueue_metric(message)


class GaugeBuilder:
    """Collects the configuration of a gauge before it is built."""

    def __init__(self, key: str) -> None:
        self._key = key
        self._tags: dict[str, str] = {}
        self._sampler: Sampler | None = None
        self._derived: list[DerivedMetric] = []
        self._processor = None

    @property
    def key(self) -> str:
        return self._key

    def with_tags(self, tags: dict[str, str]) -> GaugeBuilder:
        for key, value in tags.items():
            self.with_tag(key, value)
        return self

    def with_tag(self, key: str, value: str) -> GaugeBuilder:
        _validate_tag(key, value)
        self._tags[key] = value
        return self

    def with_sampler(self, sampler: Sampler) -> GaugeBuilder:
        self._sampler = sampler
        return self

    def with_derived_metrics(self, *args: DerivedMetric) -> GaugeBuilder:
        self._derived.extend(args)
        return self

    def with_metrics_processor(self, processor) -> GaugeBuilder:
        self._processor = processor
        return self

    def build(self) -> Gauge:
        """Create the gauge and register it with the processor."""
        if self._processor is None:
            raise MetricConfigurationError(
                "Gauge requires a processor - use with_metrics_processor() or factory creation"
            )
        gauge = Gauge(
            self._key,
            self._processor,
            tags=dict(self._tags),
            derived_metrics=list(self._derived),
            sampler=self._sampler,
        )
        self._processor.register_metric(gauge)
        return gauge


def new_gauge(key: str) -> GaugeBuilder:
    """Start building a gauge named key."""
    return GaugeBuilder(key)