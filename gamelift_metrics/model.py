"""Core metric types, messages and tag validation."""

from __future__ import annotations

import copy
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

MAX_TAG_LENGTH = 200


class MetricsError(Exception):
    """Base error raised by the metrics package."""


class ValidationError(MetricsError, ValueError):
    """Raised when a tag key or value fails validation."""


class MetricConfigurationError(MetricsError):
    """Raised when a metric or processor is configured incorrectly."""


class MetricType(enum.IntEnum):
    """Kind of metric being recorded."""

    GAUGE = 0
    COUNTER = 1
    TIMER = 2

    def __str__(self) -> str:
        return self.name.lower()


class MetricOperation(enum.IntEnum):
    """Operation applied to a metric's current value."""

    SET = 0
    ADJUST = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MetricMessage:
    """A single metric data point on its way to a transport."""

    key: str
    type: MetricType = MetricType.GAUGE
    value: float = 0.0
    tags: dict[str, str] = field(default_factory=dict)
    sample_rate: float = 1.0
    timestamp: datetime = field(default_factory=_now)


class Metric(ABC):
    """Interface shared by every metric kind."""

    @property
    @abstractmethod
    def key(self) -> str:
        """The metric name."""

    @property
    @abstractmethod
    def metric_type(self) -> MetricType:
        """The kind of this metric."""

    @property
    @abstractmethod
    def derived_metrics(self) -> list[DerivedMetric]:
        """Metrics computed from this one."""

    @property
    @abstractmethod
    def current_value(self) -> float:
        """The value the metric currently holds."""

    @property
    @abstractmethod
    def tags(self) -> dict[str, str]:
        """A copy of the tags attached to this metric."""

    @abstractmethod
    def set_tag(self, key: str, value: str) -> None:
        """Attach one tag, raising ValidationError if it is invalid."""

    @abstractmethod
    def set_tags(self, tags: dict[str, str]) -> None:
        """Attach several tags, raising ValidationError if any is invalid."""

    @abstractmethod
    def remove_tag(self, key: str) -> None:
        """Detach a tag if present."""


class DerivedMetric(ABC):
    """A metric computed from the messages of another metric."""

    @property
    @abstractmethod
    def key(self) -> str:
        """The derived metric's key suffix or name."""

    @abstractmethod
    def handle_message(self, message: MetricMessage) -> None:
        """Update internal state from a recorded message."""

    @abstractmethod
    def emit_metrics(self, source: Metric) -> list[MetricMessage]:
        """Return the computed messages ready to send."""

    @abstractmethod
    def reset(self) -> None:
        """Clear internal state."""

    def clone(self) -> DerivedMetric:
        """Return an independent copy for use by a dimensional variant."""
        return copy.deepcopy(self)


def is_valid_tag_key_character(char: str) -> bool:
    """Letters, digits, '_', '-', '.' and '/' are allowed in tag keys."""
    return char.isalpha() or char.isdecimal() or char in "_-./"


def is_valid_tag_value_character(char: str) -> bool:
    """Tag values allow the key characters plus ':'."""
    return char.isalpha() or char.isdecimal() or char in "_-:./"


def validate_tag_key(key: str) -> None:
    """Raise ValidationError unless key is a well-formed tag key."""
    if not key.strip():
        raise ValidationError("tag key cannot be empty")
    if len(key.encode("utf-8")) > MAX_TAG_LENGTH:
        raise ValidationError("tag key exceeds maximum allowed length")
    if not key[0].isalpha():
        raise ValidationError("tag key must start with a letter")
    if not all(is_valid_tag_key_character(c) for c in key[1:]):
        raise ValidationError(
            "tag key contains invalid characters. Only alphanumerics, underscores, "
            "minuses, periods, and slashes are allowed (no colons)"
        )


def validate_tag_value(value: str) -> None:
    """Raise ValidationError unless value is a well-formed tag value."""
    if len(value.encode("utf-8")) > MAX_TAG_LENGTH:
        raise ValidationError("tag value exceeds maximum allowed length")
    if not all(is_valid_tag_value_character(c) for c in value):
        raise ValidationError("tag value contains invalid characters")