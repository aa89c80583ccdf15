# gamelift-metrics

Metrics for game server processes. You can create gauges and tag them,
validate tags, and sample the values you record. A background processor
batches the messages and sends them to a transport that you supply.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests, install the `test` extra and run `pytest`:

```
pip install ".[test]"
pytest
```

## Quick start

A transport receives the batches of messages. To write one, subclass
`gamelift_metrics.processor.Transport` and implement two methods:

- `send(messages)`, which takes a list of `MetricMessage`;
- `close()`.

Then initialise and start the process-wide processor:

```python
from gamelift_metrics.gauge import new_gauge
from gamelift_metrics.processor import Transport
from gamelift_metrics.registry import (
    get_global_processor,
    init_metrics_processor,
    start_metrics_processor,
    terminate_metrics_processor,
)


class PrintTransport(Transport):
    def send(self, messages):
        for message in messages:
            print(message.key, message.value, message.tags)

    def close(self):
        pass


init_metrics_processor(PrintTransport(), global_tags={"service": "lobby"})
start_metrics_processor()

players = (
    new_gauge("players_connected")
    .with_tag("map", "harbor")
    .with_metrics_processor(get_global_processor())
    .build()
)
players.increment()
players.add(3)
players.subtract(1)

terminate_metrics_processor()
```

## The processor

`gamelift_metrics.processor.Processor(transport, ...)` takes the following
keyword options:

- `global_tags`
- `process_interval`, in seconds (default 10)
- `buffer_size` (default 10000)
- `ingress_channel_size` (default 4096)
- `max_workers` (default 10)
- `enable_dimensional_metrics`

A non-positive size, interval or worker count raises
`MetricConfigurationError`.

### Starting and stopping

`start()` starts a dispatcher thread and `max_workers` worker threads.
Calling `start()` while the processor is already running raises
`MetricConfigurationError`.

While it runs:

- Messages given to `enqueue_metric()` pass from the ingress queue to the buffer. If the buffer is full, the message is dropped.
- Each worker collects messages into a batch. At each interval it sends an `up=1` heartbeat and flushes its batch.

`stop()` works in this order:

1. It sends `up=0`.
2. It stops the threads, which flush whatever is left.
3. It closes the transport.

Calling `stop()` when the processor is not running does nothing. A stopped
processor can be started again.

### Flushing

`flush_messages(messages)` sends the messages together with any messages
from derived metrics. Global tags are merged into each message's tags, and
a global tag wins over a per-message tag with the same key.

### Default global tags

Every processor sets `process_pid`. If the environment variable
`GAMELIFT_SDK_PROCESS_ID` is set, it also sets `gamelift_process_id`.
`on_game_session_started(session_id)` sets `session_id`.

### Registering metrics

Metrics are registered under `composite_key(key, tags)`:

- With dimensional metrics off, the key is the metric name alone.
- With dimensional metrics on, the key is the name followed by `|` and the sorted `k=v` tag pairs, for example `cpu_usage|env=prod,host=server1`.

If two metrics have the same key, the first one registered is kept.

## Gauges

`new_gauge(key)` returns a `GaugeBuilder`. Its methods are:

- `with_tag`
- `with_tags`
- `with_sampler`
- `with_derived_metrics`
- `with_metrics_processor`

`build()` creates the gauge and registers it. It raises
`MetricConfigurationError` if no processor was given.

A `Gauge` has these methods:

- `set(value)` stores and sends the absolute value.
- `add`, `subtract`, `increment` and `decrement` change the stored value and send the change itself.
- `reset()` sets the value to 0.

The stored value is in `current_value`.

If the gauge has a sampler and the sampler declines, nothing is sent. The
stored value still changes.

`set_tag`, `set_tags` and `remove_tag` change the gauge's own tags.
`set_tag` and `set_tags` raise `ValidationError` on an invalid tag.

The variant methods behave according to whether dimensional metrics are
enabled:

| Method | Dimensional metrics enabled | Dimensional metrics disabled |
| --- | --- | --- |
| `with_tag` / `with_tags` | Return a new gauge with the combined tags and register it with the processor. | Add the tags to this gauge and return it. |
| `with_dimensional_tag` / `with_dimensional_tags` | Return a new gauge with the combined tags, but do not register it. | Return this gauge unchanged. |

A new gauge gets its own clones of the derived metrics. Invalid tags passed
to these methods are logged and skipped.

Dimensional metrics are off by default. To turn them on, do either of the
following:

- Pass `enable_dimensional_metrics=True`.
- Set `GAMELIFT_ENABLE_DIMENSIONAL_METRICS` to `1`, `t`, `true`, `True` or `TRUE`.

## Tags

`gamelift_metrics.model.validate_tag_key` and `validate_tag_value` raise
`ValidationError` for an invalid tag.

Tag keys:

- must not be blank;
- must start with a letter;
- may contain only letters, digits, `_`, `-`, `.` and `/`.

Tag values:

- may be empty;
- may contain the same characters as keys, plus `:`.

Both keys and values are limited to 200 bytes of UTF-8.

## Samplers

`gamelift_metrics.samplers` provides three samplers:

- `AllSampler` records every value.
- `NoneSampler` records none.
- `FractionSampler(rate)` records a random fraction of the values. The rate is clamped to the range 0.0–1.0.

Each sampler exposes `sample_rate`, and a gauge copies it onto the messages
it sends.

## Process-wide functions

`gamelift_metrics.registry` holds one global processor and provides these
functions:

- `init_metrics_processor` creates the processor. It takes the same options as `Processor`, and raises `MetricConfigurationError` in three cases:
  - a global processor already exists;
  - the transport is `None`;
  - an option is invalid.
- `get_global_processor`, `has_global_processor` and `reset_global_processor` read or clear the global processor.
- `start_metrics_processor` starts the processor. It raises an error if none has been initialised.
- `terminate_metrics_processor` stops the processor.
- `on_game_session_started` sets the `session_id` global tag.
- `set_global_tag`, `remove_global_tag` and `get_global_tags` manage the global tags.
- `get_metric`, `list_metrics` and `unregister_metric` manage registered metrics.

`init_metrics_processor` also accepts `enable_derived_metrics`, but the
value is ignored. Derived metrics are always emitted for metrics that carry
them.

## What is not included

The package does not include:

- a network transport: you supply the `Transport` that sends messages somewhere;
- counter or timer metrics: gauges are the only metric kind;
- concrete derived metrics: `DerivedMetric` is an abstract base for you to implement.