"""In-process metrics: counters, gauges and histograms collected in a registry."""

from __future__ import annotations

import functools
import math
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from itertools import pairwise
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar, Union

METADATA_KEY_LABEL = "metadata_key"
"""Label for metrics that apply to specific metadata."""

DIRECTION_LABEL = "event"
"""Label for metrics that apply to both read and write executions."""

READ_DIRECTION_LABEL = "read"
WRITE_DIRECTION_LABEL = "write"

# Start at a quarter of a millisecond; doubling 13 times reaches just over a second.
BUCKET_START = 0.00025
BUCKET_FACTOR = 2.0
BUCKET_COUNT = 13

DEFAULT_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_NAME_PATTERN = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

_R = TypeVar("_R")


def _once(fn: Callable[[], _R]) -> Callable[[], _R]:
    """Call `fn` the first time only, thread-safely, and reuse its result."""
    lock = threading.Lock()
    result: list[_R] = []

    @functools.wraps(fn)
    def wrapper() -> _R:
        with lock:
            if not result:
                result.append(fn())
        return result[0]

    return wrapper


class Direction(Enum):
    """Direction of packet processing."""

    READ = READ_DIRECTION_LABEL
    WRITE = WRITE_DIRECTION_LABEL

    def label(self) -> str:
        """Return the label value for this direction."""
        return self.value


class AlreadyRegistered(ValueError):
    """Raised when a collector with the same metric name is already registered."""


@dataclass
class Opts:
    """Name, description and placement of a metric."""

    name: str
    help: str
    namespace: str = ""
    subsystem: str = ""
    const_labels: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.help:
            raise ValueError(f"metric {self.name!r} needs a description")
        if not _NAME_PATTERN.match(self.fq_name):
            raise ValueError(f"{self.fq_name!r} is not a valid metric name")

    @property
    def fq_name(self) -> str:
        """The fully qualified name: namespace, subsystem and name joined by underscores."""
        return "_".join(part for part in (self.namespace, self.subsystem, self.name) if part)


@dataclass
class HistogramOpts:
    """Options of a histogram: the common options plus bucket upper bounds."""

    common_opts: Opts
    buckets: list[float] = field(default_factory=lambda: list(DEFAULT_BUCKETS))

    @property
    def fq_name(self) -> str:
        return self.common_opts.fq_name

    @property
    def help(self) -> str:
        return self.common_opts.help

    @property
    def const_labels(self) -> dict[str, str]:
        return self.common_opts.const_labels


@dataclass(frozen=True)
class Sample:
    """One exported measurement."""

    name: str
    labels: dict[str, str]
    value: float


@dataclass
class MetricFamily:
    """All samples of one metric name, as produced by :meth:`Registry.gather`."""

    name: str
    help: str
    kind: str
    samples: list[Sample]


def _format_bound(bound: float) -> str:
    return "+Inf" if math.isinf(bound) else repr(float(bound))


class _Metric:
    kind = "untyped"

    def __init__(self, opts: Union[Opts, HistogramOpts], labels: Optional[dict[str, str]] = None) -> None:
        self.opts = opts
        self.labels = {**opts.const_labels, **(labels or {})}
        self._lock = threading.Lock()

    @property
    def fq_name(self) -> str:
        return self.opts.fq_name

    def describe(self) -> list[str]:
        return [self.fq_name]

    def collect(self) -> list[MetricFamily]:
        return [MetricFamily(self.fq_name, self.opts.help, self.kind, self._samples(self.fq_name))]

    def _samples(self, name: str) -> list[Sample]:
        raise NotImplementedError


class IntCounter(_Metric):
    """A monotonically increasing integer counter."""

    kind = "counter"

    def __init__(self, opts: Opts, labels: Optional[dict[str, str]] = None) -> None:
        super().__init__(opts, labels)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self) -> None:
        """Add one."""
        self.inc_by(1)

    def inc_by(self, amount: int) -> None:
        """Add a non-negative integer `amount`."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"counter increment must be a non-negative integer, got {amount!r}")
        with self._lock:
            self._value += amount

    def _samples(self, name: str) -> list[Sample]:
        return [Sample(name, dict(self.labels), self._value)]


class IntGauge(_Metric):
    """An integer value that can go up and down."""

    kind = "gauge"

    def __init__(self, opts: Opts, labels: Optional[dict[str, str]] = None) -> None:
        super().__init__(opts, labels)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self) -> None:
        with self._lock:
            self._value += 1

    def dec(self) -> None:
        with self._lock:
            self._value -= 1

    def set(self, value: int) -> None:
        with self._lock:
            self._value = int(value)

    def _samples(self, name: str) -> list[Sample]:
        return [Sample(name, dict(self.labels), self._value)]


def _check_buckets(buckets: Iterable[float]) -> tuple[float, ...]:
    result = [float(bound) for bound in buckets] or list(DEFAULT_BUCKETS)
    if math.isinf(result[-1]) and result[-1] > 0:
        result.pop()
    for lower, upper in pairwise(result):
        if lower >= upper:
            raise ValueError("histogram buckets must be in increasing order")
    return tuple(result)


class HistogramTimer:
    """Measures elapsed time and records it into a histogram once."""

    def __init__(self, histogram: "Histogram") -> None:
        self._histogram = histogram
        self._start = time.monotonic()
        self._done = False

    def stop_and_record(self) -> float:
        """Record the elapsed seconds (only the first time) and return them."""
        elapsed = time.monotonic() - self._start
        if not self._done:
            self._done = True
            self._histogram.observe(elapsed)
        return elapsed

    def stop_and_discard(self) -> float:
        """Stop without recording and return the elapsed seconds."""
        self._done = True
        return time.monotonic() - self._start

    def __enter__(self) -> "HistogramTimer":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop_and_record()


class Histogram(_Metric):
    """Counts observations into buckets by upper bound."""

    kind = "histogram"

    def __init__(self, opts: HistogramOpts, labels: Optional[dict[str, str]] = None) -> None:
        if not isinstance(opts, HistogramOpts):
            raise TypeError("a histogram needs HistogramOpts")
        super().__init__(opts, labels)
        self.buckets = _check_buckets(opts.buckets)
        self._counts = [0] * len(self.buckets)
        self._count = 0
        self._sum = 0.0

    @property
    def sample_count(self) -> int:
        return self._count

    @property
    def sample_sum(self) -> float:
        return self._sum

    @property
    def bucket_counts(self) -> list[int]:
        """Cumulative counts, one per bucket upper bound."""
        with self._lock:
            counts = list(self._counts)
        total = 0
        cumulative = []
        for count in counts:
            total += count
            cumulative.append(total)
        return cumulative

    def observe(self, value: float) -> None:
        """Record one observation."""
        value = float(value)
        with self._lock:
            for position, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[position] += 1
                    break
            self._count += 1
            self._sum += value

    def start_timer(self) -> HistogramTimer:
        """Return a timer that records its elapsed time into this histogram."""
        return HistogramTimer(self)

    def _samples(self, name: str) -> list[Sample]:
        samples = [
            Sample(f"{name}_bucket", {**self.labels, "le": _format_bound(bound)}, count)
            for bound, count in zip(self.buckets, self.bucket_counts)
        ]
        samples.append(Sample(f"{name}_bucket", {**self.labels, "le": "+Inf"}, self._count))
        samples.append(Sample(f"{name}_sum", dict(self.labels), self._sum))
        samples.append(Sample(f"{name}_count", dict(self.labels), self._count))
        return samples


class MetricVec:
    """A family of metrics of one type, told apart by label values."""

    def __init__(
        self,
        opts: Union[Opts, HistogramOpts],
        label_names: Sequence[str],
        metric_type: type = IntCounter,
    ) -> None:
        if metric_type not in (IntCounter, IntGauge, Histogram):
            raise TypeError(f"unsupported metric type {metric_type!r}")
        if (metric_type is Histogram) != isinstance(opts, HistogramOpts):
            raise TypeError("HistogramOpts go with histograms, Opts with counters and gauges")
        if len(set(label_names)) != len(label_names):
            raise ValueError("label names must be unique")
        if metric_type is Histogram:
            _check_buckets(opts.buckets)
        self.opts = opts
        self.label_names = tuple(label_names)
        self.metric_type = metric_type
        self._children: dict[tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    @property
    def fq_name(self) -> str:
        return self.opts.fq_name

    def with_label_values(self, values: Sequence[str]) -> Any:
        """Return the metric for these label values, creating it on first use."""
        values = tuple(values)
        if len(values) != len(self.label_names):
            raise ValueError(
                f"expected {len(self.label_names)} label values, got {len(values)}"
            )
        if not all(isinstance(value, str) for value in values):
            raise TypeError("label values must be strings")
        with self._lock:
            child = self._children.get(values)
            if child is None:
                child = self.metric_type(self.opts, dict(zip(self.label_names, values)))
                self._children[values] = child
            return child

    def describe(self) -> list[str]:
        return [self.fq_name]

    def collect(self) -> list[MetricFamily]:
        with self._lock:
            children = list(self._children.values())
        samples = [sample for child in children for sample in child._samples(self.fq_name)]
        return [MetricFamily(self.fq_name, self.opts.help, self.metric_type.kind, samples)]


Collector = Union[IntCounter, IntGauge, Histogram, MetricVec]


class Registry:
    """Holds registered collectors and gathers their samples."""

    def __init__(self, prefix: Optional[str] = None) -> None:
        self.prefix = prefix
        self._names: set[str] = set()
        self._collectors: list[Collector] = []
        self._lock = threading.Lock()

    def register(self, collector: Collector) -> None:
        """Register `collector`, raising :class:`AlreadyRegistered` on a name clash."""
        names = collector.describe()
        with self._lock:
            for name in names:
                if name in self._names:
                    raise AlreadyRegistered(f"a collector named {name!r} is already registered")
            self._names.update(names)
            self._collectors.append(collector)

    def gather(self) -> list[MetricFamily]:
        """Return every metric family, sorted by name, with the prefix applied."""
        with self._lock:
            collectors = list(self._collectors)
        families = [family for collector in collectors for family in collector.collect()]
        if self.prefix:
            families = [
                MetricFamily(
                    f"{self.prefix}_{family.name}",
                    family.help,
                    family.kind,
                    [Sample(f"{self.prefix}_{s.name}", s.labels, s.value) for s in family.samples],
                )
                for family in families
            ]
        return sorted(families, key=lambda family: family.name)


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return `count` bucket bounds, the first `start`, each `factor` times the one before."""
    if count < 1:
        raise ValueError(f"exponential buckets need a positive count, got {count}")
    if start <= 0:
        raise ValueError(f"exponential buckets need a positive start value, got {start}")
    if factor <= 1:
        raise ValueError(f"exponential buckets need a factor greater than 1, got {factor}")
    buckets = []
    bound = float(start)
    for _ in range(count):
        buckets.append(bound)
        bound *= factor
    return buckets


@_once
def registry() -> Registry:
    """Return the registry holding every metric of the package."""
    return Registry(prefix="packetrelay")


@_once
def _processing_time_vec() -> MetricVec:
    vec = MetricVec(
        HistogramOpts(
            Opts("packets_processing_duration_seconds", "Total processing time for a packet"),
            exponential_buckets(BUCKET_START, BUCKET_FACTOR, BUCKET_COUNT),
        ),
        [DIRECTION_LABEL],
        Histogram,
    )
    registry().register(vec)
    return vec


def _direction_counter(name: str, description: str, extra_labels: Sequence[str] = ()) -> Callable[[], MetricVec]:
    @_once
    def build() -> MetricVec:
        vec = MetricVec(Opts(name, description), [DIRECTION_LABEL, *extra_labels], IntCounter)
        registry().register(vec)
        return vec

    return build


_bytes_total_vec = _direction_counter("bytes_total", "total number of bytes")
_errors_total_vec = _direction_counter("errors_total", "total number of errors sending packets")
_packets_total_vec = _direction_counter("packets_total", "Total number of packets")
_packets_dropped_vec = _direction_counter("packets_dropped_total", "Total number of dropped packets", ["reason"])


def processing_time(direction: Direction) -> Histogram:
    """Histogram of packet processing time for `direction`."""
    return _processing_time_vec().with_label_values([direction.label()])


def bytes_total(direction: Direction) -> IntCounter:
    return _bytes_total_vec().with_label_values([direction.label()])


def errors_total(direction: Direction) -> IntCounter:
    return _errors_total_vec().with_label_values([direction.label()])


def packets_total(direction: Direction) -> IntCounter:
    return _packets_total_vec().with_label_values([direction.label()])


def packets_dropped_total(direction: Direction, reason: str) -> IntCounter:
    return _packets_dropped_vec().with_label_values([direction.label(), reason])


def opts(name: str, subsystem: str, description: str) -> Opts:
    """Options for a generic metric; use :func:`filter_opts` for filters."""
    return Opts(name, description, subsystem=subsystem)


def histogram_opts(
    name: str, subsystem: str, description: str, buckets: Optional[Sequence[float]] = None
) -> HistogramOpts:
    """Histogram options; `buckets` defaults to :data:`DEFAULT_BUCKETS`."""
    chosen = list(buckets) if buckets is not None else list(DEFAULT_BUCKETS)
    return HistogramOpts(opts(name, subsystem, description), chosen)


def filter_opts(name: str, filter_name: str, description: str) -> Opts:
    """Options for a metric that belongs to a filter."""
    return opts(name, f"filter_{filter_name}", description)


def register(collector: _R) -> _R:
    """Register `collector` with the global registry and return it.

    Raises :class:`AlreadyRegistered` if its name is taken.
    """
    registry().register(collector)
    return collector


def register_if_not_exists(collector: _R) -> _R:
    """Register `collector` unless its name is already registered; return it."""
    try:
        registry().register(collector)
    except AlreadyRegistered:
        pass
    return collector