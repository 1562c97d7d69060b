"""Counters and histograms with label vectors, exemplars and text exposition.

Provides what the RPC metrics collectors need: labelled counter and
histogram families, a registry that gathers them, and rendering in the
Prometheus text exposition format.
"""

from __future__ import annotations

import bisect
import itertools
import math
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterator, Mapping, NamedTuple, Optional, Protocol, Sequence

DEF_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
EXEMPLAR_MAX_RUNES = 128

_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts with underscores; an empty name gives an empty result."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


@dataclass
class CounterOpts:
    """Settings of a counter family."""

    name: str = ""
    help: str = ""
    namespace: str = ""
    subsystem: str = ""
    const_labels: dict[str, str] = field(default_factory=dict)


@dataclass
class HistogramOpts:
    """Settings of a histogram family. Native-histogram fields are kept but not rendered."""

    name: str = ""
    help: str = ""
    namespace: str = ""
    subsystem: str = ""
    const_labels: dict[str, str] = field(default_factory=dict)
    buckets: Optional[Sequence[float]] = None
    native_histogram_bucket_factor: float = 0.0
    native_histogram_zero_threshold: float = 0.0
    native_histogram_max_bucket_number: int = 0
    native_histogram_min_reset_duration: timedelta = timedelta(0)
    native_histogram_max_zero_threshold: float = 0.0


@dataclass(frozen=True)
class Desc:
    """Description of a metric family."""

    fq_name: str
    help: str
    type: str
    const_labels: dict[str, str]
    variable_labels: tuple[str, ...]


class Exemplar(NamedTuple):
    """An exemplar attached to an observation."""

    labels: dict[str, str]
    value: float
    timestamp: float


@dataclass(frozen=True)
class Sample:
    """One exposed time series value."""

    name: str
    labels: dict[str, str]
    value: float
    exemplar: Optional[Exemplar] = None


def _check_label_name(name: str, reserved: Sequence[str]) -> None:
    if not _LABEL_NAME.match(name) or name.startswith("__"):
        raise ValueError(f"{name!r} is not a valid label name")
    if name in reserved:
        raise ValueError(f"{name!r} is a reserved label name")


def _make_desc(
    namespace: str,
    subsystem: str,
    name: str,
    help_text: str,
    metric_type: str,
    const_labels: Optional[Mapping[str, str]],
    label_names: Sequence[str],
    reserved: Sequence[str] = (),
) -> Desc:
    fq_name = build_fq_name(namespace, subsystem, name)
    if not _METRIC_NAME.match(fq_name):
        raise ValueError(f"{fq_name!r} is not a valid metric name")
    const = dict(const_labels or {})
    seen: set[str] = set()
    for label in itertools.chain(const, label_names):
        _check_label_name(label, reserved)
        if label in seen:
            raise ValueError(f"duplicate label name {label!r}")
        seen.add(label)
    return Desc(fq_name, help_text, metric_type, dict(sorted(const.items())), tuple(label_names))


def _make_exemplar(value: float, labels: Optional[Mapping[str, str]]) -> Optional[Exemplar]:
    if labels is None:
        return None
    runes = 0
    for name, label_value in labels.items():
        if not _LABEL_NAME.match(name):
            raise ValueError(f"exemplar label name {name!r} is invalid")
        runes += len(name) + len(label_value)
    if runes > EXEMPLAR_MAX_RUNES:
        raise ValueError(
            f"exemplar labels have {runes} runes, exceeding the limit of {EXEMPLAR_MAX_RUNES}"
        )
    return Exemplar(dict(labels), float(value), time.time())


class _Child:
    def __init__(self, desc: Desc, label_values: Sequence[str]) -> None:
        self.desc = desc
        self.label_values = tuple(label_values)
        self._lock = threading.Lock()

    @property
    def labels(self) -> dict[str, str]:
        merged = {**self.desc.const_labels, **dict(zip(self.desc.variable_labels, self.label_values))}
        return dict(sorted(merged.items()))


class Counter(_Child):
    """A monotonically increasing value."""

    def __init__(self, desc: Desc, label_values: Sequence[str] = ()) -> None:
        super().__init__(desc, label_values)
        self._value = 0.0
        self._exemplar: Optional[Exemplar] = None

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    @property
    def exemplar(self) -> Optional[Exemplar]:
        with self._lock:
            return self._exemplar

    def add_with_exemplar(self, value: float, exemplar: Optional[Mapping[str, str]]) -> None:
        """Add ``value``; record ``exemplar`` unless it is None."""
        if value < 0:
            raise ValueError("counter cannot decrease in value")
        recorded = _make_exemplar(value, exemplar)
        with self._lock:
            self._value += value
            if recorded is not None:
                self._exemplar = recorded

    def samples(self) -> list[Sample]:
        with self._lock:
            return [Sample(self.desc.fq_name, self.labels, self._value, self._exemplar)]


class Histogram(_Child):
    """Counts observations into cumulative buckets."""

    def __init__(self, desc: Desc, label_values: Sequence[str], buckets: Sequence[float]) -> None:
        super().__init__(desc, label_values)
        self.upper_bounds = tuple(buckets)
        self._counts = [0] * (len(self.upper_bounds) + 1)
        self._exemplars: list[Optional[Exemplar]] = [None] * (len(self.upper_bounds) + 1)
        self._sum = 0.0
        self._count = 0

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    @property
    def exemplars(self) -> tuple[Optional[Exemplar], ...]:
        with self._lock:
            return tuple(self._exemplars)

    def buckets(self) -> list[tuple[float, int]]:
        """Return (upper bound, cumulative count) pairs, ending with +Inf."""
        with self._lock:
            counts = list(self._counts)
        return list(zip(self.upper_bounds + (math.inf,), itertools.accumulate(counts)))

    def observe_with_exemplar(self, value: float, exemplar: Optional[Mapping[str, str]]) -> None:
        """Record ``value``; attach ``exemplar`` to its bucket unless it is None."""
        recorded = _make_exemplar(value, exemplar)
        index = len(self.upper_bounds) if math.isnan(value) else bisect.bisect_left(self.upper_bounds, value)
        with self._lock:
            self._counts[index] += 1
            self._sum += value
            self._count += 1
            if recorded is not None:
                self._exemplars[index] = recorded

    def samples(self) -> list[Sample]:
        base = self.labels
        name = self.desc.fq_name
        with self._lock:
            counts = list(self._counts)
            exemplars = list(self._exemplars)
            total, count = self._sum, self._count
        result = [
            Sample(f"{name}_bucket", {**base, "le": _format_value(bound)}, float(cumulative), ex)
            for bound, cumulative, ex in zip(
                self.upper_bounds + (math.inf,), itertools.accumulate(counts), exemplars
            )
        ]
        result.append(Sample(f"{name}_sum", base, total))
        result.append(Sample(f"{name}_count", base, float(count)))
        return result


class _MetricVec:
    def __init__(self, desc: Desc) -> None:
        self.desc = desc
        self._children: dict[tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    def _new_child(self, values: tuple[str, ...]) -> Any:
        raise TypeError(f"{type(self).__name__} cannot create children")

    def _child(self, values: tuple[str, ...]) -> Any:
        if len(values) != len(self.desc.variable_labels):
            raise ValueError(
                f"{self.desc.fq_name}: expected {len(self.desc.variable_labels)} label values, "
                f"got {len(values)}"
            )
        for value in values:
            if not isinstance(value, str):
                raise TypeError(f"label values must be strings, got {type(value).__name__}")
        with self._lock:
            child = self._children.get(values)
            if child is None:
                child = self._children[values] = self._new_child(values)
            return child

    def _reset(self) -> None:
        with self._lock:
            self._children.clear()

    def _collect(self) -> Iterator[Sample]:
        with self._lock:
            children = [child for _, child in sorted(self._children.items())]
        for child in children:
            yield from child.samples()


class CounterVec(_MetricVec):
    """A family of counters partitioned by label values."""

    def __init__(self, opts: CounterOpts, label_names: Sequence[str]) -> None:
        super().__init__(
            _make_desc(opts.namespace, opts.subsystem, opts.name, opts.help, "counter",
                       opts.const_labels, label_names)
        )
        self.opts = opts

    def _new_child(self, values: tuple[str, ...]) -> Counter:
        return Counter(self.desc, values)

    def with_label_values(self, *values: str) -> Counter:
        """Return the counter for ``values``, creating it with a zero value if needed."""
        return self._child(values)

    def reset(self) -> None:
        """Drop every counter."""
        self._reset()

    def describe(self) -> Iterator[Desc]:
        """Yield the family's description."""
        yield self.desc

    def collect(self) -> Iterator[Sample]:
        """Yield the samples of every counter, ordered by label values."""
        yield from self._collect()


def _check_buckets(buckets: Optional[Sequence[float]]) -> tuple[float, ...]:
    bounds = [float(b) for b in (buckets or DEF_BUCKETS)]
    if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
        bounds.pop()
    for lower, upper in zip(bounds, bounds[1:]):
        if not lower < upper:
            raise ValueError("histogram buckets must be in increasing order")
    return tuple(bounds)


class HistogramVec(_MetricVec):
    """A family of histograms partitioned by label values."""

    def __init__(self, opts: HistogramOpts, label_names: Sequence[str]) -> None:
        super().__init__(
            _make_desc(opts.namespace, opts.subsystem, opts.name, opts.help, "histogram",
                       opts.const_labels, label_names, reserved=("le",))
        )
        self.opts = opts
        self.buckets = _check_buckets(opts.buckets)

    def _new_child(self, values: tuple[str, ...]) -> Histogram:
        return Histogram(self.desc, values, self.buckets)

    def with_label_values(self, *values: str) -> Histogram:
        """Return the histogram for ``values``, creating it if needed."""
        return self._child(values)

    def reset(self) -> None:
        """Drop every histogram."""
        self._reset()

    def describe(self) -> Iterator[Desc]:
        """Yield the family's description."""
        yield self.desc

    def collect(self) -> Iterator[Sample]:
        """Yield the samples of every histogram, ordered by label values."""
        yield from self._collect()


class Collector(Protocol):
    def describe(self) -> Iterator[Desc]: ...

    def collect(self) -> Iterator[Sample]: ...


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n")


def _sample_names(desc: Desc) -> tuple[str, ...]:
    if desc.type == "histogram":
        return tuple(f"{desc.fq_name}{suffix}" for suffix in ("_bucket", "_sum", "_count"))
    return (desc.fq_name,)


class Registry:
    """Holds collectors and renders their metrics."""

    def __init__(self) -> None:
        self._collectors: list[Collector] = []
        self._names: set[str] = set()

    def register(self, collector: Collector) -> None:
        """Add ``collector``; raise ValueError if it or one of its names is already present."""
        if any(existing is collector for existing in self._collectors):
            raise ValueError("duplicate metrics collector registration attempted")
        names = [desc.fq_name for desc in collector.describe()]
        seen: set[str] = set()
        for name in names:
            if name in self._names or name in seen:
                raise ValueError(f"a metric named {name!r} is already registered")
            seen.add(name)
        self._collectors.append(collector)
        self._names.update(seen)

    def _families(self) -> list[tuple[Desc, list[Sample]]]:
        families: dict[str, tuple[Desc, list[Sample]]] = {}
        for collector in self._collectors:
            by_sample_name: dict[str, Desc] = {}
            for desc in collector.describe():
                families[desc.fq_name] = (desc, [])
                for sample_name in _sample_names(desc):
                    by_sample_name[sample_name] = desc
            for sample in collector.collect():
                desc = by_sample_name.get(sample.name)
                if desc is None:
                    raise ValueError(f"collected metric {sample.name!r} was not described")
                families[desc.fq_name][1].append(sample)
        return [families[name] for name in sorted(families)]

    def gather(self) -> list[Sample]:
        """Return all samples, grouped by family in name order."""
        return [sample for _, samples in self._families() for sample in samples]

    def expose(self) -> str:
        """Render all non-empty families in the text exposition format."""
        lines: list[str] = []
        for desc, samples in self._families():
            if not samples:
                continue
            lines.append(f"# HELP {desc.fq_name} {_escape_help(desc.help)}")
            lines.append(f"# TYPE {desc.fq_name} {desc.type}")
            for sample in samples:
                labels = ",".join(f'{k}="{_escape_label(v)}"' for k, v in sample.labels.items())
                rendered = f"{{{labels}}}" if labels else ""
                lines.append(f"{sample.name}{rendered} {_format_value(sample.value)}")
        return "".join(f"{line}\n" for line in lines)