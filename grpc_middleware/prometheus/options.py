"""Options and configuration for the RPC metrics collectors."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from grpc_middleware.prometheus.metrics import (
    DEF_BUCKETS,
    CounterOpts,
    HistogramOpts,
    HistogramVec,
)
from grpc_middleware.wrappers import Context

METHOD_LABELS = ("grpc_type", "grpc_service", "grpc_method")


class GrpcType(str, enum.Enum):
    """The shape of an RPC."""

    UNARY = "unary"
    CLIENT_STREAM = "client_stream"
    SERVER_STREAM = "server_stream"
    BIDI_STREAM = "bidi_stream"

    def __str__(self) -> str:
        return self.value


class Kind(str, enum.Enum):
    """Whether an interceptor runs on the client or the server."""

    CLIENT = "client"
    SERVER = "server"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MethodInfo:
    """A registered RPC method and its streaming directions."""

    name: str
    is_client_stream: bool = False
    is_server_stream: bool = False


def type_from_method_info(info: MethodInfo) -> GrpcType:
    """Classify a method by its streaming directions."""
    if info.is_client_stream and info.is_server_stream:
        return GrpcType.BIDI_STREAM
    if info.is_client_stream:
        return GrpcType.CLIENT_STREAM
    if info.is_server_stream:
        return GrpcType.SERVER_STREAM
    return GrpcType.UNARY


CounterOption = Callable[[CounterOpts], None]
HistogramOption = Callable[[HistogramOpts], None]


def apply_counter_options(options: Sequence[CounterOption], base: CounterOpts) -> CounterOpts:
    """Return a copy of ``base`` with ``options`` applied; ``base`` is left untouched."""
    opts = dataclasses.replace(base, const_labels=dict(base.const_labels))
    for option in options:
        option(opts)
    return opts


def apply_histogram_options(
    options: Sequence[HistogramOption], base: HistogramOpts
) -> HistogramOpts:
    """Return a copy of ``base`` with ``options`` applied; ``base`` is left untouched."""
    opts = dataclasses.replace(base, const_labels=dict(base.const_labels))
    for option in options:
        option(opts)
    return opts


def with_const_labels(labels: Optional[Mapping[str, str]]) -> CounterOption:
    """Add constant labels to counter metrics."""

    def apply(opts: CounterOpts) -> None:
        opts.const_labels = dict(labels or {})

    return apply


def with_subsystem(subsystem: str) -> CounterOption:
    """Set the subsystem of counter metrics."""

    def apply(opts: CounterOpts) -> None:
        opts.subsystem = subsystem

    return apply


def with_namespace(namespace: str) -> CounterOption:
    """Set the namespace of counter metrics."""

    def apply(opts: CounterOpts) -> None:
        opts.namespace = namespace

    return apply


def with_histogram_buckets(buckets: Optional[Sequence[float]]) -> HistogramOption:
    """Use custom bucket bounds for histograms."""

    def apply(opts: HistogramOpts) -> None:
        opts.buckets = None if buckets is None else tuple(buckets)

    return apply


def with_histogram_opts(opts: HistogramOpts) -> HistogramOption:
    """Copy buckets and native-histogram settings from ``opts``, keeping name and labels."""

    def apply(target: HistogramOpts) -> None:
        target.buckets = opts.buckets
        target.native_histogram_bucket_factor = opts.native_histogram_bucket_factor
        target.native_histogram_zero_threshold = opts.native_histogram_zero_threshold
        target.native_histogram_max_bucket_number = opts.native_histogram_max_bucket_number
        target.native_histogram_min_reset_duration = opts.native_histogram_min_reset_duration
        target.native_histogram_max_zero_threshold = opts.native_histogram_max_zero_threshold

    return apply


def with_histogram_const_labels(labels: Optional[Mapping[str, str]]) -> HistogramOption:
    """Add constant labels to histogram metrics."""

    def apply(opts: HistogramOpts) -> None:
        opts.const_labels = dict(labels or {})

    return apply


def with_histogram_subsystem(subsystem: str) -> HistogramOption:
    """Set the subsystem of histogram metrics."""

    def apply(opts: HistogramOpts) -> None:
        opts.subsystem = subsystem

    return apply


def with_histogram_namespace(namespace: str) -> HistogramOption:
    """Set the namespace of histogram metrics."""

    def apply(opts: HistogramOpts) -> None:
        opts.namespace = namespace

    return apply


ExemplarFn = Callable[[Context], Optional[Mapping[str, str]]]


@dataclass
class ReporterConfig:
    """Per-interceptor settings."""

    exemplar_fn: Optional[ExemplarFn] = None

    @classmethod
    def from_options(cls, options: Sequence[Callable[[ReporterConfig], None]]) -> ReporterConfig:
        config = cls()
        for option in options:
            option(config)
        return config


Option = Callable[[ReporterConfig], None]


def with_exemplar_from_context(exemplar_fn: ExemplarFn) -> Option:
    """Derive the exemplar of every counter and histogram update from the call context."""

    def apply(config: ReporterConfig) -> None:
        config.exemplar_fn = exemplar_fn

    return apply


def _handling_histogram(
    name: str, help_text: str, options: Sequence[HistogramOption]
) -> HistogramVec:
    opts = apply_histogram_options(
        options, HistogramOpts(name=name, help=help_text, buckets=DEF_BUCKETS)
    )
    return HistogramVec(opts, METHOD_LABELS)


@dataclass
class ServerMetricsConfig:
    """Settings for the server metrics collector."""

    counter_options: tuple[CounterOption, ...] = ()
    server_handled_histogram: Optional[HistogramVec] = None

    @classmethod
    def from_options(
        cls, options: Sequence[Callable[[ServerMetricsConfig], None]]
    ) -> ServerMetricsConfig:
        config = cls()
        for option in options:
            option(config)
        return config

    def counter_opts(self, name: str, help_text: str) -> CounterOpts:
        """Build counter settings for ``name`` with the configured counter options."""
        return apply_counter_options(self.counter_options, CounterOpts(name=name, help=help_text))


ServerMetricsOption = Callable[[ServerMetricsConfig], None]


def with_server_counter_options(*options: CounterOption) -> ServerMetricsOption:
    """Set the options applied to every server counter."""

    def apply(config: ServerMetricsConfig) -> None:
        config.counter_options = tuple(options)

    return apply


def with_server_handling_time_histogram(*options: HistogramOption) -> ServerMetricsOption:
    """Record the handling time of RPCs on the server."""

    def apply(config: ServerMetricsConfig) -> None:
        config.server_handled_histogram = _handling_histogram(
            "grpc_server_handling_seconds",
            "Histogram of response latency (seconds) of gRPC that had been "
            "application-level handled by the server.",
            options,
        )

    return apply


@dataclass
class ClientMetricsConfig:
    """Settings for the client metrics collector."""

    counter_options: tuple[CounterOption, ...] = ()
    client_handled_histogram: Optional[HistogramVec] = None
    client_stream_recv_histogram: Optional[HistogramVec] = None
    client_stream_send_histogram: Optional[HistogramVec] = None

    @classmethod
    def from_options(
        cls, options: Sequence[Callable[[ClientMetricsConfig], None]]
    ) -> ClientMetricsConfig:
        config = cls()
        for option in options:
            option(config)
        return config

    def counter_opts(self, name: str, help_text: str) -> CounterOpts:
        """Build counter settings for ``name`` with the configured counter options."""
        return apply_counter_options(self.counter_options, CounterOpts(name=name, help=help_text))


ClientMetricsOption = Callable[[ClientMetricsConfig], None]


def with_client_counter_options(*options: CounterOption) -> ClientMetricsOption:
    """Set the options applied to every client counter."""

    def apply(config: ClientMetricsConfig) -> None:
        config.counter_options = tuple(options)

    return apply


def with_client_handling_time_histogram(*options: HistogramOption) -> ClientMetricsOption:
    """Record the handling time of RPCs on the client."""

    def apply(config: ClientMetricsConfig) -> None:
        config.client_handled_histogram = _handling_histogram(
            "grpc_client_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC until it is "
            "finished by the application.",
            options,
        )

    return apply


def with_client_stream_recv_histogram(*options: HistogramOption) -> ClientMetricsOption:
    """Record the time to receive each message of a streaming RPC."""

    def apply(config: ClientMetricsConfig) -> None:
        config.client_stream_recv_histogram = _handling_histogram(
            "grpc_client_msg_recv_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC single message receive.",
            options,
        )

    return apply


def with_client_stream_send_histogram(*options: HistogramOption) -> ClientMetricsOption:
    """Record the time to send each message of a streaming RPC."""

    def apply(config: ClientMetricsConfig) -> None:
        config.client_stream_send_histogram = _handling_histogram(
            "grpc_client_msg_send_handling_seconds",
            "Histogram of response latency (seconds) of the gRPC single message send.",
            options,
        )

    return apply