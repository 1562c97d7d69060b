"""Records RPC lifecycle events into the client and server metrics collectors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence, Union

from grpc_middleware.prometheus.metrics import CounterVec, HistogramVec
from grpc_middleware.prometheus.options import Kind, Option, ReporterConfig
from grpc_middleware.status import from_error
from grpc_middleware.wrappers import Context

if TYPE_CHECKING:
    from grpc_middleware.prometheus.client_metrics import ClientMetrics
    from grpc_middleware.prometheus.server_metrics import ServerMetrics

Duration = Union[timedelta, float]


def _seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


@dataclass
class Reporter:
    """Reports the events of a single RPC to the metrics of one side of the call."""

    kind: Kind
    typ: str
    service: str
    method: str
    client_metrics: Optional[ClientMetrics] = None
    server_metrics: Optional[ServerMetrics] = None
    exemplar: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        self.kind = Kind(self.kind)
        self.typ = str(self.typ)

    @property
    def _labels(self) -> tuple[str, str, str]:
        return (self.typ, self.service, self.method)

    def _increment(self, vec: CounterVec, *label_values: str) -> None:
        vec.with_label_values(*label_values).add_with_exemplar(1, self.exemplar)

    def _observe(self, vec: Optional[HistogramVec], value: float) -> None:
        if vec is not None:
            vec.with_label_values(*self._labels).observe_with_exemplar(value, self.exemplar)

    def post_call(self, err: Optional[BaseException], duration: Duration) -> None:
        """Count the finished call under its status code and record its duration."""
        code = str(from_error(err).code)
        if self.kind is Kind.SERVER:
            metrics = self.server_metrics
            self._increment(metrics.server_handled_counter, *self._labels, code)
            self._observe(metrics.server_handled_histogram, _seconds(duration))
        else:
            metrics = self.client_metrics
            self._increment(metrics.client_handled_counter, *self._labels, code)
            self._observe(metrics.client_handled_histogram, _seconds(duration))

    def post_msg_send(self, message: Any, err: Optional[BaseException], duration: Duration) -> None:
        """Count a sent stream message; on the client, record its send time."""
        if self.kind is Kind.SERVER:
            self._increment(self.server_metrics.server_stream_msg_sent, *self._labels)
        else:
            metrics = self.client_metrics
            self._increment(metrics.client_stream_msg_sent, *self._labels)
            self._observe(metrics.client_stream_send_histogram, _seconds(duration))

    def post_msg_receive(
        self, message: Any, err: Optional[BaseException], duration: Duration
    ) -> None:
        """Count a received stream message; on the client, record its receive time."""
        if self.kind is Kind.SERVER:
            self._increment(self.server_metrics.server_stream_msg_received, *self._labels)
        else:
            metrics = self.client_metrics
            self._increment(metrics.client_stream_msg_received, *self._labels)
            self._observe(metrics.client_stream_recv_histogram, _seconds(duration))


@dataclass
class Reportable:
    """Creates reporters for new calls, counting each call as started."""

    client_metrics: Optional[ClientMetrics] = None
    server_metrics: Optional[ServerMetrics] = None
    options: Sequence[Option] = ()

    def server_reporter(
        self, ctx: Context, typ: str, service: str, method: str
    ) -> tuple[Reporter, Context]:
        """Start reporting a server-side call."""
        return self._reporter(ctx, Kind.SERVER, typ, service, method)

    def client_reporter(
        self, ctx: Context, typ: str, service: str, method: str
    ) -> tuple[Reporter, Context]:
        """Start reporting a client-side call."""
        return self._reporter(ctx, Kind.CLIENT, typ, service, method)

    def _reporter(
        self, ctx: Context, kind: Kind, typ: str, service: str, method: str
    ) -> tuple[Reporter, Context]:
        config = ReporterConfig.from_options(self.options)
        reporter = Reporter(
            kind=kind,
            typ=str(typ),
            service=service,
            method=method,
            client_metrics=self.client_metrics if kind is Kind.CLIENT else None,
            server_metrics=self.server_metrics if kind is Kind.SERVER else None,
        )
        if config.exemplar_fn is not None:
            reporter.exemplar = config.exemplar_fn(ctx)
        if kind is Kind.CLIENT:
            reporter._increment(reporter.client_metrics.client_started_counter, *reporter._labels)
        else:
            reporter._increment(reporter.server_metrics.server_started_counter, *reporter._labels)
        return reporter, ctx