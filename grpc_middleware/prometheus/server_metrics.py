"""Metrics collected for RPCs handled by a server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional

from grpc_middleware.prometheus.metrics import CounterVec, Desc, HistogramVec, Sample
from grpc_middleware.prometheus.options import (
    METHOD_LABELS,
    MethodInfo,
    ServerMetricsConfig,
    ServerMetricsOption,
    type_from_method_info,
)
from grpc_middleware.status import StatusCode


@dataclass(frozen=True)
class ServiceInfo:
    """The methods a server exposes for one service."""

    methods: tuple[MethodInfo, ...] = ()
    metadata: Any = None


class ServerMetrics:
    """Counters and an optional histogram for a server; register it on a Registry."""

    def __init__(self, *options: ServerMetricsOption) -> None:
        config = ServerMetricsConfig.from_options(options)
        self.server_started_counter = CounterVec(
            config.counter_opts(
                "grpc_server_started_total", "Total number of RPCs started on the server."
            ),
            METHOD_LABELS,
        )
        self.server_handled_counter = CounterVec(
            config.counter_opts(
                "grpc_server_handled_total",
                "Total number of RPCs completed on the server, regardless of success or failure.",
            ),
            METHOD_LABELS + ("grpc_code",),
        )
        self.server_stream_msg_received = CounterVec(
            config.counter_opts(
                "grpc_server_msg_received_total",
                "Total number of RPC stream messages received on the server.",
            ),
            METHOD_LABELS,
        )
        self.server_stream_msg_sent = CounterVec(
            config.counter_opts(
                "grpc_server_msg_sent_total",
                "Total number of gRPC stream messages sent by the server.",
            ),
            METHOD_LABELS,
        )
        self.server_handled_histogram: Optional[HistogramVec] = config.server_handled_histogram

    def _vecs(self) -> list:
        vecs = [
            self.server_started_counter,
            self.server_handled_counter,
            self.server_stream_msg_received,
            self.server_stream_msg_sent,
            self.server_handled_histogram,
        ]
        return [vec for vec in vecs if vec is not None]

    def describe(self) -> Iterator[Desc]:
        """Yield the descriptions of every enabled metric family."""
        for vec in self._vecs():
            yield from vec.describe()

    def collect(self) -> Iterator[Sample]:
        """Yield the samples of every enabled metric family."""
        for vec in self._vecs():
            yield from vec.collect()

    def initialize_metrics(self, server: Any) -> None:
        """Create zero-valued series for every method of ``server``.

        ``server.get_service_info()`` must return a mapping of service names
        to ``ServiceInfo``.
        """
        for service_name, info in server.get_service_info().items():
            for method in info.methods:
                self._pre_register_method(service_name, method)

    def _pre_register_method(self, service_name: str, info: MethodInfo) -> None:
        labels = (str(type_from_method_info(info)), service_name, info.name)
        self.server_started_counter.with_label_values(*labels)
        self.server_stream_msg_received.with_label_values(*labels)
        self.server_stream_msg_sent.with_label_values(*labels)
        if self.server_handled_histogram is not None:
            self.server_handled_histogram.with_label_values(*labels)
        for code in StatusCode:
            self.server_handled_counter.with_label_values(*labels, str(code))