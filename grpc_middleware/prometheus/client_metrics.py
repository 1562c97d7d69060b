"""Metrics collected for RPCs made by a client."""

from __future__ import annotations

from typing import Iterator, Optional

from grpc_middleware.prometheus.metrics import CounterVec, Desc, HistogramVec, Sample
from grpc_middleware.prometheus.options import (
    METHOD_LABELS,
    ClientMetricsConfig,
    ClientMetricsOption,
)


class ClientMetrics:
    """Counters and optional histograms for a client; register it on a Registry."""

    def __init__(self, *options: ClientMetricsOption) -> None:
        config = ClientMetricsConfig.from_options(options)
        self.client_started_counter = CounterVec(
            config.counter_opts(
                "grpc_client_started_total", "Total number of RPCs started on the client."
            ),
            METHOD_LABELS,
        )
        self.client_handled_counter = CounterVec(
            config.counter_opts(
                "grpc_client_handled_total",
                "Total number of RPCs completed by the client, regardless of success or failure.",
            ),
            METHOD_LABELS + ("grpc_code",),
        )
        self.client_stream_msg_received = CounterVec(
            config.counter_opts(
                "grpc_client_msg_received_total",
                "Total number of RPC stream messages received by the client.",
            ),
            METHOD_LABELS,
        )
        self.client_stream_msg_sent = CounterVec(
            config.counter_opts(
                "grpc_client_msg_sent_total",
                "Total number of gRPC stream messages sent by the client.",
            ),
            METHOD_LABELS,
        )
        self.client_handled_histogram: Optional[HistogramVec] = config.client_handled_histogram
        self.client_stream_recv_histogram: Optional[HistogramVec] = (
            config.client_stream_recv_histogram
        )
        self.client_stream_send_histogram: Optional[HistogramVec] = (
            config.client_stream_send_histogram
        )

    def _vecs(self) -> list:
        vecs = [
            self.client_started_counter,
            self.client_handled_counter,
            self.client_stream_msg_received,
            self.client_stream_msg_sent,
            self.client_handled_histogram,
            self.client_stream_recv_histogram,
            self.client_stream_send_histogram,
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