from datetime import timedelta

import pytest

from grpc_middleware.prometheus.client_metrics import ClientMetrics
from grpc_middleware.prometheus.options import (
    GrpcType,
    with_client_counter_options,
    with_client_handling_time_histogram,
    with_client_stream_recv_histogram,
    with_client_stream_send_histogram,
    with_histogram_namespace,
    with_histogram_subsystem,
    with_namespace,
    with_subsystem,
)
from grpc_middleware.prometheus.reporter import Reportable
from grpc_middleware.status import RpcError, StatusCode
from grpc_middleware.wrappers import Context

SERVICE = "testing.testpb.v1.TestService"
LIST_RESPONSE_COUNT = 100
TICK = timedelta(milliseconds=1)


@pytest.fixture
def metrics():
    return ClientMetrics(with_client_handling_time_histogram())


def _unary(metrics, method, err=None):
    reporter, _ = Reportable(client_metrics=metrics).client_reporter(
        Context(), GrpcType.UNARY, SERVICE, method
    )
    reporter.post_call(err, TICK)


def _start_ping_list(metrics):
    reporter, _ = Reportable(client_metrics=metrics).client_reporter(
        Context(), GrpcType.SERVER_STREAM, SERVICE, "PingList"
    )
    reporter.post_msg_send(object(), None, TICK)
    return reporter


def test_unary_increments_metrics(metrics):
    _unary(metrics, "PingEmpty")
    assert metrics.client_started_counter.with_label_values("unary", SERVICE, "PingEmpty").value == 1
    assert (
        metrics.client_handled_counter.with_label_values("unary", SERVICE, "PingEmpty", "OK").value
        == 1
    )
    assert metrics.client_handled_histogram.with_label_values("unary", SERVICE, "PingEmpty").count == 1

    _unary(metrics, "PingError", RpcError(StatusCode.FAILED_PRECONDITION, "Userspace error"))
    assert metrics.client_started_counter.with_label_values("unary", SERVICE, "PingError").value == 1
    assert (
        metrics.client_handled_counter.with_label_values(
            "unary", SERVICE, "PingError", "FailedPrecondition"
        ).value
        == 1
    )
    assert metrics.client_handled_histogram.with_label_values("unary", SERVICE, "PingError").count == 1


def test_started_streaming_increments_started(metrics):
    _start_ping_list(metrics)
    started = metrics.client_started_counter.with_label_values("server_stream", SERVICE, "PingList")
    assert started.value == 1
    _start_ping_list(metrics)
    assert started.value == 2


def test_streaming_increments_metrics(metrics):
    reporter = _start_ping_list(metrics)
    for _ in range(LIST_RESPONSE_COUNT):
        reporter.post_msg_receive(object(), None, TICK)
    reporter.post_msg_receive(None, EOFError(), TICK)
    reporter.post_call(None, TICK)

    labels = ("server_stream", SERVICE, "PingList")
    assert metrics.client_started_counter.with_label_values(*labels).value == 1
    assert metrics.client_handled_counter.with_label_values(*labels, "OK").value == 1
    assert (
        metrics.client_stream_msg_received.with_label_values(*labels).value
        == LIST_RESPONSE_COUNT + 1
    )
    assert metrics.client_stream_msg_sent.with_label_values(*labels).value == 1
    assert metrics.client_handled_histogram.with_label_values(*labels).count == 1

    failing = _start_ping_list(metrics)
    err = RpcError(StatusCode.FAILED_PRECONDITION, "foobar")
    failing.post_msg_receive(None, err, TICK)
    failing.post_call(err, TICK)

    assert metrics.client_started_counter.with_label_values(*labels).value == 2
    assert (
        metrics.client_handled_counter.with_label_values(*labels, "FailedPrecondition").value == 1
    )
    assert metrics.client_handled_histogram.with_label_values(*labels).count == 2


def test_with_subsystem():
    metrics = ClientMetrics(
        with_client_counter_options(with_subsystem("subsystem1")),
        with_client_handling_time_histogram(with_histogram_subsystem("subsystem1")),
    )
    counter = metrics.client_started_counter.with_label_values("unary", SERVICE, "dummy")
    histogram = metrics.client_handled_histogram.with_label_values("unary", SERVICE, "dummy")
    assert counter.desc.fq_name.split("_")[0] == "subsystem1"
    assert histogram.desc.fq_name.split("_")[0] == "subsystem1"


def test_with_namespace():
    metrics = ClientMetrics(
        with_client_counter_options(with_namespace("namespace1")),
        with_client_handling_time_histogram(with_histogram_namespace("namespace1")),
    )
    counter = metrics.client_started_counter.with_label_values("unary", SERVICE, "dummy")
    histogram = metrics.client_handled_histogram.with_label_values("unary", SERVICE, "dummy")
    assert counter.desc.fq_name.split("_")[0] == "namespace1"
    assert histogram.desc.fq_name.split("_")[0] == "namespace1"


def test_describe_without_histograms_lists_only_counters():
    names = {desc.fq_name for desc in ClientMetrics().describe()}
    assert names == {
        "grpc_client_started_total",
        "grpc_client_handled_total",
        "grpc_client_msg_received_total",
        "grpc_client_msg_sent_total",
    }


def test_describe_with_all_histograms():
    metrics = ClientMetrics(
        with_client_handling_time_histogram(),
        with_client_stream_recv_histogram(),
        with_client_stream_send_histogram(),
    )
    names = {desc.fq_name for desc in metrics.describe()}
    assert {
        "grpc_client_handling_seconds",
        "grpc_client_msg_recv_handling_seconds",
        "grpc_client_msg_send_handling_seconds",
    } <= names


def test_collect_reflects_recorded_calls(metrics):
    assert list(metrics.collect()) == []
    _unary(metrics, "PingEmpty")
    started = [s for s in metrics.collect() if s.name == "grpc_client_started_total"]
    assert [s.labels["grpc_method"] for s in started] == ["PingEmpty"]