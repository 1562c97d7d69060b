from datetime import timedelta

import pytest

from grpc_middleware.prometheus.metrics import DEF_BUCKETS, CounterOpts, HistogramOpts
from grpc_middleware.prometheus.options import (
    METHOD_LABELS,
    ClientMetricsConfig,
    GrpcType,
    Kind,
    MethodInfo,
    ReporterConfig,
    ServerMetricsConfig,
    apply_counter_options,
    apply_histogram_options,
    type_from_method_info,
    with_client_counter_options,
    with_client_handling_time_histogram,
    with_client_stream_recv_histogram,
    with_client_stream_send_histogram,
    with_const_labels,
    with_exemplar_from_context,
    with_histogram_buckets,
    with_histogram_const_labels,
    with_histogram_namespace,
    with_histogram_opts,
    with_histogram_subsystem,
    with_namespace,
    with_server_counter_options,
    with_server_handling_time_histogram,
    with_subsystem,
)
from grpc_middleware.wrappers import Context


@pytest.mark.parametrize(
    "client_stream, server_stream, expected",
    [
        (False, False, "unary"),
        (True, False, "client_stream"),
        (False, True, "server_stream"),
        (True, True, "bidi_stream"),
    ],
)
def test_type_from_method_info(client_stream, server_stream, expected):
    info = MethodInfo("PingList", is_client_stream=client_stream, is_server_stream=server_stream)
    result = type_from_method_info(info)
    assert str(result) == expected
    assert result == GrpcType(expected)


def test_kind_values():
    assert str(Kind.CLIENT) == "client"
    assert Kind("server") is Kind.SERVER


def test_counter_options_apply_to_copy():
    base = CounterOpts(name="grpc_server_started_total", help="h")
    opts = apply_counter_options(
        [with_subsystem("subsystem1"), with_namespace("namespace1"), with_const_labels({"a": "b"})],
        base,
    )
    assert (opts.namespace, opts.subsystem, opts.const_labels) == ("namespace1", "subsystem1", {"a": "b"})
    assert opts.name == base.name
    assert (base.namespace, base.subsystem, base.const_labels) == ("", "", {})


def test_histogram_options_apply_to_copy():
    base = HistogramOpts(name="grpc_server_handling_seconds", buckets=DEF_BUCKETS)
    opts = apply_histogram_options(
        [
            with_histogram_buckets([1, 2]),
            with_histogram_const_labels({"a": "b"}),
            with_histogram_subsystem("subsystem1"),
            with_histogram_namespace("namespace1"),
        ],
        base,
    )
    assert opts.buckets == (1, 2)
    assert opts.const_labels == {"a": "b"}
    assert (opts.namespace, opts.subsystem) == ("namespace1", "subsystem1")
    assert base.buckets == DEF_BUCKETS


def test_with_histogram_opts_keeps_name():
    source = HistogramOpts(
        name="other",
        buckets=(1.0, 5.0),
        native_histogram_bucket_factor=1.1,
        native_histogram_max_bucket_number=100,
        native_histogram_min_reset_duration=timedelta(hours=1),
    )
    opts = apply_histogram_options(
        [with_histogram_opts(source)], HistogramOpts(name="grpc_server_handling_seconds")
    )
    assert opts.name == "grpc_server_handling_seconds"
    assert opts.buckets == source.buckets
    assert opts.native_histogram_bucket_factor == source.native_histogram_bucket_factor
    assert opts.native_histogram_max_bucket_number == source.native_histogram_max_bucket_number
    assert opts.native_histogram_min_reset_duration == source.native_histogram_min_reset_duration


def test_reporter_config_exemplar():
    assert ReporterConfig.from_options([]).exemplar_fn is None
    ctx = Context().with_value("trace", "abc")
    config = ReporterConfig.from_options(
        [with_exemplar_from_context(lambda c: {"trace_id": c.value("trace")})]
    )
    assert config.exemplar_fn(ctx) == {"trace_id": "abc"}


def test_server_config_defaults():
    config = ServerMetricsConfig.from_options([])
    assert config.server_handled_histogram is None
    assert config.counter_options == ()


def test_server_handling_histogram():
    config = ServerMetricsConfig.from_options([with_server_handling_time_histogram()])
    vec = config.server_handled_histogram
    assert vec.desc.fq_name == "grpc_server_handling_seconds"
    assert vec.buckets == DEF_BUCKETS
    assert vec.desc.variable_labels == METHOD_LABELS


def test_server_histogram_namespace():
    config = ServerMetricsConfig.from_options(
        [with_server_handling_time_histogram(with_histogram_namespace("namespace1"))]
    )
    fq_name = config.server_handled_histogram.desc.fq_name
    assert fq_name.split("_")[0] == "namespace1"
    assert fq_name == "namespace1_grpc_server_handling_seconds"


def test_server_counter_options_replace_earlier():
    config = ServerMetricsConfig.from_options(
        [
            with_server_counter_options(with_namespace("first")),
            with_server_counter_options(with_subsystem("subsystem1")),
        ]
    )
    opts = config.counter_opts("grpc_server_started_total", "help")
    assert opts.name == "grpc_server_started_total"
    assert opts.subsystem == "subsystem1"
    assert opts.namespace == ""


def test_client_histograms():
    config = ClientMetricsConfig.from_options(
        [
            with_client_handling_time_histogram(),
            with_client_stream_recv_histogram(),
            with_client_stream_send_histogram(with_histogram_subsystem("subsystem1")),
        ]
    )
    assert config.client_handled_histogram.desc.fq_name == "grpc_client_handling_seconds"
    assert (
        config.client_stream_recv_histogram.desc.fq_name
        == "grpc_client_msg_recv_handling_seconds"
    )
    assert (
        config.client_stream_send_histogram.desc.fq_name
        == "subsystem1_grpc_client_msg_send_handling_seconds"
    )


def test_client_defaults_and_counter_options():
    assert ClientMetricsConfig.from_options([]).client_handled_histogram is None
    config = ClientMetricsConfig.from_options(
        [with_client_counter_options(with_namespace("namespace1"))]
    )
    opts = config.counter_opts("grpc_client_started_total", "help")
    assert opts.namespace == "namespace1"
    assert opts.help == "help"


def test_invalid_buckets_raise():
    with pytest.raises(ValueError):
        ServerMetricsConfig.from_options(
            [with_server_handling_time_histogram(with_histogram_buckets([2, 1]))]
        )