# grpc_middleware

Building blocks for RPC server and client middleware, using only the
standard library:

- `grpc_middleware.wrappers`: `Context`, an immutable chain of
  request-scoped values (`with_value`, `value`), and `wrap_server_stream`,
  which wraps a server stream in a `WrappedServerStream` whose
  `wrapped_context` can be replaced. Other calls pass through to the stream.
- `grpc_middleware.metadata`: `MD`, a mapping of lower-case keys to lists of
  string values, with `get`, `set`, `add`, `delete`, `clone`, `to_incoming`
  and `to_outgoing`. Use `pairs`, `extract_incoming`, `extract_outgoing` and
  `encode_key_value` alongside it. `set` and `add` base64 encode values whose
  key ends in `-bin`.
- `grpc_middleware.status`: `StatusCode`, `Status`, the `RpcError` exception
  and `from_error`. `from_error` maps `None` to `OK` and an `RpcError` (raised
  directly or set as the cause) to its own code. Cancellation maps to
  `CANCELLED`, timeouts to `DEADLINE_EXCEEDED`, and anything else to
  `UNKNOWN`.
- `grpc_middleware.validator`: interceptor functions that validate messages
  and raise `RpcError` with `INVALID_ARGUMENT` on failure.
- `grpc_middleware.backoff`: `jitter_up` and `exponent_base2`.
- `grpc_middleware.prometheus`: counters, histograms and a registry that
  writes the Prometheus text format, with `ClientMetrics`, `ServerMetrics`
  and a reporter for per-method RPC metrics.

## Installation

```
pip install .
```

## Contexts and metadata

```python
from grpc_middleware.wrappers import Context
from grpc_middleware.metadata import pairs, extract_incoming

server_ctx = pairs("authorization", "Bearer token", "other", "x").to_incoming(Context())

md = pairs("singlekey", "uno", "multikey", "one", "multikey", "two")
md.get("multikey")            # "one"
md.add("multikey", "three").set("newkey", "something")

# Copy only some keys from an incoming context into an outgoing one.
client_ctx = extract_incoming(server_ctx).clone("authorization").to_outgoing(server_ctx)
```

`clone` makes a deep copy. If you give it keys, it keeps only those keys,
matched without regard to case. `pairs` raises `ValueError` when it gets an
odd number of arguments.

## Validation

A message can be validated through any of these methods:

- `validate_all()`
- `validate(all)`
- a legacy `validate()`

A method signals failure by raising an exception. Without fail-fast, the
interceptors prefer `validate_all()`, then `validate(True)`, then
`validate()`. With `with_fail_fast()` they call `validate()`, or
`validate(False)` if no such method exists.

```python
from grpc_middleware import validator

errors = []
intercept = validator.unary_server_interceptor(
    validator.with_fail_fast(),
    validator.with_on_validation_err_callback(lambda ctx, err: errors.append(str(err))),
)
```

- `unary_server_interceptor` returns `intercept(ctx, request, info, handler)`. It validates the request before calling the handler.
- `unary_client_interceptor` validates the request before calling the invoker.
- `stream_server_interceptor` hands the handler a stream whose `recv_msg` validates each message it receives.

## Backoff

`jitter_up(timedelta(seconds=10), 0.1)` returns a duration within
`[9s, 11s]`.

`exponent_base2(a)` returns `2**(a-1)`, or `0` for `a == 0`.

## Metrics

```python
from grpc_middleware.prometheus.metrics import Registry
from grpc_middleware.prometheus.options import (
    with_server_handling_time_histogram,
    with_histogram_buckets,
)
from grpc_middleware.prometheus.server_metrics import ServerMetrics

metrics = ServerMetrics(with_server_handling_time_histogram(with_histogram_buckets([0.1, 1, 10])))
registry = Registry()
registry.register(metrics)
print(registry.expose())
```

Counter options (`with_namespace`, `with_subsystem`, `with_const_labels`) are
passed through `with_server_counter_options` or
`with_client_counter_options`.

Histogram options are `with_histogram_buckets`, `with_histogram_namespace`,
`with_histogram_subsystem`, `with_histogram_const_labels` and
`with_histogram_opts`. They are passed to the options that turn histograms
on:

- `with_server_handling_time_histogram`
- `with_client_handling_time_histogram`
- `with_client_stream_recv_histogram`
- `with_client_stream_send_histogram`

`ServerMetrics.initialize_metrics(server)` creates a zero-valued series for
every method of `server.get_service_info()`, which maps service names to
`ServiceInfo`.

`Reportable` comes from `grpc_middleware.prometheus.reporter`. Its
`server_reporter` and `client_reporter` count a call as started and return a
`Reporter`. The reporter's `post_call`, `post_msg_send` and
`post_msg_receive` record the final status code, the messages and the
durations. `with_exemplar_from_context` attaches exemplars taken from the call
context.

## What this package does not do

The package has no RPC transport, server or client connection of its own.
`ClientMetrics` and `ServerMetrics` do not provide ready-made interceptors.
To record calls, invoke a `Reportable` and its `Reporter` from your own call
handling code. The registry renders text but does not serve it over HTTP.

## Tests

```
pip install .[test]
pytest
```