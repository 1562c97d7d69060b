import asyncio

import pytest

from grpc_middleware.status import RpcError, Status, StatusCode, from_error


@pytest.mark.parametrize(
    "code, label",
    [
        (StatusCode.OK, "OK"),
        (StatusCode.CANCELLED, "Canceled"),
        (StatusCode.FAILED_PRECONDITION, "FailedPrecondition"),
        (StatusCode.OUT_OF_RANGE, "OutOfRange"),
        (StatusCode.ABORTED, "Aborted"),
        (StatusCode.RESOURCE_EXHAUSTED, "ResourceExhausted"),
    ],
)
def test_code_labels(code, label):
    assert str(code) == label
    assert f"{code}" == label


def test_from_none_is_ok():
    assert from_error(None) == Status(StatusCode.OK, "")


def test_from_rpc_error_round_trips():
    err = RpcError(StatusCode.NOT_FOUND, "missing")
    assert from_error(err) == Status(StatusCode.NOT_FOUND, "missing")
    assert err.code == StatusCode.NOT_FOUND


def test_rpc_error_accepts_int_code():
    assert RpcError(9, "x").code == StatusCode.FAILED_PRECONDITION


def test_rpc_error_text():
    assert str(RpcError(StatusCode.INVALID_ARGUMENT, "bad")) == "rpc error: code = InvalidArgument desc = bad"


def test_plain_error_is_unknown():
    assert from_error(ValueError("boom")) == Status(StatusCode.UNKNOWN, "boom")


def test_cancellation_and_timeout():
    assert from_error(asyncio.CancelledError()).code == StatusCode.CANCELLED
    assert from_error(TimeoutError("late")).code == StatusCode.DEADLINE_EXCEEDED


def test_wrapped_rpc_error_keeps_code_and_outer_message():
    inner = RpcError(StatusCode.ABORTED, "inner")
    try:
        raise ValueError("outer") from inner
    except ValueError as outer:
        status = from_error(outer)
    assert status.code == StatusCode.ABORTED
    assert status.message == "outer"