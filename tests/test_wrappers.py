import pytest

from grpc_middleware.status import RpcError, StatusCode
from grpc_middleware.wrappers import Context, WrappedServerStream, wrap_server_stream

SOME_KEY = object()
OTHER_KEY = object()


class FakeServerStream:
    def __init__(self, ctx, recv_message=None):
        self.ctx = ctx
        self.recv_message = recv_message
        self.sent_message = None

    def context(self):
        return self.ctx

    def send_msg(self, message):
        if self.sent_message is not None:
            raise RpcError(StatusCode.ALREADY_EXISTS, "fakeServerStream only takes one message, sorry")
        self.sent_message = message

    def recv_msg(self):
        if self.recv_message is None:
            raise RpcError(StatusCode.NOT_FOUND, "fakeServerStream has no message, sorry")
        return self.recv_message


def test_wrap_server_stream_propagates_and_overrides_context():
    ctx = Context().with_value(SOME_KEY, 1)
    fake = FakeServerStream(ctx)
    wrapped = wrap_server_stream(fake)
    assert wrapped.context().value(SOME_KEY) == 1
    wrapped.wrapped_context = wrapped.context().with_value(OTHER_KEY, 2)
    assert wrapped.context().value(OTHER_KEY) == 2
    assert wrapped.context().value(SOME_KEY) == 1
    assert fake.context().value(OTHER_KEY) is None


def test_wrap_is_idempotent():
    wrapped = wrap_server_stream(FakeServerStream(Context()))
    assert wrap_server_stream(wrapped) is wrapped


def test_send_and_recv_delegate_to_stream():
    fake = FakeServerStream(Context(), recv_message="hello")
    wrapped = WrappedServerStream(fake)
    wrapped.send_msg("first")
    assert fake.sent_message == "first"
    with pytest.raises(RpcError) as info:
        wrapped.send_msg("second")
    assert info.value.code == StatusCode.ALREADY_EXISTS
    assert wrapped.recv_msg() == "hello"


def test_recv_error_propagates():
    wrapped = wrap_server_stream(FakeServerStream(Context()))
    with pytest.raises(RpcError) as info:
        wrapped.recv_msg()
    assert info.value.code == StatusCode.NOT_FOUND


def test_context_value_missing_and_shadowed():
    root = Context()
    assert root.value(SOME_KEY) is None
    child = root.with_value(SOME_KEY, "a").with_value(SOME_KEY, "b")
    assert child.value(SOME_KEY) == "b"