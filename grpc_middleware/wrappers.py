"""Request contexts and a server-stream wrapper whose context can be replaced."""

from __future__ import annotations

from typing import Any

_ROOT = object()


class Context:
    """An immutable chain of key/value pairs carried along with a call.

    A fresh ``Context()`` is an empty root. ``with_value`` derives a child
    that sees every value of its parents plus the new one.
    """

    __slots__ = ("_parent", "_key", "_value")

    def __init__(self) -> None:
        self._parent: Context | None = None
        self._key: Any = _ROOT
        self._value: Any = None

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context in which ``key`` maps to ``value``."""
        child = Context()
        child._parent = self
        child._key = key
        child._value = value
        return child

    def value(self, key: Any) -> Any:
        """Return the value stored for ``key`` in this context or its parents, else None."""
        node: Context | None = self
        while node is not None:
            if node._key is not _ROOT and node._key == key:
                return node._value
            node = node._parent
        return None


class WrappedServerStream:
    """A server stream whose context can be overwritten.

    ``wrapped_context`` may be reassigned freely; every other operation is
    passed through to the underlying stream.
    """

    def __init__(self, stream: Any, wrapped_context: Context | None = None) -> None:
        self.server_stream = stream
        self.wrapped_context = stream.context() if wrapped_context is None else wrapped_context

    def context(self) -> Context:
        """Return the wrapper's own context, not the underlying stream's."""
        return self.wrapped_context

    def send_msg(self, message: Any) -> Any:
        """Send a message on the underlying stream."""
        return self.server_stream.send_msg(message)

    def recv_msg(self) -> Any:
        """Receive the next message from the underlying stream."""
        return self.server_stream.recv_msg()

    def __getattr__(self, name: str) -> Any:
        if name == "server_stream":
            raise AttributeError(name)
        return getattr(self.server_stream, name)


def wrap_server_stream(stream: Any) -> WrappedServerStream:
    """Wrap ``stream`` so its context can be replaced; an existing wrapper is returned as is."""
    if isinstance(stream, WrappedServerStream):
        return stream
    return WrappedServerStream(stream)