"""Interceptors that validate request messages.

Each message is checked for a validation method: ``validate_all()``,
``validate(all)`` or a legacy ``validate()``. A validation method signals
failure by raising; the interceptor then rejects the call with an
``INVALID_ARGUMENT`` status carrying the failure's message. Unary calls are
rejected before reaching the handler; streamed messages are rejected as they
are received.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from grpc_middleware.status import RpcError, StatusCode
from grpc_middleware.wrappers import Context

OnValidationErrCallback = Callable[[Context, BaseException], None]

_CO_VARARGS = 0x04


@dataclass
class ValidatorOptions:
    """Settings shared by the validating interceptors."""

    should_fail_fast: bool = False
    on_validation_err_callback: Optional[OnValidationErrCallback] = None


Option = Callable[[ValidatorOptions], None]


def _evaluate(options: tuple[Option, ...]) -> ValidatorOptions:
    result = ValidatorOptions()
    for option in options:
        option(result)
    return result


def with_fail_fast() -> Option:
    """Stop at the first validation error; ignored for legacy ``validate()`` messages."""

    def apply(options: ValidatorOptions) -> None:
        options.should_fail_fast = True

    return apply


def with_on_validation_err_callback(callback: OnValidationErrCallback) -> Option:
    """Call ``callback(ctx, err)`` whenever validation fails."""

    def apply(options: ValidatorOptions) -> None:
        options.on_validation_err_callback = callback

    return apply


def _accepts(method: Callable[..., Any], count: int) -> bool:
    """Tell whether ``method`` can be called with ``count`` positional arguments."""
    func = getattr(method, "__func__", method)
    bound = 1 if func is not method and getattr(method, "__self__", None) is not None else 0
    code = getattr(func, "__code__", None)
    if code is None:
        call = getattr(type(method), "__call__", None)
        func = getattr(call, "__func__", call)
        code = getattr(func, "__code__", None)
        if code is None:
            return False
        bound = 1
    kwonly_defaults = getattr(func, "__kwdefaults__", None) or {}
    if code.co_kwonlyargcount > len(kwonly_defaults):
        return False
    positional = code.co_argcount - bound
    defaults = len(getattr(func, "__defaults__", None) or ())
    required = max(positional - defaults, 0)
    has_varargs = bool(code.co_flags & _CO_VARARGS)
    return required <= count and (count <= positional or has_varargs)


def _run_validation(message: Any, should_fail_fast: bool) -> None:
    validate_all = getattr(message, "validate_all", None)
    validate_method = getattr(message, "validate", None)
    if not callable(validate_method):
        validate_method = None
    legacy = validate_method is not None and _accepts(validate_method, 0)
    with_flag = validate_method is not None and _accepts(validate_method, 1)

    if should_fail_fast:
        if legacy:
            validate_method()
        elif with_flag:
            validate_method(False)
    else:
        if callable(validate_all):
            validate_all()
        elif with_flag:
            validate_method(True)
        elif legacy:
            validate_method()


def validate(
    ctx: Context,
    request: Any,
    should_fail_fast: bool,
    on_validation_err_callback: Optional[OnValidationErrCallback],
) -> None:
    """Validate ``request``; raise ``RpcError(INVALID_ARGUMENT)`` if it is invalid."""
    try:
        _run_validation(request, should_fail_fast)
    except Exception as err:
        if on_validation_err_callback is not None:
            on_validation_err_callback(ctx, err)
        raise RpcError(StatusCode.INVALID_ARGUMENT, str(err)) from err


def unary_server_interceptor(*options: Option) -> Callable[..., Any]:
    """Return a unary server interceptor that validates incoming requests."""
    opts = _evaluate(options)

    def intercept(ctx: Context, request: Any, info: Any, handler: Callable[..., Any]) -> Any:
        validate(ctx, request, opts.should_fail_fast, opts.on_validation_err_callback)
        return handler(ctx, request)

    return intercept


def unary_client_interceptor(*options: Option) -> Callable[..., Any]:
    """Return a unary client interceptor that validates outgoing requests."""
    opts = _evaluate(options)

    def intercept(
        ctx: Context,
        method: str,
        request: Any,
        reply: Any,
        cc: Any,
        invoker: Callable[..., Any],
        *call_options: Any,
    ) -> Any:
        validate(ctx, request, opts.should_fail_fast, opts.on_validation_err_callback)
        return invoker(ctx, method, request, reply, cc, *call_options)

    return intercept


class _ValidatingStream:
    """Server stream that validates every received message."""

    def __init__(self, stream: Any, options: ValidatorOptions) -> None:
        self._stream = stream
        self._options = options

    def context(self) -> Context:
        return self._stream.context()

    def send_msg(self, message: Any) -> Any:
        return self._stream.send_msg(message)

    def recv_msg(self) -> Any:
        message = self._stream.recv_msg()
        validate(
            self.context(),
            message,
            self._options.should_fail_fast,
            self._options.on_validation_err_callback,
        )
        return message

    def __getattr__(self, name: str) -> Any:
        if name == "_stream":
            raise AttributeError(name)
        return getattr(self._stream, name)


def stream_server_interceptor(*options: Option) -> Callable[..., Any]:
    """Return a streaming server interceptor that validates each received message."""
    opts = _evaluate(options)

    def intercept(srv: Any, stream: Any, info: Any, handler: Callable[..., Any]) -> Any:
        return handler(srv, _ValidatingStream(stream, opts))

    return intercept