"""RPC status codes, statuses and the exception that carries them."""

from __future__ import annotations

import asyncio
import concurrent.futures
import enum
from dataclasses import dataclass


class StatusCode(enum.IntEnum):
    """The canonical RPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    def __str__(self) -> str:
        return _CODE_LABELS[self]

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


_CODE_LABELS = {
    StatusCode.OK: "OK",
    StatusCode.CANCELLED: "Canceled",
    StatusCode.UNKNOWN: "Unknown",
    StatusCode.INVALID_ARGUMENT: "InvalidArgument",
    StatusCode.DEADLINE_EXCEEDED: "DeadlineExceeded",
    StatusCode.NOT_FOUND: "NotFound",
    StatusCode.ALREADY_EXISTS: "AlreadyExists",
    StatusCode.PERMISSION_DENIED: "PermissionDenied",
    StatusCode.RESOURCE_EXHAUSTED: "ResourceExhausted",
    StatusCode.FAILED_PRECONDITION: "FailedPrecondition",
    StatusCode.ABORTED: "Aborted",
    StatusCode.OUT_OF_RANGE: "OutOfRange",
    StatusCode.UNIMPLEMENTED: "Unimplemented",
    StatusCode.INTERNAL: "Internal",
    StatusCode.UNAVAILABLE: "Unavailable",
    StatusCode.DATA_LOSS: "DataLoss",
    StatusCode.UNAUTHENTICATED: "Unauthenticated",
}


@dataclass(frozen=True)
class Status:
    """The outcome of an RPC: a code and a human-readable message."""

    code: StatusCode
    message: str = ""


class RpcError(Exception):
    """An error that carries an RPC status."""

    def __init__(self, code: StatusCode | int, message: str) -> None:
        self.code = StatusCode(code)
        self.message = message
        super().__init__(f"rpc error: code = {self.code} desc = {message}")

    @property
    def status(self) -> Status:
        return Status(self.code, self.message)


def _wrapped_rpc_error(err: BaseException) -> RpcError | None:
    seen: set[int] = set()
    cause = err.__cause__
    while cause is not None and id(cause) not in seen:
        if isinstance(cause, RpcError):
            return cause
        seen.add(id(cause))
        cause = cause.__cause__
    return None


def from_error(err: BaseException | None) -> Status:
    """Derive a status from ``err``.

    ``None`` is OK; an ``RpcError`` (raised directly or as the cause of ``err``)
    gives its code; cancellation and timeouts map to CANCELLED and
    DEADLINE_EXCEEDED; anything else is UNKNOWN.
    """
    if err is None:
        return Status(StatusCode.OK, "")
    if isinstance(err, RpcError):
        return err.status
    wrapped = _wrapped_rpc_error(err)
    if wrapped is not None:
        return Status(wrapped.code, str(err))
    if isinstance(err, (asyncio.CancelledError, concurrent.futures.CancelledError)):
        return Status(StatusCode.CANCELLED, str(err))
    if isinstance(err, (TimeoutError, asyncio.TimeoutError)):
        return Status(StatusCode.DEADLINE_EXCEEDED, str(err))
    return Status(StatusCode.UNKNOWN, str(err))