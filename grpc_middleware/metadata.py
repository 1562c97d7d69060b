"""Convenience helpers for call metadata carried inside contexts.

Incoming metadata can be copied selectively into outgoing metadata::

    md = extract_incoming(server_ctx).clone("authorization", "custom")
    client_ctx = md.set("x-client-header", "2").set("x-another", "3").to_outgoing(ctx)

Keys ending in ``-bin`` hold binary values and are base64 encoded on write.
"""

from __future__ import annotations

import base64

from grpc_middleware.wrappers import Context

_BIN_HDR_SUFFIX = "-bin"
_INCOMING_KEY = object()
_OUTGOING_KEY = object()


def encode_key_value(key: str, value: str) -> tuple[str, str]:
    """Lower-case ``key`` and base64 encode ``value`` when the key is binary."""
    key = key.lower()
    if key.endswith(_BIN_HDR_SUFFIX):
        return key, base64.b64encode(value.encode("utf-8")).decode("ascii")
    return key, value


class MD(dict):
    """Metadata: a mapping of lower-case keys to lists of string values."""

    def clone(self, *copied_keys: str) -> MD:
        """Deep copy, keeping only ``copied_keys`` (case-insensitive) if any are given."""
        wanted = {key.casefold() for key in copied_keys}
        return MD(
            (key, list(values))
            for key, values in self.items()
            if not wanted or key.casefold() in wanted
        )

    def to_outgoing(self, ctx: Context) -> Context:
        """Return a child of ``ctx`` carrying this metadata for a client call."""
        return ctx.with_value(_OUTGOING_KEY, self)

    def to_incoming(self, ctx: Context) -> Context:
        """Return a child of ``ctx`` carrying this metadata as server-side input."""
        return ctx.with_value(_INCOMING_KEY, self)

    def get(self, key: str) -> str:  # type: ignore[override]
        """Return the first value for ``key``, or an empty string if unset."""
        encoded, _ = encode_key_value(key, "")
        values = self[encoded] if encoded in self else None
        if not values:
            return ""
        return values[0]

    def delete(self, key: str) -> MD:
        """Remove every value for ``key``; missing keys are ignored."""
        encoded, _ = encode_key_value(key, "")
        self.pop(encoded, None)
        return self

    def set(self, key: str, value: str) -> MD:
        """Replace all values for ``key`` with ``value``."""
        encoded_key, encoded_value = encode_key_value(key, value)
        self[encoded_key] = [encoded_value]
        return self

    def add(self, key: str, value: str) -> MD:
        """Append ``value`` to the values for ``key``."""
        encoded_key, encoded_value = encode_key_value(key, value)
        self.setdefault(encoded_key, []).append(encoded_value)
        return self


def pairs(*kv: str) -> MD:
    """Build metadata from alternating keys and values; keys are lower-cased."""
    if len(kv) % 2 == 1:
        raise ValueError(
            f"metadata: pairs got the odd number of input pairs for metadata: {len(kv)}"
        )
    md = MD()
    for key, value in zip(kv[::2], kv[1::2]):
        md.setdefault(key.lower(), []).append(value)
    return md


def _extract(ctx: Context, slot: object) -> MD:
    stored = ctx.value(slot)
    if stored is None:
        return MD()
    return MD((key.lower(), list(values)) for key, values in stored.items())


def extract_incoming(ctx: Context) -> MD:
    """Return a copy of the incoming metadata of ``ctx``, or empty metadata."""
    return _extract(ctx, _INCOMING_KEY)


def extract_outgoing(ctx: Context) -> MD:
    """Return a copy of the outgoing metadata of ``ctx``, or empty metadata."""
    return _extract(ctx, _OUTGOING_KEY)