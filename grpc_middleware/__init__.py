"""Middleware helpers for RPC servers and clients: contexts, metadata, validation, status, backoff and metrics."""

__version__ = "2.1.0"