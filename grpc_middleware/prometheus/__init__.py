"""Prometheus-style counters, histograms and registry, with per-method metrics for RPC servers and clients."""

__all__ = ["client_metrics", "metrics", "options", "reporter", "server_metrics"]