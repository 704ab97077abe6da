"""Ingestion layer.

This package contains adapters that fetch/receive participant rows from the
upstream table (REST snapshot, realtime change feed) and emit normalized
update events.
"""

__all__: list[str] = []
