"""State layer.

This package is the single source of truth for how incoming participant
updates (initial snapshot and realtime changes) are reconciled into the
set of markers shown on the map.
"""
