#!/usr/bin/env python3
"""Headless live tracker.

Runs the full viewer pipeline (gate, static layers, snapshot, realtime
feed, expiry sweeps) and periodically writes the rendered layer set as
JSON, which a static web page can poll.

Configuration comes from ``LIVETRACK_*`` environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pylivetrack import GeoJsonSurface, LiveTracker, LiveTrackError, TrackerConfig  # noqa: E402

_LOG = logging.getLogger("live_tracker")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Headless live participant tracker.")
    parser.add_argument("--code", help="Event code (prompted for when the gate is closed).")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument("--dump", type=Path, help="Write rendered layers as JSON to this file.")
    parser.add_argument(
        "--dump-interval",
        type=float,
        default=5.0,
        help="Seconds between dumps.",
    )
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        help="Show only this category (repeatable).",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=Path.cwd(),
        help="Directory that relative route/point paths are resolved against.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _write_dump(path: Path, surface: GeoJsonSurface, tracker: LiveTracker) -> None:
    document = {
        "generated_at": time.time(),
        "center": list(tracker.config.center),
        "zoom": tracker.config.zoom,
        "legend": [entry.model_dump() for entry in tracker.legend],
        **surface.to_dict(),
    }
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(document), encoding="utf-8")
    tmp.replace(path)


async def _run(args: argparse.Namespace) -> int:
    config = TrackerConfig.from_env()
    surface = GeoJsonSurface()
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with LiveTracker(config, surface=surface, base_dir=args.base_dir) as tracker:
        if not tracker.gate.is_authenticated():
            code = args.code if args.code is not None else input("Event code: ")
            tracker.login(code)
        await tracker.start()
        if args.filter:
            tracker.set_filter(args.filter)

        started = time.monotonic()
        while not stop.is_set():
            if args.dump is not None:
                _write_dump(args.dump, surface, tracker)
            _LOG.info("%d participant(s) on the map", len(tracker.store))
            if args.duration and time.monotonic() - started >= args.duration:
                break
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=args.dump_interval)
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except LiveTrackError as exc:
        print(f"[tracker] {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
