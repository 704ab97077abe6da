"""Initial snapshot over the PostgREST HTTP API."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from pylivetrack._constants import USER_AGENT
from pylivetrack.config import TrackerConfig
from pylivetrack.exceptions import TrackerApiError, TrackerTransportError

_logger = logging.getLogger(__name__)


def build_rest_headers(config: TrackerConfig) -> dict[str, str]:
    return {
        "apikey": config.supabase_key,
        "authorization": f"Bearer {config.supabase_key}",
        "accept": "application/json",
        "accept-profile": config.schema,
        "user-agent": USER_AGENT,
    }


async def fetch_snapshot(config: TrackerConfig, http: aiohttp.ClientSession) -> list[dict[str, Any]]:
    """Fetch every row of the participants table.

    Raises
    ------
    TrackerTransportError
        Network failure, non-200 status, or a body that is not JSON.
    TrackerApiError
        The body is a PostgREST error object or not a list of rows.
    """
    endpoint = config.rest_url
    _logger.debug("GET %s", endpoint)
    try:
        async with http.get(
            endpoint,
            params={"select": "*"},
            headers=build_rest_headers(config),
            timeout=aiohttp.ClientTimeout(total=config.http_timeout),
        ) as resp:
            text = await resp.text()
            status = resp.status
    except aiohttp.ClientError as exc:
        raise TrackerTransportError(f"Request to {endpoint} failed: {exc}", endpoint=endpoint) from exc
    except TimeoutError as exc:
        raise TrackerTransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc

    try:
        body = json.loads(text) if text else None
    except json.JSONDecodeError as exc:
        raise TrackerTransportError(
            f"Invalid JSON from {endpoint}: {text[:200]}",
            status_code=status,
            endpoint=endpoint,
        ) from exc

    if status != 200:
        if isinstance(body, dict) and "message" in body:
            raise TrackerApiError(
                f"Snapshot failed: {body.get('message')}",
                code=str(body.get("code", "")),
                endpoint=endpoint,
            )
        raise TrackerTransportError(
            f"HTTP {status} from {endpoint}: {text[:200]}",
            status_code=status,
            endpoint=endpoint,
        )

    if not isinstance(body, list):
        raise TrackerApiError(f"Snapshot from {endpoint} is not a list of rows", endpoint=endpoint)

    _logger.debug("Snapshot returned %d row(s)", len(body))
    return body
