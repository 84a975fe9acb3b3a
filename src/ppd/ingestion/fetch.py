"""Record, mission and water-test sources behind the thin server proxy."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import httpx

from ppd.config import Settings
from ppd.errors import DatasetLoadError, DataShapeError
from ppd.utils.logging import get_logger


logger = get_logger(__name__)

RecordMap = dict[str, dict[str, Any]]


async def fetch_records(
    client: httpx.AsyncClient,
    settings: Optional[Settings] = None,
) -> RecordMap:
    """Fetch the photo snapshot with timed retries.

    Later attempts use an escalated timeout; attempts are separated by a fixed
    delay. Shape mismatches are not retried. The last error is raised when all
    attempts fail.
    """
    settings = settings or Settings()
    attempts = max(1, settings.fetch_max_attempts)
    last_error: Optional[DatasetLoadError] = None

    for attempt in range(1, attempts + 1):
        timeout = settings.fetch_timeout_for_attempt(attempt)
        logger.info("fetch_records.start attempt=%s timeout=%s", attempt, timeout)
        try:
            payload = await _get_json(client, settings.records_url, timeout=timeout)
            records = validate_record_payload(payload)
        except DataShapeError:
            raise
        except DatasetLoadError as exc:
            last_error = exc
            logger.warning("fetch_records.failed attempt=%s error=%s", attempt, exc)
            if attempt < attempts:
                await asyncio.sleep(settings.fetch_retry_delay_seconds)
            continue

        logger.info("fetch_records.complete count=%s", len(records))
        return records

    raise last_error or DatasetLoadError("API request failed.")


async def fetch_missions(
    client: httpx.AsyncClient,
    settings: Optional[Settings] = None,
) -> RecordMap:
    """Fetch missions; any failure falls back to an empty map."""
    settings = settings or Settings()
    try:
        payload = await _get_json(
            client, settings.missions_url, timeout=settings.fetch_timeout_seconds
        )
        missions = _object_map(_unwrap(payload, "missions"), "missions")
    except DatasetLoadError as exc:
        logger.warning("fetch_missions.failed error=%s", exc)
        return {}

    logger.info("fetch_missions.complete count=%s", len(missions))
    return missions


async def fetch_water_tests(
    client: httpx.AsyncClient,
    test_type: str,
    settings: Optional[Settings] = None,
) -> RecordMap:
    """Fetch up to ``water_tests_limit`` results of one water test type."""
    settings = settings or Settings()
    params = {"type": test_type, "limit": settings.water_tests_limit}
    try:
        response = await asyncio.wait_for(
            client.get(settings.water_tests_url, params=params),
            timeout=settings.water_tests_timeout_seconds,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise DatasetLoadError("Water tests API request timed out.") from exc
    except httpx.HTTPError as exc:
        raise DatasetLoadError(f"Water tests API request failed ({exc.__class__.__name__}).") from exc

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not response.is_success:
        message = None
        if isinstance(payload, Mapping):
            message = payload.get("error") or payload.get("message")
        raise DatasetLoadError(
            str(message or f"Water tests API request failed ({response.status_code}).")
        )

    if not isinstance(payload, Mapping) or not isinstance(payload.get("records"), Mapping):
        raise DataShapeError(
            "Unexpected water tests API response format. Expected { type, records }."
        )
    return _object_map(payload["records"], "records")


def validate_record_payload(payload: Any) -> RecordMap:
    """Validate ``{ photos: { id: photo } }`` (or a bare ``{ id: photo }`` map).

    An empty map is a load failure, not an empty dataset.
    """
    if not isinstance(payload, Mapping):
        raise DataShapeError(
            "Unexpected API response format. Expected { photos: { id: photo } }."
        )
    records = _object_map(_unwrap(payload, "photos"), "photos")
    if not records:
        raise DatasetLoadError("API returned no photos.")
    return records


def _unwrap(payload: Any, field: str) -> Any:
    if isinstance(payload, Mapping) and field in payload:
        return payload[field]
    return payload


def _object_map(value: Any, field: str) -> RecordMap:
    if not isinstance(value, Mapping):
        raise DataShapeError(
            f"Unexpected API response format. Expected {{ {field}: {{ id: object }} }}."
        )
    out: RecordMap = {}
    for key, item in value.items():
        if not isinstance(item, Mapping):
            raise DataShapeError(
                f"Unexpected API response format. Entry {key!r} in {field} is not an object."
            )
        out[str(key)] = dict(item)
    return out


async def _get_json(client: httpx.AsyncClient, url: str, timeout: float) -> Any:
    try:
        response = await asyncio.wait_for(
            client.get(url, headers={"Accept": "application/json"}),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise DatasetLoadError("API request timed out.") from exc
    except httpx.HTTPError as exc:
        raise DatasetLoadError(f"API request failed ({exc.__class__.__name__}).") from exc

    if not response.is_success:
        raise DatasetLoadError(f"API request failed ({response.status_code}).")

    try:
        return response.json()
    except ValueError as exc:
        raise DatasetLoadError("API returned malformed JSON.") from exc
