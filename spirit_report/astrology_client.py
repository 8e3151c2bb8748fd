"""HTTP client for the external placement and geocoding service."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional

import httpx

from spirit_report import config
from spirit_report.errors import ConfigurationError, InputValidationError, UpstreamError
from spirit_report.models import Location, Subject

logger = logging.getLogger("spirit_report")

_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")


def build_placement_request(subject: Subject) -> dict[str, Any]:
    """Split birth date/time into the numeric fields the placement endpoints expect."""
    date_match = _DATE_RE.match((subject.date_of_birth or "").strip())
    if not date_match:
        raise InputValidationError(f"Invalid date of birth '{subject.date_of_birth}', expected YYYY-MM-DD")
    time_match = _TIME_RE.match((subject.time_of_birth or "").strip())
    if not time_match:
        raise InputValidationError(f"Invalid time of birth '{subject.time_of_birth}', expected HH:mm[:ss]")

    year, month, day = (int(part) for part in date_match.groups())
    hours, minutes = int(time_match.group(1)), int(time_match.group(2))
    seconds = int(time_match.group(3)) if time_match.group(3) is not None else 0
    if not (1 <= month <= 12 and 1 <= day <= 31):
        raise InputValidationError(f"Invalid date of birth '{subject.date_of_birth}'")
    if not (0 <= hours <= 23 and 0 <= minutes <= 59 and 0 <= seconds <= 59):
        raise InputValidationError(f"Invalid time of birth '{subject.time_of_birth}'")

    location = subject.location
    return {
        "year": year,
        "month": month,
        "date": day,
        "hours": hours,
        "minutes": minutes,
        "seconds": seconds,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "timezone": location.timezone_offset,
    }


def _location_from_record(record: Any) -> Optional[Location]:
    if not isinstance(record, dict):
        return None
    if record.get("latitude") in (None, "") or record.get("longitude") in (None, ""):
        return None
    values = dict(record)
    values.setdefault("timezone_offset", 0.0)
    for key in ("timezone", "location_name", "complete_name", "country", "administrative_zone_1", "administrative_zone_2"):
        if values.get(key) is None:
            values[key] = ""
        else:
            values[key] = str(values[key])
    try:
        return Location.model_validate(values)
    except ValueError as e:
        logger.warning("Skipping unusable geocoding record: %s", e)
        return None


class AstrologyClient:
    def __init__(
        self,
        *,
        api_key: str = config.ASTROLOGY_API_KEY,
        base_url: str = config.ASTROLOGY_API_BASE,
        http_client: Optional[httpx.AsyncClient] = None,
        max_concurrency: int = config.PLACEMENT_MAX_CONCURRENCY,
        timeout_sec: float = config.ASTROLOGY_TIMEOUT_SEC,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10.0, read=timeout_sec, write=timeout_sec, pool=timeout_sec),
            trust_env=True,
        )
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        if not self._api_key:
            raise ConfigurationError("API key not set")
        url = f"{self._base_url}{path}"
        headers = {"Content-Type": "application/json", "x-api-key": self._api_key}
        async with self._semaphore:
            try:
                response = await self._http.post(url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                logger.warning("Astrology service call failed path=%s error_type=%s error=%s", path, type(e).__name__, e)
                raise UpstreamError(f"Astrology service request to {path} failed") from e

        if response.status_code >= 400:
            logger.warning("Astrology service returned status=%s path=%s", response.status_code, path)
            raise UpstreamError(f"Astrology service returned status {response.status_code} for {path}")
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Astrology service returned an unreadable body for {path}") from e

    async def fetch_planets(self, body: dict[str, Any]) -> Any:
        return await self._post("/western/planets", body)

    async def fetch_houses(self, body: dict[str, Any]) -> Any:
        return await self._post("/western/houses", body)

    async def search_locations(self, query: str) -> list[Location]:
        data = await self._post("/geo-details", {"location": query})
        if isinstance(data, list):
            records = data
        elif isinstance(data, dict) and data.get("longitude") and data.get("latitude"):
            records = [data]
        else:
            records = []
        locations = [loc for loc in (_location_from_record(r) for r in records) if loc is not None]
        logger.info("Location search query=%r matches=%s", query, len(locations))
        return locations
