from __future__ import annotations

import json
import logging
from typing import Any
from urllib import error as urllib_error
from urllib import request as urllib_request
from urllib.parse import urlencode

from app.settings import get_settings

logger = logging.getLogger("app.geocoding")


def format_coordinates(lat: float, lon: float) -> str:
    return f"{lat:.6f}, {lon:.6f}"


def _get_json(url: str, *, timeout_seconds: float, user_agent: str) -> dict[str, Any]:
    request = urllib_request.Request(
        url=url,
        method="GET",
        headers={"Accept": "application/json", "User-Agent": user_agent},
    )
    with urllib_request.urlopen(request, timeout=max(1.0, timeout_seconds)) as response:
        body = response.read().decode("utf-8", errors="ignore")
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("Geocoding response is not an object")
    return payload


def reverse_geocode(lat: float, lon: float) -> str:
    """Human-readable address for a coordinate, or the coordinate itself."""
    settings = get_settings()
    query = urlencode({"format": "json", "lat": lat, "lon": lon})
    url = f"{settings.geocoding_url}?{query}"
    try:
        payload = _get_json(
            url,
            timeout_seconds=settings.geocoding_timeout_seconds,
            user_agent=settings.geocoding_user_agent,
        )
    except (urllib_error.URLError, TimeoutError, OSError, ValueError) as exc:
        logger.warning(
            "geocoding_failed",
            extra={"lat": lat, "lon": lon, "error": exc.__class__.__name__},
        )
        return format_coordinates(lat, lon)

    display_name = str(payload.get("display_name") or "").strip()
    return display_name or format_coordinates(lat, lon)


def resolve_location(location: str | None, lat: float | None, lon: float | None) -> str | None:
    cleaned = (location or "").strip()
    if cleaned:
        return cleaned
    if lat is None or lon is None:
        return None
    return reverse_geocode(lat, lon)
