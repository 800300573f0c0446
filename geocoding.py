from typing import Any, Dict, Optional

import httpx

from log import log_message
from models import BoundingBox, GeocodingResult
from settings import (
    GEO_BOUNDS,
    GEOCODE_REGION,
    GEOCODE_TIMEOUT_SEC,
    GEOCODE_URL,
    GOOGLE_MAPS_API_KEY,
)


def default_bounds() -> BoundingBox:
    return BoundingBox.from_text(GEO_BOUNDS)


class GoogleGeocoder:
    """Google Geocoding REST client.

    Any failure (missing key, timeout, HTTP error, odd payload) is reported as
    ``None`` so callers can move on to their fallback path.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = GEOCODE_TIMEOUT_SEC,
        region: str = GEOCODE_REGION,
        url: str = GEOCODE_URL,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else GOOGLE_MAPS_API_KEY
        self.timeout = timeout
        self.region = region
        self.url = url
        self._client = client

    def _params(self, text: str) -> Dict[str, Any]:
        params = {"address": text, "key": self.api_key}
        if self.region:
            params["region"] = self.region
            params["components"] = f"country:{self.region.upper()}"
        return params

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self._client is not None:
            r = self._client.get(self.url, params=params, timeout=self.timeout)
        else:
            with httpx.Client() as client:
                r = client.get(self.url, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def geocode(self, text: str) -> Optional[GeocodingResult]:
        if not self.api_key:
            log_message("WARN", "GOOGLE_MAPS_API_KEY not configured, skipping geocoding")
            return None
        try:
            data = self._get(self._params(text))
        except (httpx.HTTPError, ValueError) as e:
            log_message("WARN", f"geocoding failed for {text!r}: {e}")
            return None

        status = data.get("status")
        results = data.get("results") or []
        if status == "ZERO_RESULTS" or (status == "OK" and not results):
            log_message("WARN", f"no geocoding results found for: {text}")
            return None
        if status != "OK":
            log_message("WARN", f"geocoding API error for {text!r}: {status}")
            return None

        first = results[0]
        loc = (first.get("geometry") or {}).get("location") or {}
        try:
            return GeocodingResult(
                latitude=float(loc["lat"]),
                longitude=float(loc["lng"]),
                formatted_address=str(first.get("formatted_address") or text),
                place_id=first.get("place_id"),
            )
        except (KeyError, TypeError, ValueError) as e:
            log_message("WARN", f"malformed geocoding result for {text!r}: {e}")
            return None


def geocode_within_bounds(geocoder, text: str, bounds: BoundingBox) -> Optional[GeocodingResult]:
    """Geocode and keep the result only when it lands inside the dataset region."""
    if geocoder is None:
        return None
    try:
        result = geocoder.geocode(text)
    except Exception as e:
        # injected geocoders may raise; geocoding is never fatal
        log_message("WARN", f"geocoder raised for {text!r}: {e}")
        return None
    if result is None:
        return None
    if not bounds.contains(result.latitude, result.longitude):
        log_message(
            "WARN",
            f"geocoded {text!r} to ({result.latitude}, {result.longitude}) outside expected bounds, ignoring",
        )
        return None
    return result
