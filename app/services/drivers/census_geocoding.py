"""US Census Bureau one-line address geocoder."""
from typing import Any, Dict, Optional

import requests

from app.core.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

CENSUS_GEOCODING_URL = "https://geocoding.geo.census.gov/geocoder"


def geocode_address(street: str, city: str, state: str, zip_code: str) -> Optional[Dict[str, Any]]:
    """
    Geocode a US street address.

    Returns:
        {"latitude": float, "longitude": float, "formattedAddress": str} for the
        best match, or None when there is no match or the request fails
    """
    address = f"{street}, {city}, {state} {zip_code}"
    logger.info(f"[Census Geocoding] Geocoding address: {address}")

    try:
        response = requests.get(
            f"{CENSUS_GEOCODING_URL}/locations/onelineaddress",
            params={"address": address, "benchmark": "Public_AR_Current", "format": "json"},
            headers={"Accept": "application/json", "User-Agent": "Fusion-Bridge/1.0"},
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        logger.error(f"[Census Geocoding] Network error: {e}")
        return None

    if not response.ok:
        logger.error(f"[Census Geocoding] HTTP error: {response.status_code} - {response.reason}")
        return None

    try:
        matches = response.json()["result"]["addressMatches"]
        if not matches:
            logger.info(f"[Census Geocoding] No address matches found for: {address}")
            return None
        best = matches[0]
        result = {
            "latitude": float(best["coordinates"]["y"]),
            "longitude": float(best["coordinates"]["x"]),
            "formattedAddress": best["matchedAddress"],
        }
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"[Census Geocoding] Invalid response format: {e}")
        return None

    logger.info(f"[Census Geocoding] Geocoded to {result['latitude']}, {result['longitude']}")
    return result
