"""Genea (Sequr) access-control driver."""
from typing import Any, Dict, List

import requests

from app.core.config import get_settings
from app.core.exceptions import GeneaApiError
from app.models.connector_models import GeneaConfig
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

GENEA_API_BASE_URL = "https://api.sequr.io"
DOOR_PAGE_SIZE = 100


def _headers(config: GeneaConfig) -> Dict[str, str]:
    return {"Content-Type": "application/json", "Authorization": f"Bearer {config.api_key}"}


def _error_message(response: requests.Response) -> str:
    message = f"Genea API returned status: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict):
        meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
        return meta.get("message") or body.get("error") or message
    return message


def test_connection(config: GeneaConfig) -> Dict[str, Any]:
    """
    Verify the API key against Genea.

    Returns:
        {"success": bool, "message"?: str, "error"?: str}
    """
    try:
        response = requests.post(
            f"{GENEA_API_BASE_URL}/v2/api_key/verify",
            json={"api_key": config.api_key},
            headers=_headers(config),
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        logger.error(f"Network error during Genea connection test: {e}")
        return {"success": False, "error": f"Connection test failed: {e}"}

    if response.ok:
        logger.info("Genea API Key verified successfully.")
        return {"success": True, "message": "Genea API Key is valid."}

    message = _error_message(response)
    logger.error(f"Genea API Key verification failed: {message}")
    return {"success": False, "error": f"API Key verification failed: {message}"}


def get_doors(config: GeneaConfig) -> List[Dict[str, Any]]:
    """
    Fetch every door visible to the API key, following pagination.

    Each door carries at least uuid, name, reader_model, is_locked and is_online.

    Raises:
        GeneaApiError: On HTTP failure or an unexpected payload
    """
    doors: List[Dict[str, Any]] = []
    page = 1
    while True:
        params: Dict[str, Any] = {"page": page, "limit": DOOR_PAGE_SIZE}
        if config.customer_uuid:
            params["customer_uuid"] = config.customer_uuid
        try:
            response = requests.get(
                f"{GENEA_API_BASE_URL}/v2/door",
                params=params,
                headers=_headers(config),
                timeout=settings.http_timeout_seconds
            )
        except requests.RequestException as e:
            raise GeneaApiError(f"Network error fetching Genea doors: {e}") from e

        if not response.ok:
            raise GeneaApiError(_error_message(response), status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise GeneaApiError("Genea doors response was not valid JSON", status_code=response.status_code) from e

        batch = body.get("data") if isinstance(body, dict) else body
        if not isinstance(batch, list):
            raise GeneaApiError("Genea doors response did not contain a door list")

        doors.extend(batch)
        if len(batch) < DOOR_PAGE_SIZE:
            break
        page += 1

    logger.info(f"Fetched {len(doors)} doors from Genea")
    return doors
