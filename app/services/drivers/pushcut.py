"""Pushcut notification driver."""
from typing import Any, Dict, List
from urllib.parse import quote

import requests

from app.core.config import get_settings
from app.core.exceptions import ServiceApiError
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

PUSHCUT_API_BASE_URL = "https://api.pushcut.io/v1"


def _error_message(response: requests.Response) -> str:
    message = f"Pushcut API Error: {response.status_code} - {response.reason}"
    try:
        data = response.json()
    except ValueError:
        return message
    if isinstance(data, dict):
        return data.get("message") or data.get("error") or message
    return message


def _get(api_key: str, path: str) -> List[Dict[str, Any]]:
    if not api_key:
        raise ServiceApiError("Pushcut", "API key is missing.")
    try:
        response = requests.get(
            f"{PUSHCUT_API_BASE_URL}{path}",
            headers={"API-Key": api_key, "Accept": "application/json"},
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        raise ServiceApiError("Pushcut", str(e)) from e
    if not response.ok:
        raise ServiceApiError("Pushcut", _error_message(response), status_code=response.status_code)
    try:
        data = response.json()
    except ValueError as e:
        raise ServiceApiError("Pushcut", "Received unexpected data format from Pushcut API") from e
    if not isinstance(data, list):
        raise ServiceApiError("Pushcut", "Received unexpected data format from Pushcut API")
    return data


def send_notification(api_key: str, notification_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Trigger a defined Pushcut notification.

    A 2xx response (usually with an empty body) is success.

    Returns:
        {"status": int, "requestId": str | None}

    Raises:
        ServiceApiError: On missing parameters, API rejection or network failure
    """
    if not api_key:
        raise ServiceApiError("Pushcut", "API key is missing.")
    if not notification_name:
        raise ServiceApiError("Pushcut", "Notification name is missing.")

    logger.info(f"[Pushcut] Sending notification \"{notification_name}\"")
    try:
        response = requests.post(
            f"{PUSHCUT_API_BASE_URL}/notifications/{quote(notification_name, safe='')}",
            json={k: v for k, v in params.items() if v is not None},
            headers={"Content-Type": "application/json", "API-Key": api_key},
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        raise ServiceApiError("Pushcut", f"Failed to send Pushcut notification: {e}") from e

    if response.ok:
        logger.info(f"[Pushcut] Notification \"{notification_name}\" sent (status {response.status_code})")
        return {"status": response.status_code, "requestId": response.headers.get("x-request-id")}

    message = _error_message(response)
    logger.error(f"[Pushcut] Failed to send notification \"{notification_name}\": {message}")
    raise ServiceApiError("Pushcut", message, status_code=response.status_code)


def get_notifications(api_key: str) -> List[Dict[str, Any]]:
    """List the notifications defined in the Pushcut account."""
    return _get(api_key, "/notifications")


def get_devices(api_key: str) -> List[Dict[str, Any]]:
    """List the devices that are currently active in the Pushcut account."""
    return _get(api_key, "/devices")
