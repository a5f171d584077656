"""Pushover push notification driver."""
from typing import Any, Dict, Optional

import requests

from app.core.config import get_settings
from app.core.exceptions import ServiceApiError
from app.models.service_models import PushoverMessage
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

PUSHOVER_API_BASE_URL = "https://api.pushover.net/1"


def _errors_of(response: requests.Response, data: Any) -> str:
    errors = data.get("errors") if isinstance(data, dict) else None
    if isinstance(errors, list) and errors:
        return ", ".join(str(e) for e in errors)
    return f"HTTP Error: {response.status_code} - {response.reason}"


def send_notification(api_token: str, user_key: str, message: PushoverMessage) -> Dict[str, Any]:
    """
    Send a message to a Pushover user or group.

    Emergency priority (2) requires retry and expire.

    Returns:
        {"request": str, "receipt": str | None}

    Raises:
        ServiceApiError: On missing parameters, API rejection or network failure
    """
    if not api_token or not user_key:
        raise ServiceApiError("Pushover", "API token or Group key is missing.")

    payload: Dict[str, Any] = {"token": api_token, "user": user_key}
    payload.update(message.model_dump(exclude_none=True, exclude={"retry", "expire", "attachment_base64", "attachment_type"}))

    if message.attachment_base64 and message.attachment_type:
        payload["attachment_base64"] = message.attachment_base64
        payload["attachment_type"] = message.attachment_type

    if message.priority == 2:
        if message.retry is None or message.expire is None:
            raise ServiceApiError("Pushover", "Retry and Expire parameters are required for emergency priority.")
        payload["retry"] = message.retry
        payload["expire"] = message.expire

    logger.info(f"[Pushover] Sending notification to {user_key[:5]}... with title: {message.title or '(App Name)'}")

    try:
        response = requests.post(f"{PUSHOVER_API_BASE_URL}/messages.json", json=payload, timeout=settings.http_timeout_seconds)
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise ServiceApiError("Pushover", f"Failed to send notification: {e}") from e

    if response.ok and data.get("status") == 1:
        logger.info(f"[Pushover] Notification sent. Request ID: {data.get('request')}")
        return {"request": data.get("request"), "receipt": data.get("receipt")}

    message_text = _errors_of(response, data)
    logger.error(f"[Pushover] Failed to send notification: {message_text}")
    raise ServiceApiError("Pushover", f"Pushover API Error: {message_text}", status_code=response.status_code)


def get_group_info(api_token: str, group_key: str) -> Dict[str, Any]:
    """
    Return the group's name and users.

    Raises:
        ServiceApiError: On failure
    """
    if not api_token or not group_key:
        raise ServiceApiError("Pushover", "API token or Group key is missing.")
    try:
        response = requests.get(
            f"{PUSHOVER_API_BASE_URL}/groups/{group_key}.json",
            params={"token": api_token},
            headers={"Accept": "application/json"},
            timeout=settings.http_timeout_seconds
        )
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise ServiceApiError("Pushover", f"Failed to retrieve group info: {e}") from e

    if response.ok and data.get("status") == 1:
        return {"name": data.get("name"), "users": data.get("users", [])}
    raise ServiceApiError("Pushover", f"Pushover API Error: {_errors_of(response, data)}", status_code=response.status_code)


def validate_user(api_token: str, user: str, device: Optional[str] = None) -> Dict[str, Any]:
    """
    Check a user (or group) key, optionally for one device.

    Returns:
        {"valid": bool, "devices": [...], "errors": [...]}
    """
    if not api_token:
        raise ServiceApiError("Pushover", "API token is missing.")
    payload = {"token": api_token, "user": user}
    if device:
        payload["device"] = device
    try:
        response = requests.post(f"{PUSHOVER_API_BASE_URL}/users/validate.json", json=payload, timeout=settings.http_timeout_seconds)
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise ServiceApiError("Pushover", f"Failed to validate user: {e}") from e

    valid = data.get("status") == 1
    logger.info(f"[Pushover] Validation for user {user[:5]}... {'succeeded' if valid else 'failed'}")
    return {"valid": valid, "devices": data.get("devices", []), "errors": data.get("errors", [])}
