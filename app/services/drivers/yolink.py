"""
YoLink Open API v2 driver.

Every call is a JSON POST to a single endpoint carrying a "method" field and a
Bearer token. Tokens come from the OAuth token endpoint and are cached in the
connector config (accessToken, refreshToken, tokenExpiresAt).
"""
import time
from typing import Any, Dict, List, Optional

import requests

from app.core.config import get_settings
from app.core.exceptions import YoLinkApiError
from app.models.connector_models import YoLinkConfig
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

YOLINK_API_URL = "https://api.yosmart.com/open/yolink/v2/api"
YOLINK_TOKEN_URL = "https://api.yosmart.com/open/yolink/token"

SUCCESS_CODE = "000000"
TOKEN_ERROR_CODES = {"000103", "010104"}

# Refresh tokens this long before they actually expire
TOKEN_EXPIRY_BUFFER_MS = 5 * 60 * 1000

YOLINK_ERROR_MESSAGES = {
    "000103": "API token is invalid.",
    "000106": "Invalid UAID.",
    "010101": "Invalid CSID (Authentication Error).",
    "010102": "Invalid SecKey (Authentication Error).",
    "010103": "Invalid Client Secret.",
    "010104": "API token has expired.",
    "000101": "Cannot connect to Hub.",
    "000201": "Cannot connect to the device (Offline?).",
    "000203": "Cannot connect to the device (Offline?).",
    "020104": "Device is busy, please try again later.",
    "010000": "YoLink service is temporarily unavailable.",
    "010001": "YoLink internal connection unavailable.",
    "010301": "API rate limit reached. Please try again later.",
    "010200": "Invalid request parameters sent to YoLink.",
    "010204": "Invalid data packet sent to YoLink.",
    "020101": "Device does not exist or is not associated with this account.",
}

# Raw device types that share another type's API namespace
_METHOD_NAMESPACE = {
    "MultiOutlet": "Outlet",
}


def get_yolink_error_message(data: Any, status_code: int) -> str:
    """
    Build a user-facing message from a YoLink error response.

    Args:
        data: Parsed JSON body (may be anything)
        status_code: HTTP status code of the response

    Returns:
        Human readable error message
    """
    body = data if isinstance(data, dict) else {}
    code = body.get("code")
    msg = body.get("msg") or body.get("desc")

    if code in YOLINK_ERROR_MESSAGES:
        return YOLINK_ERROR_MESSAGES[code]
    if msg:
        return f"YoLink API Error: {msg}" + (f" (Code: {code})" if code else "")
    if code:
        return f"YoLink API Error Code: {code}"
    return f"YoLink API request failed (Status: {status_code})"


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_token_expiring(expires_at_ms: Optional[int]) -> bool:
    if not expires_at_ms:
        return True
    return _now_ms() >= expires_at_ms - TOKEN_EXPIRY_BUFFER_MS


class YoLinkClient:
    """
    Client bound to one YoLink connector.

    Token refreshes update ``self.config``; callers check ``config_changed``
    and persist the new config back to the connector.
    """

    def __init__(self, config: YoLinkConfig, connector_id: str = ""):
        self.config = config
        self.connector_id = connector_id
        self.config_changed = False
        self.timeout = settings.http_timeout_seconds

    # Token management

    def _request_token(self, form: Dict[str, str], label: str) -> Dict[str, Any]:
        try:
            response = requests.post(
                YOLINK_TOKEN_URL,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise YoLinkApiError(f"Network error requesting {label} YoLink token: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok or not isinstance(data.get("access_token"), str) or not isinstance(data.get("expires_in"), (int, float)):
            message = get_yolink_error_message(data, response.status_code)
            logger.error(f"[YoLink][{self.connector_id}] Failed to get {label} token: {message}")
            raise YoLinkApiError(f"Failed to get {label} YoLink token: {message}", code=data.get("code"), status_code=response.status_code)

        return data

    def _apply_token(self, data: Dict[str, Any]):
        self.config.access_token = data["access_token"]
        self.config.refresh_token = data.get("refresh_token") or self.config.refresh_token
        self.config.token_expires_at = _now_ms() + int(data["expires_in"]) * 1000
        self.config_changed = True

    def get_access_token(self, force_refresh: bool = False) -> str:
        """
        Return a valid access token: cached if not expiring, else refreshed,
        else newly issued from client credentials.

        Raises:
            YoLinkApiError: If no token could be obtained
        """
        if not force_refresh and self.config.access_token and not is_token_expiring(self.config.token_expires_at):
            return self.config.access_token

        if self.config.refresh_token and self.config.uaid:
            try:
                data = self._request_token({
                    "grant_type": "refresh_token",
                    "client_id": self.config.uaid,
                    "refresh_token": self.config.refresh_token,
                }, "refreshed")
                self._apply_token(data)
                logger.info(f"[YoLink][{self.connector_id}] Token refreshed")
                return self.config.access_token
            except YoLinkApiError as e:
                logger.warning(f"[YoLink][{self.connector_id}] Token refresh failed, requesting new token: {e}")

        if not self.config.uaid or not self.config.client_secret:
            raise YoLinkApiError("Missing YoLink UAID or Client Secret.")

        data = self._request_token({
            "grant_type": "client_credentials",
            "client_id": self.config.uaid,
            "client_secret": self.config.client_secret,
        }, "new")
        self._apply_token(data)
        logger.info(f"[YoLink][{self.connector_id}] New token issued")
        return self.config.access_token

    # API calls

    def call(self, body: Dict[str, Any], operation: str, is_retry: bool = False) -> Any:
        """
        Execute a YoLink API method.

        Args:
            body: Request body (method, targetDevice, token, params, ...)
            operation: Name used in log lines
            is_retry: Set on the single retry after a token error

        Returns:
            The 'data' member of the response

        Raises:
            YoLinkApiError: On HTTP failure or a non-success YoLink code
        """
        token = self.get_access_token(force_refresh=is_retry)
        logger.debug(f"[YoLink][{self.connector_id}] {operation} request: {body.get('method')}")

        try:
            response = requests.post(
                YOLINK_API_URL,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise YoLinkApiError(f"Network error during YoLink {operation}: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        code = data.get("code") if isinstance(data, dict) else None
        if not response.ok or code != SUCCESS_CODE:
            message = get_yolink_error_message(data, response.status_code)
            if not is_retry and code in TOKEN_ERROR_CODES:
                logger.warning(f"[YoLink][{self.connector_id}] Token error ({code}) during {operation}, refreshing and retrying")
                return self.call(body, operation, is_retry=True)
            logger.error(f"[YoLink][{self.connector_id}] {operation} failed: {message}")
            raise YoLinkApiError(f"Failed to execute YoLink {operation}: {message}", code=code, status_code=response.status_code)

        return data.get("data")

    def get_home_info(self) -> str:
        """Return the YoLink home id for this account."""
        data = self.call({"method": "Home.getGeneralInfo", "params": {}}, "getHomeInfo")
        home_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(home_id, str) or not home_id:
            raise YoLinkApiError("YoLink home info response did not contain a valid home ID.")
        return home_id

    def get_device_list(self) -> List[Dict[str, Any]]:
        """Return the raw device list of the home."""
        data = self.call({"method": "Home.getDeviceList", "params": {}}, "getDeviceList")
        devices = data.get("devices") if isinstance(data, dict) else None
        if not isinstance(devices, list):
            logger.info(f"[YoLink][{self.connector_id}] No devices returned from YoLink API")
            return []
        logger.info(f"[YoLink][{self.connector_id}] Retrieved {len(devices)} devices")
        return devices

    def get_device_state(self, device_id: str, device_token: str, raw_device_type: str) -> Any:
        """
        Fetch the live state of one device via '<Type>.getState'.

        Returns:
            The 'data' object, e.g. {"online": true, "state": {"state": "closed", ...}}
        """
        if not device_id or not device_token:
            raise YoLinkApiError("Missing YoLink deviceId or deviceToken for getting state.")
        namespace = _METHOD_NAMESPACE.get(raw_device_type, raw_device_type)
        return self.call({
            "method": f"{namespace}.getState",
            "targetDevice": device_id,
            "token": device_token,
        }, f"getDeviceState ({namespace})")

    def set_device_state(self, device_id: str, device_token: str, raw_device_type: str, target_state: str) -> Any:
        """
        Switch an outlet or switch on/off.

        Args:
            target_state: 'open' or 'close'
        """
        if raw_device_type not in ("Switch", "Outlet", "MultiOutlet"):
            raise YoLinkApiError(f"Cannot set state for unsupported device type: {raw_device_type}")
        if target_state not in ("open", "close"):
            raise YoLinkApiError(f"Unsupported target state: {target_state}")
        namespace = _METHOD_NAMESPACE.get(raw_device_type, raw_device_type)
        return self.call({
            "method": f"{namespace}.setState",
            "targetDevice": device_id,
            "token": device_token,
            "params": {"state": target_state},
        }, f"setDeviceState ({namespace})")

    def test_connection(self) -> bool:
        """Return True when a token can be obtained and the home info read."""
        try:
            self.get_home_info()
            return True
        except YoLinkApiError as e:
            logger.error(f"[YoLink][{self.connector_id}] Connection test failed: {e}")
            return False
