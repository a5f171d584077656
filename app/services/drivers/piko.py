"""
Piko VMS driver.

Cloud connectors talk to https://{systemId}.relay.vmsproxy.com with a
system-scoped OAuth token from the Piko cloud; local connectors talk to
https://{host}:{port} with a session token from /rest/v3/login/sessions.
"""
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from app.core.config import get_settings
from app.core.exceptions import PikoApiError
from app.models.connector_models import PikoConfig
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

PIKO_CLOUD_URL = "https://cloud.pikovms.com"
PIKO_CLIENT_ID = "3rdParty"
MAX_REDIRECTS = 5
TOKEN_EXPIRY_BUFFER_MS = 5 * 60 * 1000
DEFAULT_LOCAL_TOKEN_TTL_MS = 3600 * 1000

DEVICE_FIELDS = "id,deviceType,mac,model,name,serverId,status,url,vendor,mediaStreams"
SERVER_FIELDS = "id,name,osInfo,parameters.systemRuntime,parameters.physicalMemory,parameters.timeZoneInformation,status,storages,url,version"


class PikoErrorCode:
    MISSING_PARAMETER = "missingParameter"
    INVALID_PARAMETER = "invalidParameter"
    CANT_PROCESS_REQUEST = "cantProcessRequest"
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "badRequest"
    INTERNAL_SERVER_ERROR = "internalServerError"
    CONFLICT = "conflict"
    NOT_IMPLEMENTED = "notImplemented"
    NOT_FOUND = "notFound"
    UNSUPPORTED_MEDIA_TYPE = "unsupportedMediaType"
    SERVICE_UNAVAILABLE = "serviceUnavailable"
    UNAUTHORIZED = "unauthorized"
    SESSION_EXPIRED = "sessionExpired"
    SESSION_REQUIRED = "sessionRequired"
    NOT_ALLOWED = "notAllowed"


_ERROR_ID_STATUS = {
    PikoErrorCode.MISSING_PARAMETER: 400,
    PikoErrorCode.INVALID_PARAMETER: 400,
    PikoErrorCode.BAD_REQUEST: 400,
    PikoErrorCode.UNSUPPORTED_MEDIA_TYPE: 400,
    PikoErrorCode.UNAUTHORIZED: 401,
    PikoErrorCode.SESSION_EXPIRED: 401,
    PikoErrorCode.SESSION_REQUIRED: 401,
    PikoErrorCode.FORBIDDEN: 403,
    PikoErrorCode.NOT_FOUND: 404,
    PikoErrorCode.NOT_ALLOWED: 405,
    PikoErrorCode.CONFLICT: 409,
    PikoErrorCode.CANT_PROCESS_REQUEST: 500,
    PikoErrorCode.INTERNAL_SERVER_ERROR: 500,
    PikoErrorCode.NOT_IMPLEMENTED: 500,
    PikoErrorCode.SERVICE_UNAVAILABLE: 503,
}


def map_piko_error_response(error: Exception) -> Dict[str, Any]:
    """
    Map a Piko driver error onto the HTTP status to return to API clients.

    Returns:
        {"status": int, "message": str}
    """
    if isinstance(error, PikoApiError):
        message = error.error_string or str(error)
        if error.error_id in _ERROR_ID_STATUS:
            status_code = _ERROR_ID_STATUS[error.error_id]
        elif error.status_code:
            status_code = error.status_code
        else:
            status_code = 502
        return {"status": status_code, "message": message}

    message = str(error)
    if "Connector not found" in message:
        return {"status": 404, "message": message}
    return {"status": 500, "message": message}


def _now_ms() -> int:
    return int(time.time() * 1000)


class PikoClient:
    """Client bound to one Piko connector. Token changes are written to self.config.token."""

    def __init__(self, config: PikoConfig, connector_id: str = ""):
        self.config = config
        self.connector_id = connector_id
        self.config_changed = False
        self.timeout = settings.http_timeout_seconds

    @property
    def base_url(self) -> str:
        if self.config.type == "cloud":
            if not self.config.selected_system:
                raise PikoApiError("System ID is required for Piko Cloud API base URL.", error_id=PikoErrorCode.MISSING_PARAMETER)
            return f"https://{self.config.selected_system}.relay.vmsproxy.com"
        if not self.config.host or not self.config.port:
            raise PikoApiError("Host and Port are required for Piko Local API base URL.", error_id=PikoErrorCode.MISSING_PARAMETER)
        return f"https://{self.config.host}:{self.config.port}"

    @property
    def verify_tls(self) -> bool:
        return not (self.config.type == "local" and self.config.ignore_tls_errors)

    # Authentication

    def fetch_cloud_token(self, scope: Optional[str] = None) -> Dict[str, Any]:
        """Password-grant token from the Piko cloud, optionally scoped to one system."""
        if not self.config.username or not self.config.password:
            raise PikoApiError("Username and password are required for Piko Cloud token fetch.", status_code=400, error_id=PikoErrorCode.MISSING_PARAMETER)

        body = {
            "grant_type": "password",
            "response_type": "token",
            "client_id": PIKO_CLIENT_ID,
            "username": self.config.username,
            "password": self.config.password,
        }
        if scope:
            body["scope"] = scope

        try:
            response = requests.post(f"{PIKO_CLOUD_URL}/cdb/oauth2/token", json=body, headers={"Accept": "application/json"}, timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise PikoApiError(f"Failed to fetch Piko Cloud token: {e}") from e

        if not response.ok or not data.get("access_token"):
            message = data.get("error_description") or data.get("error") or data.get("message") or f"Piko Cloud auth failed (Status: {response.status_code})"
            raise PikoApiError(message, status_code=response.status_code, error_id=data.get("error"))

        if data.get("expires_at"):
            expires_at = int(data["expires_at"])
        elif data.get("expires_in"):
            expires_at = _now_ms() + int(data["expires_in"]) * 1000
        else:
            expires_at = _now_ms() + DEFAULT_LOCAL_TOKEN_TTL_MS

        return {
            "accessToken": data["access_token"],
            "refreshToken": data.get("refresh_token"),
            "expiresAt": expires_at,
            "scope": data.get("scope"),
        }

    def fetch_local_token(self) -> Dict[str, Any]:
        """Session token from a local Piko server."""
        if not (self.config.host and self.config.port and self.config.username and self.config.password):
            raise PikoApiError("Host, port, username, and password are required for local Piko token fetch.", status_code=400, error_id=PikoErrorCode.MISSING_PARAMETER)

        try:
            response = requests.post(
                f"{self.base_url}/rest/v3/login/sessions",
                json={"username": self.config.username, "password": self.config.password},
                headers={"Accept": "application/json"},
                verify=self.verify_tls,
                timeout=self.timeout
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise PikoApiError(f"Failed to fetch local Piko token: {e}") from e

        if not response.ok or not data.get("token"):
            message = data.get("message") or data.get("errorString") or data.get("error") or "Local auth response missing token or invalid structure."
            raise PikoApiError(message, status_code=response.status_code)

        expires_in_s = data.get("expiresInS")
        ttl_ms = expires_in_s * 1000 if isinstance(expires_in_s, (int, float)) and expires_in_s > 0 else DEFAULT_LOCAL_TOKEN_TTL_MS
        return {"accessToken": data["token"], "expiresAt": _now_ms() + int(ttl_ms), "sessionId": data.get("id")}

    def get_access_token(self, force_refresh: bool = False) -> str:
        token = self.config.token or {}
        expires_at = token.get("expiresAt") or 0
        if not force_refresh and token.get("accessToken") and _now_ms() < expires_at - TOKEN_EXPIRY_BUFFER_MS:
            return token["accessToken"]

        if self.config.type == "cloud":
            new_token = self.fetch_cloud_token(scope=f"cloudSystemId={self.config.selected_system}")
        else:
            new_token = self.fetch_local_token()

        self.config.token = new_token
        self.config_changed = True
        logger.info(f"[Piko][{self.connector_id}] Obtained new {self.config.type} token")
        return new_token["accessToken"]

    # Requests

    def request(
        self,
        path: str,
        method: str = "GET",
        query_params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        is_retry: bool = False
    ) -> Any:
        """
        Perform an authenticated JSON request against the system.

        Cloud relays answer with 307 redirects to the serving node; those are
        followed manually so the Authorization header is kept.

        Raises:
            PikoApiError: On HTTP or network failure
        """
        token = self.get_access_token(force_refresh=is_retry)
        request_headers = {"Accept": "application/json", "Authorization": f"Bearer {token}"}
        if headers:
            request_headers.update(headers)

        url = urljoin(self.base_url, path)
        redirects = 0
        while True:
            try:
                response = requests.request(
                    method,
                    url,
                    params=query_params,
                    json=body,
                    headers=request_headers,
                    verify=self.verify_tls,
                    allow_redirects=self.config.type != "cloud",
                    timeout=self.timeout
                )
            except requests.RequestException as e:
                raise PikoApiError(f"Network or fetch error: {e}") from e

            if self.config.type == "cloud" and response.status_code == 307:
                location = response.headers.get("Location")
                if not location:
                    raise PikoApiError("Redirect status 307 received but no Location header found.", status_code=307)
                redirects += 1
                if redirects > MAX_REDIRECTS:
                    raise PikoApiError(f"Exceeded maximum redirect limit ({MAX_REDIRECTS})", status_code=508)
                url = urljoin(url, location)
                logger.warning(f"[Piko][{self.connector_id}] Redirecting to {url}")
                continue
            break

        if response.status_code == 401 and not is_retry:
            logger.warning(f"[Piko][{self.connector_id}] Unauthorized on {path}, refreshing token and retrying")
            return self.request(path, method, query_params, body, headers, is_retry=True)

        if not response.ok:
            error_string = None
            error_id = None
            try:
                error_data = response.json()
                error_string = error_data.get("errorString") or None
                error_id = error_data.get("errorId") or None
            except ValueError:
                pass
            raise PikoApiError(
                error_string or f"Failed request ({response.status_code})",
                status_code=response.status_code,
                error_id=error_id,
                error_string=error_string
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise PikoApiError(f"Failed to parse successful JSON response: {e}", status_code=response.status_code) from e

    # API

    def get_system_devices(self) -> List[Dict[str, Any]]:
        data = self.request("/rest/v3/devices/", query_params={"_with": DEVICE_FIELDS})
        if not isinstance(data, list):
            raise PikoApiError("Piko devices response was not a valid array.", error_id=PikoErrorCode.INVALID_PARAMETER)
        logger.info(f"[Piko][{self.connector_id}] Fetched {len(data)} devices")
        return data

    def get_system_servers(self) -> List[Dict[str, Any]]:
        data = self.request("/rest/v3/servers", query_params={"_with": SERVER_FIELDS})
        servers = data.get("servers") if isinstance(data, dict) else data
        if not isinstance(servers, list):
            raise PikoApiError("Piko servers response did not contain a valid servers array.", error_id=PikoErrorCode.INVALID_PARAMETER)
        logger.info(f"[Piko][{self.connector_id}] Fetched {len(servers)} servers")
        return servers

    def create_event(self, source: str, caption: str, description: str, timestamp: str, camera_refs: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Create a generic event in the Piko system.

        Raises:
            PikoApiError: If Piko reports an error code other than '0'
        """
        payload = {
            "source": source,
            "caption": caption,
            "description": description,
            "timestamp": timestamp,
        }
        if camera_refs:
            payload["metadata"] = {"cameraRefs": camera_refs}

        result = self.request("/api/createEvent", method="POST", body=payload) or {}
        if result.get("error") and str(result["error"]) != "0":
            message = f"Piko createEvent API error: {result.get('errorString') or 'Unknown'} (Code: {result['error']})"
            raise PikoApiError(message, error_id=result.get("errorId"), error_string=result.get("errorString"))
        logger.info(f"[Piko][{self.connector_id}] Created event. Source: {source}")
        return result

    def create_bookmark(self, camera_id: str, name: str, description: str, start_time_ms: int, duration_ms: int, tags: Optional[List[str]] = None):
        """Create a bookmark on one camera."""
        if not camera_id:
            raise PikoApiError("Piko Camera ID required.", status_code=400, error_id=PikoErrorCode.MISSING_PARAMETER)
        payload = {
            "name": name,
            "description": description,
            "startTimeMs": start_time_ms,
            "durationMs": duration_ms,
            "tags": tags or [],
        }
        result = self.request(f"/rest/v3/devices/{camera_id}/bookmarks", method="POST", body=payload)
        if isinstance(result, dict) and result.get("error") and str(result["error"]) != "0":
            message = f"Piko createBookmark API error: {result.get('errorString') or 'Unknown'} (Code: {result['error']})"
            raise PikoApiError(message, error_id=result.get("errorId"), error_string=result.get("errorString"))
        logger.info(f"[Piko][{self.connector_id}] Created bookmark '{name}' on camera {camera_id}")

    def get_systems(self) -> List[Dict[str, Any]]:
        """List cloud systems visible to the account (cloud connectors only)."""
        token = self.fetch_cloud_token()
        try:
            response = requests.get(
                f"{PIKO_CLOUD_URL}/cdb/systems",
                headers={"Authorization": f"Bearer {token['accessToken']}", "Accept": "application/json"},
                timeout=self.timeout
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise PikoApiError(f"Failed to fetch Piko systems: {e}") from e
        if not response.ok:
            raise PikoApiError(data.get("error_description") or data.get("error") or f"Piko getSystems failed (Status: {response.status_code})", status_code=response.status_code)
        systems = data.get("systems")
        if not isinstance(systems, list):
            raise PikoApiError("Piko systems response did not contain a valid systems array", error_id=PikoErrorCode.INVALID_PARAMETER)
        return [
            {"id": s.get("id"), "name": s.get("name"), "version": s.get("version"), "health": s.get("stateOfHealth"), "role": s.get("accessRole")}
            for s in systems
        ]

    def test_connection(self) -> Dict[str, Any]:
        try:
            if self.config.type == "cloud":
                systems = self.get_systems()
                return {"connected": True, "message": f"Successfully connected to Piko Cloud. Found {len(systems)} systems.", "systems": systems}
            self.fetch_local_token()
            return {"connected": True, "message": f"Successfully authenticated with Piko at {self.config.host}:{self.config.port}.", "systems": []}
        except PikoApiError as e:
            logger.error(f"[Piko][{self.connector_id}] Connection test failed: {e}")
            return {"connected": False, "message": e.error_string or str(e)}
