"""
Exception types raised by vendor drivers and the automation engine.
"""
from typing import Optional


class FusionBridgeError(Exception):
    """Base class for application errors."""


class ConnectorConfigError(FusionBridgeError):
    """Connector configuration is missing or cannot be parsed."""


class YoLinkApiError(FusionBridgeError):
    """Error returned by the YoLink API (non-'000000' code or HTTP failure)."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class PikoApiError(FusionBridgeError):
    """Error returned by a Piko system or the Piko cloud."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_id: Optional[str] = None,
        error_string: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_id = error_id
        self.error_string = error_string


class GeneaApiError(FusionBridgeError):
    """Error returned by the Genea API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServiceApiError(FusionBridgeError):
    """Error from a notification/AI/issue-tracker service driver."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class AutomationActionError(FusionBridgeError):
    """An automation action could not be executed."""
