from unittest.mock import patch

import pytest

from app.core.exceptions import PikoApiError, YoLinkApiError
from app.models.connector_models import YoLinkConfig
from app.services.drivers import linear
from app.services.drivers.piko import PikoErrorCode, map_piko_error_response
from app.services.drivers.yolink import YoLinkClient, _now_ms, get_yolink_error_message

from tests.conftest import FakeResponse


def token_response(token="tok-1"):
    return FakeResponse(200, {"access_token": token, "refresh_token": "ref-1", "expires_in": 7200})


def test_cached_token_is_reused():
    config = YoLinkConfig(uaid="ua", client_secret="cs", access_token="cached", token_expires_at=_now_ms() + 3600 * 1000)
    client = YoLinkClient(config)
    with patch("app.services.drivers.yolink.requests.post") as post:
        assert client.get_access_token() == "cached"
    post.assert_not_called()
    assert client.config_changed is False


def test_expiring_token_is_refreshed():
    config = YoLinkConfig(uaid="ua", client_secret="cs", access_token="old", refresh_token="ref-0",
                          token_expires_at=_now_ms() + 60 * 1000)
    client = YoLinkClient(config)
    with patch("app.services.drivers.yolink.requests.post", return_value=token_response("fresh")) as post:
        assert client.get_access_token() == "fresh"
    assert post.call_args.kwargs["data"]["grant_type"] == "refresh_token"
    assert client.config_changed is True
    assert client.config.refresh_token == "ref-1"


def test_token_error_code_retries_once():
    config = YoLinkConfig(uaid="ua", client_secret="cs", access_token="cached", token_expires_at=_now_ms() + 3600 * 1000)
    client = YoLinkClient(config)
    responses = [
        FakeResponse(200, {"code": "010104", "desc": "Token expired"}),
        token_response("fresh"),
        FakeResponse(200, {"code": "000000", "data": {"id": "home-1"}}),
    ]
    with patch("app.services.drivers.yolink.requests.post", side_effect=responses) as post:
        assert client.get_home_info() == "home-1"
    assert post.call_count == 3
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh"


def test_api_error_raises_with_mapped_message():
    config = YoLinkConfig(uaid="ua", client_secret="cs", access_token="cached", token_expires_at=_now_ms() + 3600 * 1000)
    client = YoLinkClient(config)
    with patch("app.services.drivers.yolink.requests.post", return_value=FakeResponse(200, {"code": "020101"})):
        with pytest.raises(YoLinkApiError) as exc_info:
            client.get_device_list()
    assert "Device does not exist" in str(exc_info.value)
    assert exc_info.value.code == "020101"


def test_set_device_state_rejects_sensors():
    config = YoLinkConfig(uaid="ua", client_secret="cs")
    with pytest.raises(YoLinkApiError):
        YoLinkClient(config).set_device_state("d1", "t1", "DoorSensor", "open")


def test_yolink_error_message_fallbacks():
    assert get_yolink_error_message({"code": "999", "msg": "Boom"}, 200) == "YoLink API Error: Boom (Code: 999)"
    assert get_yolink_error_message(None, 503) == "YoLink API request failed (Status: 503)"


def test_piko_error_mapping():
    assert map_piko_error_response(PikoApiError("x", error_id=PikoErrorCode.SESSION_EXPIRED))["status"] == 401
    assert map_piko_error_response(PikoApiError("x", error_id=PikoErrorCode.NOT_FOUND))["status"] == 404
    assert map_piko_error_response(PikoApiError("x", status_code=418))["status"] == 418
    assert map_piko_error_response(PikoApiError("x"))["status"] == 502
    assert map_piko_error_response(ValueError("Connector not found"))["status"] == 404
    assert map_piko_error_response(ValueError("boom"))["status"] == 500


def test_linear_mock_mode_makes_no_request(monkeypatch, settings):
    monkeypatch.setattr(settings, "linear_use_mock_data", True)
    with patch("app.services.drivers.linear.requests.post") as post:
        result = linear.get_issues("any-key")
    post.assert_not_called()
    assert result["issues"]
    assert all(issue["identifier"].startswith("FUS-") for issue in result["issues"])
