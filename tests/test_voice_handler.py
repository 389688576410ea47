"""Tests for the Alexa Smart Home Lambda handler."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from ledrelay.cloud.backend import AwsRelayBackend, RelayBackend
from ledrelay.cloud.identity import CognitoIdentityResolver
from ledrelay.cloud.models import Profile, Scene
from ledrelay.errors import AuthError, DispatchError
from ledrelay.voice import handler

TOKEN = "access-token"


class FakeBackend(RelayBackend):
    """In-memory backend recording dispatched commands."""

    def __init__(self):
        self.profile = Profile(
            user_id="user-1",
            property_name="Beach House",
            device_id="dev-1",
            last_known_state={"on": True, "bri": 128},
        )
        self.scenes = [
            Scene(id="movie", name="Movie Night", brightness=60),
            Scene(id="party", name="Party", brightness=180, effect_id=9),
            Scene(id="off", name="All Off", type="system"),
        ]
        self.dispatched = []
        self.auth_error = None
        self.dispatch_error = None

    def resolve_identity(self, access_token):
        if self.auth_error:
            raise self.auth_error
        assert access_token == TOKEN
        return "user-1"

    def get_profile(self, user_id):
        return self.profile

    def get_scenes(self, user_id):
        return self.scenes

    def dispatch_command(self, user_id, command):
        if self.dispatch_error:
            raise self.dispatch_error
        self.dispatched.append(command)


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr(handler, "backend", fake)
    return fake


def _directive(namespace, name, endpoint_id="relay-main", payload=None, correlation="corr-1"):
    directive = {
        "header": {
            "namespace": namespace,
            "name": name,
            "payloadVersion": "3",
            "messageId": "in-1",
        },
        "payload": payload or {},
    }
    if correlation:
        directive["header"]["correlationToken"] = correlation
    if endpoint_id is not None:
        directive["endpoint"] = {
            "endpointId": endpoint_id,
            "scope": {"type": "BearerToken", "token": TOKEN},
        }
    return {"directive": directive}


def _discover():
    return {
        "directive": {
            "header": {
                "namespace": "Alexa.Discovery",
                "name": "Discover",
                "payloadVersion": "3",
                "messageId": "in-1",
            },
            "payload": {"scope": {"type": "BearerToken", "token": TOKEN}},
        }
    }


def _header(response):
    return response["event"]["header"]


def _properties(response):
    return {(p["namespace"], p["name"]): p["value"] for p in response["context"]["properties"]}


def _error(response):
    assert _header(response)["name"] == "ErrorResponse"
    return response["event"]["payload"]["type"]


class TestDiscovery:
    """Tests for Alexa.Discovery."""

    def test_main_and_scene_endpoints(self, backend):
        response = handler.lambda_handler(_discover(), None)

        assert _header(response)["namespace"] == "Alexa.Discovery"
        assert _header(response)["name"] == "Discover.Response"
        assert "correlationToken" not in _header(response)
        endpoints = response["event"]["payload"]["endpoints"]
        assert [e["endpointId"] for e in endpoints] == ["relay-main", "scene-movie", "scene-party"]

        main, movie, _ = endpoints
        assert main["friendlyName"] == "Beach House"
        assert main["displayCategories"] == ["LIGHT"]
        assert len(main["capabilities"]) == 4
        assert {c["interface"] for c in main["capabilities"]} == {
            "Alexa",
            "Alexa.PowerController",
            "Alexa.BrightnessController",
            "Alexa.EndpointHealth",
        }
        assert movie["friendlyName"] == "Movie Night"
        assert movie["displayCategories"] == ["SCENE_TRIGGER"]
        assert len(movie["capabilities"]) == 1
        assert movie["capabilities"][0]["interface"] == "Alexa.SceneController"
        assert movie["capabilities"][0]["supportsDeactivation"] is False

    def test_invalid_token(self, backend):
        backend.auth_error = AuthError("Invalid access token")
        response = handler.lambda_handler(_discover(), None)
        assert _error(response) == "INVALID_AUTHORIZATION_CREDENTIAL"

    def test_expired_token(self, backend):
        backend.auth_error = AuthError("Invalid access token", expired=True)
        response = handler.lambda_handler(_discover(), None)
        assert _error(response) == "EXPIRED_AUTHORIZATION_CREDENTIAL"

    @pytest.mark.parametrize(
        "failure",
        [
            EndpointConnectionError(endpoint_url="https://cognito-idp.eu-central-1.amazonaws.com"),
            ClientError(
                {"Error": {"Code": "TooManyRequestsException", "Message": "Rate exceeded"}}, "GetUser"
            ),
        ],
    )
    def test_identity_outage_is_internal_error(self, monkeypatch, failure):
        """Cognito failures must not tell Alexa the account link is broken."""
        cognito = MagicMock()
        cognito.get_user.side_effect = failure
        aws_backend = AwsRelayBackend(
            CognitoIdentityResolver(cognito), MagicMock(), MagicMock(), MagicMock()
        )
        monkeypatch.setattr(handler, "backend", aws_backend)

        response = handler.lambda_handler(_discover(), None)

        assert _error(response) == "INTERNAL_ERROR"


class TestPower:
    """Tests for Alexa.PowerController."""

    def test_turn_on(self, backend):
        response = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)

        assert [c.payload for c in backend.dispatched] == [{"on": True}]
        assert backend.dispatched[0].action_name == "setState"
        assert _header(response)["namespace"] == "Alexa"
        assert _header(response)["name"] == "Response"
        assert _header(response)["correlationToken"] == "corr-1"
        assert response["event"]["endpoint"]["endpointId"] == "relay-main"
        assert _properties(response)[("Alexa.PowerController", "powerState")] == "ON"

    def test_turn_off(self, backend):
        response = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOff"), None)
        assert [c.payload for c in backend.dispatched] == [{"on": False}]
        assert _properties(response)[("Alexa.PowerController", "powerState")] == "OFF"

    def test_turn_on_twice_dispatches_twice(self, backend):
        handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        assert len(backend.dispatched) == 2

    def test_message_ids_unique(self, backend):
        first = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        second = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        assert _header(first)["messageId"] != _header(second)["messageId"]

    def test_unknown_endpoint(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.PowerController", "TurnOn", endpoint_id="other"), None
        )
        assert _error(response) == "NO_SUCH_ENDPOINT"
        assert backend.dispatched == []

    def test_expired_token(self, backend):
        backend.auth_error = AuthError("Invalid access token", expired=True)
        response = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        assert _error(response) == "EXPIRED_AUTHORIZATION_CREDENTIAL"
        assert _header(response)["correlationToken"] == "corr-1"

    def test_dispatch_failure(self, backend):
        backend.dispatch_error = DispatchError("No device provisioned")
        response = handler.lambda_handler(_directive("Alexa.PowerController", "TurnOn"), None)
        assert _error(response) == "INTERNAL_ERROR"


class TestReportState:
    """Tests for Alexa.ReportState."""

    def test_reports_last_known_state(self, backend):
        response = handler.lambda_handler(_directive("Alexa", "ReportState"), None)

        assert _header(response)["name"] == "StateReport"
        properties = _properties(response)
        assert properties[("Alexa.PowerController", "powerState")] == "ON"
        assert properties[("Alexa.BrightnessController", "brightness")] == 50
        assert properties[("Alexa.EndpointHealth", "connectivity")] == {"value": "OK"}
        assert backend.dispatched == []

    def test_unreachable(self, backend):
        backend.profile.last_known_state = {"on": False, "bri": 0, "online": False}
        response = handler.lambda_handler(_directive("Alexa", "ReportState"), None)
        properties = _properties(response)
        assert properties[("Alexa.PowerController", "powerState")] == "OFF"
        assert properties[("Alexa.EndpointHealth", "connectivity")] == {"value": "UNREACHABLE"}


class TestBrightness:
    """Tests for Alexa.BrightnessController."""

    def test_set_brightness(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.BrightnessController", "SetBrightness", payload={"brightness": 20}),
            None,
        )
        assert [c.payload for c in backend.dispatched] == [{"on": True, "bri": 51}]
        assert _properties(response)[("Alexa.BrightnessController", "brightness")] == 20

    def test_adjust_brightness(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.BrightnessController", "AdjustBrightness", payload={"brightnessDelta": 25}),
            None,
        )
        assert _properties(response)[("Alexa.BrightnessController", "brightness")] == 75
        assert backend.dispatched[0].payload == {"on": True, "bri": 191}

    def test_adjust_brightness_clamped(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.BrightnessController", "AdjustBrightness", payload={"brightnessDelta": -100}),
            None,
        )
        assert _properties(response)[("Alexa.BrightnessController", "brightness")] == 0

    @pytest.mark.parametrize("value", [150, -1, "bright", None])
    def test_invalid_brightness(self, backend, value):
        response = handler.lambda_handler(
            _directive("Alexa.BrightnessController", "SetBrightness", payload={"brightness": value}),
            None,
        )
        assert _error(response) == "INVALID_VALUE"
        assert backend.dispatched == []


class TestScenes:
    """Tests for Alexa.SceneController."""

    def test_activate(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.SceneController", "Activate", endpoint_id="scene-party"), None
        )

        assert [c.payload for c in backend.dispatched] == [
            {"on": True, "bri": 180, "seg": [{"id": 0, "fx": 9}]}
        ]
        assert _header(response)["namespace"] == "Alexa.SceneController"
        assert _header(response)["name"] == "ActivationStarted"
        assert response["event"]["endpoint"]["endpointId"] == "scene-party"
        assert response["event"]["payload"]["cause"] == {"type": "VOICE_INTERACTION"}
        assert response["event"]["payload"]["timestamp"].endswith("Z")

    def test_activate_default_brightness(self, backend):
        backend.scenes.append(Scene(id="plain", name="Plain"))
        handler.lambda_handler(
            _directive("Alexa.SceneController", "Activate", endpoint_id="scene-plain"), None
        )
        assert backend.dispatched[0].payload == {"on": True, "bri": 200}

    def test_scene_not_found(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.SceneController", "Activate", endpoint_id="scene-missing"), None
        )
        assert _error(response) == "NO_SUCH_ENDPOINT"
        assert response["event"]["payload"]["message"] == "Scene not found"
        assert backend.dispatched == []

    def test_non_scene_endpoint(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.SceneController", "Activate", endpoint_id="relay-main"), None
        )
        assert _error(response) == "NO_SUCH_ENDPOINT"

    def test_deactivate(self, backend):
        response = handler.lambda_handler(
            _directive("Alexa.SceneController", "Deactivate", endpoint_id="scene-movie"), None
        )
        assert [c.payload for c in backend.dispatched] == [{"on": False}]
        assert _header(response)["name"] == "DeactivationStarted"


class TestRouting:
    """Tests for routing and error mapping."""

    def test_accept_grant(self, backend):
        event = _directive(
            "Alexa.Authorization",
            "AcceptGrant",
            endpoint_id=None,
            correlation=None,
            payload={"grant": {"type": "OAuth2.AuthorizationCode", "code": "abc"}},
        )
        response = handler.lambda_handler(event, None)
        assert _header(response)["namespace"] == "Alexa.Authorization"
        assert _header(response)["name"] == "AcceptGrant.Response"
        assert response["event"]["payload"] == {}

    def test_unsupported_directive(self, backend):
        response = handler.lambda_handler(_directive("Alexa.ColorController", "SetColor"), None)
        assert _error(response) == "INVALID_DIRECTIVE"

    def test_garbage_event(self, backend):
        assert _error(handler.lambda_handler({}, None)) == "INVALID_DIRECTIVE"

    def test_unexpected_exception(self, backend, monkeypatch):
        def explode(user_id):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(backend, "get_profile", explode)
        response = handler.lambda_handler(_directive("Alexa", "ReportState"), None)
        assert _error(response) == "INTERNAL_ERROR"
        assert _header(response)["correlationToken"] == "corr-1"
