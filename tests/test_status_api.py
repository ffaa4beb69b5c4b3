# =============================================================================
# STATUS API CLIENT TESTS
# =============================================================================
# Signed headers and /info parsing.
# =============================================================================

from unittest.mock import MagicMock

import pytest
import requests
from eth_account import Account
from eth_account.messages import encode_defunct

from enclave_deploy.domain.errors import AuthorizationError, NetworkError
from enclave_deploy.infra.status_api import (
    CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION,
    StatusApiClient,
    auth_message,
)

BASE_URL = "https://userapi.example.test/"
APP_ID = "0x1111111111111111111111111111111111111111"
EVM_ADDRESS = "0x2222222222222222222222222222222222222222"
NOW = 1_700_000_000


def _response(status_code=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


def _app(status="Running", ip="1.2.3.4", evm=None):
    return {
        "addresses": {"data": {"evmAddresses": evm if evm is not None else [], "solanaAddresses": []}},
        "app_status": status,
        "ip": ip,
        "machine_type": "g1-standard-4t",
    }


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session, private_key):
    return StatusApiClient(BASE_URL, private_key=private_key, session=session, clock=lambda: NOW)


class TestAuthHeaders:
    """Tests for request signing."""

    def test_message_layout(self):
        """The signed message is the permission and a 32-byte expiry in hex."""
        message = auth_message("0x0e67b22f", 300)
        assert message == "0x0e67b22f" + "0" * 61 + "12c"

    def test_headers(self, client, caller_address):
        """Every auth header is present and well formed."""
        headers = client.auth_headers(CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION)

        assert headers["X-Auth-Address"] == caller_address
        assert headers["X-Auth-Permission"] == CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION
        assert headers["X-Auth-Expiry"] == str(NOW + 300)
        assert len(headers["X-Auth-Signature-R"]) == 66
        assert len(headers["X-Auth-Signature-S"]) == 66
        assert headers["X-Auth-Signature-V"] in ("0x1b", "0x1c")

    def test_signature_recovers_to_caller(self, client, caller_address):
        """The signature recovers to the caller's address."""
        headers = client.auth_headers(CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION)
        signature = bytes.fromhex(
            headers["X-Auth-Signature-R"][2:] + headers["X-Auth-Signature-S"][2:] + headers["X-Auth-Signature-V"][2:]
        )
        message = encode_defunct(text=auth_message(CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION, NOW + 300))

        assert Account.recover_message(message, signature=signature) == caller_address

    def test_no_key(self, session):
        """Signing without a key is an authorization error."""
        with pytest.raises(AuthorizationError):
            StatusApiClient(BASE_URL, session=session).auth_headers(CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION)


class TestGetInfos:
    """Tests for /info."""

    def test_parses_apps(self, client, session):
        """Each app entry becomes an AppInfo."""
        session.get.return_value = _response(body={"apps": [_app(evm=[EVM_ADDRESS])]})

        (info,) = client.get_infos([APP_ID])

        assert info.address == EVM_ADDRESS
        assert info.status == "Running"
        assert info.ip == "1.2.3.4"
        assert info.machine_type == "g1-standard-4t"

    def test_request_shape(self, client, session):
        """App ids are joined into one signed GET."""
        session.get.return_value = _response(body={"apps": []})

        client.get_infos([APP_ID, EVM_ADDRESS])

        args, kwargs = session.get.call_args
        assert args[0] == "https://userapi.example.test/info"
        assert kwargs["params"] == {"apps": f"{APP_ID},{EVM_ADDRESS}"}
        assert kwargs["headers"]["X-Auth-Permission"] == CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION

    def test_falls_back_to_requested_id(self, client, session):
        """Entries without an EVM address take the requested id."""
        session.get.return_value = _response(body={"apps": [_app(), _app(status="Stopped")]})

        infos = client.get_infos([APP_ID, EVM_ADDRESS])

        assert [i.address.lower() for i in infos] == [APP_ID, EVM_ADDRESS]
        assert infos[1].status == "Stopped"

    def test_extra_entries_use_first_id(self, client, session):
        """Surplus entries fall back to the first id."""
        session.get.return_value = _response(body={"apps": [_app(), _app()]})

        infos = client.get_infos([APP_ID])

        assert infos[1].address.lower() == APP_ID

    def test_anonymous_client_sends_no_auth(self, session):
        """A client without a key sends no auth headers."""
        session.get.return_value = _response(body={"apps": []})

        StatusApiClient(BASE_URL, session=session).get_infos([APP_ID])

        assert session.get.call_args.kwargs["headers"] == {}

    def test_http_error(self, client, session):
        """Non-200 responses keep status and body."""
        session.get.return_value = _response(503, text="maintenance")

        with pytest.raises(NetworkError) as exc_info:
            client.get_infos([APP_ID])

        assert exc_info.value.status_code == 503
        assert "maintenance" in str(exc_info.value)

    def test_transport_error(self, client, session):
        """Connection errors surface as NetworkError."""
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            client.get_infos([APP_ID])

    def test_invalid_json(self, client, session):
        """A body that is not JSON is an error."""
        session.get.return_value = _response(200)

        with pytest.raises(NetworkError):
            client.get_infos([APP_ID])

    def test_get_info_unknown_app(self, client, session):
        """An app the API does not know is None."""
        session.get.return_value = _response(body={"apps": []})

        assert client.get_info(APP_ID) is None


class TestGetSkus:
    """Tests for /skus."""

    def test_skus(self, client, session):
        """The SKU list is returned as is."""
        session.get.return_value = _response(body={"skus": [{"sku": "g1-standard-4t"}]})

        assert client.get_skus() == [{"sku": "g1-standard-4t"}]
