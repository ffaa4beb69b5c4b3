# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# STATUS API CLIENT
# -----------------------------------------------------------------------------
# Responsibility: Ask the platform what state an app is in.
#
# GET {base}/info?apps=<id,id,...> returns one entry per app with its
# lifecycle status, public ip and machine type. Requests are signed with
# the caller's key (permission || expiry, EIP-191) so the API will include
# sensitive fields.
#
# Rate limiting is handled by RetryingSession; everything else that goes
# wrong becomes NetworkError.
# -----------------------------------------------------------------------------

import time
from collections.abc import Callable

import requests
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from rich.console import Console

from enclave_deploy.domain.errors import AuthorizationError, NetworkError
from enclave_deploy.domain.models import AppInfo
from enclave_deploy.infra.http import RetryingSession

console = Console()

MAX_ADDRESS_COUNT = 5
AUTH_TTL_SECONDS = 5 * 60

CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION = "0x0e67b22f"


def auth_message(permission: str, expiry: int) -> str:
    """The text signed for an authenticated request: permission followed by 64-hex expiry."""
    return f"{permission}{expiry:064x}"


class StatusApiClient:
    """
    Client for the platform's user API.

    Args:
        base_url: Environment's status API root.
        private_key: Signs auth headers; anonymous requests without it.
        session: RetryingSession (tests inject one with a fake sleep).
        clock: Epoch seconds source for the auth expiry.
    """

    def __init__(
        self,
        base_url: str,
        private_key: str | None = None,
        session: RetryingSession | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._account: LocalAccount | None = Account.from_key(private_key) if private_key else None
        self._session = session or RetryingSession()
        self._clock = clock

    def auth_headers(self, permission: str) -> dict[str, str]:
        """
        Sign `permission` for the next five minutes.

        Raises:
            AuthorizationError: No private key was configured.
        """
        if self._account is None:
            raise AuthorizationError("Private key required for authenticated requests")

        expiry = int(self._clock()) + AUTH_TTL_SECONDS
        signed = self._account.sign_message(encode_defunct(text=auth_message(permission, expiry)))
        signature = bytes(signed.signature)
        if len(signature) != 65:
            raise AuthorizationError(f"Invalid signature length: expected 65 bytes, got {len(signature)}")

        return {
            "X-Auth-Address": self._account.address,
            "X-Auth-Permission": permission,
            "X-Auth-Expiry": str(expiry),
            "X-Auth-Signature-R": "0x" + signature[:32].hex(),
            "X-Auth-Signature-S": "0x" + signature[32:64].hex(),
            "X-Auth-Signature-V": f"0x{signature[64]:02x}",
        }

    def _get(self, url: str, params: dict | None = None, permission: str | None = None) -> dict:
        headers = self.auth_headers(permission) if permission and self._account else {}
        try:
            response = self._session.get(url, params=params, headers=headers)
        except requests.RequestException as e:
            raise NetworkError(
                f"Failed to connect to status API at {self._base_url}: {e}", url=url
            ) from e

        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"Status API request failed: {response.status_code} - {response.text.strip()[:300]}",
                url=url,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Status API returned invalid JSON: {e}", url=url) from e

    def get_infos(self, app_ids: list[str], address_count: int = 1) -> list[AppInfo]:
        """
        Fetch status for one or more apps.

        Returns:
            One AppInfo per entry the API returned (may be empty while the
            platform has not seen the app yet).
        """
        count = min(address_count, MAX_ADDRESS_COUNT)
        url = f"{self._base_url}/info"
        data = self._get(url, {"apps": ",".join(app_ids)}, CAN_VIEW_SENSITIVE_APP_INFO_PERMISSION)
        console.print(f"[dim][STATUS API] {len(data.get('apps') or [])} app(s) in response[/dim]")

        infos = []
        for index, app in enumerate(data.get("apps") or []):
            evm = (((app.get("addresses") or {}).get("data") or {}).get("evmAddresses") or [])[:count]
            if evm:
                address = evm[0]
            elif index < len(app_ids):
                address = app_ids[index]
            else:
                address = app_ids[0]
            infos.append(
                AppInfo(
                    address=to_checksum_address(address),
                    status=app.get("app_status") or "",
                    ip=app.get("ip") or "",
                    machine_type=app.get("machine_type") or "",
                )
            )
        return infos

    def get_info(self, app_id: str) -> AppInfo | None:
        infos = self.get_infos([app_id])
        return infos[0] if infos else None

    def get_skus(self) -> list[dict]:
        """Instance types offered by the environment."""
        data = self._get(f"{self._base_url}/skus")
        return data.get("skus") or data.get("SKUs") or []
