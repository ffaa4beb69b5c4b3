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
# CHAIN CLIENT - JSON-RPC WRAPPER
# -----------------------------------------------------------------------------
# Responsibility: Every read and write the engine makes against the chain.
# Contract calls are encoded with eth-abi against fixed signatures; web3 only
# moves bytes over JSON-RPC.
#
# Error boundary:
# - Transport / node failures   -> NetworkError
# - Missing signing key         -> AuthorizationError
# - Reverts during simulation   -> returned as payload bytes, never raised
#
# Bulk reads fan out on a thread pool; a failed item is dropped from the
# result instead of failing the whole batch.
# -----------------------------------------------------------------------------

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address
from rich.console import Console
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from enclave_deploy.domain.errors import AuthorizationError, EnclaveDeployError, NetworkError
from enclave_deploy.domain.models import DelegationAuthorization, FeeSnapshot

console = Console()

RELEASE_TYPE = "(((bytes32,string)[],uint64),bytes,bytes)"

CALCULATE_APP_ID = "calculateAppId(address,bytes32)"
CREATE_APP = f"createApp(bytes32,{RELEASE_TYPE})"
UPGRADE_APP = f"upgradeApp(address,{RELEASE_TYPE})"
START_APP = "startApp(address)"
STOP_APP = "stopApp(address)"
TERMINATE_APP = "terminateApp(address)"
GET_ACTIVE_APP_COUNT = "getActiveAppCount(address)"
GET_MAX_ACTIVE_APPS_PER_USER = "getMaxActiveAppsPerUser(address)"
GET_APPS_BY_DEVELOPER = "getAppsByDeveloper(address,uint256,uint256)"
GET_APP_LATEST_RELEASE_BLOCK_NUMBER = "getAppLatestReleaseBlockNumber(address)"

ACCEPT_ADMIN = "acceptAdmin(address)"
SET_APPOINTEE = "setAppointee(address,address,address,bytes4)"
REMOVE_APPOINTEE = "removeAppointee(address,address,address,bytes4)"
CAN_CALL = "canCall(address,address,address,bytes4)"

EXECUTE_BATCH = "execute(bytes32,bytes)"

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_WORKERS = 8
RECEIPT_TIMEOUT_SECONDS = 300


def selector(signature: str) -> bytes:
    """4-byte function selector for a canonical signature."""
    return function_signature_to_4byte_selector(signature)


def _argument_types(signature: str) -> list[str]:
    """Split the top-level argument list of a signature (tuples stay intact)."""
    inner = signature[signature.index("(") + 1 : -1]
    types, depth, current = [], 0, ""
    for char in inner:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        types.append(current)
    return types


def encode_call(signature: str, *args: Any) -> bytes:
    """Calldata for `signature` applied to `args`."""
    return selector(signature) + encode(_argument_types(signature), list(args))


def _to_bytes(data: Any) -> bytes:
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return to_bytes(hexstr=data) if data.startswith("0x") else b""
    return b""


class ChainClient:
    """
    Thin, typed facade over web3 for one environment's contracts.

    Args:
        rpc_url: JSON-RPC endpoint.
        app_controller: AppController contract address.
        permission_controller: PermissionController contract address.
        private_key: Caller key; read-only use is fine without one.
        web3: Pre-built Web3 (tests); built from rpc_url when omitted.
        max_workers: Thread pool size for bulk reads.
    """

    def __init__(
        self,
        rpc_url: str,
        app_controller: str,
        permission_controller: str,
        private_key: str | None = None,
        web3: Web3 | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._w3 = web3 or Web3(Web3.HTTPProvider(rpc_url))
        self._rpc_url = rpc_url
        self.app_controller = to_checksum_address(app_controller)
        self.permission_controller = to_checksum_address(permission_controller)
        self._account: LocalAccount | None = Account.from_key(private_key) if private_key else None
        self._max_workers = max_workers

    # -------------------------------------------------------------------------
    # ACCOUNT
    # -------------------------------------------------------------------------

    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise AuthorizationError("A private key is required for this operation")
        return self._account

    @property
    def address(self) -> str:
        return self.account.address

    def _rpc(self, label: str, fn: Callable[[], Any]) -> Any:
        """Run one RPC call, translating transport and node errors."""
        try:
            return fn()
        except ContractLogicError:
            raise
        except (Web3Exception, requests.RequestException, ValueError) as e:
            raise NetworkError(f"RPC {label} failed: {e}", url=self._rpc_url) from e

    # -------------------------------------------------------------------------
    # RAW READS
    # -------------------------------------------------------------------------

    def chain_id(self) -> int:
        return int(self._rpc("eth_chainId", lambda: self._w3.eth.chain_id))

    def get_code(self, address: str) -> bytes:
        code = self._rpc("eth_getCode", lambda: self._w3.eth.get_code(to_checksum_address(address)))
        return bytes(code)

    def get_pending_nonce(self, address: str) -> int:
        return int(
            self._rpc(
                "eth_getTransactionCount",
                lambda: self._w3.eth.get_transaction_count(to_checksum_address(address), "pending"),
            )
        )

    def get_fee_snapshot(self) -> FeeSnapshot:
        """Latest base fee plus the node's suggested priority fee."""
        block = self._rpc("eth_getBlockByNumber", lambda: self._w3.eth.get_block("latest"))
        priority = self._rpc("eth_maxPriorityFeePerGas", lambda: self._w3.eth.max_priority_fee)
        return FeeSnapshot(base_fee=int(block.get("baseFeePerGas", 0)), priority_fee=int(priority))

    def estimate_gas(
        self,
        to: str,
        data: bytes,
        sender: str | None = None,
        value: int = 0,
        authorizations: list[DelegationAuthorization] | None = None,
    ) -> int:
        """
        eth_estimateGas for a call. With authorizations the node prices the
        set-code transaction as sent, delegation included.
        """
        tx = {
            "from": to_checksum_address(sender) if sender else self.address,
            "to": to_checksum_address(to),
            "data": Web3.to_hex(data),
            "value": value,
        }
        if authorizations:
            tx["authorizationList"] = [auth.to_transaction_entry() for auth in authorizations]
        try:
            return int(self._rpc("eth_estimateGas", lambda: self._w3.eth.estimate_gas(tx)))
        except ContractLogicError as e:
            raise NetworkError(f"Gas estimation reverted: {e}", url=self._rpc_url) from e

    def simulate(self, to: str, data: bytes, sender: str | None = None) -> tuple[bytes | None, str]:
        """
        Replay a call read-only to capture its revert payload.

        Returns:
            (revert data, message). Revert data is None if the call succeeded.
        """
        tx = {
            "from": to_checksum_address(sender) if sender else self.address,
            "to": to_checksum_address(to),
            "data": Web3.to_hex(data),
        }
        try:
            self._rpc("eth_call", lambda: self._w3.eth.call(tx))
        except ContractLogicError as e:
            return _to_bytes(getattr(e, "data", None)), str(e)
        return None, ""

    def read(self, to: str, signature: str, return_types: list[str], *args: Any) -> tuple:
        """Call a view function and decode its return values."""
        data = encode_call(signature, *args)
        try:
            raw = self._rpc(
                signature,
                lambda: self._w3.eth.call({"to": to_checksum_address(to), "data": Web3.to_hex(data)}),
            )
        except ContractLogicError as e:
            raise NetworkError(f"{signature} reverted: {e}", url=self._rpc_url) from e
        try:
            return decode(return_types, bytes(raw))
        except DecodingError as e:
            raise NetworkError(f"Could not decode {signature} result: {e}", url=self._rpc_url) from e

    # -------------------------------------------------------------------------
    # CONTRACT READS
    # -------------------------------------------------------------------------

    def calculate_app_id(self, owner: str, salt: bytes) -> str:
        (app_id,) = self.read(
            self.app_controller, CALCULATE_APP_ID, ["address"], to_checksum_address(owner), salt
        )
        return to_checksum_address(app_id)

    def get_active_app_count(self, user: str) -> int:
        (count,) = self.read(self.app_controller, GET_ACTIVE_APP_COUNT, ["uint256"], to_checksum_address(user))
        return int(count)

    def get_max_active_apps_per_user(self, user: str) -> int:
        (quota,) = self.read(
            self.app_controller, GET_MAX_ACTIVE_APPS_PER_USER, ["uint256"], to_checksum_address(user)
        )
        return int(quota)

    def can_call(self, account: str, caller: str, target: str, permission: bytes) -> bool:
        (allowed,) = self.read(
            self.permission_controller,
            CAN_CALL,
            ["bool"],
            to_checksum_address(account),
            to_checksum_address(caller),
            to_checksum_address(target),
            permission,
        )
        return bool(allowed)

    def get_apps_by_developer(self, developer: str, offset: int, limit: int) -> list[str]:
        """One page of app ids; the per-app config half of the result is not decoded."""
        (apps,) = self.read(
            self.app_controller,
            GET_APPS_BY_DEVELOPER,
            ["address[]"],
            to_checksum_address(developer),
            offset,
            limit,
        )
        return [to_checksum_address(app) for app in apps]

    def get_all_apps_by_developer(self, developer: str, page_size: int = DEFAULT_PAGE_SIZE) -> list[str]:
        """Page through getAppsByDeveloper until an empty or short page."""
        apps: list[str] = []
        offset = 0
        while True:
            page = self.get_apps_by_developer(developer, offset, page_size)
            if not page:
                break
            apps.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        return apps

    def get_app_latest_release_block_number(self, app_id: str) -> int:
        (block_number,) = self.read(
            self.app_controller, GET_APP_LATEST_RELEASE_BLOCK_NUMBER, ["uint256"], to_checksum_address(app_id)
        )
        return int(block_number)

    def get_block_timestamp(self, block_number: int) -> int:
        block = self._rpc("eth_getBlockByNumber", lambda: self._w3.eth.get_block(block_number))
        return int(block["timestamp"])

    # -------------------------------------------------------------------------
    # BULK READS (fan-out, per-item isolation)
    # -------------------------------------------------------------------------

    def _fan_out(self, keys: Iterable, fn: Callable[[Any], Any]) -> dict:
        keys = list(keys)
        if not keys:
            return {}

        def guarded(key):
            try:
                return fn(key)
            except EnclaveDeployError as e:
                console.print(f"[dim][CHAIN] Skipping {key}: {e}[/dim]")
                return None

        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(keys))) as pool:
            results = list(pool.map(guarded, keys))
        return {key: value for key, value in zip(keys, results) if value is not None}

    def get_app_latest_release_block_numbers(self, app_ids: list[str]) -> dict[str, int]:
        return self._fan_out(app_ids, self.get_app_latest_release_block_number)

    def get_block_timestamps(self, block_numbers: list[int]) -> dict[int, int]:
        unique = sorted({n for n in block_numbers if n > 0})
        return self._fan_out(unique, self.get_block_timestamp)

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    def sign_authorization(self, chain_id: int, delegate: str, nonce: int) -> DelegationAuthorization:
        """Sign a set-code authorization with the caller's key."""
        signed = self.account.sign_authorization(
            {"chainId": chain_id, "address": to_checksum_address(delegate), "nonce": nonce}
        )
        return DelegationAuthorization(
            chain_id=chain_id,
            delegate_address=to_checksum_address(delegate),
            nonce=nonce,
            y_parity=signed.y_parity,
            r=signed.r,
            s=signed.s,
        )

    def send_transaction(
        self,
        to: str,
        data: bytes,
        gas_limit: int,
        max_fee_per_gas: int,
        max_priority_fee_per_gas: int,
        authorizations: list[DelegationAuthorization] | None = None,
        value: int = 0,
    ) -> str:
        """
        Sign and broadcast one EIP-1559 (or set-code, with authorizations) transaction.

        Returns:
            The transaction hash as 0x-hex.
        """
        tx = {
            "chainId": self.chain_id(),
            "nonce": self.get_pending_nonce(self.address),
            "to": to_checksum_address(to),
            "value": value,
            "data": Web3.to_hex(data),
            "gas": gas_limit,
            "maxFeePerGas": max_fee_per_gas,
            "maxPriorityFeePerGas": max_priority_fee_per_gas,
        }
        if authorizations:
            tx["authorizationList"] = [auth.to_transaction_entry() for auth in authorizations]

        signed = self.account.sign_transaction(tx)
        tx_hash = self._rpc(
            "eth_sendRawTransaction", lambda: self._w3.eth.send_raw_transaction(signed.raw_transaction)
        )
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout: float = RECEIPT_TIMEOUT_SECONDS) -> dict:
        try:
            receipt = self._rpc(
                "eth_getTransactionReceipt",
                lambda: self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout),
            )
        except NetworkError as e:
            if isinstance(e.__cause__, TimeExhausted):
                raise NetworkError(
                    f"Transaction {tx_hash} was not mined within {timeout:.0f}s", url=self._rpc_url
                ) from e
            raise
        return dict(receipt)
