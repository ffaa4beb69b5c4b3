# -----------------------------------------------------------------------------
# DELEGATION MANAGER - EIP-7702
# -----------------------------------------------------------------------------
# Responsibility: Make sure the caller's account runs the batch-executor code
# before a batch is sent to it.
#
# An account delegated under EIP-7702 carries the code 0xef0100 || delegate.
# If that marker is already there, nothing is signed. Otherwise one
# authorization is produced and rides along with the batch transaction.
# -----------------------------------------------------------------------------

from rich.console import Console

from enclave_deploy.domain.models import DelegationAuthorization
from enclave_deploy.infra.chain_client import ChainClient

console = Console()

DELEGATION_PREFIX = bytes.fromhex("ef0100")
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def delegation_marker(delegate_address: str) -> bytes:
    """The code an account holds once delegated to `delegate_address`."""
    return DELEGATION_PREFIX + bytes.fromhex(delegate_address.lower().removeprefix("0x"))


def is_delegated(code: bytes, delegate_address: str) -> bool:
    """Pure check: does this account code point at `delegate_address`?"""
    return bytes(code) == delegation_marker(delegate_address)


class DelegationManager:
    """Reads delegation state and signs authorizations for the caller's account."""

    def __init__(self, chain: ChainClient) -> None:
        self._chain = chain

    def check(self, account: str, delegate_address: str) -> bool:
        return is_delegated(self._chain.get_code(account), delegate_address)

    def _authorize(self, account: str, delegate_address: str) -> DelegationAuthorization:
        # Sender nonce is bumped before the authorization list is processed
        nonce = self._chain.get_pending_nonce(account) + 1
        chain_id = self._chain.chain_id()
        return self._chain.sign_authorization(chain_id, delegate_address, nonce)

    def ensure_authorization(self, account: str, delegate_address: str) -> DelegationAuthorization | None:
        """
        Return an authorization if the account still needs delegating.

        Returns:
            None when the account code already carries the delegate marker.
        """
        if self.check(account, delegate_address):
            console.print(f"[dim][DELEGATION] {account} already delegated[/dim]")
            return None

        console.print(f"[cyan][DELEGATION] Signing authorization for {account} -> {delegate_address}[/cyan]")
        return self._authorize(account, delegate_address)

    def revocation(self, account: str) -> DelegationAuthorization:
        """Authorization that points the account back at no code (undelegate)."""
        console.print(f"[cyan][DELEGATION] Signing revocation for {account}[/cyan]")
        return self._authorize(account, ZERO_ADDRESS)
