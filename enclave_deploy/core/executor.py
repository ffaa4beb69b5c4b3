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
# TRANSACTION EXECUTOR
# -----------------------------------------------------------------------------
# Responsibility: Send exactly one transaction, wait for it, and report the
# truth about how it ended.
#
# Success path: sign -> broadcast -> receipt -> hash.
# Revert path:  replay the same call read-only, decode the payload, raise
#               ContractRevertError carrying the hash. A mined-but-reverted
#               transaction is never reported as success.
#
# Nothing here retries a submission.
# -----------------------------------------------------------------------------

from rich.console import Console

from enclave_deploy.core.batch_planner import encode_execute_batch
from enclave_deploy.core.gas import GasEstimator
from enclave_deploy.core.revert import decode_revert
from enclave_deploy.domain.errors import ContractRevertError, NetworkError
from enclave_deploy.domain.models import BatchPlan, DelegationAuthorization, GasEstimate
from enclave_deploy.infra.chain_client import ChainClient

console = Console()

RECEIPT_STATUS_SUCCESS = 1


class TransactionExecutor:
    """
    Submits batches (as self-calls) and single contract calls.

    Args:
        chain: Chain client holding the caller's key.
        estimator: Used when the caller did not supply a gas estimate.
    """

    def __init__(self, chain: ChainClient, estimator: GasEstimator | None = None) -> None:
        self._chain = chain
        self._estimator = estimator or GasEstimator(chain)

    def execute(
        self,
        plan: BatchPlan,
        authorization: DelegationAuthorization | None = None,
        gas: GasEstimate | None = None,
        description: str = "Batch",
    ) -> str:
        """
        Submit a batch to the caller's own (delegated) account.

        Returns:
            The transaction hash.

        Raises:
            ContractRevertError: The transaction was mined but reverted.
        """
        sender = self._chain.address
        calldata = encode_execute_batch(plan)
        if gas is None:
            gas = self._estimator.estimate_batch(sender, plan, calldata, authorization)

        console.print(
            f"[cyan][EXECUTOR] Sending {description.lower()} ({len(plan)} call(s)"
            f"{', with delegation' if authorization else ''})...[/cyan]"
        )
        return self._send_and_wait(
            sender,
            calldata,
            gas,
            [authorization] if authorization else None,
            description,
        )

    def send_call(self, to: str, data: bytes, gas: GasEstimate | None = None, description: str = "Call") -> str:
        """Submit a single contract call (start/stop/terminate)."""
        if gas is None:
            gas = self._estimator.estimate_call(self._chain.address, to, data)
        console.print(f"[cyan][EXECUTOR] Sending {description.lower()} transaction...[/cyan]")
        return self._send_and_wait(to, data, gas, None, description)

    def send_authorization(self, authorization: DelegationAuthorization, gas: GasEstimate, description: str) -> str:
        """Submit an empty self-call that only carries an authorization."""
        sender = self._chain.address
        console.print(f"[cyan][EXECUTOR] Sending {description.lower()} transaction...[/cyan]")
        return self._send_and_wait(sender, b"", gas, [authorization], description)

    def _send_and_wait(
        self,
        to: str,
        data: bytes,
        gas: GasEstimate,
        authorizations: list[DelegationAuthorization] | None,
        description: str,
    ) -> str:
        tx_hash = self._chain.send_transaction(
            to=to,
            data=data,
            gas_limit=gas.gas_limit,
            max_fee_per_gas=gas.max_fee_per_gas,
            max_priority_fee_per_gas=gas.max_priority_fee_per_gas,
            authorizations=authorizations,
        )
        console.print(f"[dim][EXECUTOR] Transaction sent: {tx_hash}[/dim]")

        receipt = self._chain.wait_for_receipt(tx_hash)
        if receipt.get("status") == RECEIPT_STATUS_SUCCESS:
            console.print(f"[green][EXECUTOR] {description} confirmed in block {receipt.get('blockNumber')}[/green]")
            return tx_hash

        raise self._revert_error(to, data, tx_hash, description)

    def _revert_error(self, to: str, data: bytes, tx_hash: str, description: str) -> ContractRevertError:
        """Replay the call to recover why it reverted."""
        try:
            payload, node_message = self._chain.simulate(to, data, self._chain.address)
        except NetworkError as e:
            payload, node_message = None, f"Unknown reason (replay failed: {e})"
        decoded = decode_revert(payload, node_message)
        message = f"{description} transaction (hash: {tx_hash}) reverted: {decoded.message}"
        console.print(f"[red][EXECUTOR] {message}[/red]")
        return ContractRevertError(message, tx_hash=tx_hash, reason=decoded.message, error_name=decoded.error_name)
