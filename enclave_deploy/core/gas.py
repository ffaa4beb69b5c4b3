# -----------------------------------------------------------------------------
# GAS ESTIMATOR
# -----------------------------------------------------------------------------
# Responsibility: A conservative fee ceiling for one batch, shown to the
# caller before anything is signed.
#
#   gas_limit   = ceil(raw * 1.20)     raw = live estimate (authorization
#                                      attached for first use), or
#                                      100000 + 50000 * executions (coarse)
#   max_fee     = (base_fee + priority_fee) * 2
#   max_cost    = gas_limit * max_fee
# -----------------------------------------------------------------------------

from concurrent.futures import ThreadPoolExecutor
from decimal import ROUND_HALF_UP, Decimal

from rich.console import Console

from enclave_deploy.domain.errors import NetworkError
from enclave_deploy.domain.models import BatchPlan, DelegationAuthorization, FeeSnapshot, GasEstimate
from enclave_deploy.infra.chain_client import ChainClient

console = Console()

# Percent multipliers, integer math only
GAS_LIMIT_MULTIPLIER_PCT = 120
MAX_FEE_MULTIPLIER = 2

COARSE_BASE_GAS = 100_000
COARSE_GAS_PER_EXECUTION = 50_000

WEI_PER_ETH = Decimal(10) ** 18
ETH_DISPLAY_QUANTUM = Decimal("0.000001")
SMALLEST_DISPLAY = "<0.000001"


def coarse_gas_limit(execution_count: int) -> int:
    """Raw gas guess used when no live simulation is possible."""
    return COARSE_BASE_GAS + COARSE_GAS_PER_EXECUTION * execution_count


def apply_gas_margin(raw_gas: int) -> int:
    return -(-raw_gas * GAS_LIMIT_MULTIPLIER_PCT // 100)


def format_eth(wei: int) -> str:
    """
    Render wei as ETH with at most 6 decimals and no trailing zeros.

    A non-zero amount that rounds to zero renders as "<0.000001".
    """
    eth = (Decimal(wei) / WEI_PER_ETH).quantize(ETH_DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)
    text = f"{eth:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "0" and wei > 0:
        return SMALLEST_DISPLAY
    return text


class GasEstimator:
    """Applies the safety margins; optionally reads the chain to get its inputs."""

    def __init__(self, chain: ChainClient | None = None) -> None:
        self._chain = chain

    @staticmethod
    def estimate(fees: FeeSnapshot, raw_gas_estimate: int | None, execution_count: int = 1) -> GasEstimate:
        """
        Compute the fee ceiling.

        Args:
            fees: Base + priority fee reading.
            raw_gas_estimate: Live estimate; None falls back to the coarse formula.
            execution_count: Batch size, used by the coarse formula only.
        """
        raw = raw_gas_estimate if raw_gas_estimate is not None else coarse_gas_limit(execution_count)
        gas_limit = apply_gas_margin(raw)
        max_fee = (fees.base_fee + fees.priority_fee) * MAX_FEE_MULTIPLIER
        max_cost = gas_limit * max_fee
        return GasEstimate(
            gas_limit=gas_limit,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=fees.priority_fee,
            max_cost_wei=max_cost,
            max_cost_eth=format_eth(max_cost),
        )

    def estimate_call(
        self,
        sender: str,
        to: str,
        data: bytes,
        execution_count: int = 1,
        authorizations: list[DelegationAuthorization] | None = None,
    ) -> GasEstimate:
        """
        Estimate a call against the live chain.

        Fee snapshot and raw gas are read concurrently.
        """
        with ThreadPoolExecutor(max_workers=2) as pool:
            fees_future = pool.submit(self._chain.get_fee_snapshot)
            gas_future = pool.submit(self._chain.estimate_gas, to, data, sender, authorizations=authorizations)
            fees = fees_future.result()
            raw = gas_future.result()

        estimate = self.estimate(fees, raw, execution_count)
        console.print(
            f"[dim][GAS] limit={estimate.gas_limit} max_fee={estimate.max_fee_per_gas} "
            f"max_cost={estimate.max_cost_eth} ETH[/dim]"
        )
        return estimate

    def estimate_batch(
        self,
        sender: str,
        plan: BatchPlan,
        calldata: bytes,
        authorization: DelegationAuthorization | None = None,
    ) -> GasEstimate:
        """
        Estimate a batch self-call.

        An undelegated sender is simulated with its authorization attached, so
        the estimate covers the delegation, the calldata and every execution.
        The coarse formula is used only if the node cannot price that
        transaction.

        Raises:
            NetworkError: Live estimation failed for an already delegated sender.
        """
        if authorization is None:
            return self.estimate_call(sender, sender, calldata, len(plan))

        try:
            return self.estimate_call(sender, sender, calldata, len(plan), [authorization])
        except NetworkError as e:
            console.print(f"[yellow][GAS] Could not estimate with delegation, using coarse limit: {e}[/yellow]")

        fees = self._chain.get_fee_snapshot()
        estimate = self.estimate(fees, None, len(plan))
        console.print(
            f"[dim][GAS] coarse limit={estimate.gas_limit} for {len(plan)} call(s), "
            f"max_cost={estimate.max_cost_eth} ETH[/dim]"
        )
        return estimate
