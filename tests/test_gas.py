# =============================================================================
# GAS ESTIMATOR TESTS
# =============================================================================
# Safety margins, coarse fallback and ETH formatting.
# =============================================================================

import pytest

from enclave_deploy.core.gas import (
    GasEstimator,
    apply_gas_margin,
    coarse_gas_limit,
    format_eth,
)
from enclave_deploy.domain.errors import NetworkError
from enclave_deploy.domain.models import BatchPlan, DelegationAuthorization, Execution, FeeSnapshot

GWEI = 10**9


def _plan(count):
    return BatchPlan(
        executions=tuple(Execution(target="0x" + "11" * 20, call_data=b"\x00") for _ in range(count))
    )


class TestMargins:
    """Tests for the pure arithmetic."""

    def test_gas_margin_is_ceiling(self):
        """The 20% margin rounds up, never down."""
        assert apply_gas_margin(100_000) == 120_000
        assert apply_gas_margin(100_001) == 120_002
        assert apply_gas_margin(1) == 2

    def test_coarse_limit(self):
        """100k base plus 50k per execution."""
        assert coarse_gas_limit(2) == 200_000
        assert coarse_gas_limit(3) == 250_000

    def test_estimate_from_live_gas(self):
        """Limit, fee ceiling and cost from a live estimate."""
        estimate = GasEstimator.estimate(FeeSnapshot(base_fee=10 * GWEI, priority_fee=2 * GWEI), 100_000)

        assert estimate.gas_limit == 120_000
        assert estimate.max_fee_per_gas == 24 * GWEI
        assert estimate.max_priority_fee_per_gas == 2 * GWEI
        assert estimate.max_cost_wei == 120_000 * 24 * GWEI
        assert estimate.max_cost_eth == "0.00288"

    def test_estimate_coarse(self):
        """No live estimate: the coarse formula gets the same margin."""
        estimate = GasEstimator.estimate(FeeSnapshot(base_fee=1, priority_fee=1), None, execution_count=2)

        assert estimate.gas_limit == 240_000

    def test_fee_ceiling_never_below_current(self):
        """The max fee always covers the current base plus priority fee."""
        fees = FeeSnapshot(base_fee=30 * GWEI, priority_fee=GWEI)
        estimate = GasEstimator.estimate(fees, 50_000)
        assert estimate.max_fee_per_gas >= fees.base_fee + fees.priority_fee


class TestFormatEth:
    """Tests for human-readable costs."""

    @pytest.mark.parametrize(
        "wei,expected",
        [
            (0, "0"),
            (10**18, "1"),
            (1_500_000_000_000_000, "0.0015"),
            (123_456_789_000_000_000, "0.123457"),
            (1, "<0.000001"),
            (499_999_999_999, "<0.000001"),
            (500_000_000_000, "0.000001"),
            (2 * 10**18 + 10**12, "2.000001"),
        ],
    )
    def test_format(self, wei, expected):
        """Six decimals at most, trailing zeros trimmed, tiny costs never shown as 0."""
        assert format_eth(wei) == expected


class TestGasEstimator:
    """Tests for chain-backed estimation."""

    @pytest.fixture
    def authorization(self):
        return DelegationAuthorization(
            chain_id=11155111, delegate_address="0x" + "63" * 20, nonce=4, y_parity=0, r=1, s=2
        )

    def test_undelegated_batch_is_priced_with_its_authorization(self, mock_chain, caller_address, authorization):
        """A first-use batch is simulated as the set-code transaction that will be sent."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.return_value = 410_000

        estimate = GasEstimator(mock_chain).estimate_batch(caller_address, _plan(3), b"calldata", authorization)

        assert estimate.gas_limit == 492_000
        mock_chain.estimate_gas.assert_called_once_with(
            caller_address, b"calldata", caller_address, authorizations=[authorization]
        )

    def test_large_release_raises_the_limit(self, mock_chain, caller_address, authorization):
        """The limit follows the node's price for the payload, not the execution count."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.return_value = 1_250_000

        estimate = GasEstimator(mock_chain).estimate_batch(
            caller_address, _plan(2), b"\x01" * 3072, authorization
        )

        assert estimate.gas_limit == 1_500_000
        assert estimate.gas_limit > coarse_gas_limit(2)

    def test_coarse_formula_when_node_cannot_price(self, mock_chain, caller_address, authorization):
        """Only an undelegated sender falls back to the coarse formula."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.side_effect = NetworkError("authorizationList not supported")

        estimate = GasEstimator(mock_chain).estimate_batch(caller_address, _plan(3), b"calldata", authorization)

        assert estimate.gas_limit == 300_000

    def test_delegated_batch_uses_live_estimate(self, mock_chain, caller_address):
        """No authorization: a plain self-call estimate."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.return_value = 180_000

        estimate = GasEstimator(mock_chain).estimate_batch(caller_address, _plan(2), b"calldata")

        assert estimate.gas_limit == 216_000
        mock_chain.estimate_gas.assert_called_once_with(
            caller_address, b"calldata", caller_address, authorizations=None
        )

    def test_delegated_estimate_failure_propagates(self, mock_chain, caller_address):
        """A delegated sender whose batch cannot be estimated is not sent blind."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.side_effect = NetworkError("reverted")

        with pytest.raises(NetworkError):
            GasEstimator(mock_chain).estimate_batch(caller_address, _plan(2), b"calldata")

    def test_estimate_call_failure_propagates(self, mock_chain, caller_address):
        """Single-call estimation errors reach the caller."""
        mock_chain.get_fee_snapshot.return_value = FeeSnapshot(base_fee=GWEI, priority_fee=GWEI)
        mock_chain.estimate_gas.side_effect = NetworkError("reverted")

        with pytest.raises(NetworkError):
            GasEstimator(mock_chain).estimate_call(caller_address, "0x" + "11" * 20, b"\x00")
