# =============================================================================
# BATCH PLANNER TESTS
# =============================================================================
# Execution order, permission deltas and execute() calldata.
# =============================================================================

import pytest
from eth_abi import decode

from enclave_deploy.core.batch_planner import (
    ANYONE_CAN_CALL_ADDRESS,
    API_PERMISSIONS_TARGET_ADDRESS,
    CAN_VIEW_APP_LOGS_PERMISSION,
    EXECUTE_BATCH_MODE,
    BatchPlanner,
    encode_execute_batch,
    generate_salt,
)
from enclave_deploy.domain.errors import ValidationError
from enclave_deploy.domain.models import Artifact, Release
from enclave_deploy.infra.chain_client import (
    ACCEPT_ADMIN,
    CREATE_APP,
    EXECUTE_BATCH,
    RELEASE_TYPE,
    REMOVE_APPOINTEE,
    SET_APPOINTEE,
    START_APP,
    TERMINATE_APP,
    UPGRADE_APP,
    selector,
)

TEST_APP_ID = "0x1111111111111111111111111111111111111111"


@pytest.fixture
def release():
    return Release(
        artifacts=(Artifact(digest=bytes.fromhex("11" * 32), registry="docker.io/user/app"),),
        upgrade_by_time=1_700_003_600,
        public_env=b'{"EIGEN_MACHINE_TYPE_PUBLIC":"g1-standard-4t"}',
        encrypted_env=b"header.key.iv.ct.tag",
    )


@pytest.fixture
def planner(environment_config):
    return BatchPlanner(
        environment_config.app_controller_address, environment_config.permission_controller_address
    )


def _selectors(plan):
    return [bytes(ex.call_data[:4]) for ex in plan.executions]


class TestPlanDeploy:
    """Tests for deploy batches."""

    def test_private_logs_two_calls(self, planner, release, environment_config):
        """Private logs need only createApp and acceptAdmin."""
        plan = planner.plan_deploy(TEST_APP_ID, b"\x07" * 32, release, public_logs=False)

        assert len(plan) == 2
        assert _selectors(plan) == [selector(CREATE_APP), selector(ACCEPT_ADMIN)]
        assert plan.executions[0].target.lower() == environment_config.app_controller_address.lower()
        assert plan.executions[1].target.lower() == environment_config.permission_controller_address.lower()
        assert all(ex.value == 0 for ex in plan.executions)

    def test_public_logs_permission_last(self, planner, release):
        """The log-view grant is appended after acceptAdmin."""
        plan = planner.plan_deploy(TEST_APP_ID, b"\x07" * 32, release, public_logs=True)

        assert len(plan) == 3
        assert _selectors(plan) == [selector(CREATE_APP), selector(ACCEPT_ADMIN), selector(SET_APPOINTEE)]

    def test_create_app_arguments(self, planner, release):
        """createApp carries the salt and the full release tuple."""
        salt = b"\x07" * 32
        plan = planner.plan_deploy(TEST_APP_ID, salt, release, public_logs=False)

        decoded_salt, decoded_release = decode(["bytes32", RELEASE_TYPE], plan.executions[0].call_data[4:])

        assert decoded_salt == salt
        (artifacts, upgrade_by_time), public_env, encrypted_env = decoded_release
        assert artifacts == ((bytes.fromhex("11" * 32), "docker.io/user/app"),)
        assert upgrade_by_time == 1_700_003_600
        assert public_env == release.public_env
        assert encrypted_env == release.encrypted_env

    def test_accept_admin_names_app(self, planner, release):
        """acceptAdmin is called on behalf of the new app."""
        plan = planner.plan_deploy(TEST_APP_ID, b"\x07" * 32, release, public_logs=False)

        (account,) = decode(["address"], plan.executions[1].call_data[4:])

        assert account.lower() == TEST_APP_ID.lower()

    def test_set_appointee_arguments(self, planner, release):
        """Public logs open the view permission to anyone."""
        plan = planner.plan_deploy(TEST_APP_ID, b"\x07" * 32, release, public_logs=True)

        account, appointee, target, permission = decode(
            ["address", "address", "address", "bytes4"], plan.executions[2].call_data[4:]
        )

        assert account.lower() == TEST_APP_ID.lower()
        assert appointee.lower() == ANYONE_CAN_CALL_ADDRESS
        assert target.lower() == API_PERMISSIONS_TARGET_ADDRESS
        assert permission == CAN_VIEW_APP_LOGS_PERMISSION

    def test_bad_salt(self, planner, release):
        """A salt that is not 32 bytes is rejected."""
        with pytest.raises(ValidationError):
            planner.plan_deploy(TEST_APP_ID, b"short", release, public_logs=False)


class TestPlanUpgrade:
    """Tests for upgrade batches: a permission call only when visibility changes."""

    @pytest.mark.parametrize(
        "public_logs,currently_public,expected",
        [
            (False, False, [UPGRADE_APP]),
            (True, True, [UPGRADE_APP]),
            (True, False, [UPGRADE_APP, SET_APPOINTEE]),
            (False, True, [UPGRADE_APP, REMOVE_APPOINTEE]),
        ],
    )
    def test_permission_delta(self, planner, release, public_logs, currently_public, expected):
        """Only a change in visibility adds a permission call."""
        plan = planner.plan_upgrade(TEST_APP_ID, release, public_logs, currently_public)

        assert _selectors(plan) == [selector(sig) for sig in expected]

    def test_upgrade_arguments(self, planner, release):
        """upgradeApp names the app and carries the release."""
        plan = planner.plan_upgrade(TEST_APP_ID, release, False, False)

        app, decoded_release = decode(["address", RELEASE_TYPE], plan.executions[0].call_data[4:])

        assert app.lower() == TEST_APP_ID.lower()
        assert decoded_release[0][1] == release.upgrade_by_time


class TestExecuteBatchEncoding:
    """Tests for the delegate's execute() calldata."""

    def test_mode_and_executions(self, planner, release):
        """execute() gets batch mode and every execution in order."""
        plan = planner.plan_deploy(TEST_APP_ID, b"\x07" * 32, release, public_logs=True)

        calldata = encode_execute_batch(plan)

        assert calldata[:4] == selector(EXECUTE_BATCH)
        mode, packed = decode(["bytes32", "bytes"], calldata[4:])
        assert mode == EXECUTE_BATCH_MODE
        assert mode[0] == 0x01 and mode[1:] == bytes(31)

        (executions,) = decode(["(address,uint256,bytes)[]"], packed)
        assert len(executions) == 3
        for (target, value, data), ex in zip(executions, plan.executions):
            assert target.lower() == ex.target.lower()
            assert value == 0
            assert data == ex.call_data


class TestLifecycleCall:
    """Tests for single-call lifecycle transactions."""

    def test_start(self, planner, environment_config):
        """Start targets the app controller."""
        target, data = planner.lifecycle_call("start", TEST_APP_ID)

        assert target.lower() == environment_config.app_controller_address.lower()
        assert data[:4] == selector(START_APP)

    def test_terminate(self, planner):
        """Terminate encodes terminateApp."""
        _, data = planner.lifecycle_call("terminate", TEST_APP_ID)
        assert data[:4] == selector(TERMINATE_APP)

    def test_unknown_action(self, planner):
        """Unknown lifecycle actions are refused."""
        with pytest.raises(ValidationError):
            planner.lifecycle_call("reboot", TEST_APP_ID)


class TestGenerateSalt:
    """Tests for generate_salt."""

    def test_length_and_randomness(self):
        """Salts are 32 random bytes."""
        first, second = generate_salt(), generate_salt()
        assert len(first) == 32
        assert first != second
