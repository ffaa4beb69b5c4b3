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
# BATCH PLANNER
# -----------------------------------------------------------------------------
# Responsibility: Turn a Release into the ordered calls of one atomic batch.
#
# Deploy:   [createApp, acceptAdmin, (setAppointee if public logs)]
# Upgrade:  [upgradeApp, (set/removeAppointee only if visibility changes)]
#
# Order matters: the app must exist (or be upgraded) before permissions on it
# can be touched. No permission call is ever issued that would be a no-op.
# -----------------------------------------------------------------------------

import secrets

from eth_abi import encode
from eth_utils import to_checksum_address
from rich.console import Console

from enclave_deploy.domain.errors import ValidationError
from enclave_deploy.domain.models import BatchPlan, Execution, Release
from enclave_deploy.infra.chain_client import (
    ACCEPT_ADMIN,
    CREATE_APP,
    EXECUTE_BATCH,
    REMOVE_APPOINTEE,
    SET_APPOINTEE,
    START_APP,
    STOP_APP,
    TERMINATE_APP,
    UPGRADE_APP,
    encode_call,
)

console = Console()

SALT_BYTES = 32

# PermissionController appointee meaning "any caller"
ANYONE_CAN_CALL_ADDRESS = "0x493219d9949348178af1f58740655951a8cd110c"
# Target + selector the status API checks before serving logs
API_PERMISSIONS_TARGET_ADDRESS = "0x57ee1fb74c1087e26446abc4fb87fd8f07c43d8d"
CAN_VIEW_APP_LOGS_PERMISSION = bytes.fromhex("2fd3f2fe")

# ERC-7579 execution mode: batch call, default exec type
EXECUTE_BATCH_MODE = bytes([0x01]) + bytes(31)


def generate_salt() -> bytes:
    """32 cryptographically random bytes; one per deploy."""
    return secrets.token_bytes(SALT_BYTES)


def release_to_abi(release: Release) -> tuple:
    """Shape a Release for eth-abi: (((digest, registry)[], upgradeByTime), publicEnv, encryptedEnv)."""
    artifacts = [(artifact.digest, artifact.registry) for artifact in release.artifacts]
    return ((artifacts, release.upgrade_by_time), release.public_env, release.encrypted_env)


def _permission_args(app_id: str) -> tuple:
    return (
        to_checksum_address(app_id),
        to_checksum_address(ANYONE_CAN_CALL_ADDRESS),
        to_checksum_address(API_PERMISSIONS_TARGET_ADDRESS),
        CAN_VIEW_APP_LOGS_PERMISSION,
    )


def encode_execute_batch(plan: BatchPlan) -> bytes:
    """Calldata for the delegate's execute(bytes32 mode, bytes executions)."""
    executions = [
        (to_checksum_address(ex.target), ex.value, ex.call_data) for ex in plan.executions
    ]
    encoded = encode(["(address,uint256,bytes)[]"], [executions])
    return encode_call(EXECUTE_BATCH, EXECUTE_BATCH_MODE, encoded)


class BatchPlanner:
    """
    Builds BatchPlans against one environment's controllers.

    Args:
        app_controller: AppController address (create/upgrade/lifecycle).
        permission_controller: PermissionController address (admin/appointees).
    """

    def __init__(self, app_controller: str, permission_controller: str) -> None:
        self._app_controller = to_checksum_address(app_controller)
        self._permission_controller = to_checksum_address(permission_controller)

    def _grant_logs(self, app_id: str) -> Execution:
        return Execution(
            target=self._permission_controller,
            call_data=encode_call(SET_APPOINTEE, *_permission_args(app_id)),
        )

    def _revoke_logs(self, app_id: str) -> Execution:
        return Execution(
            target=self._permission_controller,
            call_data=encode_call(REMOVE_APPOINTEE, *_permission_args(app_id)),
        )

    def plan_deploy(self, app_id: str, salt: bytes, release: Release, public_logs: bool) -> BatchPlan:
        """
        Plan a fresh deploy.

        Returns:
            2 executions, or 3 with the log permission last when public_logs.
        """
        if len(salt) != SALT_BYTES:
            raise ValidationError(f"Salt must be {SALT_BYTES} bytes, got {len(salt)}")

        executions = [
            Execution(
                target=self._app_controller,
                call_data=encode_call(CREATE_APP, salt, release_to_abi(release)),
            ),
            Execution(
                target=self._permission_controller,
                call_data=encode_call(ACCEPT_ADMIN, to_checksum_address(app_id)),
            ),
        ]
        if public_logs:
            executions.append(self._grant_logs(app_id))

        console.print(f"[dim][PLANNER] Deploy batch for {app_id}: {len(executions)} call(s)[/dim]")
        return BatchPlan(executions=tuple(executions))

    def plan_upgrade(
        self, app_id: str, release: Release, public_logs: bool, currently_public: bool
    ) -> BatchPlan:
        """
        Plan an upgrade. A permission call is added only when visibility changes.

        Returns:
            1 execution, or 2 when public_logs != currently_public.
        """
        executions = [
            Execution(
                target=self._app_controller,
                call_data=encode_call(UPGRADE_APP, to_checksum_address(app_id), release_to_abi(release)),
            )
        ]
        if public_logs and not currently_public:
            executions.append(self._grant_logs(app_id))
        elif currently_public and not public_logs:
            executions.append(self._revoke_logs(app_id))

        console.print(f"[dim][PLANNER] Upgrade batch for {app_id}: {len(executions)} call(s)[/dim]")
        return BatchPlan(executions=tuple(executions))

    def lifecycle_call(self, action: str, app_id: str) -> tuple[str, bytes]:
        """Target and calldata for start/stop/terminate."""
        signatures = {"start": START_APP, "stop": STOP_APP, "terminate": TERMINATE_APP}
        if action not in signatures:
            raise ValidationError(f"Unknown lifecycle action: {action}")
        return self._app_controller, encode_call(signatures[action], to_checksum_address(app_id))
