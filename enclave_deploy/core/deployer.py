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
# THE DEPLOYER - ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: Drive one deploy or upgrade from image reference to a
# running app, one stage at a time:
#
#   ReleaseBuilder -> BatchPlanner -> DelegationManager -> GasEstimator
#                  -> TransactionExecutor -> StatusWatcher
#
# Each invocation sends at most one transaction and never re-sends it.
# prepare_* does every read and computes the cost; execute_* is the only
# step that writes to the chain; watch_* only reads.
# -----------------------------------------------------------------------------

from pathlib import Path

from rich.console import Console

from enclave_deploy.core.batch_planner import (
    ANYONE_CAN_CALL_ADDRESS,
    API_PERMISSIONS_TARGET_ADDRESS,
    CAN_VIEW_APP_LOGS_PERMISSION,
    BatchPlanner,
    encode_execute_batch,
    generate_salt,
)
from enclave_deploy.core.delegation import DelegationManager
from enclave_deploy.core.environment import EnvironmentConfig
from enclave_deploy.core.executor import TransactionExecutor
from enclave_deploy.core.gas import GasEstimator
from enclave_deploy.core.image_resolver import ImageResolver, RemoteImageResolver, resolve_with_retry
from enclave_deploy.core.preflight import PreflightContext
from enclave_deploy.core.release import ReleaseBuilder
from enclave_deploy.core.validation import (
    validate_app_id,
    validate_image_digest,
    validate_image_reference,
    validate_log_visibility,
)
from enclave_deploy.core.watcher import StatusWatcher
from enclave_deploy.domain.errors import ConfigurationError, NetworkError
from enclave_deploy.domain.models import (
    AppInfo,
    AppListing,
    DeployResult,
    LogVisibility,
    PreparedDeploy,
    PreparedUpgrade,
    Release,
    UpgradeResult,
)
from enclave_deploy.infra.chain_client import ChainClient
from enclave_deploy.infra.status_api import StatusApiClient

console = Console()

SUBSCRIBE_HINT = "You need an active subscription to deploy apps. Subscribe to the platform and retry."


class AppDeployer:
    """
    Deploys and upgrades apps for one caller in one environment.

    Every collaborator can be injected; anything omitted is built from the
    chain client and environment config.

    Args:
        environment: Target environment (addresses, delegate).
        chain: Chain client holding the caller's key.
        release_builder: Seals env files for the environment's KMS key.
        status_api: Status API client; required for watching.
        resolver: Image resolver (docker engine by default).
        watcher: Status watcher; built from status_api when omitted.
    """

    def __init__(
        self,
        environment: EnvironmentConfig,
        chain: ChainClient,
        release_builder: ReleaseBuilder,
        status_api: StatusApiClient | None = None,
        resolver: ImageResolver | RemoteImageResolver | None = None,
        watcher: StatusWatcher | None = None,
        planner: BatchPlanner | None = None,
        delegation: DelegationManager | None = None,
        estimator: GasEstimator | None = None,
        executor: TransactionExecutor | None = None,
    ) -> None:
        self._env = environment
        self._chain = chain
        self._release_builder = release_builder
        self._status_api = status_api
        self._resolver = resolver
        self._watcher = watcher or (StatusWatcher.for_client(status_api) if status_api else None)
        self._planner = planner or BatchPlanner(
            environment.app_controller_address, environment.permission_controller_address
        )
        self._delegation = delegation or DelegationManager(chain)
        self._estimator = estimator or GasEstimator(chain)
        self._executor = executor or TransactionExecutor(chain, self._estimator)

    @classmethod
    def from_preflight(
        cls,
        context: PreflightContext,
        encryption_key: bytes,
        remote_resolution: bool = False,
        **kwargs,
    ) -> "AppDeployer":
        """Wire a deployer from a PreflightContext and the environment's KMS key."""
        resolver = RemoteImageResolver() if remote_resolution else ImageResolver()
        return cls(
            environment=context.environment,
            chain=context.chain,
            release_builder=ReleaseBuilder(encryption_key),
            status_api=context.status_api,
            resolver=kwargs.pop("resolver", resolver),
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # SHARED STEPS
    # -------------------------------------------------------------------------

    @property
    def caller(self) -> str:
        return self._chain.address

    def check_quota(self) -> None:
        """
        Refuse to deploy when the caller has no room for another app.

        Raises:
            ConfigurationError: No subscription (limit 0) or limit reached.
        """
        maximum = self._chain.get_max_active_apps_per_user(self.caller)
        if maximum == 0:
            raise ConfigurationError(SUBSCRIBE_HINT)

        active = self._chain.get_active_app_count(self.caller)
        if active >= maximum:
            raise ConfigurationError(
                f"Deploy limit reached: {active} of {maximum} active apps. "
                "Terminate an existing app or request a higher limit."
            )
        console.print(f"[dim][DEPLOYER] Quota: {active}/{maximum} active apps[/dim]")

    def is_logs_public(self, app_id: str) -> bool:
        """Current log visibility; unreadable is treated as private."""
        try:
            return self._chain.can_call(
                app_id, ANYONE_CAN_CALL_ADDRESS, API_PERMISSIONS_TARGET_ADDRESS, CAN_VIEW_APP_LOGS_PERMISSION
            )
        except NetworkError as e:
            console.print(f"[yellow][DEPLOYER] Could not read log visibility, assuming private: {e}[/yellow]")
            return False

    def _build_release(
        self,
        image_ref: str,
        instance_type: str,
        app_id: str,
        env_file: str | Path | None,
        image_digest: str | None,
    ) -> Release:
        if image_digest:
            return self._release_builder.build_from_digest(image_ref, image_digest, instance_type, app_id, env_file)

        resolver = self._resolver or ImageResolver()
        resolved = resolve_with_retry(resolver.resolve, image_ref)
        return self._release_builder.build_from_resolved(image_ref, resolved, instance_type, app_id, env_file)

    def _require_watcher(self) -> StatusWatcher:
        if self._watcher is None:
            raise ConfigurationError("A status API client is required to watch apps")
        return self._watcher

    # -------------------------------------------------------------------------
    # DEPLOY
    # -------------------------------------------------------------------------

    def prepare_deploy(
        self,
        image_ref: str,
        instance_type: str,
        log_visibility: str | LogVisibility = LogVisibility.PRIVATE,
        env_file: str | Path | None = None,
        image_digest: str | None = None,
    ) -> PreparedDeploy:
        """
        Do everything short of sending: quota, app id, release, plan, delegation, gas.

        Args:
            image_ref: Image to deploy (must contain a '/').
            instance_type: Machine type for the TEE.
            log_visibility: public, private or off.
            env_file: Optional .env for the container.
            image_digest: sha256 digest of a prebuilt image; skips resolution.

        Returns:
            PreparedDeploy with the app id and cost, ready for execute_deploy.
        """
        image_ref = validate_image_reference(image_ref)
        _, public_logs = validate_log_visibility(log_visibility)
        if image_digest:
            validate_image_digest(image_digest)

        console.print(f"[cyan][DEPLOYER] Preparing deploy of {image_ref} to {self._env.name}[/cyan]")
        self.check_quota()

        salt = generate_salt()
        app_id = self._chain.calculate_app_id(self.caller, salt)
        console.print(f"[cyan][DEPLOYER] App ID: {app_id}[/cyan]")

        release = self._build_release(image_ref, instance_type, app_id, env_file, image_digest)
        plan = self._planner.plan_deploy(app_id, salt, release, public_logs)
        authorization = self._delegation.ensure_authorization(self.caller, self._env.erc7702_delegator_address)
        gas = self._estimator.estimate_batch(
            self.caller, plan, encode_execute_batch(plan), authorization
        )

        return PreparedDeploy(
            app_id=app_id,
            salt=salt,
            image_ref=image_ref,
            release=release,
            plan=plan,
            authorization=authorization,
            gas=gas,
            public_logs=public_logs,
        )

    def execute_deploy(self, prepared: PreparedDeploy) -> DeployResult:
        """Send the prepared batch. The only step that writes to the chain."""
        tx_hash = self._executor.execute(prepared.plan, prepared.authorization, prepared.gas, "Deploy")
        console.print(f"[green][DEPLOYER] Deployed {prepared.app_id} in {tx_hash}[/green]")
        return DeployResult(app_id=prepared.app_id, tx_hash=tx_hash, image_ref=prepared.image_ref)

    def watch_deployment(self, app_id: str) -> str:
        """Block until the app is Running; returns its ip."""
        return self._require_watcher().watch_until_running(app_id)

    def deploy(
        self,
        image_ref: str,
        instance_type: str,
        log_visibility: str | LogVisibility = LogVisibility.PRIVATE,
        env_file: str | Path | None = None,
        image_digest: str | None = None,
        app_name: str = "",
        watch: bool = True,
    ) -> DeployResult:
        """Prepare, execute and (optionally) watch a deploy in one call."""
        prepared = self.prepare_deploy(image_ref, instance_type, log_visibility, env_file, image_digest)
        console.print(f"[dim][DEPLOYER] Max cost: {prepared.gas.max_cost_eth} ETH[/dim]")
        result = self.execute_deploy(prepared)

        ip_address = self.watch_deployment(result.app_id) if watch else None
        return result.model_copy(update={"app_name": app_name, "ip_address": ip_address})

    # -------------------------------------------------------------------------
    # UPGRADE
    # -------------------------------------------------------------------------

    def prepare_upgrade(
        self,
        app_id: str,
        image_ref: str,
        instance_type: str,
        log_visibility: str | LogVisibility = LogVisibility.PRIVATE,
        env_file: str | Path | None = None,
        image_digest: str | None = None,
    ) -> PreparedUpgrade:
        """
        Prepare an upgrade. A permission call is planned only if visibility changes.
        """
        app_id = validate_app_id(app_id)
        image_ref = validate_image_reference(image_ref)
        _, public_logs = validate_log_visibility(log_visibility)
        if image_digest:
            validate_image_digest(image_digest)

        console.print(f"[cyan][DEPLOYER] Preparing upgrade of {app_id} to {image_ref}[/cyan]")
        currently_public = self.is_logs_public(app_id)

        release = self._build_release(image_ref, instance_type, app_id, env_file, image_digest)
        plan = self._planner.plan_upgrade(app_id, release, public_logs, currently_public)
        authorization = self._delegation.ensure_authorization(self.caller, self._env.erc7702_delegator_address)
        gas = self._estimator.estimate_batch(
            self.caller, plan, encode_execute_batch(plan), authorization
        )

        return PreparedUpgrade(
            app_id=app_id,
            image_ref=image_ref,
            release=release,
            plan=plan,
            authorization=authorization,
            gas=gas,
            public_logs=public_logs,
            currently_public=currently_public,
        )

    def execute_upgrade(self, prepared: PreparedUpgrade) -> UpgradeResult:
        tx_hash = self._executor.execute(prepared.plan, prepared.authorization, prepared.gas, "Upgrade")
        console.print(f"[green][DEPLOYER] Upgraded {prepared.app_id} in {tx_hash}[/green]")
        return UpgradeResult(app_id=prepared.app_id, tx_hash=tx_hash, image_ref=prepared.image_ref)

    def watch_upgrade(self, app_id: str) -> str:
        """Block until the upgrade lands; returns Stopped or Running."""
        return self._require_watcher().watch_until_upgrade_complete(app_id)

    def upgrade(
        self,
        app_id: str,
        image_ref: str,
        instance_type: str,
        log_visibility: str | LogVisibility = LogVisibility.PRIVATE,
        env_file: str | Path | None = None,
        image_digest: str | None = None,
        watch: bool = True,
    ) -> UpgradeResult:
        prepared = self.prepare_upgrade(app_id, image_ref, instance_type, log_visibility, env_file, image_digest)
        console.print(f"[dim][DEPLOYER] Max cost: {prepared.gas.max_cost_eth} ETH[/dim]")
        result = self.execute_upgrade(prepared)
        if watch:
            self.watch_upgrade(result.app_id)
        return result

    # -------------------------------------------------------------------------
    # LIFECYCLE + ACCOUNT
    # -------------------------------------------------------------------------

    def _lifecycle(self, action: str, app_id: str) -> str:
        app_id = validate_app_id(app_id)
        target, data = self._planner.lifecycle_call(action, app_id)
        return self._executor.send_call(target, data, description=action.capitalize())

    def start_app(self, app_id: str) -> str:
        return self._lifecycle("start", app_id)

    def stop_app(self, app_id: str) -> str:
        return self._lifecycle("stop", app_id)

    def terminate_app(self, app_id: str) -> str:
        return self._lifecycle("terminate", app_id)

    def is_delegated(self) -> bool:
        return self._delegation.check(self.caller, self._env.erc7702_delegator_address)

    def undelegate(self) -> str:
        """Remove the account's delegation (authorize the zero address)."""
        authorization = self._delegation.revocation(self.caller)
        gas = self._estimator.estimate(self._chain.get_fee_snapshot(), None, 1)
        return self._executor.send_authorization(authorization, gas, "Undelegate")

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def get_app_infos(self, app_ids: list[str], address_count: int = 1) -> list[AppInfo]:
        if self._status_api is None:
            raise ConfigurationError("A status API client is required to read app status")
        return self._status_api.get_infos([validate_app_id(a) for a in app_ids], address_count)

    def list_apps(self, developer: str | None = None) -> list[AppListing]:
        """The developer's apps with their latest release block and time, where readable."""
        apps = self._chain.get_all_apps_by_developer(developer or self.caller)
        blocks = self._chain.get_app_latest_release_block_numbers(apps)
        times = self._chain.get_block_timestamps(list(blocks.values()))
        return [
            AppListing(
                app_id=app,
                latest_release_block=blocks.get(app),
                latest_release_time=times.get(blocks[app]) if app in blocks else None,
            )
            for app in apps
        ]
