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
# DOMAIN MODELS - RELEASES, BATCHES, STATUS
# -----------------------------------------------------------------------------
# These Pydantic models are the contract between the off-chain preparation
# stages (resolver, release builder) and the on-chain stages (planner,
# executor). Anything malformed is rejected here, before a transaction is
# ever built.
#
# Release and ResolvedImage are frozen: the record that was priced is the
# record that is sent.
# -----------------------------------------------------------------------------

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# The only platform the TEE runs
REQUIRED_PLATFORM = "linux/amd64"


class AppLifecycleState(str, Enum):
    """
    Lifecycle states reported by the platform status API.

    Owned by the remote platform; the engine only observes them.
    """

    CREATED = "Created"
    DEPLOYING = "Deploying"
    UPGRADING = "Upgrading"
    RESUMING = "Resuming"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"
    SUSPENDED = "Suspended"
    RUNNING = "Running"
    FAILED = "Failed"


class LogVisibility(str, Enum):
    """Requested visibility of the app's logs."""

    PUBLIC = "public"
    PRIVATE = "private"
    OFF = "off"


class ResolvedImage(BaseModel):
    """An image reference pinned to its content digest for the required platform."""

    model_config = ConfigDict(frozen=True)

    digest: bytes = Field(..., description="32-byte sha256 content digest")
    registry: str = Field(..., min_length=1, description="Registry-qualified name, no tag")
    platform: str = REQUIRED_PLATFORM

    @field_validator("digest")
    @classmethod
    def _digest_is_32_bytes(cls, value: bytes) -> bytes:
        if len(value) != 32:
            raise ValueError(f"Digest must be exactly 32 bytes, got {len(value)}")
        return value


class Artifact(BaseModel):
    """One deployable artifact inside a Release."""

    model_config = ConfigDict(frozen=True)

    digest: bytes
    registry: str = Field(..., min_length=1)

    @field_validator("digest")
    @classmethod
    def _digest_is_32_bytes(cls, value: bytes) -> bytes:
        if len(value) != 32:
            raise ValueError(f"Digest must be exactly 32 bytes, got {len(value)}")
        return value


class Release(BaseModel):
    """
    The versioned record submitted on-chain.

    Fields:
    - artifacts: exactly one entry (the contract rejects more)
    - upgrade_by_time: epoch seconds after which the release is stale
    - public_env: JSON object bytes, readable by anyone
    - encrypted_env: envelope ciphertext of a JSON object
    """

    model_config = ConfigDict(frozen=True)

    artifacts: tuple[Artifact, ...] = Field(..., min_length=1, max_length=1)
    upgrade_by_time: int = Field(..., ge=0, lt=2**64)
    public_env: bytes
    encrypted_env: bytes


class Execution(BaseModel):
    """A single call inside a batch. Order within a BatchPlan is load-bearing."""

    model_config = ConfigDict(frozen=True)

    target: str
    value: int = Field(0, ge=0)
    call_data: bytes


class BatchPlan(BaseModel):
    """Ordered list of executions submitted atomically in one transaction."""

    model_config = ConfigDict(frozen=True)

    executions: tuple[Execution, ...] = Field(..., min_length=1)

    def __len__(self) -> int:
        return len(self.executions)


class DelegationAuthorization(BaseModel):
    """
    A signed authorization letting the caller's account adopt the delegate code.

    Present only when the account is not already delegated.
    """

    model_config = ConfigDict(frozen=True)

    chain_id: int
    delegate_address: str
    nonce: int = Field(..., ge=0)
    y_parity: int = Field(..., ge=0, le=1)
    r: int
    s: int

    def to_transaction_entry(self) -> dict:
        """Shape expected in a set-code transaction's authorizationList."""
        return {
            "chainId": self.chain_id,
            "address": self.delegate_address,
            "nonce": self.nonce,
            "yParity": self.y_parity,
            "r": self.r,
            "s": self.s,
        }


class FeeSnapshot(BaseModel):
    """Fee-market reading taken right before estimation."""

    base_fee: int = Field(..., ge=0)
    priority_fee: int = Field(..., ge=0)


class GasEstimate(BaseModel):
    """Conservative fee ceiling for a prepared batch."""

    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    max_cost_wei: int
    max_cost_eth: str


class AppInfo(BaseModel):
    """One entry of the status API's info response."""

    address: str
    status: str
    ip: str = ""
    machine_type: str = ""


class ParsedEnvironment(BaseModel):
    """An env file split into public and private maps."""

    public: dict[str, str] = Field(default_factory=dict)
    private: dict[str, str] = Field(default_factory=dict)
    mnemonic_filtered: bool = False


class DeployResult(BaseModel):
    """Outcome of a deploy, filled in as the stages complete."""

    app_id: str
    tx_hash: str
    image_ref: str
    app_name: str = ""
    ip_address: str | None = None


class UpgradeResult(BaseModel):
    """Outcome of an upgrade."""

    app_id: str
    tx_hash: str
    image_ref: str


class PreparedDeploy(BaseModel):
    """
    A deploy ready for submission: app id known, cost known, nothing sent.

    Returned by prepare_deploy so the caller can confirm the cost first.
    """

    model_config = ConfigDict(frozen=True)

    app_id: str
    salt: bytes
    image_ref: str
    release: Release
    plan: BatchPlan
    authorization: DelegationAuthorization | None = None
    gas: GasEstimate
    public_logs: bool = False


class PreparedUpgrade(BaseModel):
    """An upgrade ready for submission."""

    model_config = ConfigDict(frozen=True)

    app_id: str
    image_ref: str
    release: Release
    plan: BatchPlan
    authorization: DelegationAuthorization | None = None
    gas: GasEstimate
    public_logs: bool = False
    currently_public: bool = False


class AppListing(BaseModel):
    """One of the caller's apps, with when it was last released."""

    app_id: str
    latest_release_block: int | None = None
    latest_release_time: int | None = None
