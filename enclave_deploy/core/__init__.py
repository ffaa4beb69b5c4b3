# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The deploy pipeline:
# - EnvelopeCipher: Seals the private environment for the KMS key
# - ImageResolver: Pins the linux/amd64 digest of an image
# - ReleaseBuilder: Assembles the on-chain Release record
# - BatchPlanner: Turns a release into AppController/PermissionController calls
# - DelegationManager: EIP-7702 delegation of the caller's account
# - GasEstimator / TransactionExecutor: Price, send and confirm one transaction
# - StatusWatcher: Polls the status API until the platform settles
# - AppDeployer: Orchestrates all of the above
# -----------------------------------------------------------------------------

from .batch_planner import BatchPlanner, encode_execute_batch, generate_salt
from .delegation import DelegationManager
from .deployer import AppDeployer
from .envelope import EnvelopeCipher, EnvelopeFormat
from .environment import EnvironmentConfig, Settings, get_environment_config, load_environments, load_settings
from .executor import TransactionExecutor
from .gas import GasEstimator, format_eth
from .image_resolver import ImageResolver, RemoteImageResolver, extract_registry_name, resolve_with_retry
from .preflight import PreflightContext, run_preflight
from .release import ReleaseBuilder
from .revert import decode_revert
from .watcher import StatusWatcher

__all__ = [
    "AppDeployer",
    "BatchPlanner", "encode_execute_batch", "generate_salt",
    "DelegationManager",
    "EnvelopeCipher", "EnvelopeFormat",
    "EnvironmentConfig", "Settings", "get_environment_config", "load_environments", "load_settings",
    "TransactionExecutor",
    "GasEstimator", "format_eth",
    "ImageResolver", "RemoteImageResolver", "extract_registry_name", "resolve_with_retry",
    "PreflightContext", "run_preflight",
    "ReleaseBuilder",
    "decode_revert",
    "StatusWatcher",
]
