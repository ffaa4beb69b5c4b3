# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Contains the Pydantic models that flow between the preparation stages and
# the on-chain stages, plus the error taxonomy shared by every layer.
# -----------------------------------------------------------------------------

from .errors import (
    AuthorizationError,
    ConfigurationError,
    ContractRevertError,
    DecryptionError,
    EnclaveDeployError,
    LifecycleFailure,
    NetworkError,
    PlatformMismatchError,
    ValidationError,
    WatchTimeoutError,
)
from .models import (
    REQUIRED_PLATFORM,
    AppInfo,
    AppLifecycleState,
    AppListing,
    Artifact,
    BatchPlan,
    DelegationAuthorization,
    DeployResult,
    Execution,
    FeeSnapshot,
    GasEstimate,
    LogVisibility,
    ParsedEnvironment,
    PreparedDeploy,
    PreparedUpgrade,
    Release,
    ResolvedImage,
    UpgradeResult,
)

__all__ = [
    "REQUIRED_PLATFORM",
    "AppInfo", "AppLifecycleState", "Artifact", "BatchPlan",
    "DelegationAuthorization", "DeployResult", "Execution", "FeeSnapshot",
    "GasEstimate", "LogVisibility", "ParsedEnvironment", "Release",
    "ResolvedImage", "UpgradeResult", "PreparedDeploy", "PreparedUpgrade",
    "AppListing",
    "EnclaveDeployError", "ValidationError", "PlatformMismatchError",
    "NetworkError", "ContractRevertError", "LifecycleFailure",
    "AuthorizationError", "DecryptionError", "ConfigurationError",
    "WatchTimeoutError",
]
