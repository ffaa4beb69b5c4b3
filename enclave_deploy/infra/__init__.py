# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level infrastructure wrappers:
# - DockerProvider: Docker SDK wrapper with auto-wake capability
# - RegistryClient: Registry HTTP API (manifests, config blobs, tag digests)
# - ChainClient: web3 RPC, contract reads and transaction submission
# - StatusApiClient: Platform status API with signed requests
# - RetryingSession: requests.Session honouring 429 / Retry-After
# -----------------------------------------------------------------------------

from .chain_client import ChainClient
from .docker_client import DockerProvider, DockerProviderError
from .http import RetryingSession
from .registry_client import RegistryClient
from .status_api import StatusApiClient

__all__ = [
    "ChainClient",
    "DockerProvider", "DockerProviderError",
    "RetryingSession",
    "RegistryClient",
    "StatusApiClient",
]
