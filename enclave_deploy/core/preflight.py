# -----------------------------------------------------------------------------
# PREFLIGHT
# -----------------------------------------------------------------------------
# Responsibility: Turn settings into live, cross-checked clients before any
# deploy work starts.
#
# 1. Validate the private key (no network yet)
# 2. Resolve the environment (built-ins + YAML overrides)
# 3. Connect to RPC and check the chain id belongs to that environment
# -----------------------------------------------------------------------------

from dataclasses import dataclass

from rich.console import Console
from web3 import Web3

from enclave_deploy.core.environment import (
    EnvironmentConfig,
    Settings,
    get_environment_config,
    load_environments,
    load_settings,
)
from enclave_deploy.core.validation import validate_private_key
from enclave_deploy.domain.errors import AuthorizationError
from enclave_deploy.infra.chain_client import ChainClient
from enclave_deploy.infra.status_api import StatusApiClient

console = Console()


@dataclass(frozen=True)
class PreflightContext:
    """Validated settings plus the clients built from them."""

    settings: Settings
    environment: EnvironmentConfig
    rpc_url: str
    chain: ChainClient
    status_api: StatusApiClient

    @property
    def caller_address(self) -> str:
        return self.chain.address


def run_preflight(
    settings: Settings | None = None,
    environments: dict[str, EnvironmentConfig] | None = None,
    web3: Web3 | None = None,
) -> PreflightContext:
    """
    Build a PreflightContext.

    Raises:
        AuthorizationError: No private key configured.
        ValidationError: Private key is malformed.
        ConfigurationError: Unknown environment or chain id mismatch.
        NetworkError: RPC unreachable.
    """
    settings = settings or load_settings()
    if not settings.private_key:
        raise AuthorizationError("PRIVATE_KEY is required to deploy")
    private_key = validate_private_key(settings.private_key)

    environments = environments if environments is not None else load_environments()
    config = get_environment_config(settings.environment, environments=environments)
    rpc_url = settings.rpc_url or config.default_rpc_url

    chain = ChainClient(
        rpc_url,
        config.app_controller_address,
        config.permission_controller_address,
        private_key=private_key,
        web3=web3,
    )
    chain_id = chain.chain_id()
    config = get_environment_config(settings.environment, chain_id=chain_id, environments=environments)

    console.print(
        f"[green][CONFIG] {config.name} (chain {chain_id}) as {chain.address}[/green]"
    )
    return PreflightContext(
        settings=settings,
        environment=config,
        rpc_url=rpc_url,
        chain=chain,
        status_api=StatusApiClient(config.user_api_url, private_key=private_key),
    )
