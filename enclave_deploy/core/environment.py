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
# ENVIRONMENT CONFIGURATION
# -----------------------------------------------------------------------------
# Responsibility: Know where each deployment environment lives: chain id,
# contract addresses, status API, default RPC, and which KMS key seals
# configuration for it.
#
# Sources, lowest to highest priority:
# 1. Built-in defaults (sepolia, mainnet-alpha)
# 2. YAML overrides from ENCLAVE_ENVIRONMENTS_FILE
# 3. .env / process environment for caller settings (key, RPC, environment)
# -----------------------------------------------------------------------------

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from rich.console import Console

from enclave_deploy.domain.errors import ConfigurationError

console = Console()

PROJECT_ROOT = Path(__file__).parent.parent.parent

SEPOLIA_CHAIN_ID = 11155111
MAINNET_CHAIN_ID = 1

ERC7702_DELEGATOR_ADDRESS = "0x63c0c19a282a1b52b07dd5a65b58948a07dae32b"

DEFAULT_ENVIRONMENT = "sepolia"
ENCRYPTION_KEY_FILENAME = "kms-encryption-public-key.pem"


class EnvironmentConfig(BaseModel):
    """
    Everything the engine needs to talk to one deployment environment.

    Loaded from built-in defaults, optionally overridden from YAML.
    """

    name: str
    chain_id: int
    app_controller_address: str
    permission_controller_address: str
    erc7702_delegator_address: str = ERC7702_DELEGATOR_ADDRESS
    user_api_url: str
    default_rpc_url: str
    build: str = Field("prod", pattern="^(prod|dev)$")


class Settings(BaseModel):
    """Caller settings read from the process environment (and .env)."""

    private_key: str | None = None
    rpc_url: str | None = None
    environment: str = DEFAULT_ENVIRONMENT
    keys_dir: Path = PROJECT_ROOT / "keys"
    encryption_key_path: Path | None = None


BUILTIN_ENVIRONMENTS: dict[str, EnvironmentConfig] = {
    "sepolia": EnvironmentConfig(
        name="sepolia",
        chain_id=SEPOLIA_CHAIN_ID,
        app_controller_address="0x0dd810a6ffba6a9820a10d97b659f07d8d23d4E2",
        permission_controller_address="0x44632dfBdCb6D3E21EF613B0ca8A6A0c618F5a37",
        user_api_url="https://userapi-compute-sepolia-prod.eigencloud.xyz",
        default_rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
    ),
    "mainnet-alpha": EnvironmentConfig(
        name="mainnet-alpha",
        chain_id=MAINNET_CHAIN_ID,
        app_controller_address="0xc38d35Fc995e75342A21CBd6D770305b142Fbe67",
        permission_controller_address="0x25E5F8B1E7aDf44518d35D5B2271f114e081f0E5",
        user_api_url="https://userapi-compute.eigencloud.xyz",
        default_rpc_url="https://ethereum-rpc.publicnode.com",
    ),
}


def load_settings(dotenv_path: Path | None = None) -> Settings:
    """
    Load caller settings, reading .env first.

    Existing process variables win over .env entries.
    """
    load_dotenv(dotenv_path or PROJECT_ROOT / ".env")

    keys_dir = os.getenv("ENCLAVE_KEYS_DIR")
    key_path = os.getenv("ENCLAVE_KMS_ENCRYPTION_KEY")
    return Settings(
        private_key=os.getenv("PRIVATE_KEY") or None,
        rpc_url=os.getenv("RPC_URL") or None,
        environment=os.getenv("ENCLAVE_ENVIRONMENT", DEFAULT_ENVIRONMENT),
        keys_dir=Path(keys_dir) if keys_dir else PROJECT_ROOT / "keys",
        encryption_key_path=Path(key_path) if key_path else None,
    )


def load_environments(path: Path | None = None) -> dict[str, EnvironmentConfig]:
    """
    Load environment definitions, applying YAML overrides on top of the defaults.

    The YAML file has a top-level `environments` mapping. An entry with a
    known name only needs the fields it changes; a new name must be complete.

    Args:
        path: Overrides file; defaults to ENCLAVE_ENVIRONMENTS_FILE.

    Raises:
        ConfigurationError: If the file is unreadable or an entry is invalid.
    """
    environments = dict(BUILTIN_ENVIRONMENTS)
    if path is None:
        env_path = os.getenv("ENCLAVE_ENVIRONMENTS_FILE")
        path = Path(env_path) if env_path else None

    if path is None:
        return environments
    if not path.exists():
        console.print(f"[yellow][CONFIG] Environments file {path} not found, using defaults[/yellow]")
        return environments

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    overrides = data.get("environments") or {}
    if not isinstance(overrides, dict):
        raise ConfigurationError(f"'environments' in {path} must be a mapping")

    for name, fields in overrides.items():
        base = environments[name].model_dump() if name in environments else {"name": name}
        base.update(fields or {})
        base["name"] = name
        try:
            environments[name] = EnvironmentConfig(**base)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid environment '{name}' in {path}: {e}") from e

    console.print(f"[green][CONFIG] Loaded {len(overrides)} environment override(s) from {path}[/green]")
    return environments


def get_environment_config(
    name: str,
    chain_id: int | None = None,
    environments: dict[str, EnvironmentConfig] | None = None,
) -> EnvironmentConfig:
    """
    Look up an environment, optionally cross-checking a chain id.

    A chain id that belongs to a *different* known environment is rejected;
    an unknown chain id is accepted (custom RPC forks).

    Raises:
        ConfigurationError: Unknown environment or mismatched chain id.
    """
    environments = environments if environments is not None else load_environments()
    config = environments.get(name)
    if config is None:
        raise ConfigurationError(
            f"Unknown environment: {name}. Available: {', '.join(sorted(environments))}"
        )

    if chain_id is not None:
        owner = next((env.name for env in environments.values() if env.chain_id == chain_id), None)
        if owner is not None and owner != name:
            raise ConfigurationError(f"Environment {name} does not match chain ID {chain_id}")
    return config


def detect_environment(chain_id: int, environments: dict[str, EnvironmentConfig] | None = None) -> str | None:
    environments = environments if environments is not None else load_environments()
    return next((env.name for env in environments.values() if env.chain_id == chain_id), None)


def encryption_key_path(config: EnvironmentConfig, settings: Settings) -> Path:
    if settings.encryption_key_path is not None:
        return settings.encryption_key_path
    return settings.keys_dir / config.name / config.build / ENCRYPTION_KEY_FILENAME


def load_encryption_key(config: EnvironmentConfig, settings: Settings) -> bytes:
    """
    Read the environment's published KMS encryption key (PEM).

    Raises:
        ConfigurationError: If the key file is missing.
    """
    path = encryption_key_path(config, settings)
    if not path.is_file():
        raise ConfigurationError(
            f"Encryption key not found at {path}. Set ENCLAVE_KMS_ENCRYPTION_KEY "
            "or ENCLAVE_KEYS_DIR to point at the environment's keys."
        )
    console.print(f"[dim][CONFIG] Using KMS encryption key {path}[/dim]")
    return path.read_bytes()
