"""
Pytest configuration and fixtures for enclave_deploy tests.
"""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from Crypto.PublicKey import RSA

# Add the repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep tests away from any real .env or keys on the developer's machine
os.environ.setdefault("ENCLAVE_ENVIRONMENT", "sepolia")
os.environ.pop("ENCLAVE_ENVIRONMENTS_FILE", None)

from enclave_deploy.core.environment import BUILTIN_ENVIRONMENTS  # noqa: E402
from enclave_deploy.infra.chain_client import ChainClient  # noqa: E402

# Well-known development key (anvil/hardhat account #0). Never funded on a real network.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


@pytest.fixture(scope="session")
def rsa_keypair():
    """A 2048-bit RSA keypair as (private PEM, public PEM)."""
    key = RSA.generate(2048)
    return key.export_key(), key.publickey().export_key()


@pytest.fixture
def environment_config():
    """The built-in Sepolia environment."""
    return BUILTIN_ENVIRONMENTS["sepolia"]


@pytest.fixture
def mock_chain(environment_config):
    """Chain client double with the caller's address and controller addresses set."""
    chain = MagicMock(spec=ChainClient)
    chain.address = TEST_ADDRESS
    chain.app_controller = environment_config.app_controller_address
    chain.permission_controller = environment_config.permission_controller_address
    return chain


@pytest.fixture
def private_key():
    return TEST_PRIVATE_KEY


@pytest.fixture
def caller_address():
    return TEST_ADDRESS


@pytest.fixture
def recorded_sleeps():
    """A fake sleep that records every delay instead of waiting."""
    delays = []
    sleep = delays.append
    return delays, sleep


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.images.get.return_value = MagicMock()
    return client
