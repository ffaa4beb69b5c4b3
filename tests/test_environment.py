# =============================================================================
# ENVIRONMENT CONFIG TESTS
# =============================================================================
# Built-in environments, YAML overrides, chain id checks and key lookup.
# =============================================================================

from pathlib import Path

import pytest

from enclave_deploy.core.environment import (
    BUILTIN_ENVIRONMENTS,
    MAINNET_CHAIN_ID,
    SEPOLIA_CHAIN_ID,
    Settings,
    detect_environment,
    encryption_key_path,
    get_environment_config,
    load_encryption_key,
    load_environments,
    load_settings,
)
from enclave_deploy.domain.errors import ConfigurationError


class TestLoadEnvironments:
    """Tests for YAML overrides on top of the defaults."""

    def test_defaults_without_file(self, monkeypatch):
        """No file means the built-in environments."""
        monkeypatch.delenv("ENCLAVE_ENVIRONMENTS_FILE", raising=False)
        assert load_environments() == BUILTIN_ENVIRONMENTS

    def test_missing_file_falls_back(self, tmp_path):
        """A path that does not exist falls back to the defaults."""
        assert load_environments(tmp_path / "nope.yaml") == BUILTIN_ENVIRONMENTS

    def test_partial_override(self, tmp_path):
        """Overridden fields replace defaults; the rest are kept."""
        path = tmp_path / "environments.yaml"
        path.write_text("environments:\n  sepolia:\n    default_rpc_url: http://localhost:8545\n")

        environments = load_environments(path)

        assert environments["sepolia"].default_rpc_url == "http://localhost:8545"
        assert environments["sepolia"].chain_id == SEPOLIA_CHAIN_ID
        assert environments["mainnet-alpha"] == BUILTIN_ENVIRONMENTS["mainnet-alpha"]

    def test_new_environment(self, tmp_path):
        """A complete new entry becomes an environment."""
        path = tmp_path / "environments.yaml"
        path.write_text(
            "environments:\n"
            "  devnet:\n"
            "    chain_id: 31337\n"
            "    app_controller_address: '0x" + "11" * 20 + "'\n"
            "    permission_controller_address: '0x" + "22" * 20 + "'\n"
            "    user_api_url: http://localhost:9000\n"
            "    default_rpc_url: http://localhost:8545\n"
            "    build: dev\n"
        )

        devnet = load_environments(path)["devnet"]

        assert devnet.name == "devnet"
        assert devnet.chain_id == 31337
        assert devnet.build == "dev"

    def test_env_var_points_at_file(self, tmp_path, monkeypatch):
        """ENCLAVE_ENVIRONMENTS_FILE selects the override file."""
        path = tmp_path / "environments.yaml"
        path.write_text("environments:\n  sepolia:\n    user_api_url: http://status.local\n")
        monkeypatch.setenv("ENCLAVE_ENVIRONMENTS_FILE", str(path))

        assert load_environments()["sepolia"].user_api_url == "http://status.local"

    def test_incomplete_new_environment(self, tmp_path):
        """A new entry missing required fields is refused."""
        path = tmp_path / "environments.yaml"
        path.write_text("environments:\n  devnet:\n    chain_id: 31337\n")

        with pytest.raises(ConfigurationError):
            load_environments(path)

    def test_bad_build(self, tmp_path):
        """Only known build names are accepted."""
        path = tmp_path / "environments.yaml"
        path.write_text("environments:\n  sepolia:\n    build: staging\n")

        with pytest.raises(ConfigurationError):
            load_environments(path)

    def test_invalid_yaml(self, tmp_path):
        """Unparseable YAML is a configuration error."""
        path = tmp_path / "environments.yaml"
        path.write_text("environments: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_environments(path)


class TestGetEnvironmentConfig:
    """Tests for lookup and chain id cross-checks."""

    def test_known(self):
        """Known names resolve to their config."""
        assert get_environment_config("sepolia", environments=BUILTIN_ENVIRONMENTS).chain_id == SEPOLIA_CHAIN_ID

    def test_unknown(self):
        """Unknown names list the available environments."""
        with pytest.raises(ConfigurationError) as exc_info:
            get_environment_config("moon", environments=BUILTIN_ENVIRONMENTS)
        assert "sepolia" in str(exc_info.value)

    def test_matching_chain_id(self):
        """A matching chain id passes."""
        config = get_environment_config("sepolia", chain_id=SEPOLIA_CHAIN_ID, environments=BUILTIN_ENVIRONMENTS)
        assert config.name == "sepolia"

    def test_chain_id_of_other_environment(self):
        """A chain id claimed by another environment is refused."""
        with pytest.raises(ConfigurationError):
            get_environment_config("sepolia", chain_id=MAINNET_CHAIN_ID, environments=BUILTIN_ENVIRONMENTS)

    def test_unknown_chain_id_accepted(self):
        """A chain id no environment claims passes."""
        assert get_environment_config("sepolia", chain_id=31337, environments=BUILTIN_ENVIRONMENTS)

    def test_detect(self):
        """Chain ids map back to environment names."""
        assert detect_environment(MAINNET_CHAIN_ID, BUILTIN_ENVIRONMENTS) == "mainnet-alpha"
        assert detect_environment(5, BUILTIN_ENVIRONMENTS) is None


class TestSettings:
    """Tests for process settings and the KMS key."""

    def test_load_settings(self, monkeypatch, tmp_path):
        """Settings come from the process environment."""
        monkeypatch.setenv("PRIVATE_KEY", "0x" + "11" * 32)
        monkeypatch.setenv("RPC_URL", "http://localhost:8545")
        monkeypatch.setenv("ENCLAVE_ENVIRONMENT", "mainnet-alpha")
        monkeypatch.setenv("ENCLAVE_KEYS_DIR", str(tmp_path))
        monkeypatch.delenv("ENCLAVE_KMS_ENCRYPTION_KEY", raising=False)

        settings = load_settings(tmp_path / ".env")

        assert settings.private_key == "0x" + "11" * 32
        assert settings.rpc_url == "http://localhost:8545"
        assert settings.environment == "mainnet-alpha"
        assert settings.keys_dir == tmp_path
        assert settings.encryption_key_path is None

    def test_key_path_layout(self, environment_config, tmp_path):
        """Keys live under environment and build directories."""
        settings = Settings(keys_dir=tmp_path)

        path = encryption_key_path(environment_config, settings)

        assert path == tmp_path / "sepolia" / "prod" / "kms-encryption-public-key.pem"

    def test_explicit_key_path_wins(self, environment_config):
        """An explicit key path overrides the layout."""
        settings = Settings(encryption_key_path=Path("/etc/kms.pem"))
        assert encryption_key_path(environment_config, settings) == Path("/etc/kms.pem")

    def test_load_key(self, environment_config, tmp_path, rsa_keypair):
        """The PEM bytes are read from the key path."""
        _, public_pem = rsa_keypair
        key_file = tmp_path / "sepolia" / "prod" / "kms-encryption-public-key.pem"
        key_file.parent.mkdir(parents=True)
        key_file.write_bytes(public_pem)

        assert load_encryption_key(environment_config, Settings(keys_dir=tmp_path)) == public_pem

    def test_missing_key(self, environment_config, tmp_path):
        """A missing key file is a configuration error."""
        with pytest.raises(ConfigurationError):
            load_encryption_key(environment_config, Settings(keys_dir=tmp_path))
