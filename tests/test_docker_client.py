# =============================================================================
# DOCKER PROVIDER TESTS
# =============================================================================
# Tests for the Docker infrastructure wrapper used for image inspection.
# =============================================================================

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import DockerException, ImageNotFound

from enclave_deploy.infra.docker_client import DockerProvider, DockerProviderError


class TestGetClient:
    """Tests for connecting to the engine."""

    def test_injected_client_is_used(self, mock_docker_client):
        """An injected client is returned as is."""
        assert DockerProvider(client=mock_docker_client).get_client() is mock_docker_client

    def test_connects_from_env(self, mock_docker_client):
        """Without injection the client comes from the environment."""
        with patch("enclave_deploy.infra.docker_client.docker.from_env", return_value=mock_docker_client):
            assert DockerProvider().get_client() is mock_docker_client

    def test_unavailable_without_auto_wake(self):
        """A dead engine raises when auto-wake is off."""
        with patch(
            "enclave_deploy.infra.docker_client.docker.from_env", side_effect=DockerException("no socket")
        ):
            with pytest.raises(DockerProviderError):
                DockerProvider(auto_wake=False).get_client()

    def test_is_connected(self, mock_docker_client):
        """Connected only once a client exists."""
        assert DockerProvider(client=mock_docker_client).is_connected()
        assert not DockerProvider().is_connected()


class TestInspectImage:
    """Tests for local image metadata."""

    def test_returns_attrs(self, mock_docker_client):
        """Inspection returns the image attrs."""
        mock_docker_client.images.get.return_value.attrs = {"Architecture": "amd64", "Os": "linux"}

        attrs = DockerProvider(client=mock_docker_client).inspect_image("user/app:v1")

        assert attrs["Architecture"] == "amd64"
        mock_docker_client.images.get.assert_called_once_with("user/app:v1")

    def test_missing_image(self, mock_docker_client):
        """A missing local image raises a provider error."""
        mock_docker_client.images.get.side_effect = ImageNotFound("gone")

        with pytest.raises(DockerProviderError) as exc_info:
            DockerProvider(client=mock_docker_client).inspect_image("user/app:v1")

        assert "not found locally" in str(exc_info.value)


class TestManifestInspect:
    """Tests for `docker manifest inspect`."""

    def test_parses_json(self):
        """The CLI output is parsed as JSON."""
        manifest = {"schemaVersion": 2, "manifests": []}
        result = MagicMock(returncode=0, stdout=json.dumps(manifest), stderr="")

        with patch("enclave_deploy.infra.docker_client.subprocess.run", return_value=result) as run:
            assert DockerProvider().manifest_inspect("user/app:v1") == manifest

        assert run.call_args.args[0] == ["docker", "manifest", "inspect", "user/app:v1"]

    def test_cli_failure(self):
        """A non-zero exit carries stderr in the error."""
        result = MagicMock(returncode=1, stdout="", stderr="no such manifest")

        with patch("enclave_deploy.infra.docker_client.subprocess.run", return_value=result):
            with pytest.raises(DockerProviderError) as exc_info:
                DockerProvider().manifest_inspect("user/app:v1")

        assert "no such manifest" in str(exc_info.value)

    def test_cli_missing(self):
        """A missing docker binary raises a provider error."""
        with patch("enclave_deploy.infra.docker_client.subprocess.run", side_effect=FileNotFoundError("docker")):
            with pytest.raises(DockerProviderError):
                DockerProvider().manifest_inspect("user/app:v1")

    def test_timeout(self):
        """A hung CLI raises a provider error."""
        with patch(
            "enclave_deploy.infra.docker_client.subprocess.run",
            side_effect=subprocess.TimeoutExpired("docker", 60),
        ):
            with pytest.raises(DockerProviderError):
                DockerProvider().manifest_inspect("user/app:v1")

    def test_garbage_output(self):
        """Non-JSON output raises a provider error."""
        result = MagicMock(returncode=0, stdout="not json", stderr="")

        with patch("enclave_deploy.infra.docker_client.subprocess.run", return_value=result):
            with pytest.raises(DockerProviderError):
                DockerProvider().manifest_inspect("user/app:v1")
