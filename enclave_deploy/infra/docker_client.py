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
# DOCKER PROVIDER - LOCAL IMAGE ENGINE
# -----------------------------------------------------------------------------
# Responsibility: The engine-backed side of image resolution. Provides
# manifest inspection (multi- and single-platform) and local image metadata
# (Os/Architecture/RepoDigests) to the ImageResolver.
#
# The Docker SDK has no manifest-list API, so manifests are read through the
# docker CLI; image metadata comes from the SDK.
# -----------------------------------------------------------------------------

import json
import platform
import subprocess
import time

import docker
from docker import DockerClient
from docker.errors import DockerException, ImageNotFound
from rich.console import Console

console = Console()

# docker manifest inspect output can be large for wide indexes
MANIFEST_TIMEOUT_SECONDS = 60
WAKE_TIMEOUT_SECONDS = 60


class DockerProviderError(Exception):
    """Raised when the Docker engine is unavailable or an inspection fails."""

    pass


class DockerProvider:
    """
    Docker SDK wrapper used for image inspection.

    Why this design:
    - One place owns the engine connection (and the auto-wake fallback)
    - Callers get plain dicts, never SDK objects
    - Failures surface as DockerProviderError with the offending reference
    """

    def __init__(self, client: DockerClient | None = None, auto_wake: bool = True) -> None:
        """
        Initialize the provider.

        Args:
            client: Pre-built client (tests); connects from env when omitted.
            auto_wake: If True, try to start Docker Desktop when the engine sleeps.
        """
        self._client = client
        self._auto_wake = auto_wake

    def _wake_docker(self) -> DockerClient | None:
        """
        Attempt to launch the Docker engine if it's sleeping.

        Returns:
            DockerClient if wake succeeds, None otherwise.
        """
        system = platform.system()
        console.print("[yellow][DOCKER] Engine sleeping. Attempting auto-wake...[/yellow]")

        if system == "Darwin":
            subprocess.run(["open", "-a", "Docker"], check=False)
        elif system == "Linux":
            # User-level systemctl avoids a sudo password prompt
            subprocess.run(["systemctl", "--user", "start", "docker"], check=False)
        else:
            console.print(f"[yellow][DOCKER] Auto-wake not supported on {system}[/yellow]")
            return None

        with console.status("[yellow]Waiting for Docker Engine...[/yellow]", spinner="clock"):
            for _ in range(WAKE_TIMEOUT_SECONDS):
                try:
                    client = docker.from_env()
                    client.ping()
                    console.print("[green][DOCKER] Engine Online.[/green]")
                    return client
                except DockerException:
                    time.sleep(1)

        console.print("[red][DOCKER] Wake timeout - Docker did not respond[/red]")
        return None

    def get_client(self) -> DockerClient:
        """
        Return a live client, connecting (and waking the engine) on first use.

        Raises:
            DockerProviderError: If the engine cannot be reached.
        """
        if self._client is not None:
            return self._client

        try:
            client = docker.from_env()
            client.ping()
            self._client = client
            console.print("[green][DOCKER] Connected to Docker Engine[/green]")
            return client
        except DockerException:
            if self._auto_wake:
                self._client = self._wake_docker()

        if self._client is None:
            raise DockerProviderError(
                "Docker Engine is not available. Start Docker and retry, "
                "or resolve the image over the registry API instead."
            )
        return self._client

    def inspect_image(self, image_ref: str) -> dict:
        """
        Return the engine's metadata for a local image.

        Returns:
            The inspect attributes (Os, Architecture, RepoDigests, ...).

        Raises:
            DockerProviderError: If the image is not present locally.
        """
        try:
            return self.get_client().images.get(image_ref).attrs
        except ImageNotFound as e:
            raise DockerProviderError(f"Image {image_ref} not found locally: {e}") from e
        except DockerException as e:
            raise DockerProviderError(f"Failed to inspect image {image_ref}: {e}") from e

    def manifest_inspect(self, image_ref: str) -> dict:
        """
        Fetch the registry manifest (or index) for a reference via the docker CLI.

        Raises:
            DockerProviderError: If the CLI fails or prints something that isn't JSON.
        """
        try:
            result = subprocess.run(
                ["docker", "manifest", "inspect", image_ref],
                capture_output=True,
                text=True,
                timeout=MANIFEST_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DockerProviderError(f"docker manifest inspect {image_ref} failed: {e}") from e

        if result.returncode != 0:
            raise DockerProviderError(
                f"docker manifest inspect {image_ref} failed: {result.stderr.strip() or result.stdout.strip()}"
            )

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise DockerProviderError(f"Unreadable manifest for {image_ref}: {e}") from e

    def is_connected(self) -> bool:
        """Check if Docker is currently reachable."""
        if self._client is None:
            return False
        try:
            self._client.ping()
            return True
        except DockerException:
            return False
