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
# REGISTRY INFRASTRUCTURE - Registry HTTP API v2
# -----------------------------------------------------------------------------
# Responsibility: Read manifests straight from a container registry, with no
# local image engine involved.
#
# Features:
# - Anonymous pull-token exchange for Docker Hub (auth.docker.io)
# - Bearer challenge handling for other registries (ghcr.io, ...)
# - Accept header covering Docker v2 and OCI manifests and indexes
#
# Security:
# - Pull tokens are NEVER logged
# -----------------------------------------------------------------------------

import hashlib
import re
from dataclasses import dataclass

import requests
from rich.console import Console

from enclave_deploy.domain.errors import NetworkError, ValidationError
from enclave_deploy.infra.http import RetryingSession

console = Console()

DEFAULT_REGISTRY = "docker.io"
DOCKER_HUB_API_URL = "https://registry-1.docker.io"
DOCKER_HUB_AUTH_URL = "https://auth.docker.io/token"
DOCKER_HUB_SERVICE = "registry.docker.io"

MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"

MANIFEST_ACCEPT = ", ".join(
    [MEDIA_TYPE_DOCKER_LIST, MEDIA_TYPE_OCI_INDEX, MEDIA_TYPE_DOCKER_MANIFEST, MEDIA_TYPE_OCI_MANIFEST]
)

_DIGEST_RE = re.compile(r"^sha256:[0-9a-fA-F]{64}$")
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference: registry host, repository path and tag or digest."""

    registry: str
    repository: str
    reference: str

    @property
    def api_base(self) -> str:
        if self.registry == DEFAULT_REGISTRY:
            return DOCKER_HUB_API_URL
        return f"https://{self.registry}"

    @property
    def manifest_url(self) -> str:
        return f"{self.api_base}/v2/{self.repository}/manifests/{self.reference}"

    def blob_url(self, digest: str) -> str:
        return f"{self.api_base}/v2/{self.repository}/blobs/{digest}"


def parse_image_reference(image_ref: str) -> ImageReference:
    """
    Split an image reference into registry, repository and tag/digest.

    A first path segment containing "." or ":" (or "localhost") is a registry
    host; otherwise the image lives on Docker Hub, where single-segment
    names belong to the "library" namespace.

    Raises:
        ValidationError: If the reference is empty.
    """
    name = image_ref.strip()
    if not name:
        raise ValidationError("Image reference cannot be empty", image_ref)

    reference = "latest"
    if "@" in name:
        name, reference = name.split("@", 1)
    else:
        tag_index = name.rfind(":")
        if tag_index != -1 and "/" not in name[tag_index + 1 :]:
            name, reference = name[:tag_index], name[tag_index + 1 :]

    parts = name.split("/")
    if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        registry, repository = parts[0], "/".join(parts[1:])
    else:
        registry, repository = DEFAULT_REGISTRY, name

    if registry in ("index.docker.io", "registry-1.docker.io"):
        registry = DEFAULT_REGISTRY
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"

    return ImageReference(registry=registry, repository=repository, reference=reference)


def _parse_bearer_challenge(header: str) -> dict[str, str] | None:
    if not header or not header.lower().startswith("bearer "):
        return None
    return dict(_CHALLENGE_PARAM_RE.findall(header))


class RegistryClient:
    """
    Minimal Registry HTTP API v2 client for manifest and config reads.

    Every request goes through a RetryingSession so 429 responses back off
    the same way the status API does.
    """

    def __init__(self, session: RetryingSession | None = None) -> None:
        self._session = session or RetryingSession()

    def _fetch_token(self, realm: str, service: str, scope: str) -> str:
        try:
            response = self._session.get(realm, params={"service": service, "scope": scope})
        except requests.RequestException as e:
            raise NetworkError(f"Registry token request failed: {e}", url=realm) from e

        if response.status_code != 200:
            raise NetworkError(
                f"Failed to fetch registry token ({response.status_code}): {response.text.strip()}",
                url=realm,
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(f"Registry token response is not JSON: {e}", url=realm) from e

        token = data.get("token") or data.get("access_token")
        if not token:
            raise NetworkError("Registry token response missing 'token'", url=realm)
        return token

    def _docker_hub_token(self, ref: ImageReference) -> str:
        console.print(f"[dim][REGISTRY] Exchanging pull token for {ref.repository}[/dim]")
        return self._fetch_token(
            DOCKER_HUB_AUTH_URL, DOCKER_HUB_SERVICE, f"repository:{ref.repository}:pull"
        )

    def _request(self, method: str, ref: ImageReference, url: str, headers: dict) -> requests.Response:
        """
        Issue a registry request, handling the token exchange.

        Docker Hub always gets a token up front. Other registries are tried
        anonymously first and answer a Bearer challenge if they return 401.
        """
        headers = dict(headers)
        if ref.registry == DEFAULT_REGISTRY:
            headers["Authorization"] = f"Bearer {self._docker_hub_token(ref)}"

        try:
            response = self._session.request(method, url, headers=headers)
            if response.status_code == 401 and "Authorization" not in headers:
                challenge = _parse_bearer_challenge(response.headers.get("WWW-Authenticate", ""))
                if challenge and challenge.get("realm"):
                    token = self._fetch_token(
                        challenge["realm"],
                        challenge.get("service", ref.registry),
                        challenge.get("scope", f"repository:{ref.repository}:pull"),
                    )
                    headers["Authorization"] = f"Bearer {token}"
                    response = self._session.request(method, url, headers=headers)
        except requests.RequestException as e:
            raise NetworkError(f"Registry request failed: {e}", url=url) from e
        return response

    def fetch_manifest(self, image_ref: str) -> tuple[dict, str | None]:
        """
        Fetch the manifest or index for a reference.

        Returns:
            (manifest JSON, content digest of the manifest if the registry sent one)

        Raises:
            NetworkError: On transport failure or a non-200 response.
        """
        ref = parse_image_reference(image_ref)
        console.print(f"[cyan][REGISTRY] Fetching manifest: {ref.registry}/{ref.repository}:{ref.reference}[/cyan]")

        response = self._request("GET", ref, ref.manifest_url, {"Accept": MANIFEST_ACCEPT})
        if response.status_code != 200:
            raise NetworkError(
                f"Failed to fetch manifest for {image_ref} ({response.status_code}): {response.text.strip()[:300]}",
                url=ref.manifest_url,
                status_code=response.status_code,
            )

        try:
            manifest = response.json()
        except ValueError as e:
            raise NetworkError(f"Manifest for {image_ref} is not JSON: {e}", url=ref.manifest_url) from e

        digest = response.headers.get("Docker-Content-Digest")
        if not digest and response.content:
            digest = "sha256:" + hashlib.sha256(response.content).hexdigest()
        return manifest, digest

    def fetch_config(self, image_ref: str, config_digest: str) -> dict:
        """Fetch an image config blob (carries os/architecture)."""
        ref = parse_image_reference(image_ref)
        url = ref.blob_url(config_digest)
        response = self._request("GET", ref, url, {})
        if response.status_code != 200:
            raise NetworkError(
                f"Failed to fetch config blob {config_digest} ({response.status_code})",
                url=url,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Config blob {config_digest} is not JSON: {e}", url=url) from e

    def resolve_tag_digest(self, image_ref: str) -> str:
        """
        Resolve a tag to its immutable content digest.

        Prefers HEAD to avoid downloading the manifest body, falls back to GET.

        Returns:
            sha256:<64 hex>
        """
        ref = parse_image_reference(image_ref)
        headers = {"Accept": MANIFEST_ACCEPT}

        response = self._request("HEAD", ref, ref.manifest_url, headers)
        if response.status_code != 200:
            response = self._request("GET", ref, ref.manifest_url, headers)

        if response.status_code != 200:
            raise NetworkError(
                f"Failed to resolve digest for {image_ref} ({response.status_code}) at {ref.manifest_url}",
                url=ref.manifest_url,
                status_code=response.status_code,
            )

        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            raise NetworkError(
                f"Registry response missing Docker-Content-Digest header for {image_ref}",
                url=ref.manifest_url,
            )
        if not _DIGEST_RE.match(digest):
            raise NetworkError(f"Unexpected digest format from registry: {digest}", url=ref.manifest_url)
        return digest
