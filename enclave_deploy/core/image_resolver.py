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
# IMAGE RESOLVER - DIGEST + PLATFORM PINNING
# -----------------------------------------------------------------------------
# Responsibility: Turn a mutable image reference (repo:tag) into the exact
# 32-byte content digest the TEE will pull, and refuse anything that is not
# built for the one platform the TEE runs.
#
# Two sources, same answers:
# - ImageResolver:        docker engine (manifest inspect + image inspect)
# - RemoteImageResolver:  registry HTTP API, no local engine required
#
# A multi-platform index yields the matching entry's digest. A single-platform
# manifest is checked against the image config's os/architecture.
# -----------------------------------------------------------------------------

import time
from collections.abc import Callable

from rich.console import Console

from enclave_deploy.domain.errors import NetworkError, PlatformMismatchError, ValidationError
from enclave_deploy.domain.models import REQUIRED_PLATFORM, ResolvedImage
from enclave_deploy.infra.docker_client import DockerProvider, DockerProviderError
from enclave_deploy.infra.registry_client import RegistryClient

console = Console()

DEFAULT_REGISTRY_PREFIX = "docker.io"
REPO_DIGEST_MARKER = "@sha256:"

RESOLVE_ATTEMPTS = 3
RESOLVE_RETRY_DELAY_SECONDS = 2.0


def extract_registry_name(image_ref: str) -> str:
    """
    Derive the registry-qualified name of an image, without tag or digest.

    Examples:
        ghcr.io/user/repo:tag    -> ghcr.io/user/repo
        user/repo:v1             -> docker.io/user/repo
        user/repo@sha256:abc...  -> docker.io/user/repo
    """
    name = image_ref
    digest_index = name.find("@")
    if digest_index != -1:
        name = name[:digest_index]

    tag_index = name.rfind(":")
    if tag_index != -1 and "/" not in name[tag_index + 1 :]:
        name = name[:tag_index]

    if name.count("/") == 1:
        name = f"{DEFAULT_REGISTRY_PREFIX}/{name}"
    return name


def hex_to_bytes32(value: str) -> bytes:
    """
    Decode a digest string ("sha256:<hex>" or bare hex) into exactly 32 bytes.

    Raises:
        ValidationError: If the value is not hex or not 32 bytes long.
    """
    clean = value.split(":", 1)[1] if ":" in value else value
    try:
        digest = bytes.fromhex(clean)
    except ValueError as e:
        raise ValidationError(f"Digest is not valid hex: {value}", value) from e
    if len(digest) != 32:
        raise ValidationError(f"Digest must be exactly 32 bytes, got {len(digest)}", value)
    return digest


def digest_from_repo_digest(repo_digest: str) -> bytes:
    """Pull the digest out of a RepoDigests entry ("repo@sha256:<hex>")."""
    index = repo_digest.rfind(REPO_DIGEST_MARKER)
    if index == -1:
        raise ValidationError(f"Invalid repo digest format: {repo_digest}", repo_digest)
    return hex_to_bytes32(repo_digest[index + len(REPO_DIGEST_MARKER) :])


def platform_error(image_ref: str, platforms: list[str]) -> PlatformMismatchError:
    """Build the mismatch error, listing every platform found plus remediation."""
    found = ", ".join(platforms) if platforms else "none"
    message = (
        f"TEE deployment requires {REQUIRED_PLATFORM} images.\n\n"
        f"Image: {image_ref}\n"
        f"Found platform(s): {found}\n"
        f"Required platform: {REQUIRED_PLATFORM}\n\n"
        "To fix this issue:\n"
        "  1. Rebuild your image for the required platform:\n"
        f"       docker build --platform {REQUIRED_PLATFORM} -t {image_ref} .\n"
        "  2. Push the rebuilt image:\n"
        f"       docker push {image_ref}"
    )
    return PlatformMismatchError(message, image_ref=image_ref, platforms=platforms)


def select_platform_entry(manifest: dict, image_ref: str) -> ResolvedImage:
    """
    Pick the required-platform entry from a multi-platform index.

    Entries are compared on "os/architecture" exactly; order does not matter.

    Raises:
        PlatformMismatchError: No entry matches; lists everything that was seen.
    """
    platforms: list[str] = []
    for entry in manifest.get("manifests") or []:
        spec = entry.get("platform")
        if not spec:
            continue
        platform = f"{spec.get('os')}/{spec.get('architecture')}"
        if platform not in platforms:
            platforms.append(platform)
        if platform == REQUIRED_PLATFORM:
            return ResolvedImage(
                digest=hex_to_bytes32(entry["digest"]),
                registry=extract_registry_name(image_ref),
                platform=REQUIRED_PLATFORM,
            )

    console.print(f"[red][RESOLVER] No {REQUIRED_PLATFORM} entry in {image_ref}: {platforms}[/red]")
    raise platform_error(image_ref, platforms)


def is_index(manifest: dict) -> bool:
    return bool(manifest.get("manifests"))


class ImageResolver:
    """
    Resolve references through the local docker engine.

    Multi-platform indexes come from `docker manifest inspect`; single-platform
    images additionally need the engine's view of the image (Os/Architecture,
    RepoDigests), so the image must have been pulled or built locally.
    """

    def __init__(self, docker: DockerProvider | None = None) -> None:
        self._docker = docker or DockerProvider()

    def resolve(self, image_ref: str) -> ResolvedImage:
        """
        Resolve a reference to its required-platform digest.

        Raises:
            PlatformMismatchError: The image is not built for the required platform.
            NetworkError: The manifest or image metadata could not be read.
        """
        console.print(f"[cyan][RESOLVER] Resolving {image_ref}[/cyan]")
        try:
            manifest = self._docker.manifest_inspect(image_ref)
        except DockerProviderError as e:
            raise NetworkError(f"Failed to get image digest for {image_ref}: {e}") from e

        if is_index(manifest):
            resolved = select_platform_entry(manifest, image_ref)
        else:
            resolved = self._resolve_single_platform(manifest, image_ref)

        console.print(f"[green][RESOLVER] {resolved.registry}@sha256:{resolved.digest.hex()}[/green]")
        return resolved

    def _resolve_single_platform(self, manifest: dict, image_ref: str) -> ResolvedImage:
        config_digest = (manifest.get("config") or {}).get("digest")
        try:
            attrs = self._docker.inspect_image(image_ref)
        except DockerProviderError as e:
            raise NetworkError(
                f"Failed to extract digest from single-platform image {image_ref}: {e}"
            ) from e

        registry = extract_registry_name(image_ref)
        architecture = attrs.get("Architecture")
        if not architecture:
            if config_digest:
                # No architecture recorded; the config digest is all we have
                console.print(f"[yellow][RESOLVER] No platform info for {image_ref}, assuming {REQUIRED_PLATFORM}[/yellow]")
                return ResolvedImage(digest=hex_to_bytes32(config_digest), registry=registry)
            raise ValidationError(f"Could not determine platform for {image_ref}", image_ref)

        platform = f"{attrs.get('Os') or 'linux'}/{architecture}"
        if platform != REQUIRED_PLATFORM:
            raise platform_error(image_ref, [platform])

        repo_digests = attrs.get("RepoDigests") or []
        if repo_digests:
            digest = digest_from_repo_digest(repo_digests[0])
        elif config_digest:
            digest = hex_to_bytes32(config_digest)
        else:
            raise ValidationError(f"Could not extract digest for {image_ref}", image_ref)
        return ResolvedImage(digest=digest, registry=registry)


class RemoteImageResolver:
    """
    Resolve references over the registry HTTP API only.

    Single-platform manifests are checked by fetching the config blob, which
    carries os/architecture; the returned digest is the manifest's own
    content digest (what a registry-qualified pull pins to), falling back to
    the config digest when the registry does not report one.
    """

    def __init__(self, registry: RegistryClient | None = None) -> None:
        self._registry = registry or RegistryClient()

    def resolve(self, image_ref: str) -> ResolvedImage:
        console.print(f"[cyan][RESOLVER] Resolving {image_ref} via registry API[/cyan]")
        manifest, manifest_digest = self._registry.fetch_manifest(image_ref)

        if is_index(manifest):
            resolved = select_platform_entry(manifest, image_ref)
        else:
            config_digest = (manifest.get("config") or {}).get("digest")
            if not config_digest:
                raise ValidationError(f"Manifest for {image_ref} has no config digest", image_ref)
            config = self._registry.fetch_config(image_ref, config_digest)
            platform = f"{config.get('os') or 'linux'}/{config.get('architecture')}"
            if platform != REQUIRED_PLATFORM:
                raise platform_error(image_ref, [platform])
            resolved = ResolvedImage(
                digest=hex_to_bytes32(manifest_digest or config_digest),
                registry=extract_registry_name(image_ref),
            )

        console.print(f"[green][RESOLVER] {resolved.registry}@sha256:{resolved.digest.hex()}[/green]")
        return resolved


def resolve_with_retry(
    resolve: Callable[[str], ResolvedImage],
    image_ref: str,
    attempts: int = RESOLVE_ATTEMPTS,
    delay: float = RESOLVE_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> ResolvedImage:
    """
    Resolve, retrying while a freshly pushed image propagates through the registry.

    Only NetworkError is retried. A platform mismatch or malformed digest
    will not fix itself and is raised on the first attempt.
    """
    last_error: NetworkError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return resolve(image_ref)
        except NetworkError as e:
            last_error = e
            if attempt < attempts:
                console.print(
                    f"[yellow][RESOLVER] Attempt {attempt}/{attempts} failed, retrying in {delay:.0f}s...[/yellow]"
                )
                sleep(delay)

    raise NetworkError(
        f"Failed to resolve {image_ref} after {attempts} attempts: {last_error}. "
        "Make sure the image has been pushed and the tag is correct.",
        url=getattr(last_error, "url", ""),
        status_code=getattr(last_error, "status_code", None),
    ) from last_error
