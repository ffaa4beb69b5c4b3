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
# RELEASE BUILDER
# -----------------------------------------------------------------------------
# Responsibility: Compose the Release record submitted on-chain from a pinned
# image and the app's environment file. Nothing is sent anywhere here.
#
# Flow:
# 1. Parse the env file into public/private maps
# 2. Inject the instance type into the public map
# 3. Seal the private map for the environment's KMS key
# 4. Stamp upgrade_by_time = now + 1h
# -----------------------------------------------------------------------------

import json
import time
from collections.abc import Callable
from pathlib import Path

from Crypto.PublicKey import RSA
from rich.console import Console

from enclave_deploy.core.envelope import EnvelopeCipher, app_protected_headers
from enclave_deploy.core.env_file import display_environment, parse_env_file
from enclave_deploy.core.image_resolver import extract_registry_name, hex_to_bytes32
from enclave_deploy.core.validation import validate_image_digest
from enclave_deploy.domain.models import Artifact, ParsedEnvironment, Release, ResolvedImage

console = Console()

# Resolved images and prebuilt images publish the machine type under different keys
INSTANCE_TYPE_KEY = "EIGEN_MACHINE_TYPE"
PREBUILT_INSTANCE_TYPE_KEY = "EIGEN_MACHINE_TYPE_PUBLIC"
UPGRADE_GRACE_SECONDS = 3600


def _json_bytes(values: dict[str, str]) -> bytes:
    return json.dumps(values, separators=(",", ":")).encode("utf-8")


class ReleaseBuilder:
    """
    Builds Release records for one target environment.

    Args:
        encryption_key: The environment's KMS public key (PEM bytes or RsaKey).
        cipher: Envelope cipher; compact framing unless told otherwise.
        clock: Returns epoch seconds; injected for tests.
    """

    def __init__(
        self,
        encryption_key: "bytes | str | RSA.RsaKey",
        cipher: EnvelopeCipher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._encryption_key = encryption_key
        self._cipher = cipher or EnvelopeCipher()
        self._clock = clock

    def build(
        self,
        image_ref: str,
        digest: bytes,
        registry: str,
        instance_type: str,
        app_id: str,
        env_file: str | Path | None = None,
        instance_type_key: str = INSTANCE_TYPE_KEY,
    ) -> Release:
        """
        Build a Release from an already-resolved digest.

        Args:
            image_ref: The original reference (for log lines only).
            digest: 32-byte content digest.
            registry: Registry-qualified name without tag.
            instance_type: Machine type; lands in the public env.
            app_id: Bound into the envelope's protected header.
            env_file: Optional .env path.
            instance_type_key: Public env key that carries instance_type.
        """
        console.print(f"[cyan][RELEASE] Building release for {image_ref}[/cyan]")

        if env_file:
            parsed = parse_env_file(env_file)
            display_environment(parsed)
        else:
            console.print("[dim][RELEASE] Continuing without environment file[/dim]")
            parsed = ParsedEnvironment()

        public_env = dict(parsed.public)
        public_env[instance_type_key] = instance_type
        console.print(f"[dim][RELEASE] Instance type: {instance_type}[/dim]")

        envelope = self._cipher.encrypt(
            self._encryption_key,
            _json_bytes(parsed.private),
            app_protected_headers(app_id),
        )
        console.print(f"[dim][ENVELOPE] Sealed {len(parsed.private)} private variable(s)[/dim]")

        release = Release(
            artifacts=(Artifact(digest=digest, registry=registry),),
            upgrade_by_time=int(self._clock()) + UPGRADE_GRACE_SECONDS,
            public_env=_json_bytes(public_env),
            encrypted_env=envelope.encode("ascii"),
        )
        console.print(f"[green][RELEASE] Release ready: {registry}@sha256:{digest.hex()[:12]}...[/green]")
        return release

    def build_from_resolved(
        self,
        image_ref: str,
        resolved: ResolvedImage,
        instance_type: str,
        app_id: str,
        env_file: str | Path | None = None,
    ) -> Release:
        return self.build(image_ref, resolved.digest, resolved.registry, instance_type, app_id, env_file)

    def build_from_digest(
        self,
        image_ref: str,
        image_digest: str,
        instance_type: str,
        app_id: str,
        env_file: str | Path | None = None,
    ) -> Release:
        """
        Build a Release for a prebuilt image whose digest is already known.

        No image engine or registry access: the digest string is validated
        and the registry name is derived from the reference.

        Raises:
            ValidationError: If image_digest is not sha256:<64 hex>.
        """
        digest = hex_to_bytes32(validate_image_digest(image_digest))
        return self.build(
            image_ref,
            digest,
            extract_registry_name(image_ref),
            instance_type,
            app_id,
            env_file,
            instance_type_key=PREBUILT_INSTANCE_TYPE_KEY,
        )
