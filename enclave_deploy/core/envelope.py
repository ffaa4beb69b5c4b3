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
# ENVELOPE CIPHER - HYBRID RSA-OAEP + AES-256-GCM
# -----------------------------------------------------------------------------
# Responsibility: Seal configuration so only the TEE's KMS can open it.
# A fresh 256-bit content key encrypts the payload under AES-GCM (96-bit IV),
# and the content key is wrapped with the recipient's RSA key (OAEP/SHA-256).
#
# Two serializations, both accepted by decrypt():
# - FRAMED:  base64( u32be len | wrapped key | u32be len | iv | ct | tag16 )
# - COMPACT: JWE compact token, alg=RSA-OAEP-256, enc=A256GCM, with extra
#            protected headers (e.g. the app id) bound in as GCM AAD.
#
# Decryption fails closed: a bad tag raises DecryptionError, never returns
# partial or tampered plaintext.
# -----------------------------------------------------------------------------

import base64
import binascii
import json
import struct
from enum import Enum

from Crypto.Cipher import AES, PKCS1_OAEP
from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA
from Crypto.Random import get_random_bytes
from rich.console import Console

from enclave_deploy.domain.errors import DecryptionError, ValidationError

console = Console()

KEY_ALGORITHM = "RSA-OAEP-256"
CONTENT_ALGORITHM = "A256GCM"
APP_ID_HEADER = "x-eigenx-app-id"

CONTENT_KEY_BYTES = 32
IV_BYTES = 12
TAG_BYTES = 16


class EnvelopeFormat(str, Enum):
    """Wire framing of the sealed payload."""

    FRAMED = "framed"
    COMPACT = "compact"


def app_protected_headers(app_id: str) -> dict[str, str]:
    """Protected headers binding an envelope to one app."""
    return {APP_ID_HEADER: app_id}


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _load_key(key: "str | bytes | RSA.RsaKey") -> RSA.RsaKey:
    if isinstance(key, RSA.RsaKey):
        return key
    try:
        return RSA.import_key(key)
    except (ValueError, IndexError, TypeError) as e:
        raise ValidationError(f"Invalid RSA key: {e}") from e


def _open_gcm(content_key: bytes, iv: bytes, ciphertext: bytes, tag: bytes, aad: bytes | None = None) -> bytes:
    try:
        cipher = AES.new(content_key, AES.MODE_GCM, nonce=iv)
        if aad is not None:
            cipher.update(aad)
        return cipher.decrypt_and_verify(ciphertext, tag)
    except ValueError as e:
        console.print("[red][ENVELOPE] Authentication failed - envelope rejected[/red]")
        raise DecryptionError("Envelope authentication failed") from e


class EnvelopeCipher:
    """
    Hybrid public-key encryption of configuration payloads.

    The format chosen at construction applies to encrypt(); decrypt()
    recognises either framing.
    """

    def __init__(self, fmt: EnvelopeFormat = EnvelopeFormat.COMPACT) -> None:
        self._format = EnvelopeFormat(fmt)

    @property
    def format(self) -> EnvelopeFormat:
        return self._format

    def encrypt(
        self,
        recipient_public_key: "str | bytes | RSA.RsaKey",
        plaintext: bytes,
        protected_headers: dict[str, str] | None = None,
    ) -> str:
        """
        Seal plaintext for the holder of the matching private key.

        Args:
            recipient_public_key: RSA public key (PEM, PKCS#1 or SPKI).
            plaintext: Bytes to protect.
            protected_headers: Extra headers for the compact framing. Ignored
                by the framed serialization, which has no header section.

        Returns:
            The serialized envelope as ASCII text.
        """
        public_key = _load_key(recipient_public_key)
        content_key = get_random_bytes(CONTENT_KEY_BYTES)
        iv = get_random_bytes(IV_BYTES)
        wrapped_key = PKCS1_OAEP.new(public_key, hashAlgo=SHA256).encrypt(content_key)

        if self._format == EnvelopeFormat.COMPACT:
            header = dict(protected_headers or {})
            header["alg"] = KEY_ALGORITHM
            header["enc"] = CONTENT_ALGORITHM
            encoded_header = _b64url(json.dumps(header, separators=(",", ":")).encode("utf-8"))

            cipher = AES.new(content_key, AES.MODE_GCM, nonce=iv)
            cipher.update(encoded_header.encode("ascii"))
            ciphertext, tag = cipher.encrypt_and_digest(plaintext)
            return ".".join(
                [encoded_header, _b64url(wrapped_key), _b64url(iv), _b64url(ciphertext), _b64url(tag)]
            )

        cipher = AES.new(content_key, AES.MODE_GCM, nonce=iv)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        blob = (
            struct.pack(">I", len(wrapped_key))
            + wrapped_key
            + struct.pack(">I", len(iv))
            + iv
            + ciphertext
            + tag
        )
        return base64.b64encode(blob).decode("ascii")

    def decrypt(self, recipient_private_key: "str | bytes | RSA.RsaKey", envelope: str | bytes) -> bytes:
        """
        Open an envelope produced by encrypt() in either framing.

        Raises:
            DecryptionError: Wrong key, malformed envelope, or failed tag check.
        """
        private_key = _load_key(recipient_private_key)
        text = envelope.decode("ascii") if isinstance(envelope, bytes) else envelope
        if text.count(".") == 4:
            return self._decrypt_compact(private_key, text)
        return self._decrypt_framed(private_key, text)

    def read_protected_headers(self, envelope: str) -> dict[str, str]:
        """Return the (unauthenticated) header of a compact envelope."""
        try:
            header = json.loads(_b64url_decode(envelope.split(".")[0]))
        except (ValueError, binascii.Error) as e:
            raise DecryptionError(f"Malformed envelope header: {e}") from e
        if not isinstance(header, dict):
            raise DecryptionError("Malformed envelope header: not an object")
        return header

    def _unwrap(self, private_key: RSA.RsaKey, wrapped_key: bytes) -> bytes:
        try:
            content_key = PKCS1_OAEP.new(private_key, hashAlgo=SHA256).decrypt(wrapped_key)
        except (ValueError, TypeError) as e:
            raise DecryptionError("Could not unwrap content key") from e
        if len(content_key) != CONTENT_KEY_BYTES:
            raise DecryptionError(f"Unwrapped key has {len(content_key)} bytes, expected 32")
        return content_key

    def _decrypt_compact(self, private_key: RSA.RsaKey, token: str) -> bytes:
        encoded_header, encoded_key, encoded_iv, encoded_ct, encoded_tag = token.split(".")
        header = self.read_protected_headers(token)
        if header.get("alg") != KEY_ALGORITHM or header.get("enc") != CONTENT_ALGORITHM:
            raise DecryptionError(
                f"Unsupported envelope algorithms: alg={header.get('alg')} enc={header.get('enc')}"
            )
        try:
            wrapped_key = _b64url_decode(encoded_key)
            iv = _b64url_decode(encoded_iv)
            ciphertext = _b64url_decode(encoded_ct)
            tag = _b64url_decode(encoded_tag)
        except (ValueError, binascii.Error) as e:
            raise DecryptionError(f"Malformed envelope: {e}") from e

        content_key = self._unwrap(private_key, wrapped_key)
        return _open_gcm(content_key, iv, ciphertext, tag, aad=encoded_header.encode("ascii"))

    def _decrypt_framed(self, private_key: RSA.RsaKey, blob_text: str) -> bytes:
        try:
            blob = base64.b64decode(blob_text, validate=True)
        except (ValueError, binascii.Error) as e:
            raise DecryptionError(f"Envelope is not valid base64: {e}") from e

        try:
            (key_len,) = struct.unpack_from(">I", blob, 0)
            offset = 4
            wrapped_key = blob[offset : offset + key_len]
            offset += key_len
            (iv_len,) = struct.unpack_from(">I", blob, offset)
            offset += 4
            iv = blob[offset : offset + iv_len]
            offset += iv_len
        except struct.error as e:
            raise DecryptionError("Envelope is truncated") from e

        if len(wrapped_key) != key_len or len(iv) != iv_len or len(blob) - offset < TAG_BYTES:
            raise DecryptionError("Envelope is truncated")

        ciphertext = blob[offset:-TAG_BYTES]
        tag = blob[-TAG_BYTES:]
        content_key = self._unwrap(private_key, wrapped_key)
        return _open_gcm(content_key, iv, ciphertext, tag)
