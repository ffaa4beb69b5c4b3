# -----------------------------------------------------------------------------
# INPUT VALIDATION
# -----------------------------------------------------------------------------
# Responsibility: Reject malformed input before any network call is made.
# Everything here is pure and raises ValidationError with the offending value.
# -----------------------------------------------------------------------------

import re

from eth_utils import is_address, to_checksum_address

from enclave_deploy.domain.errors import ValidationError
from enclave_deploy.domain.models import LogVisibility

IMAGE_DIGEST_PATTERN = re.compile(r"^sha256:[0-9a-f]{64}$", re.IGNORECASE)
PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

# logRedirect value understood by the TEE launcher
LOG_REDIRECT_ALWAYS = "always"


def validate_image_reference(image_ref: str) -> str:
    """Image references must name a repository (contain at least one '/')."""
    if not image_ref or not image_ref.strip():
        raise ValidationError("Image reference cannot be empty", image_ref)
    if "/" not in image_ref:
        raise ValidationError(
            f"Image reference must include a registry or namespace (e.g. user/app:tag): {image_ref}",
            image_ref,
        )
    return image_ref.strip()


def validate_image_digest(digest: str) -> str:
    if not IMAGE_DIGEST_PATTERN.match(digest or ""):
        raise ValidationError(
            f"Image digest must look like sha256:<64 hex characters>, got: {digest}", digest
        )
    return digest.lower()


def validate_app_id(app_id: str) -> str:
    """
    Validate an app id (a 20-byte contract address).

    Returns:
        The checksummed address.
    """
    if not app_id or not is_address(app_id):
        raise ValidationError(f"Invalid app id, expected a 20-byte hex address: {app_id}", app_id)
    return to_checksum_address(app_id)


def validate_private_key(private_key: str) -> str:
    """
    Check a private key's shape and normalize it to 0x-prefixed form.

    The key itself is never echoed back in the error message.
    """
    if not private_key or not PRIVATE_KEY_PATTERN.match(private_key.strip()):
        raise ValidationError("Invalid private key: expected 64 hex characters with optional 0x prefix")
    key = private_key.strip()
    return key if key.startswith("0x") else f"0x{key}"


def validate_log_visibility(visibility: str | LogVisibility) -> tuple[str, bool]:
    """
    Map a requested log visibility onto (logRedirect, publicLogs).

    Returns:
        public  -> ("always", True)
        private -> ("always", False)
        off     -> ("", False)
    """
    try:
        value = LogVisibility(visibility.lower() if isinstance(visibility, str) else visibility)
    except ValueError as e:
        raise ValidationError(
            f"Invalid log visibility '{visibility}', expected one of: public, private, off",
            visibility,
        ) from e

    if value == LogVisibility.PUBLIC:
        return LOG_REDIRECT_ALWAYS, True
    if value == LogVisibility.PRIVATE:
        return LOG_REDIRECT_ALWAYS, False
    return "", False
