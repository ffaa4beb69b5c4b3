# -----------------------------------------------------------------------------
# REVERT DECODER
# -----------------------------------------------------------------------------
# Responsibility: Turn raw revert payloads into something a user can act on.
#
# The AppController's custom errors form a closed set: each member knows its
# selector and its remediation text. Anything outside the set falls back to
# Solidity's Error(string), then to the raw hex.
# -----------------------------------------------------------------------------

from dataclasses import dataclass
from enum import Enum

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

ERROR_STRING_SELECTOR = function_signature_to_4byte_selector("Error(string)")
PANIC_SELECTOR = function_signature_to_4byte_selector("Panic(uint256)")


class KnownContractError(Enum):
    """Custom errors the AppController can revert with, and what to tell the user."""

    MAX_ACTIVE_APPS_EXCEEDED = (
        "MaxActiveAppsExceeded",
        "you have reached your app deployment limit. To request access or increase your "
        "limit, please visit https://onboarding.eigencloud.xyz/ or reach out to the Eigen team",
    )
    GLOBAL_MAX_ACTIVE_APPS_EXCEEDED = (
        "GlobalMaxActiveAppsExceeded",
        "the platform has reached the maximum number of active apps. please try again later",
    )
    INVALID_PERMISSIONS = ("InvalidPermissions", "you don't have permission to perform this operation")
    APP_ALREADY_EXISTS = ("AppAlreadyExists", "an app with this owner and salt already exists")
    APP_DOES_NOT_EXIST = ("AppDoesNotExist", "the specified app does not exist")
    INVALID_APP_STATUS = ("InvalidAppStatus", "the app is in an invalid state for this operation")
    MORE_THAN_ONE_ARTIFACT = ("MoreThanOneArtifact", "only one artifact is allowed per release")
    INVALID_SIGNATURE = ("InvalidSignature", "invalid signature provided")
    SIGNATURE_EXPIRED = ("SignatureExpired", "the provided signature has expired")
    INVALID_RELEASE_METADATA_URI = ("InvalidReleaseMetadataURI", "invalid release metadata URI provided")
    INVALID_SHORT_STRING = ("InvalidShortString", "invalid short string format")

    def __init__(self, error_name: str, friendly_message: str) -> None:
        self.error_name = error_name
        self.friendly_message = friendly_message

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(f"{self.error_name}()")


_BY_SELECTOR = {member.selector: member for member in KnownContractError}


@dataclass(frozen=True)
class DecodedRevert:
    """What a revert payload turned out to be."""

    message: str
    error_name: str | None = None


def decode_revert(data: bytes | None, fallback: str = "") -> DecodedRevert:
    """
    Decode a revert payload.

    Args:
        data: Raw revert bytes (selector + args), possibly empty.
        fallback: Node-supplied message used when nothing else matches.

    Returns:
        A DecodedRevert. error_name is set for known custom errors only.
    """
    if not data or len(data) < 4:
        return DecodedRevert(message=fallback or "Unknown reason")

    head, body = bytes(data[:4]), bytes(data[4:])
    known = _BY_SELECTOR.get(head)
    if known is not None:
        return DecodedRevert(message=known.friendly_message, error_name=known.error_name)

    if head == ERROR_STRING_SELECTOR:
        try:
            (reason,) = decode(["string"], body)
            return DecodedRevert(message=reason)
        except DecodingError:
            pass
    elif head == PANIC_SELECTOR:
        try:
            (code,) = decode(["uint256"], body)
            return DecodedRevert(message=f"panic code 0x{code:02x}")
        except DecodingError:
            pass

    return DecodedRevert(message=f"contract error: 0x{bytes(data).hex()}")
