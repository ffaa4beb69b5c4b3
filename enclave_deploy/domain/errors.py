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
# ERROR TAXONOMY
# -----------------------------------------------------------------------------
# Every failure that leaves the engine is one of these. Third-party errors
# (requests, docker, web3) are translated at the infra boundary so callers
# only ever need to catch EnclaveDeployError.
#
# Only two failure classes are recovered locally:
# - HTTP 429 rate limiting (backoff in infra/http.py)
# - NetworkError while polling status (watcher keeps going)
# -----------------------------------------------------------------------------


class EnclaveDeployError(Exception):
    """Base class for all engine errors."""

    pass


class ValidationError(EnclaveDeployError):
    """Raised for malformed input (reference, digest, visibility, key) before any network call."""

    def __init__(self, message: str, value: object = None) -> None:
        super().__init__(message)
        self.value = value


class PlatformMismatchError(EnclaveDeployError):
    """
    Raised when no manifest entry matches the required platform.

    Carries every platform that was found so the caller can show them.
    """

    def __init__(self, message: str, image_ref: str, platforms: list[str]) -> None:
        super().__init__(message)
        self.image_ref = image_ref
        self.platforms = list(platforms)


class NetworkError(EnclaveDeployError):
    """Raised when a remote system (registry, status API, RPC) cannot be reached or answers badly."""

    def __init__(self, message: str, url: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ContractRevertError(EnclaveDeployError):
    """
    Raised when a submitted transaction reverted.

    The hash is always present: a reverted transaction was mined, it just
    did nothing. error_name is the decoded custom error, or None when the
    revert payload could not be matched.
    """

    def __init__(
        self,
        message: str,
        tx_hash: str,
        reason: str,
        error_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reason = reason
        self.error_name = error_name


class LifecycleFailure(EnclaveDeployError):
    """Raised when the platform reports the app as Failed. Never retried."""

    def __init__(self, app_id: str, status: str) -> None:
        super().__init__(f"App {app_id} entered {status} state")
        self.app_id = app_id
        self.status = status


class AuthorizationError(EnclaveDeployError):
    """Raised when a signer or account is required but missing."""

    pass


class DecryptionError(EnclaveDeployError):
    """Raised when an envelope fails authentication or cannot be unwrapped."""

    pass


class ConfigurationError(EnclaveDeployError):
    """Raised for environment problems: unknown environment, missing key, exhausted quota."""

    pass


class WatchTimeoutError(EnclaveDeployError):
    """Raised when a bounded watch runs out of polls before the app settles."""

    def __init__(self, app_id: str, polls: int, last_status: str | None = None) -> None:
        super().__init__(
            f"App {app_id} did not settle after {polls} polls (last status: {last_status or 'unknown'})"
        )
        self.app_id = app_id
        self.polls = polls
        self.last_status = last_status
