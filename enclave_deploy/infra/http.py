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
# HTTP BACKOFF - RATE LIMIT HANDLING
# -----------------------------------------------------------------------------
# Responsibility: One backoff policy applied uniformly to every HTTP call the
# engine makes (registry, status API). Only HTTP 429 is retried here; every
# other status is handed back to the caller untouched.
#
# Policy: 1s initial delay, doubling per attempt, capped at 30s, at most 5
# retries. A Retry-After hint from the server wins over the computed delay
# (still capped). After the last retry the final response is returned as-is.
# -----------------------------------------------------------------------------

import time
from collections.abc import Callable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime

import requests
from rich.console import Console

console = Console()

HTTP_TOO_MANY_REQUESTS = 429


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule for rate-limited requests."""

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_retries: int = 5

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Seconds to wait before retry number `attempt` (0-based).

        Args:
            attempt: How many retries have already happened.
            retry_after: Server-supplied hint in seconds, if any.

        Returns:
            The delay, never above max_delay.
        """
        if retry_after is not None and retry_after >= 0:
            return min(retry_after, self.max_delay)
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)


DEFAULT_BACKOFF = BackoffPolicy()


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(when.timestamp() - time.time(), 0.0)


def send_with_backoff(
    send: Callable[[], requests.Response],
    policy: BackoffPolicy = DEFAULT_BACKOFF,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "request",
) -> requests.Response:
    """
    Run `send` and retry it while the server answers 429.

    Args:
        send: Zero-argument callable performing the request.
        policy: Backoff schedule.
        sleep: Injected for tests.
        label: Short description for log lines.

    Returns:
        The first non-429 response, or the last 429 once retries run out.
    """
    response = send()
    attempt = 0
    while response.status_code == HTTP_TOO_MANY_REQUESTS and attempt < policy.max_retries:
        hint = parse_retry_after(response.headers.get("Retry-After"))
        delay = policy.delay_for(attempt, hint)
        console.print(
            f"[yellow][HTTP] {label} rate limited, retrying in {delay:.1f}s "
            f"(attempt {attempt + 1}/{policy.max_retries})[/yellow]"
        )
        sleep(delay)
        attempt += 1
        response = send()
    return response


class RetryingSession:
    """
    Thin wrapper over requests.Session that applies a BackoffPolicy to every call.

    Transport failures are not retried here; they surface as
    requests.RequestException for the caller to translate.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        policy: BackoffPolicy = DEFAULT_BACKOFF,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self._policy = policy
        self._timeout = timeout
        self._sleep = sleep

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self._timeout)
        return send_with_backoff(
            lambda: self._session.request(method, url, **kwargs),
            policy=self._policy,
            sleep=self._sleep,
            label=f"{method} {url}",
        )

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def head(self, url: str, **kwargs) -> requests.Response:
        return self.request("HEAD", url, **kwargs)
