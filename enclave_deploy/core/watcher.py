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
# STATUS WATCHER
# -----------------------------------------------------------------------------
# Responsibility: Decide when a deploy or upgrade has *actually* finished,
# by polling the platform's status API every 5 seconds.
#
# The trap: right after a redeploy the API can still report the previous
# Running state. A first poll of Running is therefore not trusted unless the
# status has moved since.
#
# Deploy complete:   Running + ip, and (status changed OR first poll wasn't Running)
# Upgrade complete:  first poll Stopped + ip, or later Stopped/Running + ip after a change
# Failed:            LifecycleFailure immediately, never retried
# Unreachable API:   logged, polling continues
#
# Each watch owns a fresh WatcherState; the step functions are pure apart
# from mutating that record.
# -----------------------------------------------------------------------------

import time
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console

from enclave_deploy.domain.errors import LifecycleFailure, NetworkError, WatchTimeoutError
from enclave_deploy.domain.models import AppInfo, AppLifecycleState
from enclave_deploy.infra.status_api import StatusApiClient

console = Console()

POLL_INTERVAL_SECONDS = 5.0
NO_IP_PLACEHOLDER = "No IP assigned"

RUNNING = AppLifecycleState.RUNNING.value
STOPPED = AppLifecycleState.STOPPED.value
FAILED = AppLifecycleState.FAILED.value


@dataclass
class WatcherState:
    """Everything one watch remembers between polls."""

    app_id: str
    initial_status: str | None = None
    initial_ip: str | None = None
    has_changed: bool = False
    polls: int = 0
    last_status: str | None = None

    def record(self, status: str, ip: str) -> bool:
        """Record a poll. Returns True if this was the first one."""
        first = self.initial_status is None
        if first:
            self.initial_status = status
            self.initial_ip = ip
        if status != self.initial_status:
            self.has_changed = True
        self.last_status = status
        return first

    def had_ip_initially(self) -> bool:
        return bool(self.initial_ip) and self.initial_ip != NO_IP_PLACEHOLDER


def _log_running(state: WatcherState, ip: str) -> None:
    if state.had_ip_initially():
        console.print("[green][WATCHER] App is now running[/green]")
    else:
        console.print(f"[green][WATCHER] App is now running with IP: {ip}[/green]")


def observe_deploy(state: WatcherState, status: str, ip: str) -> bool:
    """
    Advance the deploy state machine by one poll.

    Returns:
        True once the deploy is complete.

    Raises:
        LifecycleFailure: The app reported Failed.
    """
    state.record(status, ip)
    if status == FAILED:
        raise LifecycleFailure(state.app_id, status)

    if status == RUNNING and ip and (state.has_changed or state.initial_status != RUNNING):
        _log_running(state, ip)
        return True
    return False


def observe_upgrade(state: WatcherState, status: str, ip: str) -> bool:
    """
    Advance the upgrade state machine by one poll.

    Returns:
        True once the upgrade is complete.

    Raises:
        LifecycleFailure: The app reported Failed.
    """
    first = state.record(status, ip)
    if status == FAILED:
        raise LifecycleFailure(state.app_id, status)

    if status == STOPPED and ip and (first or state.has_changed):
        console.print("[green][WATCHER] App upgrade complete (Stopped)[/green]")
        console.print(f"[dim][WATCHER] Start the app with start_app({state.app_id})[/dim]")
        return True

    if status == RUNNING and ip and state.has_changed:
        _log_running(state, ip)
        return True
    return False


class StatusWatcher:
    """
    Polls an app's status until a state machine says it is done.

    Args:
        fetch: Returns the app's current AppInfo (or None if the API does not
            know it yet). Usually StatusApiClient.get_info.
        interval: Seconds between polls.
        sleep: Injected for tests.
        max_polls: Give up with WatchTimeoutError after this many polls.
            None polls until the platform settles.
    """

    def __init__(
        self,
        fetch: Callable[[str], AppInfo | None],
        interval: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        max_polls: int | None = None,
    ) -> None:
        self._fetch = fetch
        self._interval = interval
        self._sleep = sleep
        self._max_polls = max_polls

    @classmethod
    def for_client(cls, client: StatusApiClient, **kwargs) -> "StatusWatcher":
        return cls(client.get_info, **kwargs)

    def _run(self, app_id: str, step: Callable[[WatcherState, str, str], bool]) -> tuple[AppInfo, WatcherState]:
        state = WatcherState(app_id=app_id)
        while True:
            state.polls += 1
            try:
                info = self._fetch(app_id)
            except NetworkError as e:
                console.print(f"[yellow][WATCHER] Failed to fetch app info: {e}[/yellow]")
                info = None

            if info is not None and step(state, info.status, info.ip or ""):
                return info, state

            if self._max_polls is not None and state.polls >= self._max_polls:
                raise WatchTimeoutError(app_id, state.polls, state.last_status)
            self._sleep(self._interval)

    def watch_until_running(self, app_id: str) -> str:
        """
        Block until a fresh deploy is Running with an ip.

        Returns:
            The app's ip address.
        """
        console.print(f"[cyan][WATCHER] Waiting for {app_id} to start...[/cyan]")
        info, state = self._run(app_id, observe_deploy)
        console.print(f"[dim][WATCHER] Settled after {state.polls} poll(s)[/dim]")
        return info.ip

    def watch_until_upgrade_complete(self, app_id: str) -> str:
        """
        Block until an upgrade has landed.

        Returns:
            The settled status: Stopped (upgraded, not restarted) or Running.
        """
        console.print(f"[cyan][WATCHER] Waiting for {app_id} upgrade to complete...[/cyan]")
        info, state = self._run(app_id, observe_upgrade)
        console.print(f"[dim][WATCHER] Settled after {state.polls} poll(s)[/dim]")
        return info.status
