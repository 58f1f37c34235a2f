"""Interactive pairing of a NAS: lookup, address race, login, duplicate check."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass
from enum import StrEnum
import logging
import time
from typing import TYPE_CHECKING, Any

from .const import (
    CONF_CLOUD_ID,
    CONF_LAST_URL_CHECK,
    CONF_SESSION_ID,
    CONF_URL,
    RACE_PROBE_TIMEOUT,
)
from .error import (
    AsustorError,
    AsustorLoginError,
    DuplicateDeviceError,
    InvalidCloudIdError,
    InvalidCredentialsError,
    LoginBlockedError,
)
from .models import ProbeOutcome, ProbeProgress
from .resolver import async_race
from .utils import ExecutorJob, async_run_in_executor

if TYPE_CHECKING:
    from .api.adm_api import AdmApi
    from .api.ezconnect import EzConnectClient

_LOGGER = logging.getLogger(__name__)


class SearchStatus(StrEnum):
    """Outcome of the background address search."""

    SEARCHING = "searching"
    INVALID = "invalid"
    SUCCESS = "success"
    ERROR = "error"


class AuthStatus(StrEnum):
    """Outcome of submitting credentials."""

    SUCCESS = "success"
    INVALID = "invalid"
    BLOCKED = "blocked"
    ERROR = "autherror"


@dataclass(frozen=True)
class SearchResult:
    """Terminal event of the address search."""

    status: SearchStatus
    url: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Result of submitting credentials."""

    status: AuthStatus
    session_id: str | None = None


PairingEvent = ProbeProgress | SearchResult


class PairingSession:
    """State of one interactive pairing flow.

    Holds the tentative cloud id, working address and session id until the
    flow is finalized or discarded. Progress of the address search is
    delivered as a stream of events ending with a SearchResult.
    """

    def __init__(
        self,
        lookup: EzConnectClient,
        api: AdmApi,
        executor: ExecutorJob | None = None,
        probe_timeout: float = RACE_PROBE_TIMEOUT,
    ) -> None:
        """Initialize the pairing session."""
        self.lookup = lookup
        self.api = api
        self.cloud_id: str | None = None
        self.url: str | None = None
        self.session_id: str | None = None
        self.resolved_at: float | None = None

        self._executor = executor or async_run_in_executor
        self._probe_timeout = probe_timeout
        self._events: asyncio.Queue[PairingEvent] = asyncio.Queue()
        self._search_task: asyncio.Task[SearchResult] | None = None

    @property
    def search_task(self) -> asyncio.Task[SearchResult] | None:
        """Return the running or finished background search."""
        return self._search_task

    def submit_cloud_id(self, cloud_id: str) -> SearchStatus:
        """Start searching for a working address and return immediately."""
        self.cancel()
        self.cloud_id = cloud_id.strip()
        self.url = None
        self.resolved_at = None
        self._events = asyncio.Queue()
        self._search_task = asyncio.create_task(self._async_search(self.cloud_id))
        return SearchStatus.SEARCHING

    async def async_events(self) -> AsyncIterator[PairingEvent]:
        """Yield progress events until the terminal search result."""
        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, SearchResult):
                return

    async def _async_probe(self, address: str, timeout: float) -> ProbeOutcome:
        return await self._executor(self.api.probe, address, timeout)

    async def _async_search(self, cloud_id: str) -> SearchResult:
        try:
            candidates = await self._executor(
                self.lookup.enumerate_candidates, cloud_id
            )
            winner = await async_race(
                candidates,
                self._async_probe,
                self._probe_timeout,
                self._events.put_nowait,
            )
        except InvalidCloudIdError:
            _LOGGER.info("Cloud id %s is not registered", cloud_id)
            result = SearchResult(SearchStatus.INVALID)
        except AsustorError as err:
            _LOGGER.error("Error finding working URL for %s: %s", cloud_id, err)
            result = SearchResult(SearchStatus.ERROR)
        else:
            self.url = winner.address
            self.resolved_at = time.time()
            result = SearchResult(SearchStatus.SUCCESS, winner.address)

        self._events.put_nowait(result)
        return result

    async def async_submit_credentials(
        self, username: str, password: str, url: str | None = None
    ) -> AuthResult:
        """Log in against the resolved address with the given credentials."""
        address = url or self.url
        if not address:
            _LOGGER.error("Cannot log in before a working URL was found")
            return AuthResult(AuthStatus.ERROR)

        self.api.username = username
        self.api.password = password
        try:
            sid = await self._executor(self.api.login, address)
        except InvalidCredentialsError:
            return AuthResult(AuthStatus.INVALID)
        except LoginBlockedError:
            return AuthResult(AuthStatus.BLOCKED)
        except AsustorLoginError as err:
            _LOGGER.error("Login error: %s", err)
            return AuthResult(AuthStatus.ERROR)

        self.url = address
        self.session_id = sid
        return AuthResult(AuthStatus.SUCCESS, sid)

    def finalize(self, registered_cloud_ids: Collection[str]) -> dict[str, Any]:
        """Return the bootstrap state of the new NAS.

        Raises:
            DuplicateDeviceError: If the cloud id is already registered
            AsustorError: If the flow did not resolve and log in yet

        """
        if self.cloud_id in registered_cloud_ids:
            raise DuplicateDeviceError(f"NAS {self.cloud_id} is already added")
        if not self.cloud_id or not self.url or not self.session_id:
            raise AsustorError("Pairing is not complete")

        return {
            CONF_CLOUD_ID: self.cloud_id,
            CONF_URL: self.url,
            CONF_LAST_URL_CHECK: self.resolved_at or time.time(),
            CONF_SESSION_ID: self.session_id,
        }

    def cancel(self) -> None:
        """Abandon a running search."""
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
