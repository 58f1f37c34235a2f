"""Working address resolution and session management for ASUSTOR NAS devices."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import time
from typing import TYPE_CHECKING, TypeVar

from .const import (
    RACE_PROBE_TIMEOUT,
    REASON_BLOCKED,
    REASON_INVALID_CREDENTIALS,
    REASON_UNREACHABLE,
    REVALIDATE_PROBE_TIMEOUT,
    URL_REVALIDATION_INTERVAL,
)
from .error import (
    AddressBlockedError,
    AddressUnreachableError,
    AsustorLoginError,
    AsustorLookupError,
    DuplicateDeviceError,
    InvalidCloudIdError,
    InvalidCredentialsError,
    LoginBlockedError,
    LoginNetworkError,
    LoginProtocolError,
    NoneReachableError,
    RaceBlockedError,
    SessionExpiredError,
    TerminalAuthError,
)
from .models import ConnectivityState, NasSession, ProbeOutcome, ResolutionResult
from .resolver import async_race
from .utils import ExecutorJob, async_run_in_executor

if TYPE_CHECKING:
    from .api.adm_api import AdmApi
    from .api.ezconnect import EzConnectClient

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

StateListener = Callable[[ConnectivityState, str | None], None]


class ConnectivityStateMachine:
    """Availability state of one NAS.

    Blocked is only left through a successful outcome; unreachable outcomes
    while blocked keep the blocked state and its actionable reason.
    """

    def __init__(self, name: str) -> None:
        """Initialize in the resolving state."""
        self._name = name
        self._state = ConnectivityState.RESOLVING
        self._reason: str | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectivityState:
        """Return the current state."""
        return self._state

    @property
    def reason(self) -> str | None:
        """Return the human readable reason when not available."""
        return self._reason

    @property
    def available(self) -> bool:
        """Return True if the last outcome was a success."""
        return self._state is ConnectivityState.AVAILABLE

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a transition listener, returns a function removing it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def mark_available(self) -> None:
        """Record a successful probe, login or API call."""
        self._transition(ConnectivityState.AVAILABLE, None)

    def mark_blocked(self) -> None:
        """Record an ADM Defender denial."""
        self._transition(ConnectivityState.BLOCKED, REASON_BLOCKED)

    def mark_unreachable(self, reason: str = REASON_UNREACHABLE) -> None:
        """Record a failed resolution, probe or login."""
        if self._state is ConnectivityState.BLOCKED:
            _LOGGER.debug(
                "%s stays blocked, ignoring unreachable outcome: %s",
                self._name,
                reason,
            )
            return
        self._transition(ConnectivityState.UNREACHABLE, reason)

    def _transition(self, state: ConnectivityState, reason: str | None) -> None:
        if state is self._state and reason == self._reason:
            return

        _LOGGER.info(
            "%s connectivity changed: %s -> %s%s",
            self._name,
            self._state,
            state,
            f" ({reason})" if reason else "",
        )
        self._state = state
        self._reason = reason
        for listener in list(self._listeners):
            listener(state, reason)


class NasConnection:
    """Per-NAS record owning the working address, the session and the state.

    Resolution and login are serialized per NAS so concurrent callers never
    log in twice or overwrite each other's cached address.
    """

    def __init__(
        self,
        cloud_id: str,
        api: AdmApi,
        lookup: EzConnectClient,
        *,
        url: str | None = None,
        last_url_check: float = 0.0,
        session_id: str | None = None,
        executor: ExecutorJob | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            cloud_id: EZ-Connect cloud id of the NAS
            api: ADM API client holding the credentials
            lookup: EZ-Connect lookup client
            url: Last working address, if known
            last_url_check: Time of the last full resolution
            session_id: Session id issued against url, if known
            executor: Coroutine function running blocking calls

        """
        self.cloud_id = cloud_id
        self.api = api
        self.lookup = lookup
        self.state = ConnectivityStateMachine(cloud_id)

        self._url = url
        self._last_url_check = last_url_check
        self._session = NasSession(session_id, url) if session_id and url else None
        self._executor = executor or async_run_in_executor
        self._lock = asyncio.Lock()
        self._auth_failed = False
        self._update_listeners: list[Callable[[], None]] = []

    @property
    def url(self) -> str | None:
        """Return the cached working address."""
        return self._url

    @property
    def last_url_check(self) -> float:
        """Return the time of the last full resolution."""
        return self._last_url_check

    @property
    def resolution(self) -> ResolutionResult | None:
        """Return the cached resolution, if any."""
        if not self._url:
            return None
        return ResolutionResult(self._url, self._last_url_check)

    @property
    def session(self) -> NasSession | None:
        """Return the current session."""
        return self._session

    def add_update_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener called when address or session change."""
        self._update_listeners.append(listener)

        def _remove() -> None:
            if listener in self._update_listeners:
                self._update_listeners.remove(listener)

        return _remove

    def _notify_update(self) -> None:
        for listener in list(self._update_listeners):
            listener()

    def update_credentials(self, username: str, password: str) -> None:
        """Replace the credentials and allow logging in again."""
        self.api.username = username
        self.api.password = password
        self._auth_failed = False
        self._session = None

    def close(self) -> None:
        """Destroy the session when the NAS is removed."""
        self._session = None
        self._update_listeners.clear()

    async def _async_probe(self, address: str, timeout: float) -> ProbeOutcome:
        return await self._executor(self.api.probe, address, timeout)

    def _is_stale(self) -> bool:
        return time.time() - self._last_url_check > URL_REVALIDATION_INTERVAL

    # Working address

    async def async_resolve_address(self, force_full_resolution: bool = False) -> str:
        """Return a working address for the NAS.

        Raises:
            AddressBlockedError: If ADM Defender denies this system
            AddressUnreachableError: If no address reaches the NAS

        """
        async with self._lock:
            return await self._async_resolve(force_full_resolution)

    async def _async_resolve(
        self, force_full_resolution: bool = False, mark_available: bool = True
    ) -> str:
        try:
            address = await self._async_find_address(force_full_resolution)
        except AddressBlockedError:
            self.state.mark_blocked()
            raise
        except AddressUnreachableError:
            self.state.mark_unreachable()
            raise

        if mark_available and not self._auth_failed:
            self.state.mark_available()
        return address

    async def _async_find_address(self, force_full_resolution: bool) -> str:
        cached = self._url
        if cached and not force_full_resolution:
            outcome = await self._async_probe(cached, REVALIDATE_PROBE_TIMEOUT)

            if outcome is ProbeOutcome.BLOCKED:
                _LOGGER.warning("Blocked by ADM Defender (403): %s", cached)
                raise AddressBlockedError(f"{cached} is blocked by ADM Defender")

            if outcome is ProbeOutcome.REACHABLE:
                if not self._is_stale():
                    return cached

                _LOGGER.debug("Working URL older than revalidation interval: %s", cached)
                try:
                    return await self._async_full_resolution()
                except (AddressBlockedError, AddressUnreachableError) as err:
                    _LOGGER.warning(
                        "Periodic URL check failed (%s), keeping %s", err, cached
                    )
                    return cached

            _LOGGER.info("Last working URL failed: %s", cached)

        return await self._async_full_resolution()

    async def _async_full_resolution(self) -> str:
        _LOGGER.info("Finding new working URL for NAS %s", self.cloud_id)
        try:
            candidates = await self._executor(
                self.lookup.enumerate_candidates, self.cloud_id
            )
        except InvalidCloudIdError as err:
            raise AddressUnreachableError(str(err)) from err
        except AsustorLookupError as err:
            raise AddressUnreachableError(f"Lookup failed: {err}") from err

        try:
            winner = await async_race(candidates, self._async_probe, RACE_PROBE_TIMEOUT)
        except RaceBlockedError as err:
            raise AddressBlockedError(str(err)) from err
        except NoneReachableError as err:
            raise AddressUnreachableError(str(err)) from err

        self._store_resolution(winner.address, time.time())
        return winner.address

    def _store_resolution(self, address: str, resolved_at: float) -> None:
        if address != self._url:
            _LOGGER.info("Working URL for %s changed: %s", self.cloud_id, address)
        if self._session is not None and self._session.address != address:
            _LOGGER.debug("Dropping session issued against %s", self._session.address)
            self._session = None

        self._url = address
        self._last_url_check = resolved_at
        self._notify_update()

    # Session

    async def async_login(self) -> NasSession:
        """Resolve the working address and log in.

        Raises:
            AddressBlockedError: If ADM Defender denies this system
            AddressUnreachableError: If no address reaches the NAS
            AsustorLoginError: If the login itself fails

        """
        async with self._lock:
            address = await self._async_resolve(mark_available=False)
            return await self._async_login(address)

    async def _async_login(self, address: str) -> NasSession:
        try:
            sid = await self._executor(self.api.login, address)
        except LoginBlockedError:
            self.state.mark_blocked()
            raise
        except InvalidCredentialsError:
            self._auth_failed = True
            self._session = None
            self.state.mark_unreachable(REASON_INVALID_CREDENTIALS)
            raise
        except AsustorLoginError:
            self.state.mark_unreachable()
            raise

        self._session = NasSession(sid, address)
        self.state.mark_available()
        self._notify_update()
        return self._session

    async def async_ensure_session(self) -> NasSession:
        """Return a session valid for the current working address.

        Raises:
            InvalidCredentialsError: If the credentials were rejected before
            AddressBlockedError: If ADM Defender denies this system
            AddressUnreachableError: If no address reaches the NAS or the login
                cannot be completed

        """
        async with self._lock:
            if self._auth_failed:
                raise InvalidCredentialsError(
                    "Credentials were rejected, waiting for reconfiguration"
                )

            address = await self._async_resolve(mark_available=False)
            if self._session is not None and self._session.address == address:
                self.state.mark_available()
                return self._session

            _LOGGER.info("Not logged in at %s, attempting to login", address)
            try:
                return await self._async_login(address)
            except LoginBlockedError as err:
                raise AddressBlockedError(str(err)) from err
            except (LoginNetworkError, LoginProtocolError) as err:
                raise AddressUnreachableError(f"Login failed: {err}") from err

    async def _async_relogin(self, expired: NasSession) -> NasSession:
        async with self._lock:
            if self._session is not None and self._session != expired:
                # Another caller already replaced the expired session
                return self._session

            self._session = None
            try:
                address = await self._async_resolve(mark_available=False)
                return await self._async_login(address)
            except AsustorLoginError as err:
                _LOGGER.error("Re-login failed: %s", err)
                raise TerminalAuthError(f"Re-login failed: {err}") from err

    async def async_call(self, operation: Callable[[str, str], _T]) -> _T:
        """Run an authenticated API operation with transparent re-login.

        The operation receives the working address and the session id. When
        the NAS reports the session as invalid, one re-login is attempted and
        the operation is retried once.

        Raises:
            TerminalAuthError: If re-login fails or the retry is rejected again
            AddressBlockedError: If ADM Defender denies this system
            AddressUnreachableError: If the NAS cannot be reached

        """
        session = await self.async_ensure_session()
        try:
            result = await self._async_run_operation(operation, session)
        except SessionExpiredError as err:
            _LOGGER.info(
                "Session expired (error code: %s), re-logging in", err.error_code
            )
            session = await self._async_relogin(session)
            try:
                result = await self._async_run_operation(operation, session)
            except SessionExpiredError as retry_err:
                _LOGGER.error("Session rejected again after re-login")
                raise TerminalAuthError(
                    "Session rejected again after re-login"
                ) from retry_err

        self.state.mark_available()
        return result

    async def _async_run_operation(
        self, operation: Callable[[str, str], _T], session: NasSession
    ) -> _T:
        try:
            return await self._executor(operation, session.address, session.sid)
        except AddressBlockedError:
            self.state.mark_blocked()
            raise
        except AddressUnreachableError:
            self.state.mark_unreachable()
            raise


class ConnectionRegistry:
    """Registry of NAS connections keyed by cloud id."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._connections: dict[str, NasConnection] = {}

    def __contains__(self, cloud_id: object) -> bool:
        """Return True if a NAS with this cloud id is registered."""
        return cloud_id in self._connections

    @property
    def cloud_ids(self) -> set[str]:
        """Return the registered cloud ids."""
        return set(self._connections)

    def get(self, cloud_id: str) -> NasConnection | None:
        """Return the connection for a cloud id."""
        return self._connections.get(cloud_id)

    def register(self, connection: NasConnection) -> None:
        """Add a connection, refusing duplicates."""
        if connection.cloud_id in self._connections:
            raise DuplicateDeviceError(
                f"NAS {connection.cloud_id} is already registered"
            )
        self._connections[connection.cloud_id] = connection

    def remove(self, cloud_id: str) -> None:
        """Remove a connection and destroy its session."""
        connection = self._connections.pop(cloud_id, None)
        if connection is not None:
            connection.close()
