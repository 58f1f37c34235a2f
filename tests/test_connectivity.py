"""Tests for working address caching, sessions and connectivity state."""

import asyncio
import time

import pytest

from custom_components.asustor_nas.connectivity import (
    ConnectionRegistry,
    ConnectivityStateMachine,
    NasConnection,
)
from custom_components.asustor_nas.const import (
    REASON_BLOCKED,
    REASON_INVALID_CREDENTIALS,
)
from custom_components.asustor_nas.error import (
    AddressBlockedError,
    AddressUnreachableError,
    DuplicateDeviceError,
    InvalidCloudIdError,
    InvalidCredentialsError,
    LoginBlockedError,
    LoginNetworkError,
    LoginProtocolError,
    TerminalAuthError,
)
from custom_components.asustor_nas.models import (
    Candidate,
    CandidateOrigin,
    ConnectivityState,
    NasSession,
    ProbeOutcome,
)

from .conftest import ExpiringOperation, FakeAdmApi, FakeLookup, inline_executor

LAN_URL = "http://10.0.0.5:8000/"
NEW_LAN_URL = "http://10.0.0.9:8000/"
DDNS_URL = "http://abc123.myasustor.com:8000/"

CANDIDATES = [
    Candidate(LAN_URL, CandidateOrigin.LAN),
    Candidate(DDNS_URL, CandidateOrigin.DDNS),
]

UNREACHABLE = ConnectivityState.UNREACHABLE


def make_connection(api, lookup, **kwargs) -> NasConnection:
    return NasConnection("abc123", api, lookup, executor=inline_executor, **kwargs)


@pytest.mark.asyncio
async def test_fresh_cache_is_revalidated_with_one_probe():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup(CANDIDATES)
    confirmed_at = time.time() - 9 * 60
    connection = make_connection(api, lookup, url=LAN_URL, last_url_check=confirmed_at)

    assert await connection.async_resolve_address() == LAN_URL

    assert api.probed == [LAN_URL]
    assert lookup.calls == 0
    assert connection.last_url_check == confirmed_at
    assert connection.state.state is ConnectivityState.AVAILABLE


@pytest.mark.asyncio
async def test_stale_cache_runs_full_resolution_even_if_probe_succeeds():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup(CANDIDATES)
    connection = make_connection(
        api, lookup, url=LAN_URL, last_url_check=time.time() - 11 * 60
    )
    before = time.time()

    assert await connection.async_resolve_address() == LAN_URL

    assert lookup.calls == 1
    assert connection.last_url_check >= before


@pytest.mark.asyncio
async def test_stale_cache_kept_when_periodic_lookup_fails():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup(InvalidCloudIdError("gone"))
    confirmed_at = time.time() - 11 * 60
    connection = make_connection(api, lookup, url=LAN_URL, last_url_check=confirmed_at)

    assert await connection.async_resolve_address() == LAN_URL
    assert connection.last_url_check == confirmed_at

    # The next call is still prepared to run the full resolution
    await connection.async_resolve_address()
    assert lookup.calls == 2


@pytest.mark.asyncio
async def test_stale_cache_kept_when_periodic_race_is_blocked():
    api = FakeAdmApi(
        {LAN_URL: ProbeOutcome.REACHABLE, DDNS_URL: ProbeOutcome.BLOCKED}
    )
    lookup = FakeLookup([Candidate(DDNS_URL, CandidateOrigin.DDNS)])
    confirmed_at = time.time() - 11 * 60
    connection = make_connection(api, lookup, url=LAN_URL, last_url_check=confirmed_at)

    assert await connection.async_resolve_address() == LAN_URL

    assert lookup.calls == 1
    assert connection.last_url_check == confirmed_at
    assert connection.state.state is ConnectivityState.AVAILABLE


@pytest.mark.asyncio
async def test_failed_probe_on_fresh_cache_falls_back_to_full_resolution():
    api = FakeAdmApi({NEW_LAN_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup([Candidate(NEW_LAN_URL, CandidateOrigin.LAN)])
    connection = make_connection(
        api, lookup, url=LAN_URL, last_url_check=time.time() - 60
    )

    assert await connection.async_resolve_address() == NEW_LAN_URL
    assert connection.url == NEW_LAN_URL
    assert lookup.calls == 1


@pytest.mark.asyncio
async def test_blocked_cached_address_skips_other_candidates():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.BLOCKED, DDNS_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup(CANDIDATES)
    connection = make_connection(api, lookup, url=LAN_URL, last_url_check=time.time())

    with pytest.raises(AddressBlockedError):
        await connection.async_resolve_address()

    assert api.probed == [LAN_URL]
    assert lookup.calls == 0
    assert connection.state.state is ConnectivityState.BLOCKED
    assert connection.state.reason == REASON_BLOCKED


@pytest.mark.asyncio
async def test_resolution_without_cache_returns_lan_address():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(api, FakeLookup(CANDIDATES))

    assert connection.state.state is ConnectivityState.RESOLVING
    assert await connection.async_resolve_address() == LAN_URL
    assert connection.resolution.url == LAN_URL
    assert connection.state.available


@pytest.mark.asyncio
async def test_invalid_cloud_id_is_unreachable():
    connection = make_connection(FakeAdmApi(), FakeLookup(InvalidCloudIdError("x")))

    with pytest.raises(AddressUnreachableError):
        await connection.async_resolve_address()
    assert connection.state.state is ConnectivityState.UNREACHABLE


@pytest.mark.asyncio
async def test_blocked_race_is_blocked():
    api = FakeAdmApi({DDNS_URL: ProbeOutcome.BLOCKED})
    connection = make_connection(api, FakeLookup(CANDIDATES))

    with pytest.raises(AddressBlockedError):
        await connection.async_resolve_address()
    assert connection.state.state is ConnectivityState.BLOCKED


@pytest.mark.asyncio
async def test_force_full_resolution_skips_cheap_probe():
    api = FakeAdmApi({DDNS_URL: ProbeOutcome.REACHABLE})
    lookup = FakeLookup(CANDIDATES)
    connection = make_connection(api, lookup, url=LAN_URL, last_url_check=time.time())

    address = await connection.async_resolve_address(force_full_resolution=True)
    assert address == DDNS_URL
    assert lookup.calls == 1


@pytest.mark.asyncio
async def test_session_expiry_triggers_one_relogin():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(
        api,
        FakeLookup(CANDIDATES),
        url=LAN_URL,
        last_url_check=time.time(),
        session_id="old-sid",
    )
    operation = ExpiringOperation(failures=1)

    assert await connection.async_call(operation) == {"cpu_usage": 12}

    assert api.logins == [LAN_URL]
    assert operation.calls == [(LAN_URL, "old-sid"), (LAN_URL, "sid-1")]
    assert connection.session == NasSession("sid-1", LAN_URL)


@pytest.mark.asyncio
async def test_session_rejected_after_relogin_is_terminal():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(
        api, FakeLookup(CANDIDATES), url=LAN_URL, last_url_check=time.time()
    )
    operation = ExpiringOperation(failures=5)

    with pytest.raises(TerminalAuthError):
        await connection.async_call(operation)

    assert len(api.logins) == 2  # initial login plus the single re-login
    assert len(operation.calls) == 2


@pytest.mark.asyncio
async def test_failed_relogin_is_terminal_and_not_retried():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    api.login_results = [InvalidCredentialsError("bad")]
    connection = make_connection(
        api,
        FakeLookup(CANDIDATES),
        url=LAN_URL,
        last_url_check=time.time(),
        session_id="old-sid",
    )

    with pytest.raises(TerminalAuthError):
        await connection.async_call(ExpiringOperation(failures=1))

    assert connection.state.reason == REASON_INVALID_CREDENTIALS
    with pytest.raises(InvalidCredentialsError):
        await connection.async_ensure_session()
    assert len(api.logins) == 1

    connection.update_credentials("admin", "new-secret")
    assert (await connection.async_ensure_session()).sid == "sid-1"


@pytest.mark.asyncio
async def test_address_change_invalidates_session():
    api = FakeAdmApi({NEW_LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(
        api,
        FakeLookup([Candidate(NEW_LAN_URL, CandidateOrigin.LAN)]),
        url=LAN_URL,
        last_url_check=time.time(),
        session_id="old-sid",
    )

    session = await connection.async_ensure_session()

    assert session == NasSession("sid-1", NEW_LAN_URL)
    assert api.logins == [NEW_LAN_URL]


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_login():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(
        api, FakeLookup(CANDIDATES), url=LAN_URL, last_url_check=time.time()
    )

    first, second = await asyncio.gather(
        connection.async_ensure_session(), connection.async_ensure_session()
    )

    assert first == second
    assert api.logins == [LAN_URL]


@pytest.mark.asyncio
async def test_update_listener_called_on_resolution_and_login():
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    connection = make_connection(api, FakeLookup(CANDIDATES))
    updates = []
    connection.add_update_listener(lambda: updates.append(connection.session))

    await connection.async_login()

    assert updates == [None, NasSession("sid-1", LAN_URL)]


def test_blocked_state_is_only_left_by_success():
    machine = ConnectivityStateMachine("abc123")
    transitions = []
    machine.add_listener(lambda state, reason: transitions.append(state))

    machine.mark_blocked()
    machine.mark_unreachable()
    assert machine.state is ConnectivityState.BLOCKED
    assert not machine.available

    machine.mark_available()
    machine.mark_unreachable()
    assert transitions == [
        ConnectivityState.BLOCKED,
        ConnectivityState.AVAILABLE,
        ConnectivityState.UNREACHABLE,
    ]


def test_registry_refuses_duplicates():
    registry = ConnectionRegistry()
    first = make_connection(FakeAdmApi(), FakeLookup(CANDIDATES))
    registry.register(first)

    with pytest.raises(DuplicateDeviceError):
        registry.register(make_connection(FakeAdmApi(), FakeLookup(CANDIDATES)))

    assert registry.get("abc123") is first
    registry.remove("abc123")
    assert "abc123" not in registry


@pytest.mark.parametrize(
    ("login_error", "raised", "expected_state"),
    [
        (LoginProtocolError("no sid"), AddressUnreachableError, UNREACHABLE),
        (LoginNetworkError("timeout"), AddressUnreachableError, UNREACHABLE),
        (LoginBlockedError("403"), AddressBlockedError, ConnectivityState.BLOCKED),
    ],
)
@pytest.mark.asyncio
async def test_failing_login_settles_in_one_state(
    login_error, raised, expected_state
):
    api = FakeAdmApi({LAN_URL: ProbeOutcome.REACHABLE})
    api.login_results = [login_error] * 3
    connection = make_connection(
        api, FakeLookup(CANDIDATES), url=LAN_URL, last_url_check=time.time()
    )
    transitions = []
    connection.state.add_listener(lambda state, reason: transitions.append(state))

    for _ in range(3):
        with pytest.raises(raised):
            await connection.async_ensure_session()

    assert len(api.logins) == 3
    assert transitions == [expected_state]
