"""Shared fixtures and fakes for ASUSTOR NAS tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from custom_components.asustor_nas.error import SessionExpiredError
from custom_components.asustor_nas.models import Candidate, ProbeOutcome


def make_response(
    status_code: int = 200, json_data: Any = None, text: str = ""
) -> MagicMock:
    """Build a fake requests.Response."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"HTTP {status_code}"
        )
    return response


async def inline_executor(target, *args):
    """Run a blocking call inline, yielding to the loop once."""
    await asyncio.sleep(0)
    return target(*args)


class FakeAdmApi:
    """In-memory ADM API recording calls."""

    def __init__(self, probe_outcomes: dict[str, ProbeOutcome] | None = None) -> None:
        self.username = "admin"
        self.password = "secret"
        self.probe_outcomes = probe_outcomes or {}
        self.probed: list[str] = []
        self.login_results: list[Any] = []
        self.logins: list[str] = []
        self._sid_counter = 0

    def probe(self, address: str, timeout: float = 3) -> ProbeOutcome:
        self.probed.append(address)
        return self.probe_outcomes.get(address, ProbeOutcome.UNREACHABLE)

    def login(self, address: str) -> str:
        self.logins.append(address)
        if self.login_results:
            result = self.login_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self._sid_counter += 1
        return f"sid-{self._sid_counter}"


class FakeLookup:
    """EZ-Connect client returning fixed candidates."""

    def __init__(self, candidates: list[Candidate] | Exception) -> None:
        self.candidates = candidates
        self.calls = 0

    def enumerate_candidates(self, cloud_id: str) -> list[Candidate]:
        self.calls += 1
        if isinstance(self.candidates, Exception):
            raise self.candidates
        return list(self.candidates)


class ExpiringOperation:
    """Operation rejecting the first sessions it sees with an ADM error code."""

    def __init__(self, failures: int, error_code: int = 5053) -> None:
        self.failures = failures
        self.error_code = error_code
        self.calls: list[tuple[str, str]] = []

    def __call__(self, address: str, sid: str) -> dict[str, Any]:
        self.calls.append((address, sid))
        if len(self.calls) <= self.failures:
            raise SessionExpiredError(self.error_code)
        return {"cpu_usage": 12}


@pytest.fixture
def http_session() -> MagicMock:
    """Return a fake requests session."""
    return MagicMock(spec=requests.Session)
