"""API for ASUSTOR ADM NAS devices."""

from __future__ import annotations

import logging
from typing import Any

import requests

# Disable SSL warnings for self-signed certificates
import urllib3

from ..const import (
    API_TIMEOUT,
    ERROR_CODE_AUTH_FAILED,
    ERROR_CODE_INVALID_CREDENTIALS,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_OK,
    LOGIN_TIMEOUT,
    PATH_ACTIVITY_MONITOR,
    PATH_LOGIN,
    PATH_PROBE,
    PATH_SYSINFO,
    PATH_VOLUMES,
    REVALIDATE_PROBE_TIMEOUT,
    SESSION_INVALID_ERROR_CODES,
)
from ..error import (
    AddressBlockedError,
    AddressUnreachableError,
    AsustorApiError,
    InvalidCredentialsError,
    LoginBlockedError,
    LoginNetworkError,
    LoginProtocolError,
    SessionExpiredError,
)
from ..models import ProbeOutcome

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_LOGGER = logging.getLogger(__name__)


def _mask_sid(sid: str | None) -> str:
    """Return a log-safe prefix of a session id."""
    return f"{sid[:8]}..." if sid else "None"


class AdmApi:
    """ADM web API client.

    The client is stateless with respect to addresses and sessions: every
    call takes the base address and, where needed, the session id. Address
    resolution and session lifetime belong to the connection that owns it.
    """

    def __init__(
        self,
        username: str,
        password: str,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize ADM API.

        Args:
            username: Login username
            password: Login password
            session: HTTP session to use, a new one is created when omitted

        """
        self.username: str = username
        self.password: str = password
        self.session: requests.Session = session or requests.Session()
        self.session.verify = (
            False  # Disable SSL verification for self-signed certificates
        )

    def probe(
        self, address: str, timeout: float = REVALIDATE_PROBE_TIMEOUT
    ) -> ProbeOutcome:
        """Check whether a base address serves the ADM portal.

        Args:
            address: Candidate base address ending with "/"
            timeout: Request timeout in seconds

        Returns:
            REACHABLE on 200, BLOCKED on 403, UNREACHABLE otherwise

        """
        url = f"{address}{PATH_PROBE}"
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.RequestException as err:
            _LOGGER.debug("Probe failed: %s - %s", url, err)
            return ProbeOutcome.UNREACHABLE

        if response.status_code == HTTP_STATUS_OK:
            return ProbeOutcome.REACHABLE
        if response.status_code == HTTP_STATUS_FORBIDDEN:
            _LOGGER.info("Probe blocked by ADM Defender (403): %s", address)
            return ProbeOutcome.BLOCKED

        _LOGGER.debug("Probe returned HTTP %s: %s", response.status_code, url)
        return ProbeOutcome.UNREACHABLE

    def login(self, address: str) -> str:
        """Login to the NAS and return a new session id.

        Args:
            address: Working base address

        Returns:
            Session id (sid)

        Raises:
            LoginBlockedError: If ADM Defender answers with 403
            LoginNetworkError: If the request cannot be completed
            InvalidCredentialsError: If the NAS rejects the credentials
            LoginProtocolError: If the response carries no sid

        """
        url = f"{address}{PATH_LOGIN}"
        data = {
            "account": self.username,
            "password": self.password,
            "two-step-auth": "true",
            "stay": "yes",
        }

        _LOGGER.info("Attempting login to NAS: %s", url)

        try:
            response = self.session.post(
                url, params={"act": "login"}, data=data, timeout=LOGIN_TIMEOUT
            )
        except requests.RequestException as err:
            _LOGGER.warning("Login request failed due to connection issues: %s", err)
            raise LoginNetworkError(f"Login request failed: {err}") from err

        if response.status_code == HTTP_STATUS_FORBIDDEN:
            _LOGGER.warning("Login blocked by ADM Defender (403)")
            raise LoginBlockedError("Login blocked by ADM Defender")

        try:
            response.raise_for_status()
            result = response.json()
        except requests.HTTPError as err:
            raise LoginNetworkError(f"Login request failed: {err}") from err
        except ValueError as err:
            raise LoginProtocolError(f"Invalid login response: {err}") from err

        if not isinstance(result, dict):
            raise LoginProtocolError("Login response is not a JSON object")

        error_code = result.get("error_code")
        if error_code == ERROR_CODE_INVALID_CREDENTIALS:
            _LOGGER.error("Login failed: Invalid credentials")
            raise InvalidCredentialsError("Invalid username or password")
        if error_code == ERROR_CODE_AUTH_FAILED:
            _LOGGER.error("Login failed: Authentication error")
            raise LoginProtocolError("Authentication error (error_code=5000)")

        sid = result.get("sid")
        if not sid:
            _LOGGER.error("Login failed: No SID received (error_code=%s)", error_code)
            raise LoginProtocolError("No session id in login response")

        _LOGGER.info("Login successful, sid=%s", _mask_sid(sid))
        return sid

    def request(
        self,
        address: str,
        path: str,
        sid: str,
        act: str,
        timeout: float = API_TIMEOUT,
    ) -> dict[str, Any]:
        """Perform an authenticated ADM API call.

        Args:
            address: Base address the session was issued against
            path: API path below the base address
            sid: Session id
            act: ADM action name
            timeout: Request timeout in seconds

        Returns:
            Decoded JSON response

        Raises:
            AddressBlockedError: If ADM Defender answers with 403
            AddressUnreachableError: If the request cannot be completed
            SessionExpiredError: If the response reports an invalid session
            AsustorApiError: If the response is not a JSON object

        """
        url = f"{address}{path}"
        try:
            response = self.session.get(
                url, params={"sid": sid, "act": act}, timeout=timeout
            )
        except requests.RequestException as err:
            _LOGGER.warning("Request to %s failed (NAS may be offline): %s", url, err)
            raise AddressUnreachableError(f"Request to {path} failed: {err}") from err

        if response.status_code == HTTP_STATUS_FORBIDDEN:
            raise AddressBlockedError(f"Request to {path} blocked by ADM Defender")

        try:
            response.raise_for_status()
            result = response.json()
        except requests.HTTPError as err:
            raise AddressUnreachableError(f"Request to {path} failed: {err}") from err
        except ValueError as err:
            raise AsustorApiError(f"Invalid response from {path}: {err}") from err

        if not isinstance(result, dict):
            raise AsustorApiError(f"Response from {path} is not a JSON object")

        error_code = result.get("error_code")
        if error_code in SESSION_INVALID_ERROR_CODES:
            _LOGGER.info(
                "Session expired (error code: %s) on %s, sid=%s",
                error_code,
                path,
                _mask_sid(sid),
            )
            raise SessionExpiredError(error_code)

        _LOGGER.debug("%s %s response: %s", path, act, result)
        return result

    def get_network_interfaces(self, address: str, sid: str) -> list[dict[str, Any]]:
        """Get network interfaces with their link state."""
        result = self.request(address, PATH_SYSINFO, sid, "net")
        interfaces = result.get("netif")
        if not isinstance(interfaces, list):
            _LOGGER.error("Network interface data not available or invalid format")
            return []

        return [
            {"name": iface["name"], "connected": iface.get("status") is True}
            for iface in interfaces
            if isinstance(iface, dict) and iface.get("name")
        ]

    def get_system_metrics(self, address: str, sid: str) -> dict[str, Any]:
        """Get CPU, RAM, storage and network interface metrics.

        Sections the NAS does not report are returned as None instead of
        failing the whole update.

        Args:
            address: Base address the session was issued against
            sid: Session id

        Returns:
            Metrics dictionary

        """
        metrics: dict[str, Any] = {
            "cpu_usage": None,
            "ram_usage": None,
            "storage_used": None,
        }

        activity = self.request(address, PATH_ACTIVITY_MONITOR, sid, "list")
        if activity.get("success"):
            metrics["cpu_usage"] = parse_cpu_usage(activity)
            metrics["ram_usage"] = parse_ram_usage(activity)
        else:
            _LOGGER.error(
                "Activity monitor request failed with error code: %s",
                activity.get("error_code"),
            )

        volumes = self.request(address, PATH_VOLUMES, sid, "list")
        if volumes.get("success"):
            metrics["storage_used"] = parse_storage_used(volumes)
        else:
            _LOGGER.error("Storage data not available or invalid format")

        metrics["interfaces"] = self.get_network_interfaces(address, sid)
        return metrics


def parse_cpu_usage(data: dict[str, Any]) -> int | None:
    """Return the mean CPU usage over all cores."""
    cpus = data.get("cpus")
    if not isinstance(cpus, list) or not cpus:
        _LOGGER.error("CPU data not available or invalid format")
        return None
    return round(sum(cpu.get("usage", 0) for cpu in cpus) / len(cpus))


def parse_ram_usage(data: dict[str, Any]) -> int | None:
    """Return RAM usage in percent, excluding cache and buffers."""
    mem_total = data.get("memtotal")
    mem_used = data.get("memused")
    if not mem_total or mem_used is None:
        _LOGGER.error("RAM data not available or invalid format")
        return None

    mem_cached = data.get("memcached") or 0
    mem_buffer = data.get("membuffer") or 0
    return round((mem_used - mem_cached - mem_buffer) / mem_total * 100)


def parse_storage_used(data: dict[str, Any]) -> int | None:
    """Return used capacity over all volumes in percent."""
    volumes = data.get("volumes")
    if not isinstance(volumes, list):
        _LOGGER.error("Storage data not available or invalid format")
        return None

    total_used = 0
    total_capacity = 0
    for volume in volumes:
        if volume.get("used") is not None and volume.get("capacity") is not None:
            total_used += volume["used"]
            total_capacity += volume["capacity"]

    if total_capacity <= 0:
        return None
    return round(total_used / total_capacity * 100)
