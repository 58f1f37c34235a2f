"""EZ-Connect lookup client producing candidate NAS addresses."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import requests

from ..const import (
    DDNS_URL_TEMPLATE,
    EZCONNECT_API_RESULT_PATTERN,
    EZCONNECT_ERRNO_INVALID_ID,
    EZCONNECT_URL_TEMPLATE,
    LOOKUP_TIMEOUT,
)
from ..error import InvalidCloudIdError, LookupNetworkError, LookupParseError
from ..models import Candidate, CandidateOrigin

_LOGGER = logging.getLogger(__name__)

_API_RESULT_RE = re.compile(EZCONNECT_API_RESULT_PATTERN)


def ddns_address(cloud_id: str) -> str:
    """Return the myasustor.com DDNS base address for a cloud id."""
    return DDNS_URL_TEMPLATE.format(cloud_id=cloud_id)


def extract_api_result(document: str) -> dict[str, Any]:
    """Extract the JSON payload embedded in an EZ-Connect page.

    Args:
        document: HTML page returned by the lookup service

    Returns:
        Decoded payload

    Raises:
        LookupParseError: If the marker is missing or the payload is not a JSON object

    """
    match = _API_RESULT_RE.search(document)
    if not match:
        raise LookupParseError("apiResult not found in EZ-Connect page")

    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as err:
        raise LookupParseError(f"Invalid apiResult JSON: {err}") from err

    if not isinstance(payload, dict):
        raise LookupParseError("apiResult is not a JSON object")
    return payload


def build_candidates(cloud_id: str, payload: dict[str, Any]) -> list[Candidate]:
    """Build the ordered candidate set from a lookup payload.

    Args:
        cloud_id: Cloud id the payload was fetched for
        payload: Decoded apiResult

    Returns:
        LAN addresses, the DDNS address, then WAN and relay when present

    Raises:
        InvalidCloudIdError: If the lookup reports an unregistered cloud id

    """
    if payload.get("errno") == EZCONNECT_ERRNO_INVALID_ID:
        raise InvalidCloudIdError(f"Cloud id {cloud_id} is not registered")

    candidates: list[Candidate] = []

    lan_addresses = payload.get("lan_ips_http")
    if isinstance(lan_addresses, list):
        candidates.extend(
            Candidate(address, CandidateOrigin.LAN)
            for address in lan_addresses
            if isinstance(address, str) and address
        )

    candidates.append(Candidate(ddns_address(cloud_id), CandidateOrigin.DDNS))

    if wan_address := payload.get("wan_ip_http"):
        candidates.append(Candidate(wan_address, CandidateOrigin.WAN))

    if relay_address := payload.get("relay_url"):
        candidates.append(Candidate(relay_address, CandidateOrigin.RELAY))

    return candidates


class EzConnectClient:
    """Client for the EZ-Connect cloud id lookup service."""

    def __init__(self, session: requests.Session | None = None) -> None:
        """Initialize the lookup client.

        Args:
            session: HTTP session to use, a new one is created when omitted

        """
        self.session = session or requests.Session()

    def fetch_api_result(self, cloud_id: str) -> dict[str, Any]:
        """Fetch and decode the lookup payload for a cloud id."""
        url = EZCONNECT_URL_TEMPLATE.format(cloud_id=cloud_id)
        _LOGGER.debug("Fetching EZ-Connect data: %s", url)

        try:
            response = self.session.get(url, timeout=LOOKUP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as err:
            _LOGGER.warning("EZ-Connect lookup failed for %s: %s", cloud_id, err)
            raise LookupNetworkError(f"EZ-Connect lookup failed: {err}") from err

        return extract_api_result(response.text)

    def enumerate_candidates(self, cloud_id: str) -> list[Candidate]:
        """Return the candidate addresses for a cloud id."""
        candidates = build_candidates(cloud_id, self.fetch_api_result(cloud_id))
        _LOGGER.debug(
            "Candidates for %s: %s",
            cloud_id,
            ", ".join(f"{c.origin}={c.address}" for c in candidates),
        )
        return candidates
