"""Tests for the EZ-Connect candidate enumerator."""

import pytest
import requests

from custom_components.asustor_nas.api.ezconnect import (
    EzConnectClient,
    build_candidates,
    ddns_address,
    extract_api_result,
)
from custom_components.asustor_nas.error import (
    InvalidCloudIdError,
    LookupNetworkError,
    LookupParseError,
)
from custom_components.asustor_nas.models import Candidate, CandidateOrigin

from .conftest import make_response

EZCONNECT_PAGE = """<html><head><script>
var AS = AS || {}; AS.API = AS.API || {};
AS.API.apiResult = JSON.parse('{"errno":0,"lan_ips_http":["http://10.0.0.5:8000/"],"wan_ip_http":null,"relay_url":null}');
</script></head><body></body></html>"""


def test_extract_api_result_from_page():
    payload = extract_api_result(EZCONNECT_PAGE)

    assert payload["errno"] == 0
    assert payload["lan_ips_http"] == ["http://10.0.0.5:8000/"]


def test_extract_api_result_without_marker_fails():
    with pytest.raises(LookupParseError):
        extract_api_result("<html><body>Maintenance</body></html>")


def test_extract_api_result_with_broken_json_fails():
    with pytest.raises(LookupParseError):
        extract_api_result("AS.API.apiResult = JSON.parse('{\"errno\":0,')")


def test_candidates_for_lan_only_lookup():
    payload = extract_api_result(EZCONNECT_PAGE)

    candidates = build_candidates("abc123", payload)

    assert candidates == [
        Candidate("http://10.0.0.5:8000/", CandidateOrigin.LAN),
        Candidate("http://abc123.myasustor.com:8000/", CandidateOrigin.DDNS),
    ]


def test_candidates_include_wan_and_relay_in_order():
    payload = {
        "errno": 0,
        "lan_ips_http": ["http://192.168.1.10:8000/", "http://192.168.2.10:8000/"],
        "wan_ip_http": "http://203.0.113.7:8000/",
        "relay_url": "https://relay.example.net/abc123/",
    }

    origins = [c.origin for c in build_candidates("abc123", payload)]

    assert origins == [
        CandidateOrigin.LAN,
        CandidateOrigin.LAN,
        CandidateOrigin.DDNS,
        CandidateOrigin.WAN,
        CandidateOrigin.RELAY,
    ]


def test_ddns_candidate_present_without_lan_addresses():
    candidates = build_candidates("nas42", {"errno": 0, "lan_ips_http": None})

    assert candidates == [Candidate(ddns_address("nas42"), CandidateOrigin.DDNS)]


def test_unregistered_cloud_id_is_rejected():
    with pytest.raises(InvalidCloudIdError):
        build_candidates("unknown", {"errno": 2, "lan_ips_http": []})


def test_client_fetches_lookup_page(http_session):
    http_session.get.return_value = make_response(200, text=EZCONNECT_PAGE)
    client = EzConnectClient(session=http_session)

    candidates = client.enumerate_candidates("abc123")

    http_session.get.assert_called_once_with("https://abc123.ezconnect.to/", timeout=7)
    assert [c.origin for c in candidates] == [CandidateOrigin.LAN, CandidateOrigin.DDNS]


def test_client_network_failure(http_session):
    http_session.get.side_effect = requests.ConnectionError("refused")
    client = EzConnectClient(session=http_session)

    with pytest.raises(LookupNetworkError):
        client.enumerate_candidates("abc123")
