"""Data types shared by the ASUSTOR NAS connectivity engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class CandidateOrigin(StrEnum):
    """Network path a candidate address goes through."""

    LAN = "LAN"
    DDNS = "DDNS"
    WAN = "WAN"
    RELAY = "Relay"


class ProbeOutcome(StrEnum):
    """Result of probing one candidate address."""

    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    BLOCKED = "blocked"


class ProbeStatus(StrEnum):
    """Progress of a single probe during a race."""

    TESTING = "testing"
    SUCCESS = "success"
    FAILED = "failed"


class ConnectivityState(StrEnum):
    """Externally observed availability of a NAS."""

    RESOLVING = "resolving"
    AVAILABLE = "available"
    BLOCKED = "blocked"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class Candidate:
    """One base address hypothesis for reaching the NAS."""

    address: str
    origin: CandidateOrigin


@dataclass(frozen=True)
class ProbeProgress:
    """Progress notification emitted for a candidate while racing."""

    origin: CandidateOrigin
    address: str
    status: ProbeStatus


@dataclass(frozen=True)
class ResolutionResult:
    """Working address and the time of the full resolution that found it."""

    url: str
    resolved_at: float


@dataclass(frozen=True)
class NasSession:
    """ADM session id, valid only against the address that issued it."""

    sid: str
    address: str
