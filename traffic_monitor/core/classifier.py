"""Decide whether an inbound request should be logged, and how."""

from __future__ import annotations

from dataclasses import dataclass

from .models import RequestKind


@dataclass(frozen=True)
class RequestEnvironment:
    """Signals describing the current invocation."""
    path: str = ""
    method: str = ""
    is_admin: bool = False
    is_beacon: bool = False
    is_rest: bool = False
    is_cli: bool = False
    is_cron: bool = False
    is_websocket: bool = False


def classify_request(environment: RequestEnvironment) -> RequestKind:
    """Classify the request origin.

    Signals are checked in a fixed priority order and the first match wins.
    Compute this once per request and pass the result along.
    """
    if environment.is_admin:
        return RequestKind.IGNORE
    if environment.is_beacon:
        return RequestKind.BEACON
    if environment.is_rest or environment.is_cli or environment.is_cron:
        return RequestKind.IGNORE
    if environment.is_websocket:
        return RequestKind.IGNORE
    if environment.method:
        return RequestKind.DIRECT
    return RequestKind.IGNORE
