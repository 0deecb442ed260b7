"""
Traffic Monitor core pipeline

Framework-free pieces shared by the HTTP layer and tests:
- User-Agent parsing (platform, browser, version, device class)
- Request classification (direct page load, beacon, ignored)
- Record extraction from transport data
- Nonce + client IP deduplication
"""

from traffic_monitor.core.classifier import RequestEnvironment, classify_request
from traffic_monitor.core.dedup import DedupGuard, InMemoryDedupStore, RedisDedupStore, mint_nonce
from traffic_monitor.core.extractor import Transport, extract_record, select_client_ip, validate_host
from traffic_monitor.core.models import (
    BeaconAck,
    BeaconStatus,
    OriginKind,
    RequestKind,
    RequestRecord,
)
from traffic_monitor.core.pipeline import LogSink, TrafficLogger
from traffic_monitor.core.user_agent import UserAgentInfo, get_device_class, parse_user_agent

__all__ = [
    "BeaconAck",
    "BeaconStatus",
    "DedupGuard",
    "InMemoryDedupStore",
    "LogSink",
    "OriginKind",
    "RedisDedupStore",
    "RequestEnvironment",
    "RequestKind",
    "RequestRecord",
    "TrafficLogger",
    "Transport",
    "UserAgentInfo",
    "classify_request",
    "extract_record",
    "get_device_class",
    "mint_nonce",
    "parse_user_agent",
    "select_client_ip",
    "validate_host",
]
