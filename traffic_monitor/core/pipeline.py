"""classify -> extract -> dedup -> persist, once per inbound request."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Protocol
from urllib.parse import urlsplit

from .classifier import RequestEnvironment, classify_request
from .dedup import DedupGuard, mint_nonce
from .extractor import Transport, extract_record
from .models import (
    VISITOR_ROLE,
    BeaconAck,
    BeaconStatus,
    OriginKind,
    RequestKind,
    RequestRecord,
)

logger = logging.getLogger(__name__)

REASON_MISSING_TOKEN = "missing_token"
REASON_LOCALHOST = "localhost"
REASON_EXCLUDED = "excluded"
REASON_ERROR = "error"

_STATIC_ASSET = re.compile(r"\.(css|js|jpg|jpeg|png|gif|svg|woff|woff2|ttf|ico|map)$", re.IGNORECASE)


class LogSink(Protocol):
    def insert(self, record: RequestRecord) -> bool:
        ...


class TrafficLogger:
    """Runs the logging pipeline for one request at a time.

    Nothing raised inside the pipeline escapes ``handle_inbound_request``;
    the page being served must not fail because logging failed.
    """

    def __init__(
        self,
        sink: LogSink,
        guard: DedupGuard | None = None,
        rest_prefixes: Iterable[str] = ("/api/",),
        local_hosts: Iterable[str] = ("localhost",),
    ) -> None:
        self._sink = sink
        self._guard = guard if guard is not None else DedupGuard()
        self._rest_prefixes = tuple(rest_prefixes)
        self._local_hosts = tuple(host.lower() for host in local_hosts)

    def is_excluded_path(self, target_path: str) -> bool:
        """Static assets and REST calls are not page views."""
        path = urlsplit(target_path).path
        if _STATIC_ASSET.search(path):
            return True
        lowered = target_path.lower()
        return any(prefix.lower() in lowered for prefix in self._rest_prefixes)

    def is_local_development(self, reported_url: str) -> bool:
        lowered = reported_url.lower()
        return any(host in lowered for host in self._local_hosts)

    def handle_inbound_request(
        self,
        environment: RequestEnvironment,
        transport: Transport,
        *,
        kind: RequestKind | None = None,
        nonce: str | None = None,
        actor_role: str = VISITOR_ROLE,
    ) -> Optional[BeaconAck]:
        """Log the request if it qualifies.

        Args:
            environment: Classification signals for this request
            transport: Method, path, headers and posted fields
            kind: Classification already computed for this request, if any
            nonce: Direct-request nonce; minted when omitted
            actor_role: Role of the authenticated requester

        Returns:
            A BeaconAck for beacon calls, None for everything else
        """
        if kind is None:
            kind = classify_request(environment)
        origin = kind.origin_kind
        if origin is None:
            return None

        try:
            return self._process(origin, transport, nonce, actor_role)
        except Exception:
            logger.exception(
                "Traffic logging failed",
                extra={"origin_kind": origin.value, "path": environment.path},
            )
            if origin is OriginKind.BEACON:
                return BeaconAck(BeaconStatus.REJECTED, "Unable to process request.", REASON_ERROR)
            return None

    def _process(
        self,
        origin: OriginKind,
        transport: Transport,
        nonce: str | None,
        actor_role: str,
    ) -> Optional[BeaconAck]:
        is_beacon = origin is OriginKind.BEACON

        if is_beacon:
            nonce = transport.form_value("nonce")
            if not nonce:
                logger.info(
                    "Beacon rejected: missing nonce",
                    extra={"reason": REASON_MISSING_TOKEN, "client_ip": transport.remote_addr},
                )
                return BeaconAck(BeaconStatus.REJECTED, "Missing nonce.", REASON_MISSING_TOKEN)
            if self.is_local_development(transport.form_value("request_url")):
                return BeaconAck(BeaconStatus.REJECTED, "Localhost request ignored.", REASON_LOCALHOST)
        elif not nonce:
            nonce = mint_nonce()

        record = extract_record(origin, transport, actor_role=actor_role)

        if not is_beacon and "text/html" not in (record.accept or "").lower():
            return None
        if self.is_excluded_path(record.target_path):
            if is_beacon:
                return BeaconAck(BeaconStatus.REJECTED, "Request path is not logged.", REASON_EXCLUDED)
            return None

        if not self._guard.should_log(nonce, record.client_ip):
            logger.debug(
                "Skipping duplicate request",
                extra={"origin_kind": origin.value, "client_ip": record.client_ip},
            )
            if is_beacon:
                return BeaconAck(BeaconStatus.DUPLICATE, "Request already logged.")
            return None

        # The dedup key is already set; a failed insert is not retried.
        if not self._sink.insert(record):
            logger.error(
                "Request record was not persisted",
                extra={"origin_kind": origin.value, "path": record.target_path},
            )

        if is_beacon:
            return BeaconAck(BeaconStatus.LOGGED, "Request logged successfully.")
        return None
