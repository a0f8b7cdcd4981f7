"""Failure classification for probe diagnostics.

Operators only ever see failure reasons through the stored detail text, so
the most common causes get a stable, human-readable label distinct from
the generic fallback.
"""
from enum import Enum

SHORT_MESSAGE_LIMIT = 50


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    NAME_RESOLUTION = "name_resolution"
    CONNECTION_REFUSED = "connection_refused"
    CERTIFICATE = "certificate"
    PERMISSION_DENIED = "permission_denied"
    HOST_UNREACHABLE = "host_unreachable"
    NO_ROUTE = "no_route"
    NETWORK_DOWN = "network_down"
    NO_RECORDS = "no_records"
    SERVER_FAILURE = "server_failure"
    OTHER = "other"


# Ordered: the first matching marker wins
_MARKERS = [
    (FailureKind.PERMISSION_DENIED, ("permission denied", "operation not permitted",
                                     "cap_net_raw", "requires root")),
    (FailureKind.CERTIFICATE, ("certificate", "[ssl", "ssl:", "sslerror", "tlsv",
                               "tls handshake", "ssl handshake")),
    (FailureKind.TIMEOUT, ("timeout", "timed out", "lifetime expired")),
    (FailureKind.NAME_RESOLUTION, ("name resolution", "unknown host", "no such host",
                                   "name or service not known", "nodename nor servname",
                                   "getaddrinfo failed", "could not resolve",
                                   "failed to resolve", "nxdomain",
                                   "does not exist", "temporary failure in name resolution")),
    (FailureKind.CONNECTION_REFUSED, ("connection refused", "actively refused",
                                      "errno 111", "connect call failed")),
    (FailureKind.NO_RECORDS, ("no answer", "no records", "no dns records")),
    (FailureKind.SERVER_FAILURE, ("server failure", "servfail", "no nameservers")),
    (FailureKind.NO_ROUTE, ("no route",)),
    (FailureKind.HOST_UNREACHABLE, ("unreachable",)),
    (FailureKind.NETWORK_DOWN, ("network is down",)),
]

_SHORT_MESSAGES = {
    FailureKind.TIMEOUT: "Request timeout",
    FailureKind.NAME_RESOLUTION: "DNS resolution failed",
    FailureKind.CONNECTION_REFUSED: "Connection refused",
    FailureKind.CERTIFICATE: "SSL certificate error",
    FailureKind.PERMISSION_DENIED: "Permission denied",
    FailureKind.HOST_UNREACHABLE: "Host unreachable",
    FailureKind.NO_ROUTE: "No route to host",
    FailureKind.NETWORK_DOWN: "Network is down",
    FailureKind.NO_RECORDS: "No records found",
    FailureKind.SERVER_FAILURE: "DNS server failure",
}


def classify_error(message: str) -> FailureKind:
    """Classify a raw error message into a failure kind."""
    lowered = (message or "").lower()
    for kind, markers in _MARKERS:
        if any(marker in lowered for marker in markers):
            return kind
    return FailureKind.OTHER


def short_error_message(message: str) -> str:
    """Short label for an error, truncating unknown messages."""
    if not message:
        return "Unknown error"
    kind = classify_error(message)
    if kind in _SHORT_MESSAGES:
        return _SHORT_MESSAGES[kind]
    if len(message) > SHORT_MESSAGE_LIMIT:
        return message[:SHORT_MESSAGE_LIMIT] + "..."
    return message


def describe_exception(exc: BaseException) -> str:
    """Render an exception as text, keeping the type when the message is empty."""
    text = str(exc).strip()
    if not text:
        return type(exc).__name__
    return text
