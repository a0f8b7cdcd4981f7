"""DNS operation - resolves one record type with dnspython."""
import asyncio
import time
from datetime import datetime, timezone
from typing import List

import dns.exception
import dns.resolver

from .errors import FailureKind, classify_error, short_error_message
from .result import OperationInputError, OperationType, ProbeResult, elapsed_ms

SUPPORTED_QUERY_TYPES = ("A", "AAAA", "MX", "TXT", "CNAME", "NS")
DEFAULT_QUERY_TYPE = "A"
NO_RECORDS_ERROR = "No DNS records found"


def normalize_query_type(query: str) -> str:
    """Upper-case the query type; unknown or empty types fall back to A."""
    value = (query or "").strip().upper()
    if value not in SUPPORTED_QUERY_TYPES:
        return DEFAULT_QUERY_TYPE
    return value


def query_records(host: str, query_type: str, timeout: float) -> List[str]:
    """Resolve host for one record type (blocking).

    "NoAnswer" is a normal outcome (the name exists without records of this
    type) and yields an empty list.
    """
    resolver = dns.resolver.Resolver(configure=True)
    resolver.timeout = max(0.5, float(timeout))
    resolver.lifetime = max(0.5, float(timeout))
    try:
        answer = resolver.resolve(host, query_type)
    except dns.resolver.NoAnswer:
        return []

    records: List[str] = []
    for rr in answer:
        if query_type == "MX":
            records.append(f"{rr.exchange.to_text()} (priority: {rr.preference})")
        elif query_type == "TXT":
            records.append("".join(s.decode(errors="replace") for s in rr.strings))
        elif query_type in ("CNAME", "NS"):
            records.append(rr.target.to_text())
        else:
            records.append(rr.to_text())
    return records


def _describe_dns_error(exc: Exception, host: str, timeout: float) -> str:
    if isinstance(exc, dns.resolver.NXDOMAIN):
        return f"no such host: {host}"
    if isinstance(exc, dns.exception.Timeout):
        return f"DNS query timeout after {timeout}s"
    if isinstance(exc, dns.resolver.NoNameservers):
        return f"server failure: {exc}"
    if isinstance(exc, dns.resolver.NoResolverConfiguration):
        return "DNS resolver configuration unavailable"
    return str(exc) or type(exc).__name__


class DNSOperation:
    """Resolve A/AAAA/MX/TXT/CNAME/NS records for a host."""

    type = OperationType.DNS

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    async def execute(self, host: str, query: str = DEFAULT_QUERY_TYPE) -> ProbeResult:
        if not host or not host.strip():
            raise OperationInputError("host cannot be empty")
        host = host.strip()
        query_type = normalize_query_type(query)

        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        loop = asyncio.get_running_loop()

        error = ""
        records: List[str] = []
        try:
            records = await loop.run_in_executor(None, query_records, host, query_type, self.timeout)
        except (dns.exception.DNSException, OSError) as e:
            error = _describe_dns_error(e, host, self.timeout)

        response_time = elapsed_ms(started, time.monotonic())
        end_time = datetime.now(timezone.utc)

        if not error and not records:
            error = NO_RECORDS_ERROR

        success = not error
        if success:
            details = self._success_details(host, query_type, response_time, records)
        else:
            details = self._failure_details(error, host, query_type)

        return ProbeResult(
            type=OperationType.DNS,
            host=host,
            success=success,
            start_time=start_time,
            end_time=end_time,
            response_time_ms=response_time,
            details=details,
            error=error,
            dns_type=query_type,
            dns_records=records,
        )

    @staticmethod
    def _success_details(host: str, query_type: str, response_time: float,
                         records: List[str]) -> str:
        parts = [
            f"DNS SUCCESS - {query_type} query for {host}",
            f"Response time: {response_time:.2f}ms",
            f"Records found: {len(records)}",
        ]
        if len(records) <= 3:
            parts.append(f"Results: {', '.join(records)}")
        else:
            parts.append(f"Results: {', '.join(records[:3])}... (+{len(records) - 3} more)")
        return " | ".join(parts)

    @staticmethod
    def _failure_details(error: str, host: str, query_type: str) -> str:
        headlines = {
            FailureKind.TIMEOUT: "DNS TIMEOUT - Query timed out",
            FailureKind.NAME_RESOLUTION: "HOST NOT FOUND - DNS resolution failed",
            FailureKind.NO_RECORDS: "NO RECORDS - No DNS records of requested type",
            FailureKind.SERVER_FAILURE: "SERVER FAILURE - DNS server error",
            FailureKind.CONNECTION_REFUSED: "QUERY REFUSED - DNS server refused query",
        }
        headline = headlines.get(classify_error(error), "DNS FAILED - Query error")
        return " | ".join([
            headline,
            f"Query: {query_type} {host}",
            f"Error: {short_error_message(error)}",
        ])
