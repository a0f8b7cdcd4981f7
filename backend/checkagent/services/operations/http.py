"""HTTP operation - single request, success on a final 2xx/3xx non-redirect."""
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx

from .errors import FailureKind, classify_error, describe_exception
from .result import OperationInputError, OperationType, ProbeResult, elapsed_ms

USER_AGENT = "checkagent/1.0"

# Response headers worth keeping (canonical spelling)
CAPTURED_HEADERS = ("Content-Type", "Server", "Cache-Control", "Content-Encoding", "X-Powered-By")

# A final response with one of these codes means the redirect chain did not end
REDIRECT_STATUS_CODES = {300, 301, 302, 303, 307, 308}


def ensure_scheme(url: str) -> str:
    """Prefix https:// when the URL carries no http(s) scheme."""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{url}"


def status_error(status_code: int, reason: str) -> str:
    """Error text for a non-successful final status."""
    if status_code >= 500:
        return f"Server Error (HTTP {status_code}): {reason} - The server encountered an internal error"
    if status_code >= 400:
        return f"Client Error (HTTP {status_code}): {reason} - The request was invalid or unauthorized"
    if status_code >= 300:
        return f"Redirect (HTTP {status_code}): {reason} - Resource has moved"
    return f"Unexpected Status (HTTP {status_code}): {reason}"


def status_message(status_code: int, reason: str) -> str:
    """Human-readable line for a successful status."""
    messages = {
        200: "OK - Request successful",
        201: "Created - Resource created successfully",
        202: "Accepted - Request accepted for processing",
        204: "No Content - Request successful, no content returned",
    }
    return messages.get(status_code, f"Success (HTTP {status_code}): {reason}")


class HTTPOperation:
    """Fetch a URL once and classify the final response."""

    type = OperationType.HTTP

    def __init__(self, timeout: float = 10, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def execute(self, url: str, method: str = "GET") -> ProbeResult:
        if not url or not url.strip():
            raise OperationInputError("url cannot be empty")
        method = (method or "GET").strip().upper()
        url = ensure_scheme(url.strip())
        host = self._host_of(url)

        start_time = datetime.now(timezone.utc)
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.request(method, url)
        except httpx.InvalidURL as e:
            return self._failure(host, method, start_time, started,
                                 f"Failed to create request: {describe_exception(e)}")
        except httpx.TimeoutException:
            return self._failure(
                host, method, start_time, started,
                f"Request timeout after {float(self.timeout):.2f}s - "
                "Server did not respond within the expected time",
            )
        except httpx.TooManyRedirects as e:
            return self._failure(host, method, start_time, started,
                                 f"Redirect loop - {describe_exception(e)}")
        except httpx.HTTPError as e:
            return self._failure(host, method, start_time, started, self._connection_error(e))

        response_time = elapsed_ms(started, time.monotonic())
        status_code = response.status_code
        reason = response.reason_phrase or ""
        body = response.text
        content_length = self._content_length(response)
        success = 200 <= status_code < 400 and status_code not in REDIRECT_STATUS_CODES

        if success:
            error = ""
            details = f"HTTP {status_code} {status_message(status_code, reason)} | Response time: {response_time:.2f}ms"
        else:
            error = status_error(status_code, reason)
            details = f"HTTP {status_code} - {error}"

        return ProbeResult(
            type=OperationType.HTTP,
            host=host,
            success=success,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            response_time_ms=response_time,
            details=details,
            error=error,
            http_status_code=status_code,
            http_method=method,
            http_headers=self._captured_headers(response.headers),
            content_length=content_length,
            response_body=body,
        )

    @staticmethod
    def _host_of(url: str) -> str:
        try:
            return httpx.URL(url).host or url
        except httpx.InvalidURL:
            return url

    @staticmethod
    def _content_length(response: httpx.Response) -> int:
        """Declared Content-Length, or the measured body length when absent."""
        declared = response.headers.get("content-length")
        if declared is not None:
            try:
                value = int(declared)
            except ValueError:
                value = 0
            if value > 0:
                return value
        return len(response.content)

    @staticmethod
    def _captured_headers(headers: httpx.Headers) -> Dict[str, str]:
        captured = {}
        for name in CAPTURED_HEADERS:
            value = headers.get(name)
            if value is not None:
                captured[name] = value
        return captured

    def _connection_error(self, exc: Exception) -> str:
        raw = describe_exception(exc)
        kind = classify_error(raw)
        if kind == FailureKind.TIMEOUT:
            return (f"Request timeout after {float(self.timeout):.2f}s - "
                    "Server did not respond within the expected time")
        if kind == FailureKind.CONNECTION_REFUSED:
            return "Connection refused - Server is not accepting connections on this port"
        if kind == FailureKind.NAME_RESOLUTION:
            return "DNS resolution failed - Host not found"
        if kind == FailureKind.CERTIFICATE:
            return "SSL/TLS certificate error - Certificate verification failed"
        return f"Connection error: {raw}"

    def _failure(self, host: str, method: str, start_time: datetime,
                 started: float, error: str) -> ProbeResult:
        return ProbeResult(
            type=OperationType.HTTP,
            host=host,
            success=False,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            response_time_ms=elapsed_ms(started, time.monotonic()),
            details=f"HTTP request failed - {error}",
            error=error,
            http_method=method,
        )
