"""On-demand operation schemas for the API."""
from typing import Optional

from pydantic import BaseModel


class OperationRequest(BaseModel):
    """Request to run one operation now.

    Values are checked by the operation endpoints so that bad input is
    answered with 400 rather than a schema error.
    """
    type: str = ""  # ping, dns, tcp, http
    host: str = ""
    url: str = ""
    port: int = 0  # TCP
    count: int = 0  # ping
    timeout: int = 0  # seconds
    query: str = ""  # DNS record type
    method: str = ""  # HTTP method
    service_id: Optional[str] = None
