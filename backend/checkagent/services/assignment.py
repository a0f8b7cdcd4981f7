"""Service-to-agent assignment predicate.

A service carries comma-separated `region_name` and `agent_id` lists and is
assigned to this agent only when both its region and its agent id appear as
tokens, e.g. region_name="us-east, eu-west" and agent_id="agent1,agent2".
"""
from typing import List, Optional

from ..schemas.service import Service


def split_comma_values(value: Optional[str]) -> List[str]:
    """Split a comma-separated list, trimming whitespace and dropping empty tokens."""
    if not value:
        return []
    return [token.strip() for token in value.split(",") if token.strip()]


def is_assigned(service: Service, region_name: str, agent_id: str) -> bool:
    """True iff region_name AND agent_id are tokens of the service's lists."""
    region_name = (region_name or "").strip()
    agent_id = (agent_id or "").strip()
    if not region_name or not agent_id:
        return False
    return (region_name in split_comma_values(service.region_name)
            and agent_id in split_comma_values(service.agent_id))
