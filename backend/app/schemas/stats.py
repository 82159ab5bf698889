from pydantic import BaseModel
from typing import Any, Dict


class StatsSnapshot(BaseModel):
    daily_requests: int
    endpoints_requests: int
    success_requests: int
    failed_requests: int
    banned_requests: int
    stats_requests: int
    # Endpoint switches as stored, e.g. {"quota": {"is_enabled": false}}
    endpoints: Dict[str, Any] = {}
