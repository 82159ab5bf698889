from pydantic import BaseModel, ConfigDict
from typing import Dict, Optional


class QuotaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    req_quota: int
    req_consumed: int
    req_count: int
    rate_limit: Optional[int] = None
    # Requests per endpoint, keyed by endpoint name
    statistics: Dict[str, int]
