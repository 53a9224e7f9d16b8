from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

JobResultType = Literal["sent", "failed"]
JobOutcomeType = Literal["delivered", "retryable_failure", "terminal_failure"]


class DispatchJobResultOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    result: JobResultType
    outcome: Optional[JobOutcomeType] = None
    ok_count: Optional[int] = Field(default=None, alias="okCount")
    device_count: Optional[int] = Field(default=None, alias="deviceCount")
    reason: Optional[str] = None
    errors: Optional[List[str]] = None
    error: Optional[str] = None
    stale_claim: Optional[bool] = Field(default=None, alias="staleClaim")


class DispatchOut(BaseModel):
    processed: int
    reclaimed: int = 0
    summary: List[DispatchJobResultOut] = Field(default_factory=list)


class DispatchErrorOut(BaseModel):
    error: str
