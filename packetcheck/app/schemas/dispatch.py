"""
Multi-repository dispatch outcomes.

One RepositoryOutcome is recorded per repository instance name taken from
the work queue. The DispatchReport collects them in completion order.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from packetcheck.app.schemas.results import RunResult


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    MISSING = "missing"
    DISABLED = "disabled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class RepositoryOutcome(BaseModel):
    """What happened to one repository instance."""

    name: str = Field(..., description="Instance directory name under the base path")
    path: str = Field(..., description="Concrete repository path scanned")
    status: OutcomeStatus
    result: Optional[RunResult] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_failures(self) -> bool:
        if self.status in {OutcomeStatus.FAILED, OutcomeStatus.TIMED_OUT}:
            return True
        return self.result is not None and self.result.has_failures


class DispatchReport(BaseModel):
    outcomes: List[RepositoryOutcome] = Field(default_factory=list)
    cancelled: bool = False

    def by_status(self, status: OutcomeStatus) -> List[RepositoryOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def has_failures(self) -> bool:
        return any(outcome.has_failures for outcome in self.outcomes)
