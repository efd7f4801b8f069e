"""Dispatch outcome and API response data models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class ExecutionStatus(str, Enum):
    """Outcome of a single command execution."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"  # non-zero exit
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"


class CommandExecutionResult(BaseModel):
    """Result of running one configured command. Used for logging only."""

    rule_name: str
    command: str
    status: ExecutionStatus
    return_code: Optional[int] = None
    output: str = ""
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED


class DispatchStatus(str, Enum):
    """How a webhook request was handled."""

    PROCESSED = "processed"
    IGNORED = "ignored"  # event kind other than push
    REJECTED = "rejected"  # payload could not be decoded


class DispatchResult(BaseModel):
    """Summary of dispatching one webhook request."""

    status: DispatchStatus
    event: str = ""
    repository: Optional[str] = None
    matched_rules: List[str] = []
    results: List[CommandExecutionResult] = []
    message: str = ""

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)


class WebhookResponse(BaseModel):
    """Response from webhook handler."""

    status: str
    message: str
