"""Data models for the Gitea push webhook receiver."""

from .api_response import (
    CommandExecutionResult,
    DispatchResult,
    DispatchStatus,
    ExecutionStatus,
    WebhookResponse,
)
from .push_event import PushCommit, PushEvent, PushRepository
from .rule import RepositoryRule, WebhookConfig

__all__ = [
    # Configuration models
    "RepositoryRule",
    "WebhookConfig",
    # Push event models
    "PushEvent",
    "PushRepository",
    "PushCommit",
    # Dispatch models
    "ExecutionStatus",
    "CommandExecutionResult",
    "DispatchStatus",
    "DispatchResult",
    # API response models
    "WebhookResponse",
]
