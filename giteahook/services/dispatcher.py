"""
Push event dispatch.

Turns one webhook request into command executions:
1. Classifies the event from the X-Gogs-Event / X-Gitea-Event header
2. Decodes the body as a push payload
3. Matches the repository against the active configuration snapshot
4. Runs every command of every matching rule, in order

Every failure is contained in the request that caused it.
"""

import base64
from typing import List, Mapping, Optional

from pydantic import ValidationError

from giteahook.models.api_response import (
    CommandExecutionResult,
    DispatchResult,
    DispatchStatus,
)
from giteahook.models.push_event import PushEvent
from giteahook.services.command_runner import run_command
from giteahook.services.config_store import ConfigStore
from giteahook.utils.logging import get_logger, log_error_with_context, log_push_event

logger = get_logger(__name__)

EVENT_HEADERS = ("X-Gogs-Event", "X-Gitea-Event")
PUSH_EVENT = "push"


class DispatchError(Exception):
    """Base class for errors that end the handling of one request."""
    pass


class UnsupportedEventError(DispatchError):
    """Raised for any event kind other than push."""

    def __init__(self, event: str):
        super().__init__(f'received unknown event "{event}"')
        self.event = event


class PayloadDecodeError(DispatchError):
    """Raised when the request body is not a valid push payload."""
    pass


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or ""


def event_kind(headers: Mapping[str, str]) -> str:
    """
    Return the event kind of a webhook request.

    Gogs sends ``X-Gogs-Event``, Gitea sends ``X-Gitea-Event`` (and, for
    compatibility, the Gogs header too). The first non-empty one wins.
    """
    for name in EVENT_HEADERS:
        value = _header(headers, name)
        if value:
            return value
    return ""


def require_push_event(headers: Mapping[str, str]) -> str:
    """
    Raises:
        UnsupportedEventError: If the event kind is not exactly ``push``
    """
    event = event_kind(headers)
    if event != PUSH_EVENT:
        raise UnsupportedEventError(event)
    return event


def decode_push_event(body: bytes) -> PushEvent:
    """
    Decode a request body into a PushEvent.

    Raises:
        PayloadDecodeError: If the body is not JSON or lacks a repository full name
    """
    try:
        return PushEvent.model_validate_json(body)
    except ValidationError as e:
        encoded = base64.b64encode(body).decode("ascii")
        raise PayloadDecodeError(
            f"while unmarshaling request base64({encoded}): {e.error_count()} validation error(s)"
        ) from e


class PushDispatcher:
    """
    Dispatches push events to the commands of matching repository rules.

    Stateless apart from the ConfigStore it reads; safe to share between
    concurrent requests.
    """

    def __init__(self, store: ConfigStore, command_timeout: Optional[float] = None):
        """
        Args:
            store: Holder of the active configuration snapshot
            command_timeout: Per-command timeout in seconds (None or <= 0 for none)
        """
        self.store = store
        self.command_timeout = command_timeout

    async def handle(self, headers: Mapping[str, str], body: bytes) -> DispatchResult:
        """
        Handle one webhook request.

        Never raises: unknown events, undecodable payloads and unexpected
        errors are logged and reported in the returned DispatchResult.

        Args:
            headers: Request headers
            body: Raw request body

        Returns:
            DispatchResult summarising what happened
        """
        event = event_kind(headers)

        try:
            require_push_event(headers)
            push = decode_push_event(body)
        except UnsupportedEventError as e:
            logger.info(str(e), extra={"event": e.event})
            return DispatchResult(status=DispatchStatus.IGNORED, event=e.event, message=str(e))
        except PayloadDecodeError as e:
            logger.error(str(e), extra={"event": event})
            return DispatchResult(status=DispatchStatus.REJECTED, event=event, message="invalid push payload")

        try:
            return await self.dispatch(push, body, event)
        except Exception as e:
            log_error_with_context(
                logger,
                "Error dispatching push event",
                e,
                repository=push.repository_full_name,
                event=event,
            )
            return DispatchResult(
                status=DispatchStatus.REJECTED,
                event=event,
                repository=push.repository_full_name,
                message="internal error while dispatching",
            )

    async def dispatch(self, push: PushEvent, body: bytes, event: str = PUSH_EVENT) -> DispatchResult:
        """
        Run the commands of every rule matching a decoded push.

        The configuration snapshot is read once, so a reload during the
        run does not change which rules this push executes.
        """
        repository = push.repository_full_name
        request_logger = logger.with_context(repository=repository, event=event)
        log_push_event(request_logger, repository, event)

        snapshot = self.store.current()
        rules = snapshot.matcher.find_matches(repository, push.secret)
        if not rules:
            request_logger.info(f"no rule matches {repository}")

        results: List[CommandExecutionResult] = []
        for rule in rules:
            for command in rule.commands:
                results.append(
                    await run_command(command, body, rule_name=rule.name, timeout=self.command_timeout)
                )

        dispatch_result = DispatchResult(
            status=DispatchStatus.PROCESSED,
            event=event,
            repository=repository,
            matched_rules=[rule.name for rule in rules],
            results=results,
        )
        dispatch_result.message = (
            f"{len(rules)} rule(s) matched, {len(results)} command(s) run, "
            f"{dispatch_result.failed_count} failed"
        )
        request_logger.info(dispatch_result.message)
        return dispatch_result
