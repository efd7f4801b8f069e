"""
Unit tests for the push dispatcher.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from giteahook.models.api_response import DispatchStatus, ExecutionStatus
from giteahook.models.rule import RepositoryRule, WebhookConfig
from giteahook.services.config_store import ConfigSnapshot
from giteahook.services.dispatcher import (
    PayloadDecodeError,
    PushDispatcher,
    UnsupportedEventError,
    decode_push_event,
    event_kind,
    require_push_event,
)

PUSH_HEADERS = {"X-Gitea-Event": "push"}


class TestEventKind:
    """Test event classification from headers."""

    def test_gogs_header(self):
        assert event_kind({"X-Gogs-Event": "push"}) == "push"

    def test_gitea_header(self):
        assert event_kind({"X-Gitea-Event": "push"}) == "push"

    def test_gogs_header_wins(self):
        assert event_kind({"X-Gogs-Event": "issues", "X-Gitea-Event": "push"}) == "issues"

    def test_empty_gogs_header_falls_back(self):
        assert event_kind({"X-Gogs-Event": "", "X-Gitea-Event": "push"}) == "push"

    def test_header_lookup_is_case_insensitive(self):
        assert event_kind({"x-gitea-event": "push"}) == "push"

    def test_no_header(self):
        assert event_kind({}) == ""

    @pytest.mark.parametrize("event", ["issues", "", "PUSH", "push ", "pull_request"])
    def test_only_push_is_accepted(self, event):
        with pytest.raises(UnsupportedEventError):
            require_push_event({"X-Gitea-Event": event})


class TestDecodePushEvent:
    """Test push payload decoding."""

    def test_decode_round_trip(self, make_payload):
        event = decode_push_event(make_payload("acme/widgets", secret="s3cr3t"))

        assert event.repository_full_name == "acme/widgets"
        assert event.secret == "s3cr3t"
        assert event.ref == "refs/heads/main"
        assert event.commits[0].message == "Fix build\n"

    def test_missing_secret_defaults_to_empty(self, make_payload):
        assert decode_push_event(make_payload()).secret == ""

    def test_unknown_fields_ignored(self, make_payload):
        event = decode_push_event(make_payload(hook_id=12, unknown_section={"a": 1}))

        assert event.repository_full_name == "acme/widgets"

    def test_null_optional_fields_take_defaults(self):
        body = json.dumps({
            "repository": {"full_name": "acme/widgets"},
            "secret": None,
            "commits": [{"id": None, "message": None}],
        }).encode()

        event = decode_push_event(body)

        assert event.secret == ""
        assert event.commits[0].id == ""
        assert event.commits[0].message == ""

    def test_null_commits_is_empty_list(self, make_payload):
        assert decode_push_event(make_payload(commits=None)).commits == []

    @pytest.mark.parametrize("body", [b"", b"not json", b"[]", b'{"secret": "x"}', b'{"repository": {}}'])
    def test_invalid_payloads(self, body):
        with pytest.raises(PayloadDecodeError) as exc_info:
            decode_push_event(body)

        assert "while unmarshaling request base64(" in str(exc_info.value)


class TestPushDispatcher:
    """Test dispatch end to end with real commands."""

    @pytest.mark.asyncio
    async def test_unknown_event_runs_nothing(self, make_store, make_payload):
        store = make_store([RepositoryRule(name=".*", commands=["/bin/true"])])
        dispatcher = PushDispatcher(store)

        with patch("giteahook.services.dispatcher.run_command", new=AsyncMock()) as run:
            result = await dispatcher.handle({"X-Gitea-Event": "issues"}, make_payload())

        assert result.status == DispatchStatus.IGNORED
        assert result.event == "issues"
        assert 'received unknown event "issues"' in result.message
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_event_header_runs_nothing(self, make_store, make_payload):
        dispatcher = PushDispatcher(make_store([RepositoryRule(name=".*", commands=["/bin/true"])]))

        with patch("giteahook.services.dispatcher.run_command", new=AsyncMock()) as run:
            result = await dispatcher.handle({}, make_payload())

        assert result.status == DispatchStatus.IGNORED
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_body_rejected_without_raising(self, make_store, caplog):
        dispatcher = PushDispatcher(make_store([RepositoryRule(name=".*", commands=["/bin/true"])]))

        result = await dispatcher.handle(PUSH_HEADERS, b"{truncated")

        assert result.status == DispatchStatus.REJECTED
        assert result.results == []
        assert "while unmarshaling request" in caplog.text

    @pytest.mark.asyncio
    async def test_matching_rules_run_in_order(self, make_store, make_payload, make_script, tmp_path):
        log_file = tmp_path / "order.log"
        first = make_script(f'echo first >> "{log_file}"')
        second = make_script(f'echo second >> "{log_file}"')
        third = make_script(f'echo third >> "{log_file}"')
        store = make_store([
            RepositoryRule(name="acme/.*", commands=[first, second]),
            RepositoryRule(name="^gadgets", commands=["/nonexistent"]),
            RepositoryRule(name="widgets$", commands=[third]),
        ])

        result = await PushDispatcher(store).handle(PUSH_HEADERS, make_payload("acme/widgets"))

        assert result.status == DispatchStatus.PROCESSED
        assert result.repository == "acme/widgets"
        assert result.matched_rules == ["acme/.*", "widgets$"]
        assert [r.rule_name for r in result.results] == ["acme/.*", "acme/.*", "widgets$"]
        assert log_file.read_text().split() == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_secret_mismatch_runs_nothing(self, make_store, make_payload, caplog):
        store = make_store([RepositoryRule(name="acme", secret="s3cr3t", commands=["/bin/true"])])

        with patch("giteahook.services.dispatcher.run_command", new=AsyncMock()) as run:
            result = await PushDispatcher(store).handle(PUSH_HEADERS, make_payload(secret="wrong"))

        assert result.status == DispatchStatus.PROCESSED
        assert result.matched_rules == []
        assert "secret mismatch for repo acme" in caplog.text
        run.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"repository": {"full_name": "acme/widgets"}, "commits": None},
        {"repository": {"full_name": "acme/widgets"}, "secret": None},
        {"repository": {"full_name": "acme/widgets"}, "commits": [{"id": "abc", "message": None}]},
    ])
    async def test_null_fields_are_processed(self, make_store, payload):
        store = make_store([RepositoryRule(name="acme", commands=["/bin/true"])])

        result = await PushDispatcher(store).handle(PUSH_HEADERS, json.dumps(payload).encode())

        assert result.status == DispatchStatus.PROCESSED
        assert result.matched_rules == ["acme"]
        assert len(result.results) == 1
        assert result.results[0].succeeded

    @pytest.mark.asyncio
    async def test_null_secret_does_not_match_guarded_rule(self, make_store):
        store = make_store([RepositoryRule(name="acme", secret="s3cr3t", commands=["/bin/true"])])
        body = json.dumps({"repository": {"full_name": "acme/widgets"}, "secret": None}).encode()

        result = await PushDispatcher(store).handle(PUSH_HEADERS, body)

        assert result.status == DispatchStatus.PROCESSED
        assert result.matched_rules == []

    @pytest.mark.asyncio
    async def test_no_matching_rule_is_silently_ignored(self, make_store, make_payload):
        store = make_store([RepositoryRule(name="^other/", commands=["/bin/true"])])

        result = await PushDispatcher(store).handle(PUSH_HEADERS, make_payload())

        assert result.status == DispatchStatus.PROCESSED
        assert result.results == []
        assert result.message == "0 rule(s) matched, 0 command(s) run, 0 failed"

    @pytest.mark.asyncio
    async def test_dispatch_logs_carry_repository_and_event(self, make_store, make_payload, caplog):
        store = make_store([RepositoryRule(name="^other/", commands=["/bin/true"])])

        with caplog.at_level("INFO", logger="giteahook.services.dispatcher"):
            await PushDispatcher(store).handle(PUSH_HEADERS, make_payload("acme/widgets"))

        summary = [r for r in caplog.records if r.getMessage().startswith("0 rule(s) matched")]
        assert summary
        assert summary[0].repository == "acme/widgets"
        assert summary[0].event == "push"

    @pytest.mark.asyncio
    async def test_failed_command_does_not_stop_siblings(self, make_store, make_payload, make_script, tmp_path):
        marker = tmp_path / "ran"
        failing = make_script("exit 2")
        after = make_script(f'touch "{marker}"')
        store = make_store([
            RepositoryRule(name="acme", commands=[failing, str(tmp_path / "missing"), after]),
        ])

        result = await PushDispatcher(store).handle(PUSH_HEADERS, make_payload())

        assert [r.status for r in result.results] == [
            ExecutionStatus.FAILED,
            ExecutionStatus.SPAWN_FAILED,
            ExecutionStatus.SUCCEEDED,
        ]
        assert marker.exists()
        assert "2 failed" in result.message

    @pytest.mark.asyncio
    async def test_raw_body_passed_to_command(self, make_store, make_payload, make_script, tmp_path):
        out_file = tmp_path / "payload"
        script = make_script(f'printf "%s" "$1" > "{out_file}"')
        body = make_payload("acme/widgets", secret="s3cr3t")
        store = make_store([RepositoryRule(name="acme", secret="s3cr3t", commands=[script])])

        await PushDispatcher(store).handle(PUSH_HEADERS, body)

        assert out_file.read_bytes() == body

    @pytest.mark.asyncio
    async def test_command_timeout_applied(self, make_store, make_payload, make_script):
        script = make_script("exec sleep 30")
        store = make_store([RepositoryRule(name="acme", commands=[script])])

        result = await PushDispatcher(store, command_timeout=0.3).handle(PUSH_HEADERS, make_payload())

        assert result.results[0].status == ExecutionStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_unexpected_error_contained(self, make_store, make_payload, caplog):
        store = make_store([RepositoryRule(name="acme", commands=["/bin/true"])])

        with patch(
            "giteahook.services.dispatcher.run_command",
            new=AsyncMock(side_effect=RuntimeError("kaboom")),
        ):
            result = await PushDispatcher(store).handle(PUSH_HEADERS, make_payload())

        assert result.status == DispatchStatus.REJECTED
        assert result.repository == "acme/widgets"
        assert "kaboom" in caplog.text

    @pytest.mark.asyncio
    async def test_reload_during_dispatch_uses_start_snapshot(self, make_store, make_payload, make_script, tmp_path):
        gate = tmp_path / "gate"
        old_marker = tmp_path / "old"
        new_marker = tmp_path / "new"
        slow_old = make_script(
            f'while [ ! -e "{gate}" ]; do sleep 0.05; done\ntouch "{old_marker}"'
        )
        old_second = make_script(f'echo second >> "{old_marker}.second"')
        new_cmd = make_script(f'touch "{new_marker}"')
        store = make_store([RepositoryRule(name="acme", commands=[slow_old, old_second])])
        dispatcher = PushDispatcher(store, command_timeout=20)

        in_flight = asyncio.create_task(dispatcher.handle(PUSH_HEADERS, make_payload()))
        await asyncio.sleep(0.2)

        store.swap(ConfigSnapshot.from_config(
            WebhookConfig(repositories=[RepositoryRule(name="acme", commands=[new_cmd])])
        ))
        concurrent = await dispatcher.handle(PUSH_HEADERS, make_payload())
        gate.touch()
        first = await in_flight

        assert [r.command for r in first.results] == [slow_old, old_second]
        assert [r.command for r in concurrent.results] == [new_cmd]
        assert old_marker.exists() and new_marker.exists()
        assert (tmp_path / "old.second").exists()


def test_payload_secret_round_trip(make_payload):
    """Values encoded into a payload come back out for matching."""
    body = make_payload("group/sub.project", secret="ä b\"c")

    event = decode_push_event(body)

    assert event.repository_full_name == "group/sub.project"
    assert event.secret == "ä b\"c"
    assert json.loads(body)["secret"] == event.secret
