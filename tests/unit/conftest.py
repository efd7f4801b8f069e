"""
Shared fixtures for the webhook receiver unit tests.
"""

import json
import stat
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from giteahook.models.rule import RepositoryRule, WebhookConfig
from giteahook.services.config_store import ConfigSnapshot, ConfigStore


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[..., str]:
    """Factory writing executable shell scripts into tmp_path."""
    counter = {"n": 0}

    def _make(body: str, name: Optional[str] = None) -> str:
        counter["n"] += 1
        path = tmp_path / (name or f"hook_{counter['n']}.sh")
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def make_payload() -> Callable[..., bytes]:
    """Factory for Gitea push payload bodies."""

    def _make(full_name: str = "acme/widgets", secret: Optional[str] = None, **extra) -> bytes:
        payload: Dict = {
            "ref": "refs/heads/main",
            "before": "0" * 40,
            "after": "a" * 40,
            "compare_url": f"https://git.example.com/{full_name}/compare/000...aaa",
            "commits": [
                {"id": "a" * 40, "message": "Fix build\n", "url": f"https://git.example.com/{full_name}/commit/aaa"}
            ],
            "repository": {"id": 7, "name": full_name.split("/")[-1], "full_name": full_name},
            "pusher": {"login": "alice"},
            "sender": {"login": "alice"},
        }
        if secret is not None:
            payload["secret"] = secret
        payload.update(extra)
        return json.dumps(payload).encode()

    return _make


@pytest.fixture
def make_store(tmp_path: Path) -> Callable[[List[RepositoryRule]], ConfigStore]:
    """Factory for an in-memory ConfigStore holding the given rules."""

    def _make(rules: List[RepositoryRule]) -> ConfigStore:
        store = ConfigStore(tmp_path / "config.json")
        store.swap(ConfigSnapshot.from_config(WebhookConfig(repositories=rules)))
        return store

    return _make


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a JSON configuration document."""

    def _write(repositories: List[Dict], name: str = "config.json", **fields) -> Path:
        document = {"Address": "127.0.0.1", "Port": 8080, "Logfile": "", "Repositories": repositories}
        document.update(fields)
        path = tmp_path / name
        path.write_text(json.dumps(document))
        return path

    return _write
