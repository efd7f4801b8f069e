"""Business logic services package."""

from giteahook.services.rule_matcher import (
    CompiledRule,
    RuleMatcher,
    find_matches,
    secret_matches
)
from giteahook.services.command_runner import run_command
from giteahook.services.config_store import (
    ConfigLoadError,
    ConfigSnapshot,
    ConfigStore,
    load_config
)
from giteahook.services.dispatcher import (
    DispatchError,
    PayloadDecodeError,
    PushDispatcher,
    UnsupportedEventError,
    event_kind
)

__all__ = [
    'CompiledRule',
    'RuleMatcher',
    'find_matches',
    'secret_matches',
    'run_command',
    'ConfigLoadError',
    'ConfigSnapshot',
    'ConfigStore',
    'load_config',
    'DispatchError',
    'PayloadDecodeError',
    'PushDispatcher',
    'UnsupportedEventError',
    'event_kind'
]
