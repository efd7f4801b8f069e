"""
Repository rule matching.

Decides which configured rules apply to a push: the rule's name pattern
must be found somewhere in the repository full name, and a rule that
declares a secret only applies when the payload carries exactly that
secret.
"""

import hmac
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence

from giteahook.models.rule import RepositoryRule
from giteahook.utils.logging import get_logger

logger = get_logger(__name__)


def compile_pattern(rule: RepositoryRule) -> Optional[Pattern[str]]:
    """
    Compile a rule's name pattern.

    Args:
        rule: Rule whose ``name`` is a regular expression

    Returns:
        Compiled pattern, or None if the expression is invalid
    """
    try:
        return re.compile(rule.name)
    except re.error as e:
        logger.warning(
            f"invalid name pattern {rule.name!r}, rule skipped: {e}",
            extra={"rule": rule.name}
        )
        return None


def secret_matches(rule: RepositoryRule, incoming_secret: Optional[str]) -> bool:
    """
    Check the shared secret of a rule against the one from the payload.

    A rule without a secret accepts anything. Otherwise the secrets must
    be byte-for-byte equal.
    """
    if not rule.secret:
        return True
    return hmac.compare_digest(
        rule.secret.encode("utf-8"),
        (incoming_secret or "").encode("utf-8"),
    )


@dataclass(frozen=True)
class CompiledRule:
    """A rule together with its pre-compiled name pattern."""

    rule: RepositoryRule
    pattern: Optional[Pattern[str]]

    def name_matches(self, repo_full_name: str) -> bool:
        return self.pattern is not None and self.pattern.search(repo_full_name) is not None


class RuleMatcher:
    """
    Matches repositories against an ordered set of rules.

    Patterns are compiled once, when the matcher is built. Invalid
    patterns are logged at that point and their rules never match.
    """

    def __init__(self, rules: Sequence[RepositoryRule]):
        self._compiled = tuple(CompiledRule(rule, compile_pattern(rule)) for rule in rules)

    def __len__(self) -> int:
        return len(self._compiled)

    @property
    def rules(self) -> List[RepositoryRule]:
        return [compiled.rule for compiled in self._compiled]

    def find_matches(self, repo_full_name: str, incoming_secret: Optional[str]) -> List[RepositoryRule]:
        """
        Find every rule that applies to a repository.

        Every rule is tested independently and the result keeps
        configuration order. Rules whose pattern matches but whose secret
        does not are left out and logged.

        Args:
            repo_full_name: Full repository name, e.g. ``acme/widgets``
            incoming_secret: Secret carried by the payload (may be empty)

        Returns:
            Matching rules, possibly empty
        """
        matches: List[RepositoryRule] = []

        for compiled in self._compiled:
            if not compiled.name_matches(repo_full_name):
                continue

            if not secret_matches(compiled.rule, incoming_secret):
                logger.warning(
                    f"secret mismatch for repo {compiled.rule.name}",
                    extra={"rule": compiled.rule.name, "repository": repo_full_name}
                )
                continue

            matches.append(compiled.rule)

        return matches


def find_matches(
    rules: Sequence[RepositoryRule],
    repo_full_name: str,
    incoming_secret: Optional[str]
) -> List[RepositoryRule]:
    """
    Return the rules that apply to ``repo_full_name`` in configuration order.

    Convenience wrapper that compiles ``rules`` on every call; long-lived
    callers should build a :class:`RuleMatcher` once per configuration.
    """
    return RuleMatcher(rules).find_matches(repo_full_name, incoming_secret)
