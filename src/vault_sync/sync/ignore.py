"""``.gitignore`` rules for the vault root.

Supports the subset of gitignore syntax that matters for a flat sync of
files:

- blank lines and ``#`` comments are skipped
- ``!pattern`` re-includes a path excluded by an earlier rule
- ``pattern/`` only matches directories (so only paths below them)
- ``/pattern`` and ``dir/pattern`` are anchored to the vault root
- ``**/``, ``**``, ``*`` and ``?`` wildcards

Rules are evaluated in file order; the last matching rule wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vault_sync.storage import VaultStorage

logger = logging.getLogger(__name__)

GITIGNORE_PATH = ".gitignore"

# Longest tokens first so "**/" is not read as "**" followed by "/"
_TOKEN_RE = re.compile(r"\*\*/|\*\*|\*|\?|[^*?]+")


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    negation: bool
    directory_only: bool
    regex: re.Pattern[str]


def _translate(pattern: str) -> str:
    parts: list[str] = []
    for token in _TOKEN_RE.findall(pattern):
        if token == "**/":
            parts.append("(?:[^/]+/)*")
        elif token == "**":
            parts.append(".*")
        elif token == "*":
            parts.append("[^/]*")
        elif token == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(token))
    return "".join(parts)


def compile_rule(line: str) -> IgnoreRule | None:
    """Compile one ``.gitignore`` line, or return ``None`` for a no-op line."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    pattern = stripped
    negation = pattern.startswith("!")
    if negation:
        pattern = pattern[1:]
    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern.rstrip("/")
    # A slash before the last segment anchors the rule to the vault root
    anchored = "/" in pattern
    pattern = pattern.lstrip("/")
    if not pattern:
        return None

    prefix = "^" if anchored else "(?:^|/)"
    # A directory rule matches the paths below it, never a file of that name
    suffix = "/" if directory_only else "(?:/|$)"
    regex = re.compile(prefix + _translate(pattern) + suffix)
    return IgnoreRule(stripped, negation, directory_only, regex)


class IgnoreRules:
    """Ordered set of compiled ignore rules."""

    def __init__(self, rules: list[IgnoreRule] | None = None) -> None:
        self.rules = rules or []

    @classmethod
    def parse(cls, content: str) -> IgnoreRules:
        rules = [compile_rule(line) for line in content.splitlines()]
        return cls([rule for rule in rules if rule is not None])

    @classmethod
    def load(cls, storage: VaultStorage) -> IgnoreRules:
        """Read ``.gitignore`` from the vault root.

        A missing or unreadable file yields an empty rule set.
        """
        try:
            if not storage.exists(GITIGNORE_PATH):
                return cls()
            content = storage.read(GITIGNORE_PATH)
        except OSError as e:
            logger.warning("Failed to load %s: %s", GITIGNORE_PATH, e)
            return cls()
        rules = cls.parse(content)
        logger.info("Loaded %d ignore rules", len(rules))
        return rules

    def __len__(self) -> int:
        return len(self.rules)

    def is_ignored(self, path: str) -> bool:
        """Return ``True`` if *path* is excluded by the rules."""
        normalized = path.replace("\\", "/")
        ignored = False
        for rule in self.rules:
            if rule.regex.search(normalized):
                ignored = not rule.negation
        return ignored
