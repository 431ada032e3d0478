"""Shell-style wildcard matching for vault keys.

``*`` matches any run of characters (including none), ``?`` matches exactly
one character, and everything else matches itself. Patterns always match the
whole key.
"""

import re
from dataclasses import dataclass

WILDCARD_CHARS = ("*", "?")


def has_wildcards(text: str) -> bool:
    """True if ``text`` contains ``*`` or ``?``."""
    return any(c in text for c in WILDCARD_CHARS)


@dataclass(frozen=True)
class PatternMatcher:
    pattern: str
    regex: "re.Pattern[str]"

    def matches(self, text: str) -> bool:
        return self.regex.fullmatch(text) is not None


def compile_pattern(pattern: str) -> PatternMatcher:
    """Compile a wildcard pattern into an anchored matcher."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return PatternMatcher(pattern, re.compile("".join(parts), re.DOTALL))


def matches(text: str, pattern: str) -> bool:
    """One-shot match of ``text`` against ``pattern``."""
    return compile_pattern(pattern).matches(text)
