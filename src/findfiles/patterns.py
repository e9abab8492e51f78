from __future__ import annotations

import re
import string
from dataclasses import dataclass
from enum import Enum

MAX_RULES = 4

POSIX_CLASSES = {
    "alpha": "a-zA-Z",
    "digit": "0-9",
    "alnum": "a-zA-Z0-9",
    "upper": "A-Z",
    "lower": "a-z",
    "space": " \\t\\n\\r\\f\\v",
    "blank": " \\t",
    "xdigit": "0-9A-Fa-f",
    "punct": re.escape(string.punctuation),
    "cntrl": "\\x00-\\x1f\\x7f",
    "print": "\\x20-\\x7e",
    "graph": "\\x21-\\x7e",
}

_CLASS_RE = re.compile(r"\[:(\w+):\]")


class PatternError(ValueError):
    pass


def translate_posix_classes(expr: str) -> str:
    """Rewrite ``[:name:]`` classes inside bracket expressions into ``re`` ranges."""
    out: list[str] = []
    i = 0
    in_bracket = False
    while i < len(expr):
        c = expr[i]
        if c == "\\":
            out.append(expr[i : i + 2])
            i += 2
            continue
        if not in_bracket:
            out.append(c)
            i += 1
            if c == "[":
                in_bracket = True
                # a leading "^" and a leading "]" never close the bracket
                if expr.startswith("^", i):
                    out.append("^")
                    i += 1
                if expr.startswith("]", i):
                    out.append("\\]")
                    i += 1
            continue
        m = _CLASS_RE.match(expr, i)
        if m:
            name = m.group(1)
            if name not in POSIX_CLASSES:
                raise PatternError(f"invalid regular expression '{expr}': unknown character class '{name}'")
            out.append(POSIX_CLASSES[name])
            i = m.end()
            continue
        if c == "[":
            out.append("\\[")
        else:
            out.append(c)
            if c == "]":
                in_bracket = False
        i += 1
    return "".join(out)


class Polarity(Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class MatchRule:
    pattern: re.Pattern[str]
    ignore_case: bool
    polarity: Polarity

    @classmethod
    def compile(cls, expr: str, polarity: Polarity, ignore_case: bool = False) -> MatchRule:
        flags = re.IGNORECASE if ignore_case else 0
        try:
            compiled = re.compile(translate_posix_classes(expr), flags)
        except re.error as e:
            raise PatternError(f"invalid regular expression '{expr}': {e}") from e
        return cls(compiled, ignore_case, polarity)

    def accepts(self, name: str) -> bool:
        found = self.pattern.search(name) is not None
        return found == (self.polarity is Polarity.INCLUDE)


@dataclass(frozen=True)
class PatternChain:
    """
    Ordered include/exclude rules; a name is accepted only if every rule
    accepts it. Chains are immutable: ``restart`` and ``extend`` return new
    chains, so a chain bound to one target is never changed by later options.
    """

    rules: tuple[MatchRule, ...] = ()
    max_rules: int = MAX_RULES

    def matches(self, name: str) -> bool:
        return all(rule.accepts(name) for rule in self.rules)

    def restart(self, rule: MatchRule) -> PatternChain:
        return PatternChain((rule,), self.max_rules)

    def extend(self, rule: MatchRule) -> PatternChain:
        if len(self.rules) >= self.max_rules:
            raise PatternError(
                f"too many patterns: at most {self.max_rules} may be chained "
                f"(rejected '{rule.pattern.pattern}')"
            )
        return PatternChain(self.rules + (rule,), self.max_rules)

    def __len__(self) -> int:
        return len(self.rules)
